from __future__ import annotations

import logging
from typing import Protocol

import httpx
from pydantic import ValidationError

from app.api.models import Question
from app.config import DEFAULT_BANANA_API_URL
from app.core.errors import ProviderError

logger = logging.getLogger(__name__)


class QuestionProvider(Protocol):
    async def fetch_question(self) -> Question: ...


class BananaApiClient:
    """Client for the banana puzzle API.

    The upstream answers a plain GET with `{"question": <image url>, "solution": <int>}`.
    Any transport error, non-2xx status or malformed body is reported as ProviderError;
    there is no retry.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BANANA_API_URL,
        timeout_s: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.base_url = base_url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_s)

    async def fetch_question(self) -> Question:
        try:
            resp = await self._client.get(self.base_url)
            resp.raise_for_status()
            data = resp.json()
        except httpx.HTTPError as e:
            logger.warning("Banana API request failed: %s", e)
            raise ProviderError(f"question provider unavailable: {e}") from e
        except ValueError as e:
            # Body was not JSON.
            raise ProviderError("question provider returned a non-JSON body") from e

        try:
            question = Question.model_validate(data)
        except ValidationError as e:
            raise ProviderError("question provider returned an unexpected payload") from e

        logger.debug("Banana API question: %s", question.question)
        return question

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
