from __future__ import annotations

import os
from collections.abc import Generator
from pathlib import Path

import fakeredis
import pytest
from fastapi.testclient import TestClient

from app.api.models import Question
from app.config import Settings
from app.core.context import GameContext, build_context
from app.core.errors import ProviderError


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    In CI, we *don't* auto-load `.env` by default so a developer's REDIS_URL or
    BANANA_API_URL never leaks into the hermetic suite.
    """

    if os.environ.get("CI") and os.environ.get("BANANA_GAME_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)


class FakeQuestionProvider:
    """Serves queued questions; raises ProviderError when `fail` is set or the queue runs dry."""

    def __init__(self, questions: list[Question] | None = None) -> None:
        self.queue: list[Question] = list(questions or [])
        self.calls = 0
        self.fail = False

    def push(self, question: str, solution: int) -> None:
        self.queue.append(Question(question=question, solution=solution))

    async def fetch_question(self) -> Question:
        self.calls += 1
        if self.fail or not self.queue:
            raise ProviderError("no question available")
        return self.queue.pop(0)


def make_settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "redis_url": "redis://localhost:6379/0",
        "banana_api_url": "http://banana.test/api.php",
        "banana_api_timeout_s": 1.0,
        "token_ttl_s": 3600,
        "leaderboard_limit": 10,
        "app_env": "test",
        "log_level": "DEBUG",
    }
    values.update(overrides)
    return Settings(**values)  # type: ignore[arg-type]


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    # Own server per test so state never leaks between tests.
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
def questions() -> FakeQuestionProvider:
    return FakeQuestionProvider()


@pytest.fixture()
def ctx(r: fakeredis.FakeRedis, questions: FakeQuestionProvider) -> GameContext:
    return build_context(r=r, settings=make_settings(), questions=questions)


@pytest.fixture()
def client(ctx: GameContext) -> Generator[TestClient, None, None]:
    """FastAPI TestClient bound to the test context (fakeredis + fake question provider)."""

    from app.main import app

    app.state.ctx = ctx
    with TestClient(app) as c:
        yield c
    app.state.ctx = None


def register(client: TestClient, username: str = "alice", password: str = "pw") -> dict:
    resp = client.post("/api/auth/register", json={"username": username, "password": password})
    assert resp.status_code == 200, resp.text
    return resp.json()


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}
