from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from types import MappingProxyType
from typing import Any

logger = logging.getLogger(__name__)


class EventKind(StrEnum):
    game_started = "game_started"
    game_ended = "game_ended"
    question_loaded = "question_loaded"
    answer_submitted = "answer_submitted"
    user_registered = "user_registered"
    user_logged_in = "user_logged_in"
    score_saved = "score_saved"
    high_score_achieved = "high_score_achieved"


EventHandler = Callable[[dict[str, Any]], "Awaitable[None] | None"]
Unsubscribe = Callable[[], None]


@dataclass(frozen=True, slots=True)
class EventRecord:
    kind: EventKind
    payload: Mapping[str, Any]
    ts: datetime

    @staticmethod
    def now(*, kind: EventKind, payload: Mapping[str, Any]) -> "EventRecord":
        return EventRecord(kind=kind, payload=MappingProxyType(dict(payload)), ts=datetime.now(tz=UTC))


@dataclass(eq=False, slots=True)
class Subscription:
    """One registration of a handler; identity-compared so duplicates stay distinct."""

    kind: EventKind
    handler: EventHandler


def _handler_name(handler: EventHandler) -> str:
    return getattr(handler, "__qualname__", None) or repr(handler)


class EventBus:
    """In-process publish/subscribe with an append-only history.

    Contract:
      - handlers run synchronously inside `publish`, in subscription order.
      - a handler that returns a coroutine is started as an eager task: it runs inside
        `publish` up to its first suspension point, then continues on later loop turns
        and is *not* awaited; its failure is logged like a synchronous one.
      - one handler raising never stops the rest.

    The history is unbounded for the lifetime of the bus.
    """

    def __init__(self) -> None:
        self._subs: dict[EventKind, list[Subscription]] = {}
        self._history: list[EventRecord] = []
        self._pending: set[asyncio.Future[Any]] = set()

    def subscribe(self, kind: EventKind, handler: EventHandler) -> Unsubscribe:
        sub = Subscription(kind=kind, handler=handler)
        self._subs.setdefault(kind, []).append(sub)

        def _unsubscribe() -> None:
            subs = self._subs.get(kind)
            if subs is None:
                return
            for idx, existing in enumerate(subs):
                if existing is sub:
                    del subs[idx]
                    return

        return _unsubscribe

    def publish(self, kind: EventKind, payload: Mapping[str, Any] | None = None) -> None:
        record = EventRecord.now(kind=kind, payload=payload or {})
        self._history.append(record)

        # Snapshot so handlers may (un)subscribe while we dispatch.
        for sub in list(self._subs.get(kind, ())):
            try:
                result = sub.handler(dict(record.payload))
            except Exception:
                logger.exception("Error in event handler %s for %s", _handler_name(sub.handler), kind.value)
                continue
            if inspect.isawaitable(result):
                self._spawn(sub, result)

    def _spawn(self, sub: Subscription, awaitable: Awaitable[Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error(
                "Async handler %s for %s published outside an event loop; dropped",
                _handler_name(sub.handler),
                sub.kind.value,
            )
            close = getattr(awaitable, "close", None)
            if close is not None:
                close()
            return

        if inspect.iscoroutine(awaitable):
            # Run the body up to its first suspension point inside publish, in subscription order.
            task: asyncio.Future[Any] = asyncio.Task(awaitable, loop=loop, eager_start=True)
        else:
            task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)

        def _done(t: asyncio.Future[Any]) -> None:
            self._pending.discard(t)
            if t.cancelled():
                logger.warning("Async handler %s for %s was cancelled", _handler_name(sub.handler), sub.kind.value)
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    "Error in async event handler %s for %s",
                    _handler_name(sub.handler),
                    sub.kind.value,
                    exc_info=exc,
                )

        task.add_done_callback(_done)

    def get_history(self, kind: EventKind | None = None) -> list[EventRecord]:
        if kind is None:
            return list(self._history)
        return [rec for rec in self._history if rec.kind == kind]

    def clear_history(self) -> None:
        self._history.clear()

    def subscriber_count(self, kind: EventKind) -> int:
        return len(self._subs.get(kind, ()))

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every in-flight async handler, including ones spawned while waiting."""

        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
