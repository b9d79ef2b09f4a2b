from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any

from fastapi import WebSocket

from app.core.events import EventBus, EventKind, Unsubscribe

# Session and announcement events pushed to the owning player's sockets.
FEED_EVENT_KINDS: tuple[EventKind, ...] = (
    EventKind.game_started,
    EventKind.question_loaded,
    EventKind.answer_submitted,
    EventKind.game_ended,
    EventKind.score_saved,
    EventKind.high_score_achieved,
)


class EventWebSocketHub:
    """In-process WebSocket pub/sub keyed by user_id.

    Contract:
      - assign connection to a user via `connect(user_id, websocket)`.
      - push lightweight events with `broadcast(user_id, payload)`.

    Payloads should be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._by_user: dict[int, set[WebSocket]] = defaultdict(set)
        self._lock = asyncio.Lock()

    async def connect(self, user_id: int, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._by_user[user_id].add(websocket)

    async def disconnect(self, user_id: int, websocket: WebSocket) -> None:
        async with self._lock:
            conns = self._by_user.get(user_id)
            if not conns:
                return
            conns.discard(websocket)
            if not conns:
                self._by_user.pop(user_id, None)

    def connection_count(self, user_id: int) -> int:
        return len(self._by_user.get(user_id, ()))

    async def broadcast(self, user_id: int, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._by_user.get(user_id, set()))

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            async with self._lock:
                for ws in dead:
                    self._by_user.get(user_id, set()).discard(ws)


def register_event_feed(*, bus: EventBus, hub: EventWebSocketHub) -> list[Unsubscribe]:
    """Forward bus events to the sockets of the user they concern."""

    unsubs: list[Unsubscribe] = []
    for kind in FEED_EVENT_KINDS:

        async def _forward(payload: dict[str, Any], kind: EventKind = kind) -> None:
            user_id = payload.get("user_id")
            if user_id is None:
                return
            await hub.broadcast(int(user_id), {"type": kind.value, **payload})

        unsubs.append(bus.subscribe(kind, _forward))
    return unsubs
