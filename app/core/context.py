from __future__ import annotations

from dataclasses import dataclass, field

import redis

from app.auth import AuthService
from app.config import Settings, settings_from_env
from app.core.events import EventBus, Unsubscribe
from app.game_session import GameSession
from app.handlers import register_reactive_handlers
from app.question_provider import BananaApiClient, QuestionProvider
from app.score_store import RedisScoreStore
from app.user_store import RedisUserStore
from app.websocket_hub import EventWebSocketHub, register_event_feed


@dataclass(slots=True)
class GameContext:
    """Everything one running game needs, created once and injected everywhere.

    Owning the bus here (instead of a module-level singleton) keeps "one bus per
    running game" without hidden global state; tests just build another context.
    """

    settings: Settings
    bus: EventBus
    users: RedisUserStore
    scores: RedisScoreStore
    auth: AuthService
    questions: QuestionProvider
    session: GameSession
    hub: EventWebSocketHub = field(default_factory=EventWebSocketHub)
    unsubscribers: list[Unsubscribe] = field(default_factory=list)

    async def aclose(self) -> None:
        for unsub in self.unsubscribers:
            unsub()
        self.unsubscribers.clear()
        await self.bus.drain()
        close = getattr(self.questions, "aclose", None)
        if close is not None:
            await close()


def build_context(
    *,
    r: redis.Redis,
    settings: Settings | None = None,
    questions: QuestionProvider | None = None,
    bus: EventBus | None = None,
) -> GameContext:
    settings = settings or settings_from_env()
    bus = bus or EventBus()
    users = RedisUserStore(r)
    scores = RedisScoreStore(r)
    auth = AuthService(r=r, users=users, token_ttl_s=settings.token_ttl_s)
    questions = questions or BananaApiClient(
        base_url=settings.banana_api_url,
        timeout_s=settings.banana_api_timeout_s,
    )
    session = GameSession(bus=bus, questions=questions, scores=scores)

    ctx = GameContext(
        settings=settings,
        bus=bus,
        users=users,
        scores=scores,
        auth=auth,
        questions=questions,
        session=session,
    )
    ctx.unsubscribers.extend(register_reactive_handlers(bus=bus, session=session, scores=scores))
    ctx.unsubscribers.extend(register_event_feed(bus=bus, hub=ctx.hub))
    return ctx
