from __future__ import annotations

import asyncio
import logging

import fakeredis
import pytest
import redis

from app.core.context import GameContext
from app.core.events import EventBus, EventKind
from app.game_session import GameSession
from app.handlers import register_reactive_handlers
from app.score_store import RedisScoreStore
from conftest import FakeQuestionProvider


def _kinds(ctx: GameContext) -> list[EventKind]:
    return [rec.kind for rec in ctx.bus.get_history()]


def _queue(questions: FakeQuestionProvider, *solutions: int) -> None:
    for i, solution in enumerate(solutions):
        questions.push(f"https://banana.test/{i}.png", solution)


@pytest.mark.asyncio
async def test_end_saves_positive_score_and_announces_it(ctx: GameContext, questions: FakeQuestionProvider) -> None:
    _queue(questions, 1, 2, 3)
    await ctx.session.start(7)
    await ctx.session.request_question()
    await ctx.session.submit_answer(1)
    await ctx.session.submit_answer(2)

    result = await ctx.session.end()
    assert result.final_score == 20
    # The save is fire-and-forget; nothing is persisted until the handler runs.
    await ctx.bus.drain()

    assert await ctx.scores.get_user_high_score(7) == 20
    saved = ctx.bus.get_history(EventKind.score_saved)
    assert len(saved) == 1
    assert dict(saved[0].payload) == {"user_id": 7, "score": 20}


@pytest.mark.asyncio
async def test_end_with_zero_score_saves_nothing(ctx: GameContext) -> None:
    await ctx.session.start(7)
    await ctx.session.end()
    await ctx.bus.drain()

    assert await ctx.scores.get_user_scores(7) == []
    assert ctx.bus.get_history(EventKind.score_saved) == []


@pytest.mark.asyncio
async def test_end_without_start_never_saves(ctx: GameContext) -> None:
    result = await ctx.session.end()
    await ctx.bus.drain()

    assert (result.final_score, result.high_score) == (0, 0)
    assert ctx.bus.get_history(EventKind.score_saved) == []


@pytest.mark.asyncio
async def test_high_score_announced_on_each_correct_answer_beating_stored_best(
    ctx: GameContext, questions: FakeQuestionProvider
) -> None:
    await ctx.scores.save_score(7, 15)
    _queue(questions, 1, 2, 3, 4)
    await ctx.session.start(7)
    await ctx.session.request_question()

    for solution in (1, 2, 3):
        await ctx.session.submit_answer(solution)
        await ctx.bus.drain()

    announced = [dict(rec.payload) for rec in ctx.bus.get_history(EventKind.high_score_achieved)]
    # 10 does not beat 15; 20 and 30 both do since the best is only saved at game end.
    assert announced == [{"user_id": 7, "score": 20}, {"user_id": 7, "score": 30}]


@pytest.mark.asyncio
async def test_wrong_answer_never_announces_high_score(ctx: GameContext, questions: FakeQuestionProvider) -> None:
    _queue(questions, 1)
    await ctx.session.start(7)
    await ctx.session.request_question()

    await ctx.session.submit_answer(99)
    await ctx.bus.drain()

    assert ctx.bus.get_history(EventKind.high_score_achieved) == []


@pytest.mark.asyncio
async def test_event_order_for_a_scoring_game(ctx: GameContext, questions: FakeQuestionProvider) -> None:
    _queue(questions, 5, 6)
    await ctx.session.start(3)
    await ctx.session.request_question()
    await ctx.session.submit_answer(5)
    await ctx.bus.drain()
    await ctx.session.end()
    await ctx.bus.drain()

    assert _kinds(ctx) == [
        EventKind.game_started,
        EventKind.question_loaded,
        EventKind.answer_submitted,
        # The high-score handler never really suspends on fakeredis, so it
        # publishes inside answer_submitted, before the chained question.
        EventKind.high_score_achieved,
        EventKind.question_loaded,
        EventKind.game_ended,
        EventKind.score_saved,
    ]


class _BrokenRedis(fakeredis.FakeRedis):
    def pipeline(self, *args, **kwargs):  # type: ignore[no-untyped-def]
        raise redis.ConnectionError("redis down")


@pytest.mark.asyncio
async def test_save_failure_is_logged_and_swallowed(
    ctx: GameContext, questions: FakeQuestionProvider, caplog: pytest.LogCaptureFixture
) -> None:
    ctx.scores.r = _BrokenRedis(decode_responses=True)
    _queue(questions, 1, 2)
    await ctx.session.start(7)
    await ctx.session.request_question()
    await ctx.session.submit_answer(1)

    with caplog.at_level(logging.ERROR):
        result = await ctx.session.end()
        await ctx.bus.drain()

    assert result.final_score == 10
    assert ctx.bus.get_history(EventKind.score_saved) == []
    assert any("Error saving score" in rec.getMessage() for rec in caplog.records)


@pytest.mark.asyncio
async def test_unsubscribing_reactive_handlers_stops_persistence(ctx: GameContext, questions: FakeQuestionProvider) -> None:
    for unsub in ctx.unsubscribers:
        unsub()

    _queue(questions, 1, 2)
    await ctx.session.start(7)
    await ctx.session.request_question()
    await ctx.session.submit_answer(1)
    await ctx.session.end()
    await ctx.bus.drain()

    assert await ctx.scores.get_user_high_score(7) == 0


@pytest.mark.asyncio
async def test_lower_score_does_not_lower_stored_best(ctx: GameContext, questions: FakeQuestionProvider) -> None:
    store: RedisScoreStore = ctx.scores
    await store.save_score(7, 50)
    _queue(questions, 1, 2)
    await ctx.session.start(7)
    await ctx.session.request_question()
    await ctx.session.submit_answer(1)
    await ctx.session.end()
    await ctx.bus.drain()

    assert await store.get_user_high_score(7) == 50
    assert await store.get_user_scores(7) == [50, 10]


class _SlowLookupScoreStore:
    """Suspends once inside `get_user_high_score`, like a real network round trip."""

    def __init__(self) -> None:
        self.lookups: list[int] = []
        self.saved: list[tuple[int, int]] = []

    async def save_score(self, user_id: int, score: int) -> None:
        self.saved.append((user_id, score))

    async def get_user_high_score(self, user_id: int) -> int:
        self.lookups.append(user_id)
        await asyncio.sleep(0)
        return 0

    async def get_high_scores(self, limit: int = 10) -> list:
        return []


@pytest.mark.asyncio
async def test_high_score_lookup_uses_player_at_publish_time_even_if_session_restarts(
    questions: FakeQuestionProvider,
) -> None:
    bus = EventBus()
    scores = _SlowLookupScoreStore()
    session = GameSession(bus=bus, questions=questions, scores=scores)
    register_reactive_handlers(bus=bus, session=session, scores=scores)
    _queue(questions, 1, 2)

    await session.start(7)
    await session.request_question()
    await session.submit_answer(1)
    # Another player takes the shared session before the lookup resumes.
    await session.start(8)
    await bus.drain()

    assert scores.lookups == [7]
    assert session.user_id == 8
