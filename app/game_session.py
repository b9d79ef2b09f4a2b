from __future__ import annotations

import logging

from app.api.models import GameResult, Question, SessionPhase, SessionState
from app.core.errors import InvalidStateError
from app.core.events import EventBus, EventKind
from app.fsm import SessionFSM
from app.question_provider import QuestionProvider
from app.score_store import ScoreStore

logger = logging.getLogger(__name__)


POINTS_PER_CORRECT_ANSWER = 10


class GameSession:
    """One player's game, driven by commands and announced on the bus.

    Within a command the order is always: mutate state, publish, then (for a
    correct answer) chain into the next question. Synchronous subscribers of
    `answer_submitted` therefore see the new score before the provider call starts.

    There is exactly one session per context; a second player calling `start`
    takes it over.
    """

    def __init__(self, *, bus: EventBus, questions: QuestionProvider, scores: ScoreStore) -> None:
        self.bus = bus
        self.questions = questions
        self.scores = scores
        self.state = SessionState()

    def _transition(self, event: str) -> None:
        fsm = SessionFSM(self.state)
        fsm.send(event)
        fsm.sync_phase_to_model()

    @property
    def user_id(self) -> int | None:
        return self.state.user_id

    async def start(self, user_id: int) -> None:
        self._transition("begin")
        self.state.score = 0
        self.state.user_id = user_id

        self.bus.publish(EventKind.game_started, {"user_id": user_id})
        logger.info("Game started for user %s", user_id)

    async def request_question(self) -> Question:
        if self.state.phase != SessionPhase.playing:
            raise InvalidStateError("Game is not in progress")

        # ProviderError propagates untouched; nothing below runs on failure.
        question = await self.questions.fetch_question()

        self.state.current_question = question.question
        self.state.current_solution = question.solution

        self.bus.publish(
            EventKind.question_loaded,
            {"user_id": self.state.user_id, "question": question.question},
        )
        return question

    async def submit_answer(self, answer: float) -> bool:
        if self.state.phase != SessionPhase.playing:
            return False

        is_correct = self.state.current_solution is not None and answer == self.state.current_solution
        logger.debug("Answer %s checked against %s: %s", answer, self.state.current_solution, is_correct)

        if is_correct:
            self.state.score += POINTS_PER_CORRECT_ANSWER

        self.bus.publish(
            EventKind.answer_submitted,
            {"user_id": self.state.user_id, "is_correct": is_correct, "score": self.state.score},
        )

        if is_correct:
            await self.request_question()
        return is_correct

    async def end(self) -> GameResult:
        self._transition("finish")

        high_score = 0
        if self.state.user_id is not None:
            high_score = await self.scores.get_user_high_score(self.state.user_id)

        result = GameResult(final_score=self.state.score, high_score=high_score)
        self.bus.publish(
            EventKind.game_ended,
            {"user_id": self.state.user_id, "final_score": result.final_score, "high_score": result.high_score},
        )
        logger.info("Game ended for user %s: %s", self.state.user_id, result)
        return result

    def get_score(self) -> int:
        return self.state.score

    def is_playing(self) -> bool:
        return self.state.phase == SessionPhase.playing

    async def get_high_score(self) -> int:
        if self.state.user_id is None:
            return 0
        return await self.scores.get_user_high_score(self.state.user_id)

    def snapshot(self) -> SessionState:
        return self.state.model_copy()
