from __future__ import annotations

import logging
from typing import Any

from app.core.errors import StorageError
from app.core.events import EventBus, EventKind, Unsubscribe
from app.game_session import GameSession
from app.score_store import ScoreStore

logger = logging.getLogger(__name__)


def register_reactive_handlers(*, bus: EventBus, session: GameSession, scores: ScoreStore) -> list[Unsubscribe]:
    """Wire the session's follow-up effects onto the bus.

    - answer_submitted (correct): announce `high_score_achieved` when the live score
      beats the stored best. The stored best only changes at game end, so this can
      fire on every correct answer of a record-breaking game.
    - game_ended: persist a positive final score and announce `score_saved`.
      Storage failures are logged; `end()` has already returned by then.
    """

    async def _on_answer_submitted(payload: dict[str, Any]) -> None:
        user_id = session.user_id
        if not payload.get("is_correct") or user_id is None:
            return

        high_score = await scores.get_user_high_score(user_id)
        score = session.get_score()
        if score > high_score:
            bus.publish(EventKind.high_score_achieved, {"user_id": user_id, "score": score})

    async def _on_game_ended(payload: dict[str, Any]) -> None:
        user_id = payload.get("user_id")
        final_score = int(payload.get("final_score") or 0)
        if user_id is None or final_score <= 0:
            return

        try:
            await scores.save_score(user_id, final_score)
        except StorageError:
            logger.exception("Error saving score for user %s", user_id)
            return

        bus.publish(EventKind.score_saved, {"user_id": user_id, "score": final_score})

    return [
        bus.subscribe(EventKind.answer_submitted, _on_answer_submitted),
        bus.subscribe(EventKind.game_ended, _on_game_ended),
    ]
