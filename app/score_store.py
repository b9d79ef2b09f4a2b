from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Protocol

import redis

from app.api.models import HighScoreEntry
from app.core.errors import StorageError
from app.user_store import user_key

logger = logging.getLogger(__name__)


HIGH_SCORES_KEY = "banana:highscores"  # zset user_id -> best score
SCORES_KEY_PREFIX = "banana:scores:"  # + {user_id}, list of JSON entries


def _scores_key(user_id: int) -> str:
    return f"{SCORES_KEY_PREFIX}{user_id}"


class ScoreStore(Protocol):
    async def save_score(self, user_id: int, score: int) -> None: ...

    async def get_user_high_score(self, user_id: int) -> int: ...

    async def get_high_scores(self, limit: int = 10) -> list[HighScoreEntry]: ...


class RedisScoreStore:
    """Scores in redis.

    Every finished game is appended to the player's score list; the player's best
    is kept in a sorted set so the leaderboard is a single ZREVRANGE.
    """

    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    async def save_score(self, user_id: int, score: int) -> None:
        entry = json.dumps({"score": score, "ts": datetime.now(tz=UTC).isoformat()})
        try:
            pipe = self.r.pipeline()
            pipe.rpush(_scores_key(user_id), entry)
            # GT: only ever raise the stored best.
            pipe.zadd(HIGH_SCORES_KEY, {str(user_id): score}, gt=True)
            pipe.execute()
        except redis.RedisError as e:
            logger.error("Failed to save score for user %s: %s", user_id, e)
            raise StorageError("failed to save score") from e

    async def get_user_high_score(self, user_id: int) -> int:
        try:
            best = self.r.zscore(HIGH_SCORES_KEY, str(user_id))
        except redis.RedisError as e:
            raise StorageError("failed to read high score") from e
        return int(best) if best is not None else 0

    async def get_user_scores(self, user_id: int) -> list[int]:
        try:
            raw = self.r.lrange(_scores_key(user_id), 0, -1)
        except redis.RedisError as e:
            raise StorageError("failed to read scores") from e
        return [int(json.loads(item)["score"]) for item in raw]

    async def get_high_scores(self, limit: int = 10) -> list[HighScoreEntry]:
        if limit < 1:
            return []
        try:
            rows = self.r.zrevrange(HIGH_SCORES_KEY, 0, limit - 1, withscores=True)
            names = [self.r.hget(user_key(int(uid)), "username") for uid, _ in rows]
        except redis.RedisError as e:
            raise StorageError("failed to read leaderboard") from e

        out: list[HighScoreEntry] = []
        for (uid, score), name in zip(rows, names):
            if name is None:
                # Score for a user that no longer exists.
                logger.warning("Leaderboard entry for unknown user %s skipped", uid)
                continue
            out.append(HighScoreEntry(username=name, score=int(score)))
        return out
