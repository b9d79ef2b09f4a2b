from __future__ import annotations

import redis

from app.api.models import User
from app.core.errors import StorageError


USER_ID_SEQ_KEY = "banana:user:next_id"
USERS_BY_NAME_KEY = "banana:users:by_name"  # hash username -> id
USER_KEY_PREFIX = "banana:user:"  # + {id}


def user_key(user_id: int) -> str:
    return f"{USER_KEY_PREFIX}{user_id}"


class RedisUserStore:
    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    async def create_user(self, username: str, password_hash: str) -> User | None:
        """Create a user, or return None if the username is already taken."""

        try:
            user_id = int(self.r.incr(USER_ID_SEQ_KEY))
            # HSETNX makes the username claim atomic.
            if not self.r.hsetnx(USERS_BY_NAME_KEY, username, str(user_id)):
                return None
            self.r.hset(
                user_key(user_id),
                mapping={"id": str(user_id), "username": username, "password_hash": password_hash},
            )
        except redis.RedisError as e:
            raise StorageError("failed to create user") from e
        return User(id=user_id, username=username, password_hash=password_hash)

    async def get_user(self, user_id: int) -> User | None:
        try:
            raw = self.r.hgetall(user_key(user_id))
        except redis.RedisError as e:
            raise StorageError("failed to read user") from e
        if not raw:
            return None
        return User.model_validate(raw)

    async def get_user_by_username(self, username: str) -> User | None:
        try:
            uid = self.r.hget(USERS_BY_NAME_KEY, username)
        except redis.RedisError as e:
            raise StorageError("failed to read user") from e
        if uid is None:
            return None
        return await self.get_user(int(uid))
