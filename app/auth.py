from __future__ import annotations

import logging
import secrets

import redis
from pydantic import ValidationError
from werkzeug.security import check_password_hash, generate_password_hash

from app.api.models import AuthResult, TokenPayload, User
from app.core.errors import StorageError
from app.user_store import RedisUserStore

logger = logging.getLogger(__name__)


TOKEN_KEY_PREFIX = "banana:token:"  # + {token}


def _token_key(token: str) -> str:
    return f"{TOKEN_KEY_PREFIX}{token}"


class AuthService:
    """Password hashing and bearer tokens.

    Tokens are opaque random strings stored in redis with a TTL, so logout can
    revoke them and expiry is handled by redis itself.
    """

    def __init__(self, *, r: redis.Redis, users: RedisUserStore, token_ttl_s: int = 24 * 60 * 60) -> None:
        self.r = r
        self.users = users
        self.token_ttl_s = token_ttl_s

    async def register(self, username: str, password: str) -> AuthResult | None:
        if await self.users.get_user_by_username(username) is not None:
            return None

        user = await self.users.create_user(username, generate_password_hash(password))
        if user is None:
            # Lost a race for the same username.
            return None

        logger.info("Registered user %s (%s)", user.username, user.id)
        return self._issue(user)

    async def login(self, username: str, password: str) -> AuthResult | None:
        user = await self.validate_user(username, password)
        if user is None:
            return None
        return self._issue(user)

    async def validate_user(self, username: str, password: str) -> User | None:
        user = await self.users.get_user_by_username(username)
        if user is None or not check_password_hash(user.password_hash, password):
            return None
        return user

    def _issue(self, user: User) -> AuthResult:
        token = secrets.token_urlsafe(32)
        payload = TokenPayload(user_id=user.id, username=user.username)
        try:
            self.r.set(_token_key(token), payload.model_dump_json(), ex=self.token_ttl_s)
        except redis.RedisError as e:
            raise StorageError("failed to issue token") from e
        return AuthResult(token=token, user_id=user.id, username=user.username)

    def verify_token(self, token: str) -> TokenPayload | None:
        if not token:
            return None
        try:
            raw = self.r.get(_token_key(token))
        except redis.RedisError as e:
            raise StorageError("failed to verify token") from e
        if not raw:
            return None
        try:
            return TokenPayload.model_validate_json(raw)
        except ValidationError:
            logger.warning("Discarding malformed token record")
            return None

    def revoke_token(self, token: str) -> None:
        try:
            self.r.delete(_token_key(token))
        except redis.RedisError as e:
            raise StorageError("failed to revoke token") from e
