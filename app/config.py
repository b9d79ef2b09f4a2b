from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_BANANA_API_URL = "https://marcconrad.com/uob/banana/api.php"


@dataclass(frozen=True, slots=True)
class Settings:
    redis_url: str
    banana_api_url: str
    banana_api_timeout_s: float
    # Lifetime of an issued bearer token.
    token_ttl_s: int
    leaderboard_limit: int
    app_env: str
    log_level: str

    @property
    def is_production(self) -> bool:
        return self.app_env == "production"


def settings_from_env() -> Settings:
    return Settings(
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        banana_api_url=os.environ.get("BANANA_API_URL", DEFAULT_BANANA_API_URL),
        banana_api_timeout_s=float(os.environ.get("BANANA_API_TIMEOUT_S", "5.0")),
        token_ttl_s=int(os.environ.get("TOKEN_TTL_S", str(24 * 60 * 60))),
        leaderboard_limit=int(os.environ.get("LEADERBOARD_LIMIT", "10")),
        app_env=os.environ.get("APP_ENV", "development"),
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    )
