from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="QUESTLINE_", extra="ignore")

    trust_proxy_headers: bool = False
    allowed_hosts: str = "localhost,127.0.0.1,testserver"
    cors_allowed_origins: str = "http://localhost:8081,http://127.0.0.1:8081"
    log_json: bool = False

    db_url: str = "sqlite:///./artifacts/questline.db"
    # Seconds a SQLite writer waits on a locked database before giving up.
    sqlite_busy_timeout_sec: float = 5.0

    auth_jwt_secret: str = "dev-secret-change-me"
    auth_jwt_issuer: str = "questline-local"
    auth_jwt_exp_minutes: int = 60 * 24 * 7

    admin_token: str | None = None

    # Friend synergy: a quest completion within this many seconds of an accepted
    # friend's completion of the same quest earns a bonus on the base XP.
    synergy_window_sec: int = 300
    synergy_bonus_pct: int = 10

    @field_validator("synergy_window_sec")
    @classmethod
    def _validate_synergy_window(cls, v: int) -> int:
        if int(v) <= 0:
            raise ValueError(
                f"QUESTLINE_SYNERGY_WINDOW_SEC must be positive (got {v!r})"
            )
        return int(v)

    @field_validator("synergy_bonus_pct")
    @classmethod
    def _validate_synergy_bonus(cls, v: int) -> int:
        if int(v) < 0:
            raise ValueError(
                f"QUESTLINE_SYNERGY_BONUS_PCT must not be negative (got {v!r})"
            )
        return int(v)
