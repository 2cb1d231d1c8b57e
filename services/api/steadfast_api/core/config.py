from __future__ import annotations

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


BACKDATED_CHECKIN_POLICIES = ("reject", "ignore_streak")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STEADFAST_", extra="ignore")

    trust_proxy_headers: bool = False
    allowed_hosts: str = "localhost,127.0.0.1,testserver"
    cors_allowed_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    log_json: bool = False

    db_url: str = "sqlite:///./steadfast.db"

    auth_jwt_secret: str = "dev-secret-change-me"
    auth_jwt_issuer: str = "steadfast-local"
    auth_jwt_exp_minutes: int = 60 * 24 * 7

    # Trailing window for the "last_4_weeks" analytics period.
    analytics_window_days: int = 28

    # What to do with a check-in dated before the user's last counted day.
    # - reject: raise before touching progress
    # - ignore_streak: count it, leave streak state alone
    backdated_checkin_policy: str = "reject"

    # In-memory rate limit (per-process).
    rate_limit_enabled: bool = True
    rate_limit_checkins_per_minute: int = 6
    rate_limit_checkins_per_hour: int = 60

    notifications_enabled: bool = True

    # Optional: seed the default achievement catalog on boot (idempotent).
    seed_on_boot: bool = False

    # Scheduler: automatic relapse check-ins for users with no check-in that day.
    auto_checkin_enabled: bool = False
    scheduler_interval_minutes: int = 60

    @field_validator("backdated_checkin_policy")
    @classmethod
    def _validate_backdated_policy(cls, v: str) -> str:
        raw = str(v or "").strip().lower()
        if raw not in BACKDATED_CHECKIN_POLICIES:
            raise ValueError(
                "STEADFAST_BACKDATED_CHECKIN_POLICY must be one of "
                f"{', '.join(BACKDATED_CHECKIN_POLICIES)} (got {v!r})"
            )
        return raw
