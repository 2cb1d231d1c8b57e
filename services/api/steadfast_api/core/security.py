from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import jwt

from steadfast_api.core.config import Settings

TOKEN_TYPE_ACCESS = "access"


def create_access_token(*, subject: str, now: datetime | None = None) -> str:
    settings = Settings()
    now_dt = now or datetime.now(UTC)
    exp = now_dt + timedelta(minutes=int(settings.auth_jwt_exp_minutes))
    payload: dict[str, Any] = {
        "iss": settings.auth_jwt_issuer,
        "sub": str(subject),
        "typ": TOKEN_TYPE_ACCESS,
        "iat": int(now_dt.timestamp()),
        "exp": int(exp.timestamp()),
    }
    return jwt.encode(payload, settings.auth_jwt_secret, algorithm="HS256")


def decode_token(token: str) -> dict[str, Any]:
    settings = Settings()
    payload = jwt.decode(
        token,
        settings.auth_jwt_secret,
        algorithms=["HS256"],
        issuer=settings.auth_jwt_issuer,
        options={"require": ["exp", "sub"]},
    )
    if payload.get("typ") != TOKEN_TYPE_ACCESS:
        raise jwt.InvalidTokenError("unexpected token type")
    return payload
