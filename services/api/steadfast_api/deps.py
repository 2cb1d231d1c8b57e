from __future__ import annotations

from typing import Iterator

import jwt
from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from steadfast_api.core.security import decode_token
from steadfast_api.db import SessionLocal


def get_db() -> Iterator[Session]:
    with SessionLocal() as session:
        yield session


def _bearer_token(authorization: str | None) -> str:
    if not authorization:
        raise HTTPException(status_code=401, detail="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(status_code=401, detail="Invalid Authorization header")
    return token.strip()


def get_current_user_id(authorization: str | None = Header(default=None)) -> str:
    token = _bearer_token(authorization)
    try:
        payload = decode_token(token)
    except jwt.ExpiredSignatureError as e:
        raise HTTPException(status_code=401, detail="Token expired") from e
    except jwt.PyJWTError as e:
        raise HTTPException(status_code=401, detail="Invalid token") from e
    sub = str(payload.get("sub") or "").strip()
    if not sub:
        raise HTTPException(status_code=401, detail="Invalid token")
    return sub


CurrentUserId = Depends(get_current_user_id)
DBSession = Depends(get_db)
