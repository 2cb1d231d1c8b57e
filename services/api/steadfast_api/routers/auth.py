from __future__ import annotations

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.orm import Session

from steadfast_api.core.security import create_access_token
from steadfast_api.deps import CurrentUserId, DBSession
from steadfast_api.models import User

router = APIRouter(prefix="/api/auth", tags=["auth"])


class LoginRequest(BaseModel):
    username: str


class AuthResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class MeResponse(BaseModel):
    user_id: str
    display_name: str
    timezone: str | None = None


@router.post("/login", response_model=AuthResponse)
def auth_login(req: LoginRequest, db: Session = DBSession) -> AuthResponse:
    user = db.scalar(select(User).where(User.username == req.username))
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Unknown user")
    return AuthResponse(access_token=create_access_token(subject=user.id))


@router.get("/me", response_model=MeResponse)
def auth_me(user_id: str = CurrentUserId, db: Session = DBSession) -> MeResponse:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return MeResponse(
        user_id=user.id, display_name=user.display_name, timezone=user.timezone
    )
