"""Authentication API endpoints."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_session, get_settings, get_user_agent, require_auth
from backend.config import Settings
from backend.models.user import User
from backend.schemas.auth import (
    LoginRequest,
    PasswordChange,
    RegisterRequest,
    TokenResponse,
    UserResponse,
)
from backend.services.auth_service import (
    AccountConflictError,
    authenticate_user,
    change_password,
    create_token_for_user,
    record_login,
    register_user,
)
from backend.services.datetime_service import format_iso
from backend.services.rate_limit_service import LoginThrottle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])


def user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        nickname=user.nickname,
        role=user.role,
        created_at=format_iso(user.created_at),
    )


def _get_client_ip(request: Request) -> str:
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",", maxsplit=1)[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def _raise_if_throttled(throttle: LoginThrottle, key: str) -> None:
    retry_after = throttle.retry_after(key)
    if retry_after:
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many failed login attempts",
            headers={"Retry-After": str(retry_after)},
        )


@router.post("/login", response_model=TokenResponse)
async def login(
    body: LoginRequest,
    request: Request,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    user_agent: Annotated[str | None, Depends(get_user_agent)],
) -> TokenResponse:
    """Login with email and password."""
    throttle: LoginThrottle = request.app.state.login_throttle
    client_key = f"login:{_get_client_ip(request)}:{body.email.lower()}"
    _raise_if_throttled(throttle, client_key)

    user = await authenticate_user(session, body.email, body.password, settings.secret_key)
    if user is None:
        throttle.record_failure(client_key)
        _raise_if_throttled(throttle, client_key)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
        )

    throttle.reset(client_key)
    await record_login(session, user, user_agent)
    return TokenResponse(access_token=create_token_for_user(user, settings))


@router.post("/register", response_model=UserResponse, status_code=201)
async def register(
    body: RegisterRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    user_agent: Annotated[str | None, Depends(get_user_agent)],
) -> UserResponse:
    """Register a new mod signer account."""
    if not settings.auth_self_registration:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Registration is disabled",
        )
    try:
        user = await register_user(
            session,
            email=body.email,
            password=body.password,
            nickname=body.nickname,
            secret_key=settings.secret_key,
            user_agent=user_agent,
        )
    except AccountConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    await session.refresh(user)
    return user_response(user)


@router.post("/change-password")
async def change_own_password(
    body: PasswordChange,
    session: Annotated[AsyncSession, Depends(get_session)],
    user: Annotated[User, Depends(require_auth)],
    user_agent: Annotated[str | None, Depends(get_user_agent)],
) -> dict[str, str]:
    """Change the caller's password."""
    if body.new_password != body.confirm_password:
        raise HTTPException(status_code=400, detail="Passwords do not match")

    changed = await change_password(
        session,
        user,
        current_password=body.current_password,
        new_password=body.new_password,
        user_agent=user_agent,
    )
    if not changed:
        raise HTTPException(status_code=400, detail="Current password is incorrect")
    return {"status": "ok"}


@router.get("/me", response_model=UserResponse)
async def me(user: Annotated[User, Depends(require_auth)]) -> UserResponse:
    """Get current user info."""
    return user_response(user)
