"""User administration business logic."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from backend.models.audit import AuditAction
from backend.models.user import User, UserRole
from backend.services.audit_service import record_audit
from backend.services.auth_service import create_account
from backend.services.datetime_service import now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


class UserNotFoundError(LookupError):
    """Raised when the target user does not exist."""


async def list_users(session: AsyncSession) -> list[User]:
    """Return all users, newest first."""
    stmt = select(User).order_by(User.created_at.desc(), User.id.desc())
    return list((await session.execute(stmt)).scalars().all())


async def create_user(
    session: AsyncSession,
    actor: User,
    *,
    email: str,
    password: str,
    nickname: str,
    role: UserRole,
    secret_key: str,
    user_agent: str | None = None,
) -> User:
    """Create a user on behalf of an admin."""
    user = await create_account(
        session,
        email=email,
        password=password,
        nickname=nickname,
        role=role,
        secret_key=secret_key,
    )
    record_audit(
        session,
        action=AuditAction.CREATE_USER,
        user_id=actor.id,
        resource=str(user.id),
        details=f"Created user with role: {role.value}",
        user_agent=user_agent,
    )
    await session.commit()
    return user


async def update_user_role(
    session: AsyncSession,
    actor: User,
    user_id: int,
    role: UserRole,
    user_agent: str | None = None,
) -> User:
    user = await session.get(User, user_id)
    if user is None:
        msg = f"User {user_id} not found"
        raise UserNotFoundError(msg)
    user.role = role.value
    user.updated_at = now_utc()
    record_audit(
        session,
        action=AuditAction.UPDATE_USER_ROLE,
        user_id=actor.id,
        resource=str(user_id),
        details=f"Changed role to: {role.value}",
        user_agent=user_agent,
    )
    await session.commit()
    return user


async def delete_user(
    session: AsyncSession,
    actor: User,
    user_id: int,
    user_agent: str | None = None,
) -> None:
    """Delete a user. Admins cannot delete their own account."""
    if actor.id == user_id:
        msg = "Cannot delete your own account"
        raise ValueError(msg)
    user = await session.get(User, user_id)
    if user is None:
        msg = f"User {user_id} not found"
        raise UserNotFoundError(msg)
    await session.delete(user)
    record_audit(
        session,
        action=AuditAction.DELETE_USER,
        user_id=actor.id,
        resource=str(user_id),
        details="Deleted user account",
        user_agent=user_agent,
    )
    await session.commit()
