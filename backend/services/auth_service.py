"""Authentication service: JWT tokens, password hashing and account management."""

from __future__ import annotations

import hashlib
import hmac
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import bcrypt
from jose import JWTError, jwt
from sqlalchemy import select

from backend.models.audit import AuditAction
from backend.models.user import User, UserRole
from backend.services.audit_service import record_audit
from backend.services.datetime_service import now_utc

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from backend.config import Settings

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
_DUMMY_PASSWORD_HASH = bcrypt.hashpw(b"modsigner-dummy-password", bcrypt.gensalt()).decode(
    "utf-8"
)


class AccountConflictError(Exception):
    """Raised when an email or nickname is already taken."""


def hash_email(email: str, secret_key: str) -> str:
    """Keyed HMAC-SHA256 fingerprint of a normalized email address."""
    return hmac.new(
        secret_key.encode("utf-8"), email.strip().lower().encode("utf-8"), hashlib.sha256
    ).hexdigest()


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    try:
        return bcrypt.checkpw(plain_password.encode("utf-8"), hashed_password.encode("utf-8"))
    except ValueError:
        return False


def create_access_token(data: dict[str, Any], secret_key: str, expires_minutes: int = 60) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()
    expire = datetime.now(UTC) + timedelta(minutes=expires_minutes)
    to_encode.update({"exp": expire, "type": "access"})
    return str(jwt.encode(to_encode, secret_key, algorithm=ALGORITHM))


def decode_access_token(token: str, secret_key: str) -> dict[str, Any] | None:
    """Decode and validate a JWT access token."""
    try:
        payload: dict[str, Any] = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
        if payload.get("type") != "access":
            return None
        return payload
    except JWTError:
        logger.debug("Failed to decode access token", exc_info=True)
        return None


def create_token_for_user(user: User, settings: Settings) -> str:
    return create_access_token(
        {"sub": str(user.id), "nickname": user.nickname, "role": user.role},
        settings.secret_key,
        settings.access_token_expire_minutes,
    )


async def get_user_by_email(session: AsyncSession, email: str, secret_key: str) -> User | None:
    stmt = select(User).where(User.email_hash == hash_email(email, secret_key))
    return (await session.execute(stmt)).scalar_one_or_none()


async def authenticate_user(
    session: AsyncSession, email: str, password: str, secret_key: str
) -> User | None:
    """Authenticate a user by email and password."""
    user = await get_user_by_email(session, email, secret_key)
    if user is None:
        # Run a dummy hash check to reduce email timing side channels.
        verify_password(password, _DUMMY_PASSWORD_HASH)
        return None
    if not verify_password(password, user.password_hash):
        return None
    return user


async def create_account(
    session: AsyncSession,
    *,
    email: str,
    password: str,
    nickname: str,
    role: UserRole,
    secret_key: str,
) -> User:
    """Insert a user after checking email and nickname uniqueness.

    Raises AccountConflictError if either is already taken. Does not commit.
    """
    if await get_user_by_email(session, email, secret_key) is not None:
        msg = "Email already in use"
        raise AccountConflictError(msg)
    stmt = select(User).where(User.nickname == nickname)
    if (await session.execute(stmt)).scalar_one_or_none() is not None:
        msg = "Nickname already in use"
        raise AccountConflictError(msg)

    user = User(
        email_hash=hash_email(email, secret_key),
        password_hash=hash_password(password),
        nickname=nickname,
        role=role.value,
    )
    session.add(user)
    await session.flush()
    return user


async def register_user(
    session: AsyncSession,
    *,
    email: str,
    password: str,
    nickname: str,
    secret_key: str,
    user_agent: str | None = None,
) -> User:
    """Self-register a new mod signer account."""
    user = await create_account(
        session,
        email=email,
        password=password,
        nickname=nickname,
        role=UserRole.MOD_SIGNER,
        secret_key=secret_key,
    )
    record_audit(
        session,
        action=AuditAction.CREATE_USER,
        user_id=user.id,
        resource=str(user.id),
        details=f"Registered new account with nickname: {nickname}",
        user_agent=user_agent,
    )
    await session.commit()
    return user


async def record_login(session: AsyncSession, user: User, user_agent: str | None) -> None:
    record_audit(
        session,
        action=AuditAction.LOGIN,
        user_id=user.id,
        resource=str(user.id),
        details="Successful login",
        user_agent=user_agent,
    )
    await session.commit()


async def change_password(
    session: AsyncSession,
    user: User,
    *,
    current_password: str,
    new_password: str,
    user_agent: str | None = None,
) -> bool:
    """Change a user's password. Returns False if the current password is wrong."""
    if not verify_password(current_password, user.password_hash):
        return False
    user.password_hash = hash_password(new_password)
    user.updated_at = now_utc()
    record_audit(
        session,
        action=AuditAction.CHANGE_PASSWORD,
        user_id=user.id,
        resource=str(user.id),
        details="Password updated successfully",
        user_agent=user_agent,
    )
    await session.commit()
    return True


async def ensure_admin_user(session: AsyncSession, settings: Settings) -> None:
    """Create the bootstrap admin user if no user with its email exists."""
    existing = await get_user_by_email(session, settings.admin_email, settings.secret_key)
    if existing is not None:
        return

    stmt = select(User).where(User.nickname == settings.admin_nickname)
    if (await session.execute(stmt)).scalar_one_or_none() is not None:
        logger.warning(
            "Nickname %r is taken by another account; bootstrap admin not created",
            settings.admin_nickname,
        )
        return

    session.add(
        User(
            email_hash=hash_email(settings.admin_email, settings.secret_key),
            password_hash=hash_password(settings.admin_password),
            nickname=settings.admin_nickname,
            role=UserRole.ADMIN.value,
        )
    )
    await session.commit()
    logger.info("Created bootstrap admin user %r", settings.admin_nickname)
