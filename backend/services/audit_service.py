"""Audit trail: recording and paginated listing."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import func, select

from backend.models.audit import AuditLog
from backend.models.user import User
from backend.services.datetime_service import parse_datetime, to_utc_naive

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


@dataclass
class AuditLogEntry:
    """An audit row with the acting user's nickname resolved."""

    log: AuditLog
    nickname: str | None


@dataclass
class AuditLogPage:
    entries: list[AuditLogEntry]
    page: int
    limit: int
    total: int

    @property
    def total_pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit


def record_audit(
    session: AsyncSession,
    *,
    action: str,
    user_id: int | None = None,
    resource: str | None = None,
    details: str | None = None,
    user_agent: str | None = None,
) -> AuditLog:
    """Add an audit row to the session. The caller owns the transaction."""
    entry = AuditLog(
        user_id=user_id,
        action=action,
        resource=resource,
        details=details,
        user_agent=user_agent,
    )
    session.add(entry)
    return entry


async def list_audit_logs(
    session: AsyncSession,
    *,
    page: int = 1,
    limit: int = 50,
    action: str | None = None,
    user_id: int | None = None,
    since: str | None = None,
) -> AuditLogPage:
    """Return one page of audit logs, newest first.

    Raises ValueError for invalid pagination or an unparsable ``since``.
    """
    if page < 1 or limit < 1 or limit > MAX_PAGE_SIZE:
        msg = "Invalid pagination parameters"
        raise ValueError(msg)

    conditions = []
    if action:
        conditions.append(AuditLog.action == action)
    if user_id is not None:
        conditions.append(AuditLog.user_id == user_id)
    if since:
        conditions.append(AuditLog.timestamp >= to_utc_naive(parse_datetime(since)))

    count_stmt = select(func.count()).select_from(AuditLog).where(*conditions)
    total = (await session.execute(count_stmt)).scalar_one()

    stmt = (
        select(AuditLog, User.nickname)
        .outerjoin(User, AuditLog.user_id == User.id)
        .where(*conditions)
        .order_by(AuditLog.timestamp.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    result = await session.execute(stmt)
    entries = [AuditLogEntry(log=log, nickname=nickname) for log, nickname in result.all()]
    return AuditLogPage(entries=entries, page=page, limit=limit, total=total)
