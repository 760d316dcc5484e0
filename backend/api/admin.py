"""Admin panel API endpoints: users, audit trail and mod.io sync control."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.auth import user_response
from backend.api.deps import (
    get_scheduler,
    get_session,
    get_settings,
    get_sync_service,
    get_user_agent,
    require_admin,
)
from backend.config import Settings
from backend.models.audit import AuditAction
from backend.models.user import User
from backend.schemas.admin import (
    AuditLogListResponse,
    AuditLogResponse,
    SyncReportResponse,
    SyncStatusResponse,
    SyncTriggerResponse,
    UserCreate,
    UserListResponse,
    UserRoleUpdate,
)
from backend.schemas.auth import UserResponse
from backend.services.admin_service import (
    UserNotFoundError,
    create_user,
    delete_user,
    list_users,
    update_user_role,
)
from backend.services.audit_service import list_audit_logs, record_audit
from backend.services.auth_service import AccountConflictError
from backend.services.datetime_service import format_iso
from backend.services.scheduler_service import SyncScheduler
from backend.services.sync_service import ModSyncService, SyncReport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def _report_response(report: SyncReport) -> SyncReportResponse:
    return SyncReportResponse(
        status=report.status.value,
        started_at=format_iso(report.started_at),
        finished_at=format_iso(report.finished_at) if report.finished_at else None,
        mods_fetched=report.mods_fetched,
        mods_deleted=report.mods_deleted,
        mods_changed=report.mods_changed,
        mods_failed=report.mods_failed,
        error=report.error,
    )


@router.get("/users", response_model=UserListResponse)
async def list_users_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
    _user: Annotated[User, Depends(require_admin)],
) -> UserListResponse:
    users = await list_users(session)
    return UserListResponse(users=[user_response(user) for user in users])


@router.post("/users", response_model=UserResponse, status_code=201)
async def create_user_endpoint(
    body: UserCreate,
    session: Annotated[AsyncSession, Depends(get_session)],
    settings: Annotated[Settings, Depends(get_settings)],
    admin: Annotated[User, Depends(require_admin)],
    user_agent: Annotated[str | None, Depends(get_user_agent)],
) -> UserResponse:
    """Create a user account with the given role."""
    try:
        user = await create_user(
            session,
            admin,
            email=body.email,
            password=body.password,
            nickname=body.nickname,
            role=body.role,
            secret_key=settings.secret_key,
            user_agent=user_agent,
        )
    except AccountConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    await session.refresh(user)
    return user_response(user)


@router.patch("/users/{user_id}/role", response_model=UserResponse)
async def update_user_role_endpoint(
    user_id: int,
    body: UserRoleUpdate,
    session: Annotated[AsyncSession, Depends(get_session)],
    admin: Annotated[User, Depends(require_admin)],
    user_agent: Annotated[str | None, Depends(get_user_agent)],
) -> UserResponse:
    try:
        user = await update_user_role(session, admin, user_id, body.role, user_agent)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return user_response(user)


@router.delete("/users/{user_id}", status_code=204)
async def delete_user_endpoint(
    user_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    admin: Annotated[User, Depends(require_admin)],
    user_agent: Annotated[str | None, Depends(get_user_agent)],
) -> None:
    """Delete a user account. Admins cannot delete themselves."""
    try:
        await delete_user(session, admin, user_id, user_agent)
    except UserNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
    _user: Annotated[User, Depends(require_admin)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 50,
    action: Annotated[str | None, Query(max_length=100)] = None,
    user_id: Annotated[int | None, Query()] = None,
    since: Annotated[str | None, Query(max_length=64)] = None,
) -> AuditLogListResponse:
    """Paginated audit trail, newest first. ``since`` accepts lax datetimes."""
    result = await list_audit_logs(
        session, page=page, limit=limit, action=action, user_id=user_id, since=since
    )
    return AuditLogListResponse(
        logs=[
            AuditLogResponse(
                id=entry.log.id,
                user_id=entry.log.user_id,
                nickname=entry.nickname,
                action=entry.log.action,
                resource=entry.log.resource,
                details=entry.log.details,
                user_agent=entry.log.user_agent,
                timestamp=format_iso(entry.log.timestamp),
            )
            for entry in result.entries
        ],
        page=result.page,
        limit=result.limit,
        total=result.total,
        total_pages=result.total_pages,
    )


@router.post("/sync-mods", response_model=SyncTriggerResponse, status_code=202)
async def trigger_mod_sync(
    session: Annotated[AsyncSession, Depends(get_session)],
    sync_service: Annotated[ModSyncService, Depends(get_sync_service)],
    admin: Annotated[User, Depends(require_admin)],
    user_agent: Annotated[str | None, Depends(get_user_agent)],
) -> SyncTriggerResponse:
    """Start a mod.io sync in the background.

    Only acceptance is reported; the pass outcome shows up in the audit trail
    and in ``/sync-status``.
    """
    started = sync_service.trigger_sync(admin.id)
    record_audit(
        session,
        action=AuditAction.MODIO_SYNC,
        user_id=admin.id,
        resource="modio",
        details="Manual sync triggered" if started else "Manual sync requested (already running)",
        user_agent=user_agent,
    )
    await session.commit()

    if not started:
        return SyncTriggerResponse(message="Sync already in progress", already_running=True)
    logger.info("Manual mod.io sync triggered by %s", admin.nickname)
    return SyncTriggerResponse(message="Sync started", already_running=False)


@router.get("/sync-status", response_model=SyncStatusResponse)
async def sync_status(
    sync_service: Annotated[ModSyncService, Depends(get_sync_service)],
    scheduler: Annotated[SyncScheduler | None, Depends(get_scheduler)],
    _user: Annotated[User, Depends(require_admin)],
) -> SyncStatusResponse:
    report = sync_service.last_report
    return SyncStatusResponse(
        running=sync_service.is_running,
        last_report=_report_response(report) if report else None,
        scheduler=scheduler.status() if scheduler else {"running": False, "jobs": []},
    )
