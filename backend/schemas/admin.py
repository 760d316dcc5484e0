"""Admin panel request/response schemas."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, EmailStr, Field, field_validator

from backend.models.user import UserRole
from backend.schemas.auth import UserResponse, check_password_strength


class UserCreate(BaseModel):
    """Request to create a user account."""

    email: EmailStr
    password: str = Field(max_length=200)
    nickname: str = Field(min_length=3, max_length=50, pattern=r"^[A-Za-z0-9_.-]+$")
    role: UserRole = UserRole.MOD_SIGNER

    @field_validator("password")
    @classmethod
    def password_strength(cls, v: str) -> str:
        return check_password_strength(v)


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserListResponse(BaseModel):
    users: list[UserResponse]


class AuditLogResponse(BaseModel):
    """One audit trail entry."""

    id: int
    user_id: int | None = None
    nickname: str | None = None
    action: str
    resource: str | None = None
    details: str | None = None
    user_agent: str | None = None
    timestamp: str


class AuditLogListResponse(BaseModel):
    """Paginated audit trail."""

    logs: list[AuditLogResponse]
    page: int
    limit: int
    total: int
    total_pages: int


class SyncReportResponse(BaseModel):
    """Outcome of a finished reconciliation pass."""

    status: str
    started_at: str
    finished_at: str | None = None
    mods_fetched: int
    mods_deleted: int
    mods_changed: int
    mods_failed: int
    error: str | None = None


class SyncTriggerResponse(BaseModel):
    """Response to a manual sync request. The pass itself runs in the background."""

    message: str
    already_running: bool


class SyncStatusResponse(BaseModel):
    running: bool
    last_report: SyncReportResponse | None = None
    scheduler: dict[str, Any]
