"""Mod catalog API endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.deps import get_session, require_role
from backend.models.mod import ModVersion
from backend.models.user import User, UserRole
from backend.schemas.mod import (
    ModListResponse,
    ModSummaryResponse,
    ModVersionResponse,
    ModVersionsResponse,
)
from backend.services.datetime_service import format_iso
from backend.services.mod_service import (
    ModSummary,
    get_mod_with_versions,
    list_mods,
    summarize_mod,
)

router = APIRouter(prefix="/api/mods", tags=["mods"])

require_signer = require_role(UserRole.MOD_SIGNER, UserRole.ADMIN)


def _summary_response(summary: ModSummary) -> ModSummaryResponse:
    mod = summary.mod
    return ModSummaryResponse(
        id=mod.id,
        remote_id=mod.remote_id,
        name=mod.name,
        profile_url=mod.profile_url,
        status=mod.status,
        last_uploaded_at=format_iso(mod.last_uploaded_at) if mod.last_uploaded_at else None,
        current_version=summary.current_version,
        current_signed=summary.current_signed,
        filesize=summary.filesize,
        version_uploaded_at=(
            format_iso(summary.version_uploaded_at) if summary.version_uploaded_at else None
        ),
        version_count=summary.version_count,
        latest_version=summary.latest_version,
        latest_signed=summary.latest_signed,
        is_outdated=summary.is_outdated,
    )


def _version_response(version: ModVersion) -> ModVersionResponse:
    return ModVersionResponse(
        id=version.id,
        remote_file_id=version.remote_file_id,
        version=version.version,
        is_signed=version.is_signed,
        is_current=version.is_current,
        uploaded_at=format_iso(version.uploaded_at),
        content_hash=version.content_hash,
        file_size=version.file_size,
        signature=version.signature,
    )


@router.get("", response_model=ModListResponse)
async def list_mods_endpoint(
    session: Annotated[AsyncSession, Depends(get_session)],
    _user: Annotated[User, Depends(require_signer)],
    outdated: Annotated[bool, Query()] = False,
) -> ModListResponse:
    """List mirrored mods with their current and newest versions."""
    summaries = await list_mods(session, outdated_only=outdated)
    return ModListResponse(mods=[_summary_response(summary) for summary in summaries])


@router.get("/{mod_id}/versions", response_model=ModVersionsResponse)
async def list_versions_endpoint(
    mod_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    _user: Annotated[User, Depends(require_signer)],
) -> ModVersionsResponse:
    """List every version of one mod, newest upload first."""
    result = await get_mod_with_versions(session, mod_id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Mod not found")
    return ModVersionsResponse(
        mod=_summary_response(summarize_mod(result.mod, result.versions)),
        versions=[_version_response(version) for version in result.versions],
    )
