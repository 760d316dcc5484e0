"""Mod catalog response schemas."""

from __future__ import annotations

from pydantic import BaseModel


class ModSummaryResponse(BaseModel):
    """A mod with its current and newest versions."""

    id: int
    remote_id: int
    name: str
    profile_url: str
    status: str
    last_uploaded_at: str | None = None
    current_version: str | None = None
    current_signed: bool = False
    filesize: int | None = None
    version_uploaded_at: str | None = None
    version_count: int = 0
    latest_version: str | None = None
    latest_signed: bool = False
    is_outdated: bool = False


class ModListResponse(BaseModel):
    mods: list[ModSummaryResponse]


class ModVersionResponse(BaseModel):
    """One uploaded file of a mod."""

    id: int
    remote_file_id: int
    version: str
    is_signed: bool
    is_current: bool
    uploaded_at: str
    content_hash: str
    file_size: int
    signature: str | None = None


class ModVersionsResponse(BaseModel):
    mod: ModSummaryResponse
    versions: list[ModVersionResponse]
