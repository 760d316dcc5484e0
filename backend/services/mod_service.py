"""Read-only queries over the mirrored mod catalog."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.orm import selectinload

from backend.models.mod import Mod, ModVersion
from backend.services.datetime_service import to_utc_naive

if TYPE_CHECKING:
    from datetime import datetime

    from sqlalchemy.ext.asyncio import AsyncSession


@dataclass
class ModSummary:
    """A mod joined with its current and most recently uploaded versions."""

    mod: Mod
    current: ModVersion | None
    latest: ModVersion | None
    version_count: int

    @property
    def current_version(self) -> str | None:
        return self.current.version if self.current else None

    @property
    def current_signed(self) -> bool:
        return self.current.is_signed if self.current else False

    @property
    def filesize(self) -> int | None:
        return self.current.file_size if self.current else None

    @property
    def version_uploaded_at(self) -> datetime | None:
        return self.current.uploaded_at if self.current else None

    @property
    def latest_version(self) -> str | None:
        return self.latest.version if self.latest else None

    @property
    def latest_signed(self) -> bool:
        return self.latest.is_signed if self.latest else False

    @property
    def is_outdated(self) -> bool:
        """True when the newest upload is not the moderator-selected file."""
        if self.latest is None or self.current is None:
            return False
        return self.latest.id != self.current.id


@dataclass
class ModWithVersions:
    mod: Mod
    versions: list[ModVersion]


def _newest_first(versions: list[ModVersion]) -> list[ModVersion]:
    return sorted(
        versions, key=lambda v: (to_utc_naive(v.uploaded_at), v.remote_file_id), reverse=True
    )


def summarize_mod(mod: Mod, versions: list[ModVersion]) -> ModSummary:
    ordered = _newest_first(versions)
    return ModSummary(
        mod=mod,
        current=next((v for v in ordered if v.is_current), None),
        latest=ordered[0] if ordered else None,
        version_count=len(ordered),
    )


async def list_mods(session: AsyncSession, outdated_only: bool = False) -> list[ModSummary]:
    """Return every mod with its version summary, most recently updated first."""
    stmt = (
        select(Mod)
        .options(selectinload(Mod.versions))
        .order_by(Mod.last_uploaded_at.desc().nulls_last(), Mod.name)
    )
    mods = (await session.execute(stmt)).scalars().all()

    summaries: list[ModSummary] = []
    for mod in mods:
        summary = summarize_mod(mod, list(mod.versions))
        if outdated_only and not summary.is_outdated:
            continue
        summaries.append(summary)
    return summaries


async def get_mod_with_versions(session: AsyncSession, mod_id: int) -> ModWithVersions | None:
    """Return a mod and all its versions, newest upload first."""
    mod = await session.get(Mod, mod_id)
    if mod is None:
        return None
    stmt = (
        select(ModVersion)
        .where(ModVersion.mod_id == mod_id)
        .order_by(ModVersion.uploaded_at.desc(), ModVersion.remote_file_id.desc())
    )
    versions = list((await session.execute(stmt)).scalars().all())
    return ModWithVersions(mod=mod, versions=versions)
