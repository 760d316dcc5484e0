"""Mod.io catalog reconciliation.

One pass fetches the remote mod list, deletes local mods that vanished from
it, then reconciles every remote mod and its file history against the local
``mods`` / ``mod_versions`` tables, one transaction per mod. A failure while
processing one mod is logged and the pass moves on to the next mod.

Only one pass runs at a time per ``ModSyncService`` instance. This is a
single-process guarantee; separate processes sharing one database are not
coordinated.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import delete, select

from backend.models.audit import AuditAction
from backend.models.mod import Mod, ModVersion
from backend.modio.signature import extract_signatures, is_signed
from backend.services.audit_service import record_audit
from backend.services.datetime_service import from_timestamp, now_utc, to_utc_naive

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from backend.modio.client import RemoteFile, RemoteMod

logger = logging.getLogger(__name__)

SYNC_USER_AGENT = "modio-sync-service"


class CatalogClient(Protocol):
    """Read operations the reconciler needs from the remote catalog."""

    async def list_mods(self) -> list[RemoteMod]: ...

    async def list_mod_files(self, mod_id: int) -> list[RemoteFile]: ...

    async def get_mod_detail(self, mod_id: int) -> RemoteMod | None: ...


CatalogFactory = Callable[[], AbstractAsyncContextManager["CatalogClient"]]


class SyncStatus(StrEnum):
    """Outcome of a reconciliation pass."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class SyncReport:
    """Summary of one reconciliation pass."""

    status: SyncStatus
    started_at: datetime
    finished_at: datetime | None = None
    mods_fetched: int = 0
    mods_deleted: int = 0
    mods_changed: int = 0
    mods_failed: int = 0
    error: str | None = None


def _plural(count: int, singular: str, plural: str | None = None) -> str:
    word = singular if count == 1 else (plural or f"{singular}s")
    return f"{count} {word}"


@dataclass
class ModChangeSummary:
    """What one pass changed for a single mod."""

    new_versions: int = 0
    signatures_updated: int = 0
    deleted_versions: int = 0
    no_files: bool = False

    def describe(self) -> str:
        """Human-readable summary; empty when nothing changed."""
        parts: list[str] = []
        if self.new_versions:
            parts.append(_plural(self.new_versions, "new version"))
        if self.signatures_updated:
            parts.append(_plural(self.signatures_updated, "signature"))
            parts[-1] += " updated"
        if self.deleted_versions:
            parts.append(_plural(self.deleted_versions, "version"))
            parts[-1] += " deleted"
        if self.no_files:
            parts.append("no files available (possible spam)")
        return ", ".join(parts)


def collect_candidate_files(
    remote_mod: RemoteMod, history: Iterable[RemoteFile]
) -> list[RemoteFile]:
    """Merge the listing's embedded file with the file history, newest first.

    The embedded file is only used when it carries a version and wins over a
    history entry with the same file id.
    """
    files: dict[int, RemoteFile] = {}
    if remote_mod.modfile is not None and remote_mod.modfile.version:
        files[remote_mod.modfile.id] = remote_mod.modfile
    for remote_file in history:
        files.setdefault(remote_file.id, remote_file)
    return sorted(files.values(), key=lambda f: f.date_added, reverse=True)


def choose_current_file_id(files: list[RemoteFile], selected_id: int | None) -> int | None:
    """Return the moderator-selected file id, else the newest file's id."""
    if not files:
        return None
    if selected_id is not None and any(f.id == selected_id for f in files):
        return selected_id
    return files[0].id


def _same_instant(left: datetime | None, right: datetime | None) -> bool:
    if left is None or right is None:
        return left is right
    return to_utc_naive(left) == to_utc_naive(right)


class ModSyncService:
    """Reconciles the local mod tables against the mod.io catalog.

    Args:
        session_factory: Opens the unit of work; every mod is reconciled in
            its own ``session.begin()`` block.
        catalog_factory: Returns an async context manager yielding a
            ``CatalogClient``. Called once per pass so credentials are read
            at call time.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        catalog_factory: CatalogFactory,
    ) -> None:
        self._session_factory = session_factory
        self._catalog_factory = catalog_factory
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[SyncReport]] = set()
        self._last_report: SyncReport | None = None

    @property
    def is_running(self) -> bool:
        """Whether a pass is running or about to start."""
        return self._lock.locked() or bool(self._tasks)

    @property
    def last_report(self) -> SyncReport | None:
        """Report of the most recently finished (non-skipped) pass."""
        return self._last_report

    def trigger_sync(self, triggered_by_user_id: int | None = None) -> bool:
        """Start a pass in the background and return immediately.

        Returns False, without starting anything, when a pass is already
        running.
        """
        if self.is_running:
            logger.warning("Mod.io sync trigger ignored: a sync is already in progress")
            return False
        self._spawn(triggered_by_user_id)
        return True

    async def run_tracked(self, triggered_by_user_id: int | None = None) -> SyncReport | None:
        """Run a pass as a tracked task and wait for it.

        ``aclose`` cancels the pass like one started by ``trigger_sync``;
        returns None in that case.
        """
        task = self._spawn(triggered_by_user_id)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.cancelled():
                return None
            raise

    def _spawn(self, triggered_by_user_id: int | None) -> asyncio.Task[SyncReport]:
        task = asyncio.create_task(self.run_sync(triggered_by_user_id), name="modio-sync")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def aclose(self) -> None:
        """Cancel tracked passes, scheduled or manual."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def run_sync(self, triggered_by_user_id: int | None = None) -> SyncReport:
        """Run one reconciliation pass. Never raises."""
        if self._lock.locked():
            logger.warning("Mod.io sync already in progress, skipping")
            now = now_utc()
            return SyncReport(status=SyncStatus.SKIPPED, started_at=now, finished_at=now)

        async with self._lock:
            report = SyncReport(status=SyncStatus.COMPLETED, started_at=now_utc())
            try:
                await self._run_pass(report, triggered_by_user_id)
            except Exception as exc:
                logger.exception("Mod.io sync failed: %s", exc)
                report.status = SyncStatus.FAILED
                report.error = str(exc) or type(exc).__name__
            report.finished_at = now_utc()
            self._last_report = report
            return report

    async def _run_pass(self, report: SyncReport, triggered_by_user_id: int | None) -> None:
        logger.info("Starting mod.io sync")
        async with self._catalog_factory() as catalog:
            remote_mods = _unique_by_id(await catalog.list_mods())
            report.mods_fetched = len(remote_mods)
            logger.info("Fetched %d mods from mod.io", len(remote_mods))

            report.mods_deleted = await self._delete_missing_mods(
                {remote_mod.id for remote_mod in remote_mods}, triggered_by_user_id
            )

            for remote_mod in remote_mods:
                try:
                    changed = await self._reconcile_mod(catalog, remote_mod, triggered_by_user_id)
                except Exception as exc:
                    report.mods_failed += 1
                    logger.exception(
                        "Error processing mod %s (ID: %d): %s", remote_mod.name, remote_mod.id, exc
                    )
                    continue
                if changed:
                    report.mods_changed += 1

        logger.info(
            "Mod.io sync completed: %d fetched, %d deleted, %d changed, %d failed",
            report.mods_fetched,
            report.mods_deleted,
            report.mods_changed,
            report.mods_failed,
        )

    async def _delete_missing_mods(
        self, remote_ids: set[int], triggered_by_user_id: int | None
    ) -> int:
        """Delete local mods absent from the remote listing, with their versions."""
        if not remote_ids:
            logger.warning("mod.io returned no mods; leaving local mods untouched")
            return 0

        async with self._session_factory() as session, session.begin():
            stmt = select(Mod).where(Mod.remote_id.not_in(sorted(remote_ids)))
            result = await session.execute(stmt)
            stale = [(mod.id, mod.remote_id, mod.name) for mod in result.scalars()]
            if not stale:
                return 0

            stale_ids = [mod_id for mod_id, _, _ in stale]
            await session.execute(delete(ModVersion).where(ModVersion.mod_id.in_(stale_ids)))
            await session.execute(delete(Mod).where(Mod.id.in_(stale_ids)))
            for _, remote_id, name in stale:
                record_audit(
                    session,
                    action=AuditAction.MODIO_SYNC_DELETE,
                    user_id=triggered_by_user_id,
                    resource=str(remote_id),
                    details=(
                        f"Deleted mod: {name} (mod.io ID: {remote_id}) no longer present on mod.io"
                    ),
                    user_agent=SYNC_USER_AGENT,
                )

        logger.info("Deleted %s no longer on mod.io", _plural(len(stale), "mod"))
        return len(stale)

    async def _reconcile_mod(
        self,
        catalog: CatalogClient,
        remote_mod: RemoteMod,
        triggered_by_user_id: int | None,
    ) -> bool:
        """Bring one mod and its versions up to date. Returns True if it changed."""
        history = await catalog.list_mod_files(remote_mod.id)
        files = collect_candidate_files(remote_mod, history)

        selected_id = remote_mod.modfile.id if remote_mod.modfile is not None else None
        if selected_id is None and files:
            detail = await catalog.get_mod_detail(remote_mod.id)
            if detail is not None and detail.modfile is not None:
                selected_id = detail.modfile.id
        current_id = choose_current_file_id(files, selected_id)

        async with self._session_factory() as session, session.begin():
            mod, created = await self._upsert_mod(session, remote_mod, files)
            summary = await self._reconcile_versions(session, mod, files, current_id)
            if created and not files:
                summary.no_files = True

            details = summary.describe()
            if details:
                record_audit(
                    session,
                    action=AuditAction.MODIO_SYNC,
                    user_id=triggered_by_user_id,
                    resource=str(remote_mod.id),
                    details=f"Synced mod: {remote_mod.name} ({details})",
                    user_agent=SYNC_USER_AGENT,
                )
        return bool(details)

    async def _upsert_mod(
        self, session: AsyncSession, remote_mod: RemoteMod, files: list[RemoteFile]
    ) -> tuple[Mod, bool]:
        stmt = select(Mod).where(Mod.remote_id == remote_mod.id)
        mod = (await session.execute(stmt)).scalar_one_or_none()
        newest_upload = from_timestamp(files[0].date_added) if files else None

        if mod is None:
            mod = Mod(
                remote_id=remote_mod.id,
                name=remote_mod.name,
                profile_url=remote_mod.profile_url,
                status=remote_mod.status.value,
                last_uploaded_at=newest_upload or from_timestamp(remote_mod.date_added),
            )
            session.add(mod)
            await session.flush()
            logger.info(
                "New mod added: %s (ID: %d) with %s",
                remote_mod.name,
                remote_mod.id,
                _plural(len(files), "version"),
            )
            return mod, True

        if mod.name != remote_mod.name:
            mod.name = remote_mod.name
        if mod.status != remote_mod.status.value:
            mod.status = remote_mod.status.value
        if newest_upload is not None and not _same_instant(mod.last_uploaded_at, newest_upload):
            mod.last_uploaded_at = newest_upload
        return mod, False

    async def _reconcile_versions(
        self,
        session: AsyncSession,
        mod: Mod,
        files: list[RemoteFile],
        current_id: int | None,
    ) -> ModChangeSummary:
        summary = ModChangeSummary()
        result = await session.execute(select(ModVersion).where(ModVersion.mod_id == mod.id))
        existing = {version.remote_file_id: version for version in result.scalars()}
        incoming_ids = {remote_file.id for remote_file in files}

        for file_id in [file_id for file_id in existing if file_id not in incoming_ids]:
            await session.delete(existing.pop(file_id))
            summary.deleted_versions += 1

        # Clear stale current flags before any row is marked current.
        for file_id, version in existing.items():
            if version.is_current and file_id != current_id:
                version.is_current = False
        await session.flush()

        for remote_file in files:
            is_current = remote_file.id == current_id
            signed = is_signed(remote_file.metadata_blob)
            signature = "\n".join(extract_signatures(remote_file.metadata_blob)) or None
            version = existing.get(remote_file.id)

            if version is None:
                session.add(
                    ModVersion(
                        mod_id=mod.id,
                        remote_file_id=remote_file.id,
                        version=remote_file.version_label,
                        is_signed=signed,
                        uploaded_at=from_timestamp(remote_file.date_added),
                        is_current=is_current,
                        content_hash=remote_file.md5,
                        file_size=remote_file.filesize,
                        signature=signature,
                    )
                )
                summary.new_versions += 1
                continue

            if (
                version.is_signed == signed
                and version.is_current == is_current
                and version.content_hash == remote_file.md5
            ):
                continue
            if version.is_signed != signed:
                summary.signatures_updated += 1
            version.is_signed = signed
            version.is_current = is_current
            version.content_hash = remote_file.md5
            version.signature = signature

        await session.flush()
        return summary


def _unique_by_id(remote_mods: Iterable[RemoteMod]) -> list[RemoteMod]:
    """Drop repeated listings of the same mod, keeping the first."""
    seen: set[int] = set()
    unique: list[RemoteMod] = []
    for remote_mod in remote_mods:
        if remote_mod.id in seen:
            continue
        seen.add(remote_mod.id)
        unique.append(remote_mod)
    return unique
