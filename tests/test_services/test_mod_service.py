"""Tests for the mod catalog read surface."""

from __future__ import annotations

from typing import TYPE_CHECKING

from backend.models.mod import Mod, ModVersion
from backend.services.datetime_service import from_timestamp
from backend.services.mod_service import get_mod_with_versions, list_mods

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession


def _version(
    file_id: int, uploaded: int, *, current: bool = False, signed: bool = False
) -> ModVersion:
    return ModVersion(
        remote_file_id=file_id,
        version=f"v{file_id}",
        is_signed=signed,
        uploaded_at=from_timestamp(uploaded),
        is_current=current,
        content_hash=f"md5-{file_id}",
        file_size=100,
    )


async def _seed(session: AsyncSession) -> tuple[Mod, Mod]:
    """An up-to-date mod and an outdated one (newest upload is not current)."""
    fresh = Mod(
        remote_id=1,
        name="Fresh",
        profile_url="https://mod.io/m/fresh",
        status="live",
        last_uploaded_at=from_timestamp(1_000),
        versions=[_version(10, 1_000, current=True, signed=True), _version(9, 500)],
    )
    outdated = Mod(
        remote_id=2,
        name="Outdated",
        profile_url="https://mod.io/m/outdated",
        status="live",
        last_uploaded_at=from_timestamp(3_000),
        versions=[_version(20, 2_000, current=True, signed=True), _version(21, 3_000)],
    )
    session.add_all([fresh, outdated])
    await session.commit()
    return fresh, outdated


class TestListMods:
    async def test_lists_summaries_newest_upload_first(self, db_session: AsyncSession) -> None:
        await _seed(db_session)
        db_session.expunge_all()

        summaries = await list_mods(db_session)

        assert [s.mod.name for s in summaries] == ["Outdated", "Fresh"]
        outdated, fresh = summaries
        assert fresh.current_version == "v10"
        assert fresh.current_signed is True
        assert fresh.filesize == 100
        assert fresh.version_count == 2
        assert fresh.latest_version == "v10"
        assert fresh.is_outdated is False
        assert outdated.current_version == "v20"
        assert outdated.latest_version == "v21"
        assert outdated.latest_signed is False
        assert outdated.is_outdated is True

    async def test_outdated_only(self, db_session: AsyncSession) -> None:
        await _seed(db_session)
        db_session.expunge_all()

        summaries = await list_mods(db_session, outdated_only=True)

        assert [s.mod.name for s in summaries] == ["Outdated"]

    async def test_mod_without_versions(self, db_session: AsyncSession) -> None:
        db_session.add(Mod(remote_id=3, name="Empty", profile_url="", status="pending"))
        await db_session.commit()
        db_session.expunge_all()

        (summary,) = await list_mods(db_session)

        assert summary.current_version is None
        assert summary.current_signed is False
        assert summary.version_count == 0
        assert summary.is_outdated is False


class TestGetModWithVersions:
    async def test_versions_newest_first(self, db_session: AsyncSession) -> None:
        _, outdated = await _seed(db_session)
        db_session.expunge_all()

        result = await get_mod_with_versions(db_session, outdated.id)

        assert result is not None
        assert result.mod.name == "Outdated"
        assert [v.remote_file_id for v in result.versions] == [21, 20]

    async def test_unknown_mod(self, db_session: AsyncSession) -> None:
        assert await get_mod_with_versions(db_session, 404) is None
