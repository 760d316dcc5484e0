"""Tests for the mod.io catalog client, using httpx.MockTransport."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from backend.config import Settings
from backend.modio.client import (
    ModioClient,
    ModioConfigurationError,
    ModioFetchError,
    RemoteFile,
    RemoteMod,
)
from backend.models.mod import ModStatus

BASE_URL = "https://modio.test/v1"

Handler = Callable[[httpx.Request], httpx.Response]


def _mod_payload(mod_id: int, status: int = 1, modfile: dict[str, Any] | None = None) -> dict:
    return {
        "id": mod_id,
        "name": f"Mod {mod_id}",
        "profile_url": f"https://mod.io/m/mod-{mod_id}",
        "status": status,
        "date_added": 1_700_000_000 + mod_id,
        "modfile": modfile,
    }


def _file_payload(file_id: int, version: str | None = "1.0", date_added: int = 1000) -> dict:
    return {
        "id": file_id,
        "date_added": date_added,
        "version": version,
        "filename": f"file-{file_id}.zip",
        "filesize": 2048,
        "filehash": {"md5": f"md5-{file_id}"},
        "metadata_blob": None,
    }


def _page(items: list[dict], total: int | None = None) -> httpx.Response:
    return httpx.Response(
        200, json={"data": items, "result_count": len(items), "result_total": total or len(items)}
    )


def _client(handler: Handler, **kwargs: Any) -> ModioClient:
    options: dict[str, Any] = {"base_url": BASE_URL, "game_id": 5, "api_key": "key"}
    options.update(kwargs)
    return ModioClient(transport=httpx.MockTransport(handler), **options)


class TestListMods:
    async def test_api_key_lists_only_live_mods(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return _page([_mod_payload(1), _mod_payload(2)])

        async with _client(handler) as client:
            mods = await client.list_mods()

        assert [mod.id for mod in mods] == [1, 2]
        assert all(mod.status == ModStatus.LIVE for mod in mods)
        assert len(requests) == 1
        params = requests[0].url.params
        assert requests[0].url.path == "/v1/games/5/mods"
        assert params["status"] == "1"
        assert params["api_key"] == "key"
        assert params["_limit"] == "100"
        assert params["_offset"] == "0"
        assert "Authorization" not in requests[0].headers

    async def test_oauth_token_lists_every_status_class(self) -> None:
        seen_statuses: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Bearer token"
            assert "api_key" not in request.url.params
            status = request.url.params["status"]
            seen_statuses.append(status)
            mod_id = {"0": 10, "1": 11, "3": 13}[status]
            return _page([_mod_payload(mod_id, status=int(status))])

        async with _client(handler, api_key=None, oauth_token="token") as client:
            mods = await client.list_mods()

        assert seen_statuses == ["0", "1", "3"]
        assert {mod.id: mod.status for mod in mods} == {
            10: ModStatus.PENDING,
            11: ModStatus.LIVE,
            13: ModStatus.ARCHIVED,
        }

    async def test_token_wins_over_api_key(self) -> None:
        async with _client(lambda r: _page([]), oauth_token="token") as client:
            assert client.has_elevated_access is True
            assert len(client.status_classes) == 3

    async def test_paginates_until_result_total(self) -> None:
        offsets: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            offset = request.url.params["_offset"]
            offsets.append(offset)
            if offset == "0":
                return _page([_mod_payload(1), _mod_payload(2)], total=3)
            return _page([_mod_payload(3)], total=3)

        async with _client(handler, page_size=2) as client:
            mods = await client.list_mods()

        assert offsets == ["0", "2"]
        assert [mod.id for mod in mods] == [1, 2, 3]

    async def test_stops_when_full_page_reaches_total(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return _page([_mod_payload(1), _mod_payload(2)], total=2)

        async with _client(handler, page_size=2) as client:
            mods = await client.list_mods()

        assert calls == 1
        assert len(mods) == 2

    async def test_timeout_ends_pagination_with_partial_result(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["_offset"] == "0":
                return _page([_mod_payload(1), _mod_payload(2)], total=10)
            raise httpx.ReadTimeout("timed out", request=request)

        async with _client(handler, page_size=2) as client:
            mods = await client.list_mods()

        assert [mod.id for mod in mods] == [1, 2]

    async def test_transport_error_ends_pagination(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        async with _client(handler) as client:
            assert await client.list_mods() == []

    async def test_forbidden_status_class_is_skipped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["status"] == "0":
                return httpx.Response(403, json={"error": {"code": 403}})
            return _page([_mod_payload(int(request.url.params["status"]) + 100)])

        async with _client(handler, api_key=None, oauth_token="token") as client:
            mods = await client.list_mods()

        assert sorted(mod.id for mod in mods) == [101, 103]

    async def test_server_error_is_hard_failure(self) -> None:
        async with _client(lambda r: httpx.Response(500)) as client:
            with pytest.raises(ModioFetchError, match="500"):
                await client.list_mods()

    async def test_unauthorized_is_hard_failure(self) -> None:
        async with _client(lambda r: httpx.Response(401)) as client:
            with pytest.raises(ModioFetchError):
                await client.list_mods()

    async def test_malformed_listing_is_hard_failure(self) -> None:
        async with _client(lambda r: httpx.Response(200, json={"unexpected": True})) as client:
            with pytest.raises(ModioFetchError, match="malformed"):
                await client.list_mods()

    async def test_missing_credentials(self) -> None:
        async with _client(lambda r: _page([]), api_key=None) as client:
            with pytest.raises(ModioConfigurationError):
                await client.list_mods()

    async def test_embedded_modfile_is_parsed(self) -> None:
        payload = _mod_payload(7, modfile=_file_payload(70, version="2.0"))

        async with _client(lambda r: _page([payload])) as client:
            (mod,) = await client.list_mods()

        assert mod.modfile is not None
        assert mod.modfile.id == 70
        assert mod.modfile.version == "2.0"
        assert mod.modfile.md5 == "md5-70"

    async def test_malformed_embedded_modfile_is_dropped(self) -> None:
        broken = _file_payload(20)
        broken["filehash"] = ["x"]
        items = [_mod_payload(1, modfile=_file_payload(10)), _mod_payload(2, modfile=broken)]

        async with _client(lambda r: _page(items)) as client:
            mods = await client.list_mods()

        assert [mod.id for mod in mods] == [1, 2]
        assert mods[0].modfile is not None
        assert mods[1].modfile is None


class TestListModFiles:
    async def test_requests_newest_first(self) -> None:
        requests: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return _page([_file_payload(2, date_added=2000), _file_payload(1, date_added=1000)])

        async with _client(handler) as client:
            files = await client.list_mod_files(42)

        assert [f.id for f in files] == [2, 1]
        assert requests[0].url.path == "/v1/games/5/mods/42/files"
        assert requests[0].url.params["_sort"] == "-date_added"

    async def test_failure_returns_files_gathered_so_far(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.params["_offset"] == "0":
                return _page([_file_payload(1), _file_payload(2)], total=5)
            return httpx.Response(500)

        async with _client(handler, page_size=2) as client:
            files = await client.list_mod_files(42)

        assert [f.id for f in files] == [1, 2]

    async def test_malformed_entries_are_skipped(self) -> None:
        items = [_file_payload(1), {"version": "no id"}, _file_payload(3)]

        async with _client(lambda r: _page(items)) as client:
            files = await client.list_mod_files(42)

        assert [f.id for f in files] == [1, 3]


class TestGetModDetail:
    async def test_returns_mod_with_selected_file(self) -> None:
        payload = _mod_payload(42, modfile=_file_payload(101))

        async with _client(lambda r: httpx.Response(200, json=payload)) as client:
            mod = await client.get_mod_detail(42)

        assert mod is not None
        assert mod.modfile is not None
        assert mod.modfile.id == 101

    async def test_error_returns_none(self) -> None:
        async with _client(lambda r: httpx.Response(404)) as client:
            assert await client.get_mod_detail(42) is None


class TestPayloadParsing:
    def test_version_label_prefers_version(self) -> None:
        assert RemoteFile(id=1, date_added=0, version="1.2", filename="a.zip").version_label == (
            "1.2"
        )

    def test_version_label_falls_back_to_filename(self) -> None:
        assert RemoteFile(id=1, date_added=0, filename="Cool-Mod.ZIP").version_label == "Cool-Mod"

    def test_version_label_falls_back_to_file_id(self) -> None:
        assert RemoteFile(id=7, date_added=0).version_label == "v7"
        assert RemoteFile(id=8, date_added=0, filename=".zip").version_label == "v8"

    def test_unknown_status_uses_listing_status(self) -> None:
        mod = RemoteMod.from_payload(_mod_payload(1, status=9), default_status=ModStatus.ARCHIVED)
        assert mod.status == ModStatus.ARCHIVED

    def test_modfile_without_id_is_ignored(self) -> None:
        mod = RemoteMod.from_payload(_mod_payload(1, modfile={"id": 0}))
        assert mod.modfile is None


async def test_from_settings_uses_configured_credentials() -> None:
    settings = Settings(modio_base_url=BASE_URL, modio_game_id=9, modio_oauth_token="tok")
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return _page([])

    async with ModioClient.from_settings(settings, transport=httpx.MockTransport(handler)) as c:
        await c.list_mods()

    assert len(seen) == 3
    assert seen[0].url.path == "/v1/games/9/mods"
