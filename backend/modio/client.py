"""Read-only client for the mod.io catalog API.

Two credential modes are supported. An OAuth token (sent as a bearer header)
can see every moderation status class; a plain API key (sent as the
``api_key`` query parameter) only sees live mods, so the other classes are
not requested at all in that mode.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from backend.models.mod import ModStatus

if TYPE_CHECKING:
    from types import TracebackType

    from backend.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
DEFAULT_PAGE_SIZE = 100

# mod.io mod status codes. 2 is not a valid mod status (the API answers 422).
STATUS_CODES: dict[ModStatus, int] = {
    ModStatus.PENDING: 0,
    ModStatus.LIVE: 1,
    ModStatus.ARCHIVED: 3,
}
_STATUS_BY_CODE = {code: status for status, code in STATUS_CODES.items()}

_ZIP_SUFFIX = re.compile(r"\.zip$", re.IGNORECASE)


class ModioError(Exception):
    """Base class for catalog client failures."""


class ModioConfigurationError(ModioError):
    """Raised when neither an API key nor an OAuth token is configured."""


class ModioFetchError(ModioError):
    """Raised when the mod listing cannot be completed."""


@dataclass(frozen=True)
class RemoteFile:
    """One uploaded file of a remote mod."""

    id: int
    date_added: int
    version: str | None = None
    filename: str | None = None
    filesize: int = 0
    md5: str = ""
    metadata_blob: str | None = None

    @property
    def version_label(self) -> str:
        """Version string, else the filename without ``.zip``, else ``v{id}``."""
        if self.version:
            return self.version
        if self.filename:
            stripped = _ZIP_SUFFIX.sub("", self.filename)
            if stripped:
                return stripped
        return f"v{self.id}"

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> RemoteFile:
        """Build from a mod.io ``Modfile`` object.

        Raises KeyError, TypeError or ValueError for malformed payloads.
        """
        filehash = payload.get("filehash") or {}
        if not isinstance(filehash, Mapping):
            msg = f"filehash must be an object, got {type(filehash).__name__}"
            raise TypeError(msg)
        return cls(
            id=int(payload["id"]),
            date_added=int(payload.get("date_added") or 0),
            version=payload.get("version") or None,
            filename=payload.get("filename") or None,
            filesize=int(payload.get("filesize") or 0),
            md5=str(filehash.get("md5") or ""),
            metadata_blob=payload.get("metadata_blob") or None,
        )


@dataclass(frozen=True)
class RemoteMod:
    """A mod as reported by the catalog listing or detail endpoints."""

    id: int
    name: str
    profile_url: str
    status: ModStatus
    date_added: int
    modfile: RemoteFile | None = None

    @classmethod
    def from_payload(
        cls,
        payload: Mapping[str, Any],
        default_status: ModStatus = ModStatus.LIVE,
    ) -> RemoteMod:
        """Build from a mod.io ``Mod`` object.

        Unknown status codes fall back to ``default_status`` (the status class
        the mod was listed under). A malformed embedded file is dropped so the
        mod falls back to its file history.
        """
        raw_status = payload.get("status")
        status = _STATUS_BY_CODE.get(raw_status, default_status)  # type: ignore[arg-type]
        raw_modfile = payload.get("modfile")
        modfile: RemoteFile | None = None
        if isinstance(raw_modfile, Mapping) and raw_modfile.get("id"):
            try:
                modfile = RemoteFile.from_payload(raw_modfile)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning(
                    "Ignoring malformed embedded file of mod %s: %s", payload.get("id"), exc
                )
        return cls(
            id=int(payload["id"]),
            name=str(payload.get("name") or f"mod-{payload['id']}"),
            profile_url=str(payload.get("profile_url") or ""),
            status=status,
            date_added=int(payload.get("date_added") or 0),
            modfile=modfile,
        )


def _parse_files(items: list[Any], mod_id: int) -> list[RemoteFile]:
    files: list[RemoteFile] = []
    for item in items:
        try:
            files.append(RemoteFile.from_payload(item))
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.warning("Skipping malformed file entry for mod %d: %s", mod_id, exc)
    return files


class ModioClient:
    """Async mod.io catalog client.

    Use as an async context manager; the underlying ``httpx.AsyncClient`` is
    closed on exit.
    """

    def __init__(
        self,
        *,
        base_url: str,
        game_id: int,
        api_key: str | None = None,
        oauth_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        page_size: int = DEFAULT_PAGE_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if page_size < 1:
            msg = f"page_size must be >= 1, got {page_size}"
            raise ValueError(msg)
        self._game_id = game_id
        self._api_key = api_key or None
        self._oauth_token = oauth_token or None
        self._page_size = page_size
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ModioClient:
        return cls(
            base_url=settings.modio_base_url,
            game_id=settings.modio_game_id,
            api_key=settings.modio_api_key,
            oauth_token=settings.modio_oauth_token,
            timeout=settings.modio_request_timeout,
            page_size=settings.modio_page_size,
            transport=transport,
        )

    async def __aenter__(self) -> ModioClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    @property
    def has_elevated_access(self) -> bool:
        """Whether an OAuth token is configured."""
        return self._oauth_token is not None

    @property
    def status_classes(self) -> tuple[ModStatus, ...]:
        """Moderation status classes visible with the configured credential."""
        if self.has_elevated_access:
            return (ModStatus.PENDING, ModStatus.LIVE, ModStatus.ARCHIVED)
        return (ModStatus.LIVE,)

    async def _get(self, path: str, params: dict[str, Any]) -> httpx.Response:
        query = dict(params)
        headers: dict[str, str] = {}
        if self._oauth_token is not None:
            headers["Authorization"] = f"Bearer {self._oauth_token}"
        else:
            query["api_key"] = self._api_key
        return await self._http.get(f"/games/{self._game_id}{path}", params=query, headers=headers)

    async def list_mods(self) -> list[RemoteMod]:
        """Fetch every mod visible with the configured credential.

        Raises:
            ModioConfigurationError: If no credential is configured.
            ModioFetchError: On any failure other than a timeout, a transport
                error or an access-denied status class.
        """
        if self._api_key is None and self._oauth_token is None:
            msg = "MODIO_API_KEY or MODIO_OAUTH_TOKEN must be configured"
            raise ModioConfigurationError(msg)

        mods: list[RemoteMod] = []
        for status in self.status_classes:
            mods.extend(await self._list_mods_with_status(status))
        return mods

    async def _list_mods_with_status(self, status: ModStatus) -> list[RemoteMod]:
        mods: list[RemoteMod] = []
        offset = 0
        while True:
            params = {
                "_limit": self._page_size,
                "_offset": offset,
                "status": STATUS_CODES[status],
            }
            try:
                response = await self._get("/mods", params)
            except httpx.TimeoutException:
                logger.warning("Timed out fetching mods with status=%s at offset %d", status, offset)
                break
            except httpx.TransportError as exc:
                logger.warning(
                    "Transport error fetching mods with status=%s at offset %d: %s",
                    status,
                    offset,
                    exc,
                )
                break

            if response.status_code == httpx.codes.FORBIDDEN:
                logger.warning("No access to mods with status=%s (requires OAuth token)", status)
                break
            if response.is_error:
                msg = (
                    "Failed to fetch mods from mod.io: "
                    f"{response.status_code} {response.reason_phrase}"
                )
                raise ModioFetchError(msg)

            try:
                payload = response.json()
                items = payload["data"]
                total = int(payload.get("result_total") or 0)
                page = [RemoteMod.from_payload(item, default_status=status) for item in items]
            except (KeyError, TypeError, ValueError, AttributeError) as exc:
                msg = f"Failed to fetch mods from mod.io: malformed response ({exc})"
                raise ModioFetchError(msg) from exc

            if page:
                logger.info("Fetched %d mods with status=%s", len(page), status)
            mods.extend(page)

            if len(page) < self._page_size or len(mods) >= total:
                break
            offset += self._page_size
        return mods

    async def list_mod_files(self, mod_id: int) -> list[RemoteFile]:
        """Fetch a mod's file history, newest upload first.

        Best effort: on any failure the files gathered so far are returned.
        """
        files: list[RemoteFile] = []
        fetched = 0
        offset = 0
        while True:
            params = {
                "_limit": self._page_size,
                "_offset": offset,
                "_sort": "-date_added",
            }
            try:
                response = await self._get(f"/mods/{mod_id}/files", params)
                response.raise_for_status()
                payload = response.json()
                items = payload["data"]
                total = int(payload.get("result_total") or 0)
            except (httpx.HTTPError, KeyError, TypeError, ValueError, AttributeError) as exc:
                logger.warning(
                    "Stopped fetching files for mod %d after %d file(s): %s",
                    mod_id,
                    len(files),
                    exc,
                )
                return files

            files.extend(_parse_files(items, mod_id))
            fetched += len(items)
            if len(items) < self._page_size or fetched >= total:
                return files
            offset += self._page_size

    async def get_mod_detail(self, mod_id: int) -> RemoteMod | None:
        """Fetch a single mod, or None if it cannot be retrieved."""
        try:
            response = await self._get(f"/mods/{mod_id}", {})
            response.raise_for_status()
            return RemoteMod.from_payload(response.json())
        except (httpx.HTTPError, KeyError, TypeError, ValueError, AttributeError) as exc:
            logger.debug("Could not fetch details for mod %d: %s", mod_id, exc)
            return None
