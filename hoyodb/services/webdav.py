"""Async WebDAV client for the material object store.

Every public method takes paths relative to the configured base path, so
callers only ever deal with ``{gameSlug}/{categorySlug}`` style directories.
"""

import logging
import posixpath
import xml.etree.ElementTree as ET
from email.utils import parsedate_to_datetime
from urllib.parse import quote, unquote, urlparse

import httpx

from hoyodb.exceptions import ObjectStoreError

logger = logging.getLogger(__name__)

_DAV_NS = "{DAV:}"

_PROPFIND_QUOTA = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<d:propfind xmlns:d="DAV:"><d:prop>'
    "<d:quota-used-bytes/><d:quota-available-bytes/>"
    "</d:prop></d:propfind>"
)


def _parse_multistatus(body: bytes) -> list[dict]:
    """Flatten a PROPFIND multistatus document into one dict per href."""
    root = ET.fromstring(body)
    entries = []
    for response in root.iter(f"{_DAV_NS}response"):
        href = response.findtext(f"{_DAV_NS}href") or ""
        props: dict = {}
        for propstat in response.iter(f"{_DAV_NS}propstat"):
            status = propstat.findtext(f"{_DAV_NS}status") or ""
            if status and " 200 " not in f"{status} ":
                continue
            prop = propstat.find(f"{_DAV_NS}prop")
            if prop is None:
                continue
            for child in prop:
                tag = child.tag.replace(_DAV_NS, "")
                if tag == "resourcetype":
                    props["is_collection"] = child.find(f"{_DAV_NS}collection") is not None
                else:
                    props[tag] = (child.text or "").strip()
        entries.append({"href": href, **props})
    return entries


def _entry_from_props(props: dict) -> dict:
    """Convert raw PROPFIND properties into the API's file entry shape."""
    path = unquote(urlparse(props["href"]).path)
    name = props.get("displayname") or posixpath.basename(path.rstrip("/"))
    is_dir = props.get("is_collection", False)
    size = props.get("getcontentlength")
    last_modified = props.get("getlastmodified") or None
    if last_modified:
        try:
            last_modified = parsedate_to_datetime(last_modified).isoformat()
        except (TypeError, ValueError):
            pass
    return {
        "name": name,
        "type": "directory" if is_dir else "file",
        "size": int(size) if size and size.isdigit() else 0,
        "lastModified": last_modified,
        "path": path,
        "mimeType": None if is_dir else (props.get("getcontenttype") or None),
    }


class WebDAVClient:
    """Thin async wrapper around the WebDAV verbs the catalog needs.

    One instance owns one ``httpx.AsyncClient``; call :meth:`aclose` when
    done.  Pass *transport* to route requests somewhere other than the
    network (tests use ``httpx.MockTransport``).
    """

    def __init__(
        self,
        url: str,
        username: str | None = None,
        password: str | None = None,
        base_path: str = "/",
        public_url: str = "",
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.base_path = "/" + base_path.strip("/") if base_path.strip("/") else ""
        self.public_url = public_url.rstrip("/")
        auth = (username, password) if username else None
        self._client = httpx.AsyncClient(
            base_url=self.url + "/",
            auth=auth,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings, transport: httpx.AsyncBaseTransport | None = None):
        return cls(
            url=settings.WEBDAV_URL,
            username=settings.WEBDAV_USERNAME,
            password=settings.WEBDAV_PASSWORD,
            base_path=settings.WEBDAV_BASE_PATH,
            public_url=settings.PUBLIC_FILE_URL,
            timeout=settings.WEBDAV_TIMEOUT,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    # -----------------------------------------------------------------------
    # Path helpers
    # -----------------------------------------------------------------------

    def full_path(self, remote_path: str = "", filename: str = "") -> str:
        """Absolute store path for *remote_path*/*filename* under the base path."""
        joined = posixpath.join(
            self.base_path or "/", remote_path.strip("/"), filename
        )
        normalized = posixpath.normpath(joined)
        root = self.base_path or "/"
        if normalized != root and not normalized.startswith(root.rstrip("/") + "/"):
            raise ObjectStoreError(f"Path escapes the storage root: {remote_path}")
        return normalized

    def get_file_url(self, remote_path: str, filename: str) -> str:
        """Public download URL for a stored file."""
        return f"{self.public_url}{quote(self.full_path(remote_path, filename))}"

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            return await self._client.request(method, quote(path.lstrip("/")), **kwargs)
        except httpx.HTTPError as e:
            raise ObjectStoreError(f"WebDAV {method} {path} failed: {e}") from e

    def _expect(self, response: httpx.Response, method: str, path: str, *ok: int) -> None:
        if response.status_code not in ok:
            raise ObjectStoreError(
                f"WebDAV {method} {path} returned {response.status_code}"
            )

    async def _propfind(self, path: str, depth: str, body: str | None = None) -> list[dict] | None:
        """Run PROPFIND; return parsed entries or None when *path* is missing."""
        headers = {"Depth": depth}
        if body is not None:
            headers["Content-Type"] = "application/xml; charset=utf-8"
        response = await self._request("PROPFIND", path, headers=headers, content=body)
        if response.status_code == 404:
            return None
        self._expect(response, "PROPFIND", path, 200, 207)
        try:
            return _parse_multistatus(response.content)
        except ET.ParseError as e:
            raise ObjectStoreError(f"Malformed PROPFIND response for {path}") from e

    async def _exists(self, path: str) -> bool:
        return await self._propfind(path, "0") is not None

    # -----------------------------------------------------------------------
    # Public operations
    # -----------------------------------------------------------------------

    async def exists(self, remote_path: str) -> bool:
        return await self._exists(self.full_path(remote_path))

    async def check_connection(self) -> bool:
        """True when the WebDAV root answers PROPFIND."""
        return await self._exists("/")

    async def ensure_directory(self, remote_path: str) -> None:
        """Create every missing directory segment of *remote_path*."""
        target = self.full_path(remote_path)
        if await self._exists(target):
            return
        current = ""
        for part in [p for p in target.split("/") if p]:
            current += "/" + part
            if await self._exists(current):
                continue
            response = await self._request("MKCOL", current + "/")
            # 405: created concurrently by someone else
            self._expect(response, "MKCOL", current, 200, 201, 405)

    async def upload_file(self, data: bytes, remote_path: str, filename: str) -> str:
        """Store *data* at *remote_path*/*filename* and return its public URL."""
        await self.ensure_directory(remote_path)
        path = self.full_path(remote_path, filename)
        response = await self._request("PUT", path, content=data)
        self._expect(response, "PUT", path, 200, 201, 204)
        logger.info("Uploaded %s (%d bytes)", path, len(data))
        return self.get_file_url(remote_path, filename)

    async def download_file(self, remote_path: str, filename: str) -> bytes:
        path = self.full_path(remote_path, filename)
        response = await self._request("GET", path)
        self._expect(response, "GET", path, 200)
        return response.content

    async def delete_file(self, remote_path: str, filename: str) -> None:
        """Delete a stored file; a missing file is not an error."""
        path = self.full_path(remote_path, filename)
        if not await self._exists(path):
            return
        response = await self._request("DELETE", path)
        self._expect(response, "DELETE", path, 200, 204, 404)
        logger.info("Deleted %s", path)

    async def list_directory(self, remote_path: str = "") -> list[dict]:
        """List the direct children of a directory (empty if it is missing)."""
        path = self.full_path(remote_path)
        entries = await self._propfind(path, "1")
        if entries is None:
            return []
        own = path.rstrip("/")
        dav_prefix = urlparse(self.url).path.rstrip("/")
        own_hrefs = {own or "/", (dav_prefix + own) or "/"}
        children = []
        for props in entries:
            href_path = unquote(urlparse(props["href"]).path).rstrip("/") or "/"
            if href_path in own_hrefs:
                continue
            children.append(_entry_from_props(props))
        return children

    async def file_exists(self, remote_path: str, filename: str) -> bool:
        return await self._exists(self.full_path(remote_path, filename))

    async def get_file_info(self, remote_path: str, filename: str) -> dict | None:
        path = self.full_path(remote_path, filename)
        entries = await self._propfind(path, "0")
        if not entries:
            return None
        return _entry_from_props(entries[0])

    async def _transfer(
        self,
        method: str,
        source_path: str,
        source_filename: str,
        dest_path: str,
        dest_filename: str,
    ) -> None:
        await self.ensure_directory(dest_path)
        source = self.full_path(source_path, source_filename)
        dest = self.full_path(dest_path, dest_filename)
        destination = self.url + quote(dest)
        response = await self._request(
            method,
            source,
            headers={"Destination": destination, "Overwrite": "T"},
        )
        self._expect(response, method, source, 200, 201, 204)

    async def copy_file(self, source_path, source_filename, dest_path, dest_filename) -> None:
        await self._transfer("COPY", source_path, source_filename, dest_path, dest_filename)

    async def move_file(self, source_path, source_filename, dest_path, dest_filename) -> None:
        await self._transfer("MOVE", source_path, source_filename, dest_path, dest_filename)

    async def get_storage_info(self) -> dict | None:
        """Return ``{"used", "available"}`` bytes, or None if quota is unsupported."""
        try:
            entries = await self._propfind(self.full_path(), "0", body=_PROPFIND_QUOTA)
        except ObjectStoreError as e:
            logger.warning("Could not read storage quota: %s", e)
            return None
        if not entries:
            return None
        props = entries[0]
        used = props.get("quota-used-bytes")
        available = props.get("quota-available-bytes")
        if not used and not available:
            return None
        return {
            "used": int(used) if used and used.lstrip("-").isdigit() else 0,
            "available": int(available) if available and available.lstrip("-").isdigit() else 0,
        }
