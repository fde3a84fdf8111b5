"""Tests for hoyodb.services.webdav against an in-memory WebDAV server."""

from urllib.parse import unquote, urlparse

import httpx
import pytest
import pytest_asyncio

from hoyodb.exceptions import ObjectStoreError
from hoyodb.services.webdav import WebDAVClient, _parse_multistatus

DAV_URL = "http://dav.test/dav"
PREFIX = "/dav"


class MiniDav:
    """Just enough of a WebDAV server for the client's verbs."""

    def __init__(self):
        self.dirs: set[str] = {"/"}
        self.files: dict[str, tuple[bytes, str]] = {}
        self.requests: list[httpx.Request] = []
        self.quota: tuple[int, int] | None = None
        self.fail_status: dict[str, int] = {}

    def _path(self, url: httpx.URL | str) -> str:
        path = unquote(urlparse(str(url)).path)
        if path.startswith(PREFIX):
            path = path[len(PREFIX):]
        return path.rstrip("/") or "/"

    def _response(self, path: str, is_dir: bool) -> str:
        href = PREFIX + path + ("/" if is_dir and path != "/" else "")
        name = path.rsplit("/", 1)[-1]
        if is_dir:
            props = "<d:resourcetype><d:collection/></d:resourcetype>"
        else:
            data, ctype = self.files[path]
            props = (
                "<d:resourcetype/>"
                f"<d:getcontentlength>{len(data)}</d:getcontentlength>"
                f"<d:getcontenttype>{ctype}</d:getcontenttype>"
            )
        return (
            f"<d:response><d:href>{href}</d:href><d:propstat><d:prop>"
            f"<d:displayname>{name}</d:displayname>{props}"
            "<d:getlastmodified>Mon, 01 Jan 2024 00:00:00 GMT</d:getlastmodified>"
            "</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>"
        )

    def _multistatus(self, responses: list[str]) -> httpx.Response:
        body = (
            '<?xml version="1.0" encoding="utf-8"?><d:multistatus xmlns:d="DAV:">'
            + "".join(responses)
            + "</d:multistatus>"
        )
        return httpx.Response(207, content=body.encode())

    def _propfind(self, request: httpx.Request, path: str) -> httpx.Response:
        if b"quota" in request.content:
            if self.quota is None:
                return self._multistatus([
                    f"<d:response><d:href>{PREFIX}{path}</d:href><d:propstat><d:prop>"
                    "<d:quota-used-bytes/><d:quota-available-bytes/></d:prop>"
                    "<d:status>HTTP/1.1 404 Not Found</d:status></d:propstat></d:response>"
                ])
            used, available = self.quota
            return self._multistatus([
                f"<d:response><d:href>{PREFIX}{path}</d:href><d:propstat><d:prop>"
                f"<d:quota-used-bytes>{used}</d:quota-used-bytes>"
                f"<d:quota-available-bytes>{available}</d:quota-available-bytes>"
                "</d:prop><d:status>HTTP/1.1 200 OK</d:status></d:propstat></d:response>"
            ])
        if path in self.files:
            return self._multistatus([self._response(path, False)])
        if path not in self.dirs:
            return httpx.Response(404)
        responses = [self._response(path, True)]
        if request.headers.get("Depth") == "1":
            base = "" if path == "/" else path
            for d in sorted(self.dirs):
                if d != "/" and d.rsplit("/", 1)[0] == base:
                    responses.append(self._response(d, True))
            for f in sorted(self.files):
                if f.rsplit("/", 1)[0] == base:
                    responses.append(self._response(f, False))
        return self._multistatus(responses)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        method = request.method
        if method in self.fail_status:
            return httpx.Response(self.fail_status[method])
        path = self._path(request.url)

        if method == "PROPFIND":
            return self._propfind(request, path)
        if method == "MKCOL":
            if path in self.dirs:
                return httpx.Response(405)
            if (path.rsplit("/", 1)[0] or "/") not in self.dirs:
                return httpx.Response(409)
            self.dirs.add(path)
            return httpx.Response(201)
        if method == "PUT":
            if (path.rsplit("/", 1)[0] or "/") not in self.dirs:
                return httpx.Response(409)
            ctype = request.headers.get("Content-Type", "application/octet-stream")
            self.files[path] = (request.content, ctype)
            return httpx.Response(201)
        if method == "GET":
            if path not in self.files:
                return httpx.Response(404)
            return httpx.Response(200, content=self.files[path][0])
        if method == "DELETE":
            if self.files.pop(path, None) is None:
                return httpx.Response(404)
            return httpx.Response(204)
        if method in ("COPY", "MOVE"):
            dest = self._path(request.headers["Destination"])
            self.files[dest] = self.files[path]
            if method == "MOVE":
                del self.files[path]
            return httpx.Response(201)
        return httpx.Response(405)

    def methods(self) -> list[str]:
        return [r.method for r in self.requests]


@pytest.fixture
def dav():
    return MiniDav()


@pytest_asyncio.fixture
async def webdav(dav):
    client = WebDAVClient(
        url=DAV_URL,
        username="admin",
        password="admin",
        base_path="/hoyodb",
        public_url="http://dav.test/d",
        transport=httpx.MockTransport(dav.handler),
    )
    yield client
    await client.aclose()


class TestPaths:
    def test_full_path(self):
        client = WebDAVClient(url=DAV_URL, base_path="hoyodb/")
        assert client.full_path("starrail/bgm", "a.mp3") == "/hoyodb/starrail/bgm/a.mp3"
        assert client.full_path("/starrail/", "") == "/hoyodb/starrail"
        assert client.full_path() == "/hoyodb"

    def test_escape_rejected(self):
        client = WebDAVClient(url=DAV_URL, base_path="/hoyodb")
        with pytest.raises(ObjectStoreError):
            client.full_path("../secrets", "x")
        with pytest.raises(ObjectStoreError):
            client.full_path("", "../hoyodb2/x")

    def test_file_url_is_quoted(self):
        client = WebDAVClient(url=DAV_URL, base_path="/hoyodb", public_url="http://cdn.test/d/")
        assert (
            client.get_file_url("starrail", "a b.png")
            == "http://cdn.test/d/hoyodb/starrail/a%20b.png"
        )


class TestParseMultistatus:
    def test_skips_non_200_propstat(self):
        body = (
            b'<d:multistatus xmlns:d="DAV:"><d:response><d:href>/x</d:href>'
            b"<d:propstat><d:prop><d:getcontentlength>5</d:getcontentlength></d:prop>"
            b"<d:status>HTTP/1.1 200 OK</d:status></d:propstat>"
            b"<d:propstat><d:prop><d:getcontenttype/></d:prop>"
            b"<d:status>HTTP/1.1 404 Not Found</d:status></d:propstat>"
            b"</d:response></d:multistatus>"
        )
        (entry,) = _parse_multistatus(body)
        assert entry == {"href": "/x", "getcontentlength": "5"}


@pytest.mark.asyncio
class TestWebDAVClient:
    async def test_upload_creates_directories(self, webdav, dav):
        url = await webdav.upload_file(b"jpeg-bytes", "starrail/character-art", "1-abcdef.jpg")

        assert url == "http://dav.test/d/hoyodb/starrail/character-art/1-abcdef.jpg"
        assert {"/hoyodb", "/hoyodb/starrail", "/hoyodb/starrail/character-art"} <= dav.dirs
        assert dav.files["/hoyodb/starrail/character-art/1-abcdef.jpg"][0] == b"jpeg-bytes"
        assert dav.methods().count("MKCOL") == 3
        assert dav.methods()[-1] == "PUT"

    async def test_upload_into_existing_directory_skips_mkcol(self, webdav, dav):
        dav.dirs.update({"/hoyodb", "/hoyodb/starrail"})
        await webdav.upload_file(b"x", "starrail", "a.png")
        assert "MKCOL" not in dav.methods()

    async def test_upload_sends_basic_auth(self, webdav, dav):
        await webdav.upload_file(b"x", "starrail", "a.png")
        assert all(r.headers["Authorization"].startswith("Basic ") for r in dav.requests)

    async def test_upload_rejected(self, webdav, dav):
        dav.dirs.update({"/hoyodb", "/hoyodb/starrail"})
        dav.fail_status["PUT"] = 507
        with pytest.raises(ObjectStoreError, match="507"):
            await webdav.upload_file(b"x", "starrail", "a.png")

    async def test_transport_error_wrapped(self):
        def broken(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = WebDAVClient(url=DAV_URL, transport=httpx.MockTransport(broken))
        with pytest.raises(ObjectStoreError, match="connection refused"):
            await client.check_connection()
        await client.aclose()

    async def test_download(self, webdav, dav):
        dav.files["/hoyodb/starrail/a.png"] = (b"png", "image/png")
        assert await webdav.download_file("starrail", "a.png") == b"png"

    async def test_delete_existing(self, webdav, dav):
        dav.files["/hoyodb/starrail/a.png"] = (b"png", "image/png")
        await webdav.delete_file("starrail", "a.png")
        assert dav.files == {}
        assert "DELETE" in dav.methods()

    async def test_delete_missing_is_noop(self, webdav, dav):
        await webdav.delete_file("starrail", "gone.png")
        assert "DELETE" not in dav.methods()

    async def test_list_directory(self, webdav, dav):
        dav.dirs.update({"/hoyodb", "/hoyodb/starrail", "/hoyodb/starrail/bgm"})
        dav.files["/hoyodb/starrail/a.png"] = (b"12345", "image/png")

        entries = await webdav.list_directory("starrail")

        by_name = {e["name"]: e for e in entries}
        assert set(by_name) == {"bgm", "a.png"}
        assert by_name["bgm"]["type"] == "directory"
        assert by_name["bgm"]["mimeType"] is None
        assert by_name["a.png"] == {
            "name": "a.png",
            "type": "file",
            "size": 5,
            "lastModified": "2024-01-01T00:00:00+00:00",
            "path": "/dav/hoyodb/starrail/a.png",
            "mimeType": "image/png",
        }

    async def test_list_missing_directory(self, webdav):
        assert await webdav.list_directory("nowhere") == []

    async def test_exists_and_file_info(self, webdav, dav):
        dav.dirs.update({"/hoyodb", "/hoyodb/starrail"})
        dav.files["/hoyodb/starrail/a.png"] = (b"123", "image/png")

        assert await webdav.exists("starrail")
        assert not await webdav.exists("genshin")
        assert await webdav.file_exists("starrail", "a.png")
        info = await webdav.get_file_info("starrail", "a.png")
        assert info["size"] == 3
        assert await webdav.get_file_info("starrail", "b.png") is None

    async def test_copy_and_move(self, webdav, dav):
        dav.dirs.update({"/hoyodb", "/hoyodb/starrail"})
        dav.files["/hoyodb/starrail/a.png"] = (b"123", "image/png")

        await webdav.copy_file("starrail", "a.png", "archive", "a.png")
        assert "/hoyodb/archive/a.png" in dav.files
        assert "/hoyodb/starrail/a.png" in dav.files

        await webdav.move_file("starrail", "a.png", "starrail", "b.png")
        assert "/hoyodb/starrail/a.png" not in dav.files
        assert "/hoyodb/starrail/b.png" in dav.files

        move = dav.requests[-1]
        assert move.headers["Destination"] == f"{DAV_URL}/hoyodb/starrail/b.png"
        assert move.headers["Overwrite"] == "T"

    async def test_storage_info(self, webdav, dav):
        dav.dirs.add("/hoyodb")
        dav.quota = (2048, 4096)
        assert await webdav.get_storage_info() == {"used": 2048, "available": 4096}

    async def test_storage_info_unsupported(self, webdav, dav):
        dav.dirs.add("/hoyodb")
        assert await webdav.get_storage_info() is None

    async def test_check_connection(self, webdav, dav):
        assert await webdav.check_connection() is True
        dav.fail_status["PROPFIND"] = 404
        assert await webdav.check_connection() is False
