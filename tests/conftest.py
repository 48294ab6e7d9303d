import gzip
import io
import lzma
import os
import tarfile
import zipfile

import httpx
import pytest
import zstandard

# --- Sample artifact content ---

SAMPLE_FILES = {
    "tool-1.0/bin/tool": b"\x7fELF" + b"\x00" * 2048,
    "tool-1.0/share/doc/README.md": b"# tool\n\nUsage: tool [options]\n" * 40,
    "tool-1.0/LICENSE": b"Permission is hereby granted, free of charge...\n" * 20,
}
SAMPLE_DIRECTORIES = ("tool-1.0/", "tool-1.0/bin/", "tool-1.0/share/doc/")


# --- Archive builders ---

def build_tar(files=None, directories=SAMPLE_DIRECTORIES) -> bytes:
    """Builds an uncompressed tar holding `directories` (as dir entries) then `files`."""
    files = SAMPLE_FILES if files is None else files
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.USTAR_FORMAT) as archive:
        for name in directories:
            info = tarfile.TarInfo(name.rstrip("/"))
            info.type = tarfile.DIRTYPE
            info.mode = 0o755
            archive.addfile(info)
        for name, content in files.items():
            info = tarfile.TarInfo(name)
            info.size = len(content)
            info.mode = 0o644
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


def build_zip(files=None, directories=SAMPLE_DIRECTORIES) -> bytes:
    files = SAMPLE_FILES if files is None else files
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name in directories:
            archive.writestr(zipfile.ZipInfo(name), b"")
        for name, content in files.items():
            archive.writestr(name, content)
    return buffer.getvalue()


def compress(data: bytes, codec: str) -> bytes:
    if codec == "gz":
        return gzip.compress(data)
    if codec == "xz":
        return lzma.compress(data, format=lzma.FORMAT_XZ)
    if codec == "zst":
        return zstandard.ZstdCompressor().compress(data)
    raise ValueError(codec)


def build_archive(archive_format: str, files=None) -> bytes:
    """Archive bytes for any supported format string."""
    if archive_format == "zip":
        return build_zip(files)
    if archive_format == "tar":
        return build_tar(files)
    if archive_format.startswith("tar."):
        return compress(build_tar(files), archive_format.split(".", 1)[1])
    return compress(b"".join((files or SAMPLE_FILES).values()), archive_format)


def corrupt_tar_header(data: bytes, index: int) -> bytes:
    """
    Overwrites the checksum field of the `index`-th entry's header, so a reader
    stops at that entry.
    """
    with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as archive:
        offset = archive.getmembers()[index].offset
    corrupted = bytearray(data)
    corrupted[offset + 148:offset + 156] = b"garbage!"
    return bytes(corrupted)


# --- Mock HTTP bodies ---

class ChunkedBody(httpx.AsyncByteStream):
    """
    Response body that is handed out chunk by chunk, the way a real
    connection delivers it. Unlike `content=`, it is not read up front, so
    `aiter_raw()` sees the served bytes.
    """

    def __init__(self, data: bytes, chunk_size: int = 1024):
        self._data = data
        self._chunk_size = chunk_size

    async def __aiter__(self):
        for start in range(0, len(self._data), self._chunk_size):
            yield self._data[start:start + self._chunk_size]


def bytes_response(data: bytes, status_code: int = 200, headers=None) -> httpx.Response:
    """A streamed response for `data` with its Content-Length set."""
    headers = {"Content-Length": str(len(data)), **(headers or {})}
    return httpx.Response(status_code, headers=headers, stream=ChunkedBody(data))


# --- Fixtures ---

@pytest.fixture(autouse=True)
def isolated_app_home(tmp_path, monkeypatch):
    """Keep log files and app data out of the real home directory."""
    home = tmp_path / "relprobe-home"
    monkeypatch.setenv("RELPROBE_HOME", str(home))
    for name in list(os.environ):
        if name.upper().startswith("RELPROBE_") and name.upper() not in ("RELPROBE_HOME", "RELPROBE_NETWORK_TESTS"):
            monkeypatch.delenv(name, raising=False)
    return home


@pytest.fixture
def artifact_server():
    """
    In-memory artifact host for httpx.MockTransport. Register bytes (or a
    ready-made response, or a request handler) per URL path; unknown paths
    answer 404.
    """
    class ArtifactServer:
        def __init__(self):
            self.routes = {}
            self.requests = []

        def add(self, path: str, body):
            self.routes[path] = body

        def handler(self, request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            body = self.routes.get(request.url.path)
            if body is None:
                return httpx.Response(404)
            if isinstance(body, httpx.Response):
                return body
            if callable(body):
                return body(request)
            return bytes_response(body)

        def client(self) -> httpx.AsyncClient:
            return httpx.AsyncClient(transport=httpx.MockTransport(self.handler), follow_redirects=True)

    return ArtifactServer()
