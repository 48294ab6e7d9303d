"""
Per-format archive adapters: turn a binary file object into the ordered list
of member paths it contains, directories excluded.

The adapters are synchronous and read from plain file objects; the download
pipeline runs them in a worker thread over a BlockingChunkReader.
"""
import gzip
import io
import lzma
import shutil
import tarfile
import tempfile
import zipfile
import zlib
from dataclasses import dataclass
from typing import Any, BinaryIO, Callable, Optional

import zstandard

from relprobe.internal.constants import DEFAULT_CHUNK_SIZE, DEFAULT_ZIP_SPOOL_MAX_BYTES
from relprobe.internal.errors import ArchiveCorruptError
from relprobe.internal.logging import get_logger
from relprobe.kernel.contracts import ArchiveFormat
from relprobe.kernel.serializer import DecodeSerializer

logger = get_logger(__name__)

# Errors that mean "the bytes are not a valid archive", as opposed to the
# stream itself failing underneath us.
_MALFORMED_STREAM_ERRORS = (
    tarfile.TarError,
    EOFError,
    zlib.error,
    lzma.LZMAError,
    zstandard.ZstdError,
    gzip.BadGzipFile,
)


# ---------------------------------------------------------------------
# Member enumeration
# ---------------------------------------------------------------------

def list_tar_members(fileobj: BinaryIO) -> list[str]:
    """
    Streams a tar archive and returns the paths of its regular-file members.
    Member content is skipped, never retained.

    If the stream turns malformed after at least one member was read, the
    members collected so far are returned; a partial listing beats none.
    """
    names: list[str] = []
    try:
        with tarfile.open(fileobj=fileobj, mode="r|") as archive:
            for member in archive:
                if member.isfile():
                    names.append(member.name)
    except _MALFORMED_STREAM_ERRORS as e:
        if not names:
            raise ArchiveCorruptError(f"unreadable tar stream: {e}", format="tar") from e
        logger.warning("tar salvage", members=len(names), error=str(e))

    return names


def list_zip_members(fileobj: BinaryIO, spool_max_bytes: int = DEFAULT_ZIP_SPOOL_MAX_BYTES) -> list[str]:
    """
    Returns the non-directory entries of a zip archive.

    Zip keeps its index in a central directory at the end of the file, so the
    stream is first spooled into a seekable buffer.
    """
    with tempfile.SpooledTemporaryFile(max_size=spool_max_bytes) as spool:
        shutil.copyfileobj(fileobj, spool, DEFAULT_CHUNK_SIZE)
        spool.seek(0)
        try:
            with zipfile.ZipFile(spool) as archive:
                return [info.filename for info in archive.infolist() if not info.is_dir()]
        except (zipfile.BadZipFile, zipfile.LargeZipFile, EOFError) as e:
            raise ArchiveCorruptError(f"unreadable zip archive: {e}", format="zip") from e


# ---------------------------------------------------------------------
# Decompression steps
# ---------------------------------------------------------------------

def open_gzip(fileobj: BinaryIO) -> BinaryIO:
    return gzip.GzipFile(fileobj=fileobj, mode="rb")


class XzDecodeReader(io.RawIOBase):
    """
    Incremental xz decoder over a raw stream, concatenated streams included.

    Only the `decompress` calls go through `gate`; reading compressed input
    from `fileobj` happens outside it, so a slow download never holds the
    gate while it waits for bytes.
    """

    def __init__(
        self,
        fileobj: BinaryIO,
        gate: Optional[DecodeSerializer] = None,
        read_size: int = DEFAULT_CHUNK_SIZE,
        decompressor_factory: Callable[[], Any] = lzma.LZMADecompressor,
    ):
        super().__init__()
        self._fp = fileobj
        self._gate = gate
        self._read_size = read_size
        self._factory = decompressor_factory
        self._decompressor = decompressor_factory()
        self._pending = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        while not self._pending and not self._eof:
            self._pending = self._next_block()

        size = min(len(buffer), len(self._pending))
        memoryview(buffer).cast("B")[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size

    def _decompress(self, data: bytes) -> bytes:
        if self._gate is None:
            return self._decompressor.decompress(data, self._read_size)
        return self._gate.call(self._decompressor.decompress, data, self._read_size)

    def _next_block(self) -> bytes:
        if self._decompressor.eof:
            data = self._decompressor.unused_data or self._fp.read(self._read_size)
            if not data:
                self._eof = True
                return b""
            self._decompressor = self._factory()
            try:
                return self._decompress(data)
            except lzma.LZMAError:
                # Trailing bytes that are not another xz stream are ignored.
                self._eof = True
                return b""

        data = b""
        if self._decompressor.needs_input:
            data = self._fp.read(self._read_size)
            if not data:
                raise EOFError("xz stream ended before the end-of-stream marker")
        return self._decompress(data)


def open_xz(fileobj: BinaryIO, gate: Optional[DecodeSerializer] = None) -> BinaryIO:
    return io.BufferedReader(XzDecodeReader(fileobj, gate=gate))


def open_zstd(fileobj: BinaryIO) -> BinaryIO:
    return zstandard.ZstdDecompressor().stream_reader(fileobj, read_across_frames=True)


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ArchiveAdapter:
    """
    How to enumerate one archive format. `serialized` marks adapters whose
    decompress step takes the DecodeSerializer as its `gate`.
    """
    format: ArchiveFormat
    list_members: Callable[[BinaryIO], list[str]]
    decompress: Optional[Callable[..., BinaryIO]] = None
    serialized: bool = False

    def enumerate(self, fileobj: BinaryIO, gate: Optional[DecodeSerializer] = None) -> list[str]:
        if self.decompress is None:
            return self.list_members(fileobj)

        stream = self.decompress(fileobj, gate=gate) if self.serialized else self.decompress(fileobj)
        try:
            return self.list_members(stream)
        finally:
            stream.close()


def build_archive_adapters(
    zip_spool_max_bytes: int = DEFAULT_ZIP_SPOOL_MAX_BYTES,
) -> dict[ArchiveFormat, ArchiveAdapter]:
    """
    Adapters for every format that has members to list. Bare compressed
    files (gz, xz, zst) have no entry and are not introspected.
    """
    def list_zip(fileobj: BinaryIO) -> list[str]:
        return list_zip_members(fileobj, spool_max_bytes=zip_spool_max_bytes)

    return {
        ArchiveFormat.ZIP: ArchiveAdapter(ArchiveFormat.ZIP, list_zip),
        ArchiveFormat.TAR: ArchiveAdapter(ArchiveFormat.TAR, list_tar_members),
        ArchiveFormat.TAR_GZ: ArchiveAdapter(ArchiveFormat.TAR_GZ, list_tar_members, open_gzip),
        # Only the xz decode calls are funnelled through the DecodeSerializer.
        ArchiveFormat.TAR_XZ: ArchiveAdapter(ArchiveFormat.TAR_XZ, list_tar_members, open_xz, serialized=True),
        ArchiveFormat.TAR_ZST: ArchiveAdapter(ArchiveFormat.TAR_ZST, list_tar_members, open_zstd),
    }


ARCHIVE_ADAPTERS = build_archive_adapters()
