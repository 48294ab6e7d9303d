"""
This module defines the download pipeline: one network fetch per artifact,
forked to a digest accumulator, an archive member enumerator and a progress
sink that all run concurrently over the same bytes.
"""
import asyncio
import hashlib
import inspect
from typing import Any, Callable, Coroutine, Mapping, Optional, Union

import blake3
import httpx

from relprobe.adapters.archives import ArchiveAdapter, build_archive_adapters
from relprobe.adapters.http_fetch import HttpFetcher
from relprobe.internal.config import Settings, load_settings
from relprobe.internal.constants import HASH_BLAKE3, HASH_SHA256, SUPPORTED_HASHES
from relprobe.internal.errors import ArchiveCorruptError, InspectionError, RelprobeError
from relprobe.internal.logging import get_logger
from relprobe.kernel.broadcast import BlockingChunkReader, BroadcastReader, StreamBroadcaster
from relprobe.kernel.contracts import ArchiveFormat, DownloadResult, ProgressCallback
from relprobe.kernel.serializer import DecodeSerializer

logger = get_logger(__name__)

# Order in which a failure is reported when several consumers fail together.
_FAILURE_PRIORITY = ("digest", "progress", "archive")


def new_hasher(algorithm: str):
    if algorithm == HASH_BLAKE3:
        return blake3.blake3()
    if algorithm == HASH_SHA256:
        return hashlib.sha256()
    raise ValueError(f"Unsupported hash algorithm: {algorithm} (expected one of {', '.join(SUPPORTED_HASHES)})")


class DownloadPipeline:
    """
    Fetches artifacts and derives their digest and archive listing.

    Pipelines that should share the xz bottleneck must be given the same
    DecodeSerializer; one is created per pipeline otherwise.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        serializer: Optional[DecodeSerializer] = None,
        settings: Optional[Settings] = None,
        adapters: Optional[Mapping[ArchiveFormat, ArchiveAdapter]] = None,
        fetcher: Optional[HttpFetcher] = None,
    ):
        self.settings = settings or load_settings()
        self.serializer = serializer or DecodeSerializer()
        self.fetcher = fetcher or HttpFetcher(client=client, settings=self.settings)
        self.adapters = dict(adapters) if adapters is not None else build_archive_adapters(
            self.settings.zip_spool_max_bytes
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def fetch_and_inspect(
        self,
        url: str,
        format_hint: Union[ArchiveFormat, str, None] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_content_length: Optional[Callable[[Optional[int]], Any]] = None,
    ) -> DownloadResult:
        """
        Downloads `url` once, returning its digest and, if `format_hint` names a
        supported archive format, the names of the files it contains.

        `on_content_length` is called once the response is open, with the size
        the server announced (None if it did not).

        Raises NetworkError if the fetch fails, ArchiveCorruptError (with the
        digest attached) if the archive holds no readable member, and
        InspectionError for anything else that goes wrong.
        """
        archive_format = ArchiveFormat.coerce(format_hint)
        adapter = self.adapters.get(archive_format) if archive_format is not None else None
        log = logger.bind(url=url, format=str(archive_format) if archive_format else None)

        log.debug("fetch started", introspect=adapter is not None, progress=on_progress is not None)

        try:
            async with self.fetcher.open(url) as body:
                if on_content_length is not None:
                    on_content_length(body.content_length)

                broadcaster = StreamBroadcaster(body, max_pending=self.settings.fanout_depth)

                consumers: dict[str, Coroutine[Any, Any, Any]] = {
                    "digest": self._digest(broadcaster.reader()),
                }
                if adapter is not None:
                    consumers["archive"] = self._archive_members(broadcaster.reader(), adapter)
                if on_progress is not None:
                    consumers["progress"] = _report_progress(broadcaster.reader(), on_progress)

                async with broadcaster:
                    results = await self._join(broadcaster, consumers)
                size = broadcaster.bytes_read
        except RelprobeError as e:
            log.error("fetch failed", error=str(e), error_type=type(e).__name__)
            raise
        except Exception as e:
            log.error("fetch failed", error=str(e), error_type=type(e).__name__)
            raise InspectionError(url, str(e) or type(e).__name__) from e

        digest = results["digest"]
        members = results.get("archive")

        if isinstance(members, ArchiveCorruptError):
            log.error("archive unreadable", digest=digest, error=members.message)
            raise ArchiveCorruptError(
                members.message,
                url=url,
                format=str(archive_format),
                digest=digest,
            ) from members

        log.debug(
            "fetch finished",
            bytes=size,
            digest=digest,
            members=len(members) if members is not None else None,
        )
        return DownloadResult(
            digest=digest,
            archive_member_names=tuple(members) if members is not None else None,
            hash_algorithm=self.settings.hash_algorithm,
            size=size,
        )

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------

    async def _digest(self, reader: BroadcastReader) -> str:
        hasher = new_hasher(self.settings.hash_algorithm)
        async for chunk in reader:
            hasher.update(chunk)
        return hasher.hexdigest()

    async def _archive_members(self, reader: BroadcastReader, adapter: ArchiveAdapter):
        """
        Runs the adapter in a worker thread. A corrupt archive is returned rather
        than raised so that hashing is not cut short; the caller reports it once
        the digest is known.

        Serialized adapters get the DecodeSerializer as their gate and take it
        per decode call, never while waiting on the network.
        """
        loop = asyncio.get_running_loop()
        gate = self.serializer if adapter.serialized else None
        worker = asyncio.ensure_future(
            asyncio.to_thread(adapter.enumerate, BlockingChunkReader(reader, loop), gate)
        )

        try:
            return await asyncio.shield(worker)
        except ArchiveCorruptError as e:
            return e
        except asyncio.CancelledError:
            # The thread only stops once its next read fails; wait for it so it
            # never outlives the fetch.
            await reader.aclose()
            if not worker.done():
                await asyncio.wait({worker})
            raise
        finally:
            await reader.aclose()

    # ------------------------------------------------------------------
    # Join
    # ------------------------------------------------------------------

    async def _join(
        self,
        broadcaster: StreamBroadcaster,
        consumers: dict[str, Coroutine[Any, Any, Any]],
    ) -> dict[str, Any]:
        """
        Waits for every consumer. The first failure aborts the broadcast and
        cancels the remaining consumers before it is re-raised.
        """
        tasks = {
            label: asyncio.create_task(coro, name=f"consumer-{label}")
            for label, coro in consumers.items()
        }
        done: set[asyncio.Task] = set()

        try:
            done, _ = await asyncio.wait(tasks.values(), return_when=asyncio.FIRST_EXCEPTION)
        finally:
            if len(done) != len(tasks):
                # Close first: a worker thread blocked on the stream only wakes
                # up once its reads start failing.
                await broadcaster.aclose()
                for task in tasks.values():
                    task.cancel()
                await asyncio.gather(*tasks.values(), return_exceptions=True)

        for label in _FAILURE_PRIORITY:
            task = tasks.get(label)
            if task in done and not task.cancelled() and task.exception() is not None:
                raise task.exception()

        return {label: task.result() for label, task in tasks.items()}


async def _report_progress(reader: BroadcastReader, on_progress: ProgressCallback) -> None:
    total = 0
    async for chunk in reader:
        total += len(chunk)
        result = on_progress(total)
        if inspect.isawaitable(result):
            await result


async def fetch_and_inspect(
    url: str,
    format_hint: Union[ArchiveFormat, str, None] = None,
    on_progress: Optional[ProgressCallback] = None,
    serializer: Optional[DecodeSerializer] = None,
    settings: Optional[Settings] = None,
) -> DownloadResult:
    """
    One-shot helper around DownloadPipeline.fetch_and_inspect.
    """
    pipeline = DownloadPipeline(serializer=serializer, settings=settings)
    return await pipeline.fetch_and_inspect(url, format_hint, on_progress)
