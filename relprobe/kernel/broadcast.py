"""
Fan-out of one async byte stream to several independent readers.

Chunks are kept in a shared queue until every attached reader has consumed
them, and the producer stops pulling from the source while the slowest reader
is `max_pending` chunks behind. Memory use is therefore bounded by the lag of
the slowest reader, never by the size of the stream.
"""
import asyncio
import contextlib
import io
from collections import deque
from typing import AsyncIterable, Optional

from relprobe.internal.constants import DEFAULT_FANOUT_DEPTH
from relprobe.internal.errors import StreamClosedError


class StreamBroadcaster:

    def __init__(self, source: AsyncIterable[bytes], max_pending: int = DEFAULT_FANOUT_DEPTH):
        if max_pending < 1:
            raise ValueError("max_pending must be at least 1")

        self._source = source
        self._max_pending = max_pending

        self._chunks: deque[bytes] = deque()
        self._first_index = 0  # sequence number of self._chunks[0]
        self._cursors: dict[int, int] = {}
        self._next_reader_id = 0

        self._condition = asyncio.Condition()
        self._eof = False
        self._error: Optional[BaseException] = None
        self._closed = False
        self._pump_task: Optional[asyncio.Task] = None

        self.bytes_read = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def reader(self) -> "BroadcastReader":
        """
        Attaches a new reader. All readers must be attached before `start()`,
        otherwise a late reader would miss chunks already dropped.
        """
        if self._pump_task is not None:
            raise RuntimeError("Readers must be attached before the broadcast starts")

        reader_id = self._next_reader_id
        self._next_reader_id += 1
        self._cursors[reader_id] = 0
        return BroadcastReader(self, reader_id)

    def start(self) -> None:
        if self._pump_task is None:
            self._pump_task = asyncio.create_task(self._pump(), name="broadcast-pump")

    async def aclose(self) -> None:
        """
        Aborts the broadcast. Pending and future reads raise StreamClosedError.
        """
        async with self._condition:
            self._closed = True
            self._chunks.clear()
            self._cursors.clear()
            self._condition.notify_all()

        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task

    async def __aenter__(self) -> "StreamBroadcaster":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    @property
    def pending(self) -> int:
        """Chunks currently retained for readers that have not consumed them."""
        return len(self._chunks)

    # ------------------------------------------------------------------
    # Producer
    # ------------------------------------------------------------------

    def _has_room(self) -> bool:
        return self._closed or len(self._chunks) < self._max_pending

    async def _pump(self) -> None:
        error: Optional[BaseException] = None
        try:
            async for chunk in self._source:
                if not chunk:
                    continue
                async with self._condition:
                    await self._condition.wait_for(self._has_room)
                    if self._closed:
                        return
                    self._chunks.append(chunk)
                    self.bytes_read += len(chunk)
                    self._trim()
                    self._condition.notify_all()
        except Exception as e:
            error = e

        async with self._condition:
            self._eof = True
            self._error = error
            self._condition.notify_all()

    # ------------------------------------------------------------------
    # Consumers
    # ------------------------------------------------------------------

    def _trim(self) -> None:
        # Drop chunks every attached reader has moved past.
        floor = min(self._cursors.values(), default=self._first_index + len(self._chunks))
        dropped = False
        while self._chunks and self._first_index < floor:
            self._chunks.popleft()
            self._first_index += 1
            dropped = True
        if dropped:
            self._condition.notify_all()

    async def _read(self, reader_id: int) -> bytes:
        async with self._condition:
            while True:
                if self._closed:
                    raise StreamClosedError("broadcast was aborted")

                cursor = self._cursors.get(reader_id)
                if cursor is None:
                    raise StreamClosedError("reader is detached")

                index = cursor - self._first_index
                if index < len(self._chunks):
                    chunk = self._chunks[index]
                    self._cursors[reader_id] = cursor + 1
                    self._trim()
                    return chunk

                if self._error is not None:
                    raise self._error
                if self._eof:
                    return b""

                await self._condition.wait()

    async def _detach(self, reader_id: int) -> None:
        async with self._condition:
            if self._cursors.pop(reader_id, None) is not None:
                self._trim()
                self._condition.notify_all()


class BroadcastReader:
    """
    One independent view of a broadcast stream. Iterate it, or call `read()`
    until it returns b"". Detach with `aclose()` to stop holding the producer back.
    """

    def __init__(self, broadcaster: StreamBroadcaster, reader_id: int):
        self._broadcaster = broadcaster
        self._reader_id = reader_id

    async def read(self) -> bytes:
        return await self._broadcaster._read(self._reader_id)

    async def aclose(self) -> None:
        await self._broadcaster._detach(self._reader_id)

    def __aiter__(self) -> "BroadcastReader":
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read()
        if not chunk:
            raise StopAsyncIteration
        return chunk

    def __repr__(self) -> str:
        return f"<BroadcastReader id={self._reader_id}>"


class BlockingChunkReader(io.RawIOBase):
    """
    File-like view of a BroadcastReader for code running in a worker thread.

    Each refill hops back onto the event loop that owns the broadcast, so the
    stdlib archive modules can pull from the stream with plain `read()` calls.
    Must not be used from the event loop thread itself.
    """

    def __init__(self, reader: BroadcastReader, loop: asyncio.AbstractEventLoop):
        super().__init__()
        self._reader = reader
        self._loop = loop
        self._pending = b""
        self._eof = False

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        if not self._pending and not self._eof:
            future = asyncio.run_coroutine_threadsafe(self._reader.read(), self._loop)
            self._pending = future.result()
            if not self._pending:
                self._eof = True

        size = min(len(buffer), len(self._pending))
        memoryview(buffer).cast("B")[:size] = self._pending[:size]
        self._pending = self._pending[size:]
        return size
