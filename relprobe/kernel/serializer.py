"""
Single-flight gate for decode operations that must never overlap.
"""
import asyncio
import threading
from collections import deque
from contextlib import contextmanager
from typing import Awaitable, Callable, Iterator, TypeVar

from relprobe.internal.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class _ThreadWaiter:
    def __init__(self):
        self.granted = False
        self._event = threading.Event()

    def grant(self) -> None:
        self.granted = True
        self._event.set()

    def wait(self) -> None:
        self._event.wait()


class _LoopWaiter:
    def __init__(self, loop: asyncio.AbstractEventLoop):
        self.granted = False
        self._loop = loop
        self.future: asyncio.Future = loop.create_future()

    def grant(self) -> None:
        self.granted = True
        self._loop.call_soon_threadsafe(self._wake)

    def _wake(self) -> None:
        if not self.future.done():
            self.future.set_result(None)


class DecodeSerializer:
    """
    Runs decode operations strictly one after another, in arrival order.

    Each operation starts only once the previous one has finished, whether it
    succeeded or failed, and every caller gets its own result or exception.
    One instance is shared by reference between every pipeline that decodes
    the guarded codec; unrelated codecs must not go through it.

    The gate is not tied to an event loop: coroutines on any loop use `run()`,
    worker threads use `slot()` or `call()`.
    """

    def __init__(self, codec: str = "xz"):
        self.codec = codec
        self._mutex = threading.Lock()
        self._held = False
        self._waiters: deque = deque()

    @property
    def busy(self) -> bool:
        return self._held

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    # ------------------------------------------------------------------
    # Slot bookkeeping
    # ------------------------------------------------------------------

    def _acquire_or_enqueue(self, waiter) -> bool:
        with self._mutex:
            if not self._held and not self._waiters:
                self._held = True
                return True
            self._waiters.append(waiter)
            return False

    def _release(self) -> None:
        # The slot is handed straight to the next waiter, so nobody can
        # jump the queue between release and wake-up.
        with self._mutex:
            if self._waiters:
                self._waiters.popleft().grant()
            else:
                self._held = False

    # ------------------------------------------------------------------
    # Worker threads
    # ------------------------------------------------------------------

    @contextmanager
    def slot(self) -> Iterator[None]:
        """
        Holds the gate for the duration of the block. Blocks the calling
        thread while waiting, so it must not be used on an event loop thread.
        """
        waiter = _ThreadWaiter()
        if not self._acquire_or_enqueue(waiter):
            waiter.wait()
        try:
            yield
        finally:
            self._release()

    def call(self, function: Callable[..., T], *args) -> T:
        with self.slot():
            return function(*args)

    # ------------------------------------------------------------------
    # Coroutines
    # ------------------------------------------------------------------

    async def _acquire(self) -> None:
        waiter = _LoopWaiter(asyncio.get_running_loop())
        if self._acquire_or_enqueue(waiter):
            return
        try:
            await waiter.future
        except asyncio.CancelledError:
            with self._mutex:
                if not waiter.granted:
                    self._waiters.remove(waiter)
                    raise
            # Granted while being cancelled: pass the slot on.
            self._release()
            raise

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        await self._acquire()

        try:
            logger.debug("decode slot acquired", codec=self.codec, waiting=self.waiting)
            task = asyncio.ensure_future(operation())
            try:
                return await asyncio.shield(task)
            except asyncio.CancelledError:
                # The work may live in a thread that outlasts our caller; keep the
                # slot until it has really stopped.
                if not task.done():
                    await asyncio.wait({task})
                if not task.cancelled() and task.exception() is not None:
                    logger.debug("decode abandoned", codec=self.codec, error=str(task.exception()))
                raise
        finally:
            self._release()

    def __repr__(self) -> str:
        return f"<DecodeSerializer codec={self.codec} busy={self.busy} waiting={self.waiting}>"
