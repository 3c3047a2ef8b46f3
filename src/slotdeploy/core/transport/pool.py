"""Bounded pool of transport sessions and the lease wrapper handed to callers."""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional, Sequence, Set, Tuple

from ..exceptions import PoolClosedError
from ..retry_manager import RetryPolicy
from .base import (
    BatchWorker,
    LocalExists,
    LocalPath,
    ProgressCallback,
    RemoteEntry,
    RemoteExists,
    RemoteMetadata,
    RemoteTransport,
    _BatchProgress,
)

log = logging.getLogger(__name__)

TransportFactory = Callable[[], RemoteTransport]


class TransportPool:
    """Fixed-capacity arena of transport sessions.

    A counting semaphore bounds the number of leased sessions; released
    sessions go back on a free list and are reused, never closed, because
    reconnecting is expensive. A stale session reconnects on its next call.
    Safe for concurrent use by tasks on one event loop.
    """

    def __init__(self, factory: TransportFactory, size: int = 8):
        self.size = max(1, int(size))
        self._factory = factory
        self._semaphore = asyncio.Semaphore(self.size)
        self._free: List[RemoteTransport] = []
        self._in_use = 0
        self._created = 0
        self._closed = False
        self._closing: Set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings) -> "TransportPool":
        """Pool of FTP sessions built from ``SlotDeploySettings``."""
        from .ftp import FtpTransport

        # Fail fast on missing credentials rather than on first acquire
        FtpTransport.from_settings(settings.ftp)

        def factory() -> RemoteTransport:
            return FtpTransport.from_settings(
                settings.ftp, retry_policy=RetryPolicy.from_settings(settings.retry)
            )

        return cls(factory, size=settings.ftp.pool_size)

    @property
    def available(self) -> int:
        """Sessions that could be leased right now without waiting."""
        return self.size - self._in_use

    @property
    def in_use(self) -> int:
        return self._in_use

    @property
    def created(self) -> int:
        return self._created

    @property
    def closed(self) -> bool:
        return self._closed

    async def acquire(self) -> RemoteTransport:
        """Lease a session, waiting while all ``size`` sessions are out."""
        if self._closed:
            raise PoolClosedError("Transport pool is closed")
        await self._semaphore.acquire()
        return self._checkout()

    async def try_acquire(self) -> Optional[RemoteTransport]:
        """Lease a session only if one is free right now."""
        if self._closed or self._semaphore.locked():
            return None
        # an unlocked semaphore is acquired without suspending
        await self._semaphore.acquire()
        return self._checkout()

    def _checkout(self) -> RemoteTransport:
        if self._closed:
            self._semaphore.release()
            raise PoolClosedError("Transport pool is closed")
        try:
            if self._free:
                session = self._free.pop()
            else:
                session = self._factory()
                self._created += 1
                log.debug(f"Pool created session #{self._created}: {session!r}")
        except BaseException:
            self._semaphore.release()
            raise
        self._in_use += 1
        return session

    def release(self, session: RemoteTransport) -> None:
        """Return a leased session and free its permit."""
        if any(s is session for s in self._free):
            raise ValueError(f"{session!r} was already released")
        self._in_use -= 1
        if self._closed:
            task = asyncio.get_running_loop().create_task(session.close())
            self._closing.add(task)
            task.add_done_callback(self._closing.discard)
        else:
            self._free.append(session)
        self._semaphore.release()

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[RemoteTransport]:
        session = await self.acquire()
        try:
            yield session
        finally:
            self.release(session)

    async def close(self) -> None:
        """Close idle sessions and refuse new leases.

        Sessions still leased are closed when they come back.
        """
        if self._closed:
            return
        self._closed = True
        idle, self._free = self._free, []
        for session in idle:
            await session.close()
        if self._closing:
            await asyncio.gather(*self._closing, return_exceptions=True)
        log.debug(f"Transport pool closed ({len(idle)} idle sessions)")

    async def __aenter__(self) -> "TransportPool":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class PooledTransport(RemoteTransport):
    """Lease-scoped transport.

    Acquires exactly one session from the pool on first use and forwards
    every call to it. Closing hands the session back to the pool (it stays
    connected) exactly once; further closes are no-ops.

    Batch transfers also borrow idle pool sessions without waiting, so a
    lease can push several files at once when the pool has spare capacity.
    """

    def __init__(self, pool: TransportPool):
        # the leased session applies its own retry policy
        super().__init__(RetryPolicy.none())
        self._pool = pool
        self._inner: Optional[RemoteTransport] = None
        self._acquire_lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"PooledTransport({self._inner!r})"

    @property
    def leased(self) -> Optional[RemoteTransport]:
        return self._inner

    async def _lease(self) -> RemoteTransport:
        self._ensure_open()
        if self._inner is not None:
            return self._inner
        async with self._acquire_lock:
            if self._inner is None:
                session = await self._pool.acquire()
                if self._closed:
                    # closed while waiting for a permit
                    self._pool.release(session)
                    self._ensure_open()
                self._inner = session
        return self._inner

    async def _dispose(self) -> None:
        inner, self._inner = self._inner, None
        if inner is not None:
            self._pool.release(inner)

    # Lifecycle -----------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._inner is not None and self._inner.is_connected

    async def connect(self) -> None:
        await (await self._lease()).connect()

    async def disconnect(self) -> None:
        if self._inner is not None:
            await self._inner.disconnect()

    # Forwarded primitives ------------------------------------------------

    async def file_exists(self, path: str) -> bool:
        return await (await self._lease()).file_exists(path)

    async def directory_exists(self, path: str) -> bool:
        return await (await self._lease()).directory_exists(path)

    async def metadata(self, path: str) -> RemoteMetadata:
        return await (await self._lease()).metadata(path)

    async def list(self, path: str) -> List[RemoteEntry]:
        return await (await self._lease()).list(path)

    async def create_directory(self, path: str) -> None:
        await (await self._lease()).create_directory(path)

    async def delete_directory(self, path: str, recursive: bool = False) -> None:
        await (await self._lease()).delete_directory(path, recursive)

    async def delete_file(self, path: str) -> None:
        await (await self._lease()).delete_file(path)

    async def upload_file(
        self,
        local_path: LocalPath,
        remote_path: str,
        progress: Optional[ProgressCallback] = None,
        exists_mode: RemoteExists = RemoteExists.OVERWRITE,
        create_remote_dir: bool = True,
    ) -> None:
        await (await self._lease()).upload_file(
            local_path, remote_path, progress, exists_mode, create_remote_dir
        )

    async def download_file(
        self,
        local_path: LocalPath,
        remote_path: str,
        progress: Optional[ProgressCallback] = None,
        exists_mode: LocalExists = LocalExists.OVERWRITE,
    ) -> None:
        await (await self._lease()).download_file(local_path, remote_path, progress, exists_mode)

    async def move(self, source_path: str, destination_path: str) -> None:
        await (await self._lease()).move(source_path, destination_path)

    # Batches -------------------------------------------------------------

    async def _run_batch(
        self,
        items: Sequence[Tuple[Path, str]],
        worker: BatchWorker,
        parallelism: int,
        tracker: _BatchProgress,
    ) -> None:
        """Spread a batch over this lease plus any idle pool sessions.

        Never waits for extra sessions, so a lease cannot deadlock against
        the pool it came from.
        """
        if not items:
            return

        primary = await self._lease()
        extras: List[RemoteTransport] = []
        wanted = min(max(1, parallelism), len(items)) - 1
        while len(extras) < wanted:
            extra = await self._pool.try_acquire()
            if extra is None:
                break
            extras.append(extra)

        queue: "asyncio.Queue[Tuple[Path, str]]" = asyncio.Queue()
        for item in items:
            queue.put_nowait(item)
        errors: List[BaseException] = []

        async def lane(session: RemoteTransport) -> None:
            while not queue.empty():
                item = queue.get_nowait()
                try:
                    await worker(session, item)
                except Exception as e:
                    errors.append(e)
                    continue
                tracker.advance(item)

        try:
            log.debug(f"Batch of {len(items)} over {1 + len(extras)} sessions")
            await asyncio.gather(*(lane(s) for s in [primary, *extras]))
        finally:
            for extra in extras:
                self._pool.release(extra)

        if errors:
            raise errors[0]
