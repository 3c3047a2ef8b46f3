"""Remote transport contract shared by the real and in-memory sessions."""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

from ..exceptions import TransportClosedError
from ..retry_manager import RetryPolicy
from ..utils.paths import join_remote, name_of, normalize_remote, relative_to

log = logging.getLogger(__name__)

DEFAULT_PARALLELISM = 4
MAX_PARALLELISM = 64

LocalPath = Union[str, os.PathLike]


def clamp_parallelism(value: Optional[int]) -> int:
    """Values below 1 fall back to the default; large values are capped."""
    if value is None or value < 1:
        return DEFAULT_PARALLELISM
    return min(int(value), MAX_PARALLELISM)


class EntryKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"


class RemoteExists(str, Enum):
    """What an upload does when the remote file already exists."""

    OVERWRITE = "overwrite"
    SKIP = "skip"


class LocalExists(str, Enum):
    """What a download does when the local file already exists."""

    OVERWRITE = "overwrite"
    SKIP = "skip"


class FolderSyncMode(str, Enum):
    """UPDATE leaves extra files on the destination, MIRROR deletes them."""

    UPDATE = "update"
    MIRROR = "mirror"


@dataclass(frozen=True)
class RemoteEntry:
    """One item of a directory listing."""

    path: str
    kind: EntryKind
    size: Optional[int] = None

    @property
    def name(self) -> str:
        return name_of(self.path)

    @property
    def is_file(self) -> bool:
        return self.kind == EntryKind.FILE

    @property
    def is_dir(self) -> bool:
        return self.kind == EntryKind.DIRECTORY


@dataclass(frozen=True)
class RemoteMetadata:
    size: Optional[int] = None
    modified: Optional[datetime] = None


@dataclass(frozen=True)
class TransferProgress:
    """Progress report for a single transfer or a batch.

    For single files ``percent`` follows bytes; for batches it follows the
    number of completed files.
    """

    local_path: str
    remote_path: str
    transferred_bytes: int = 0
    total_bytes: Optional[int] = None
    files_done: int = 0
    files_total: int = 1
    percent: float = 0.0


ProgressCallback = Callable[[TransferProgress], None]

# (transport, item) -> awaitable; item is a (local, remote) pair
BatchWorker = Callable[["RemoteTransport", Tuple[Path, str]], Awaitable[Any]]


class RemoteTransport(ABC):
    """Stateful session against one remote hierarchical store.

    Subclasses implement the primitives; directory transfers and batch helpers
    are built here on top of them. Every primitive normalizes its paths, runs
    through ``retry_policy`` and calls :meth:`connect` first, so callers never
    need to connect explicitly.

    Usable as an async context manager; leaving the block closes the session.
    """

    def __init__(self, retry_policy: Optional[RetryPolicy] = None):
        self.retry_policy = retry_policy if retry_policy is not None else RetryPolicy()
        self._closed = False

    # Lifecycle -----------------------------------------------------------

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    async def connect(self) -> None:
        """Establish the session; no-op when already connected."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Drop the session; no-op when not connected."""

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        """Dispose of the transport. A second call is a no-op."""
        if self._closed:
            return
        self._closed = True
        await self._dispose()

    async def _dispose(self) -> None:
        await self.disconnect()

    async def __aenter__(self) -> "RemoteTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise TransportClosedError(f"{type(self).__name__} is closed")

    async def _run(self, description: str, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run one primitive with connect-on-demand and retries."""
        self._ensure_open()

        async def attempt():
            await self.connect()
            return await func(*args)

        return await self.retry_policy.execute(attempt, description=description)

    # Primitives ----------------------------------------------------------

    @abstractmethod
    async def file_exists(self, path: str) -> bool: ...

    @abstractmethod
    async def directory_exists(self, path: str) -> bool: ...

    @abstractmethod
    async def metadata(self, path: str) -> RemoteMetadata: ...

    @abstractmethod
    async def list(self, path: str) -> List[RemoteEntry]:
        """One-level listing of ``path`` in server order."""

    @abstractmethod
    async def create_directory(self, path: str) -> None:
        """Create ``path`` and any missing parents."""

    @abstractmethod
    async def delete_directory(self, path: str, recursive: bool = False) -> None:
        """Delete a directory; absent directories are ignored."""

    @abstractmethod
    async def delete_file(self, path: str) -> None:
        """Delete a file; absent files are ignored."""

    @abstractmethod
    async def upload_file(
        self,
        local_path: LocalPath,
        remote_path: str,
        progress: Optional[ProgressCallback] = None,
        exists_mode: RemoteExists = RemoteExists.OVERWRITE,
        create_remote_dir: bool = True,
    ) -> None: ...

    @abstractmethod
    async def download_file(
        self,
        local_path: LocalPath,
        remote_path: str,
        progress: Optional[ProgressCallback] = None,
        exists_mode: LocalExists = LocalExists.OVERWRITE,
    ) -> None: ...

    @abstractmethod
    async def move(self, source_path: str, destination_path: str) -> None:
        """Rename a file or directory in a single server-side step."""

    # Conveniences --------------------------------------------------------

    async def exists(self, path: str) -> bool:
        return await self.file_exists(path) or await self.directory_exists(path)

    async def file_size(self, path: str) -> Optional[int]:
        return (await self.metadata(path)).size

    async def modified_time(self, path: str) -> Optional[datetime]:
        return (await self.metadata(path)).modified

    async def move_file(self, source_path: str, destination_path: str) -> None:
        await self.move(source_path, destination_path)

    async def move_directory(self, source_path: str, destination_path: str) -> None:
        await self.move(source_path, destination_path)

    async def walk(self, path: str) -> List[RemoteEntry]:
        """Every entry below ``path``, parents before children."""
        entries: List[RemoteEntry] = []
        pending = [normalize_remote(path)]
        while pending:
            current = pending.pop(0)
            for entry in await self.list(current):
                entries.append(entry)
                if entry.is_dir:
                    pending.append(entry.path)
        return entries

    # Batches -------------------------------------------------------------

    async def upload_many(
        self,
        local_paths: Iterable[LocalPath],
        remote_dir: str,
        progress: Optional[ProgressCallback] = None,
        parallelism: int = DEFAULT_PARALLELISM,
        exists_mode: RemoteExists = RemoteExists.OVERWRITE,
    ) -> None:
        """Upload several local files into one remote directory."""
        pairs = [
            (Path(p), join_remote(remote_dir, Path(p).name)) for p in local_paths
        ]
        await self._upload_pairs(pairs, progress, parallelism, exists_mode)

    async def download_many(
        self,
        files: Iterable[Tuple[str, LocalPath]],
        progress: Optional[ProgressCallback] = None,
        parallelism: int = DEFAULT_PARALLELISM,
        exists_mode: LocalExists = LocalExists.OVERWRITE,
    ) -> None:
        """Download ``(remote_path, local_path)`` pairs."""
        pairs = [(Path(local), normalize_remote(remote)) for remote, local in files]
        await self._download_pairs(pairs, progress, parallelism, exists_mode)

    async def _upload_pairs(
        self,
        pairs: Sequence[Tuple[Path, str]],
        progress: Optional[ProgressCallback],
        parallelism: int,
        exists_mode: RemoteExists,
    ) -> None:
        async def worker(transport: RemoteTransport, item: Tuple[Path, str]) -> None:
            local, remote = item
            await transport.upload_file(local, remote, exists_mode=exists_mode)
            log.debug(f"Uploaded {local} -> {remote}")

        await self._run_batch(pairs, worker, parallelism, _BatchProgress(progress, len(pairs)))

    async def _download_pairs(
        self,
        pairs: Sequence[Tuple[Path, str]],
        progress: Optional[ProgressCallback],
        parallelism: int,
        exists_mode: LocalExists,
    ) -> None:
        async def worker(transport: RemoteTransport, item: Tuple[Path, str]) -> None:
            local, remote = item
            await transport.download_file(local, remote, exists_mode=exists_mode)
            log.debug(f"Downloaded {remote} -> {local}")

        await self._run_batch(pairs, worker, parallelism, _BatchProgress(progress, len(pairs)))

    async def _run_batch(
        self,
        items: Sequence[Tuple[Path, str]],
        worker: BatchWorker,
        parallelism: int,
        tracker: "_BatchProgress",
    ) -> None:
        """Run ``worker`` over ``items`` with at most ``parallelism`` in flight.

        Every item is attempted; the first failure is raised once all of them
        have finished.
        """
        if not items:
            return

        throttler = asyncio.Semaphore(max(1, parallelism))

        async def run_one(item: Tuple[Path, str]) -> None:
            async with throttler:
                await worker(self, item)
                tracker.advance(item)

        results = await asyncio.gather(
            *(run_one(item) for item in items), return_exceptions=True
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            raise errors[0]

    # Directory trees -----------------------------------------------------

    async def upload_directory(
        self,
        local_directory: LocalPath,
        remote_directory: str,
        progress: Optional[ProgressCallback] = None,
        sync_mode: FolderSyncMode = FolderSyncMode.UPDATE,
        exists_mode: RemoteExists = RemoteExists.OVERWRITE,
        parallelism: int = DEFAULT_PARALLELISM,
    ) -> int:
        """Recursively upload a local tree. Returns the number of files sent."""
        local_root = Path(local_directory)
        if not local_root.is_dir():
            raise FileNotFoundError(f"Local directory not found: {local_root}")

        remote_root = normalize_remote(remote_directory)
        await self.create_directory(remote_root)

        pairs: List[Tuple[Path, str]] = []
        for dirpath, dirnames, filenames in os.walk(local_root):
            dirnames.sort()
            relative = Path(dirpath).relative_to(local_root).as_posix()
            target = join_remote(remote_root, relative) if relative != "." else remote_root
            if target != remote_root:
                await self.create_directory(target)
            for filename in sorted(filenames):
                pairs.append((Path(dirpath) / filename, join_remote(target, filename)))

        if sync_mode == FolderSyncMode.MIRROR:
            wanted = {remote.lower() for _, remote in pairs}
            for entry in reversed(await self.walk(remote_root)):
                if entry.is_file and entry.path.lower() not in wanted:
                    await self.delete_file(entry.path)

        await self._upload_pairs(pairs, progress, parallelism, exists_mode)
        log.info(
            f"Uploaded directory {local_root} -> {remote_root} "
            f"({len(pairs)} files, mode={sync_mode.value})"
        )
        return len(pairs)

    async def download_directory(
        self,
        local_directory: LocalPath,
        remote_directory: str,
        progress: Optional[ProgressCallback] = None,
        exists_mode: LocalExists = LocalExists.OVERWRITE,
        sync_mode: FolderSyncMode = FolderSyncMode.UPDATE,
        parallelism: int = DEFAULT_PARALLELISM,
    ) -> int:
        """Recursively download a remote tree. Returns the number of files fetched."""
        local_root = Path(local_directory)
        remote_root = normalize_remote(remote_directory)
        local_root.mkdir(parents=True, exist_ok=True)

        pairs: List[Tuple[Path, str]] = []
        for entry in await self.walk(remote_root):
            target = local_root / relative_to(remote_root, entry.path)
            if entry.is_dir:
                target.mkdir(parents=True, exist_ok=True)
            else:
                pairs.append((target, entry.path))

        if sync_mode == FolderSyncMode.MIRROR:
            wanted = {local.resolve() for local, _ in pairs}
            for existing in list(local_root.rglob("*")):
                if existing.is_file() and existing.resolve() not in wanted:
                    existing.unlink()

        await self._download_pairs(pairs, progress, parallelism, exists_mode)
        log.info(f"Downloaded directory {remote_root} -> {local_root} ({len(pairs)} files)")
        return len(pairs)


class _BatchProgress:
    """Counts finished items of a batch and reports overall percentage."""

    def __init__(self, callback: Optional[ProgressCallback], total: int):
        self._callback = callback
        self._total = total
        self._done = 0

    def advance(self, item: Tuple[Path, str]) -> None:
        self._done += 1
        if self._callback is None:
            return
        local, remote = item
        self._callback(
            TransferProgress(
                local_path=str(local),
                remote_path=remote,
                files_done=self._done,
                files_total=self._total,
                percent=100.0 * self._done / self._total if self._total else 100.0,
            )
        )
