"""In-memory transport used as a deterministic stand-in for a live server."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Set, Tuple, Union

from ..exceptions import RemotePathNotFoundError, TransportError
from ..retry_manager import RetryPolicy
from ..utils.paths import is_within, join_remote, normalize_remote, parent_of
from .base import (
    EntryKind,
    LocalExists,
    LocalPath,
    ProgressCallback,
    RemoteEntry,
    RemoteExists,
    RemoteMetadata,
    RemoteTransport,
    TransferProgress,
)

log = logging.getLogger(__name__)


@dataclass
class _FailureRule:
    operation: str
    path: Optional[str]
    remaining: Optional[int]
    error: Optional[BaseException]

    def matches(self, operation: str, path: str) -> bool:
        if self.operation != operation:
            return False
        if self.remaining is not None and self.remaining <= 0:
            return False
        return self.path is None or self.path == path


@dataclass
class InMemoryStore:
    """Remote tree state; several transports may share one store."""

    directories: Set[str] = field(default_factory=lambda: {"/"})
    files: Dict[str, bytes] = field(default_factory=dict)
    modified: Dict[str, datetime] = field(default_factory=dict)
    rules: List[_FailureRule] = field(default_factory=list)


class InMemoryTransport(RemoteTransport):
    """A remote tree held in dictionaries.

    Satisfies the full transport contract, records every call and supports
    failure injection, which makes orchestration logic testable without a
    server. Listings are returned sorted by name. Retries are off by default
    so injected failures surface on the first attempt.

    Example:
        transport = InMemoryTransport()
        transport.seed({"/site/index.html": b"<html/>"})
        transport.fail_on("move", "/site/index.html", times=1)
    """

    def __init__(
        self,
        retry_policy: Optional[RetryPolicy] = None,
        latency: float = 0.0,
        name: str = "memory",
        store: Optional[InMemoryStore] = None,
    ):
        super().__init__(retry_policy if retry_policy is not None else RetryPolicy.none())
        self.name = name
        self.latency = latency
        self.store = store if store is not None else InMemoryStore()
        self._directories = self.store.directories
        self._files = self.store.files
        self._modified = self.store.modified
        self._rules = self.store.rules
        self._connected = False
        self._connect_lock = asyncio.Lock()

        self.connect_count = 0
        self.calls: List[Tuple[str, Tuple[str, ...]]] = []
        self.moves: List[Tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def __repr__(self) -> str:
        return f"InMemoryTransport({self.name})"

    def sibling(self, name: Optional[str] = None) -> "InMemoryTransport":
        """Another session onto the same tree, as a second login would be."""
        return InMemoryTransport(
            retry_policy=self.retry_policy,
            latency=self.latency,
            name=name or f"{self.name}-sibling",
            store=self.store,
        )

    # Test helpers --------------------------------------------------------

    def seed(
        self,
        files: Optional[Mapping[str, Union[bytes, str]]] = None,
        directories: Optional[List[str]] = None,
    ) -> "InMemoryTransport":
        """Populate the tree directly, bypassing call recording."""
        for directory in directories or []:
            self._add_directory(normalize_remote(directory))
        for path, content in (files or {}).items():
            data = content.encode() if isinstance(content, str) else content
            self._write(normalize_remote(path), data)
        return self

    def fail_on(
        self,
        operation: str,
        path: Optional[str] = None,
        times: Optional[int] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        """Make ``operation`` fail for ``path`` (any path when omitted).

        ``times`` limits how often the rule fires; ``None`` means always. For
        ``move`` the source path is matched.
        """
        self._rules.append(
            _FailureRule(
                operation=operation,
                path=normalize_remote(path) if path is not None else None,
                remaining=times,
                error=error,
            )
        )

    def clear_failures(self) -> None:
        self._rules.clear()

    def read(self, path: str) -> bytes:
        return self._files[normalize_remote(path)]

    def files_under(self, path: str) -> List[str]:
        """Sorted file paths below ``path``, relative to it."""
        base = normalize_remote(path)
        prefix = "" if base == "/" else base
        return sorted(
            p[len(prefix) + 1:] for p in self._files if is_within(base, p) and p != base
        )

    def snapshot(self, path: str) -> Dict[str, bytes]:
        """Relative path -> content for every file below ``path``."""
        base = normalize_remote(path)
        return {rel: self._files[join_remote(base, rel)] for rel in self.files_under(base)}

    def calls_to(self, operation: str) -> List[Tuple[str, ...]]:
        return [args for op, args in self.calls if op == operation]

    # Internals -----------------------------------------------------------

    def _add_directory(self, path: str) -> None:
        current = path
        while current not in self._directories:
            self._directories.add(current)
            current = parent_of(current)

    def _write(self, path: str, data: bytes) -> None:
        self._add_directory(parent_of(path))
        self._files[path] = data
        self._modified[path] = datetime.now(timezone.utc)

    def _children(self, path: str) -> List[RemoteEntry]:
        entries = [
            RemoteEntry(path=d, kind=EntryKind.DIRECTORY)
            for d in self._directories
            if d != "/" and d != path and parent_of(d) == path
        ]
        entries += [
            RemoteEntry(path=f, kind=EntryKind.FILE, size=len(data))
            for f, data in self._files.items()
            if parent_of(f) == path
        ]
        return sorted(entries, key=lambda e: e.name)

    async def _step(self, operation: str, *paths: str) -> None:
        """Record a call, simulate latency and apply failure rules."""
        self.calls.append((operation, paths))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            else:
                await asyncio.sleep(0)
        finally:
            self.in_flight -= 1

        target = paths[0] if paths else ""
        for rule in self._rules:
            if rule.matches(operation, target):
                if rule.remaining is not None:
                    rule.remaining -= 1
                raise rule.error or ConnectionError(f"injected failure: {operation} {target}")

    # Lifecycle -----------------------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        self._ensure_open()
        async with self._connect_lock:
            if self._connected:
                return
            await self._step("connect")
            self.connect_count += 1
            self._connected = True
            log.debug(f"{self!r} connected")

    async def disconnect(self) -> None:
        self._connected = False

    # Primitives ----------------------------------------------------------

    async def file_exists(self, path: str) -> bool:
        remote = normalize_remote(path)

        async def op() -> bool:
            await self._step("file_exists", remote)
            return remote in self._files

        return await self._run(f"file_exists {remote}", op)

    async def directory_exists(self, path: str) -> bool:
        remote = normalize_remote(path)

        async def op() -> bool:
            await self._step("directory_exists", remote)
            return remote in self._directories

        return await self._run(f"directory_exists {remote}", op)

    async def metadata(self, path: str) -> RemoteMetadata:
        remote = normalize_remote(path)

        async def op() -> RemoteMetadata:
            await self._step("metadata", remote)
            if remote not in self._files:
                return RemoteMetadata()
            return RemoteMetadata(size=len(self._files[remote]), modified=self._modified.get(remote))

        return await self._run(f"metadata {remote}", op)

    async def list(self, path: str) -> List[RemoteEntry]:
        remote = normalize_remote(path)

        async def op() -> List[RemoteEntry]:
            await self._step("list", remote)
            if remote not in self._directories:
                raise RemotePathNotFoundError(remote)
            return self._children(remote)

        return await self._run(f"list {remote}", op)

    async def create_directory(self, path: str) -> None:
        remote = normalize_remote(path)

        async def op() -> None:
            await self._step("create_directory", remote)
            if remote in self._files:
                raise TransportError(f"A file already exists at {remote}")
            self._add_directory(remote)

        await self._run(f"create_directory {remote}", op)

    async def delete_directory(self, path: str, recursive: bool = False) -> None:
        remote = normalize_remote(path)

        async def op() -> None:
            await self._step("delete_directory", remote)
            if remote not in self._directories:
                return
            nested_dirs = [d for d in self._directories if d != remote and is_within(remote, d)]
            nested_files = [f for f in self._files if is_within(remote, f)]
            if not recursive and (nested_dirs or nested_files):
                raise TransportError(f"Directory not empty: {remote}")
            for f in nested_files:
                self._files.pop(f, None)
                self._modified.pop(f, None)
            for d in nested_dirs:
                self._directories.discard(d)
            if remote != "/":
                self._directories.discard(remote)

        await self._run(f"delete_directory {remote}", op)

    async def delete_file(self, path: str) -> None:
        remote = normalize_remote(path)

        async def op() -> None:
            await self._step("delete_file", remote)
            self._files.pop(remote, None)
            self._modified.pop(remote, None)

        await self._run(f"delete_file {remote}", op)

    async def upload_file(
        self,
        local_path: LocalPath,
        remote_path: str,
        progress: Optional[ProgressCallback] = None,
        exists_mode: RemoteExists = RemoteExists.OVERWRITE,
        create_remote_dir: bool = True,
    ) -> None:
        local = Path(local_path)
        remote = normalize_remote(remote_path)

        async def op() -> None:
            await self._step("upload_file", remote)
            if exists_mode == RemoteExists.SKIP and remote in self._files:
                return
            if not create_remote_dir and parent_of(remote) not in self._directories:
                raise RemotePathNotFoundError(parent_of(remote))
            data = local.read_bytes()
            self._write(remote, data)
            if progress is not None:
                progress(
                    TransferProgress(
                        local_path=str(local),
                        remote_path=remote,
                        transferred_bytes=len(data),
                        total_bytes=len(data),
                        percent=100.0,
                    )
                )

        await self._run(f"upload {remote}", op)

    async def download_file(
        self,
        local_path: LocalPath,
        remote_path: str,
        progress: Optional[ProgressCallback] = None,
        exists_mode: LocalExists = LocalExists.OVERWRITE,
    ) -> None:
        local = Path(local_path)
        remote = normalize_remote(remote_path)

        async def op() -> None:
            await self._step("download_file", remote)
            if remote not in self._files:
                raise RemotePathNotFoundError(remote)
            if exists_mode == LocalExists.SKIP and local.exists():
                return
            data = self._files[remote]
            local.parent.mkdir(parents=True, exist_ok=True)
            local.write_bytes(data)
            if progress is not None:
                progress(
                    TransferProgress(
                        local_path=str(local),
                        remote_path=remote,
                        transferred_bytes=len(data),
                        total_bytes=len(data),
                        percent=100.0,
                    )
                )

        await self._run(f"download {remote}", op)

    async def move(self, source_path: str, destination_path: str) -> None:
        source = normalize_remote(source_path)
        destination = normalize_remote(destination_path)

        async def op() -> None:
            await self._step("move", source, destination)
            if parent_of(destination) not in self._directories:
                raise RemotePathNotFoundError(parent_of(destination))
            if destination in self._directories:
                raise TransportError(f"Destination already exists: {destination}")

            if source in self._files:
                self._files[destination] = self._files.pop(source)
                self._modified[destination] = self._modified.pop(source, datetime.now(timezone.utc))
            elif source in self._directories:
                if is_within(source, destination):
                    raise TransportError(f"Cannot move {source} into itself")
                for d in sorted(d for d in self._directories if is_within(source, d)):
                    self._directories.discard(d)
                    self._directories.add(destination + d[len(source):])
                for f in [f for f in self._files if is_within(source, f)]:
                    moved = destination + f[len(source):]
                    self._files[moved] = self._files.pop(f)
                    self._modified[moved] = self._modified.pop(f, datetime.now(timezone.utc))
            else:
                raise RemotePathNotFoundError(source)
            self.moves.append((source, destination))
            log.debug(f"Moved {source} -> {destination}")

        await self._run(f"move {source}", op)
