"""FTP session built on aioftp."""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import AsyncIterator, Callable, List, Optional

import aiofiles
import aioftp

from ..exceptions import MissingCredentialsError, RemotePathNotFoundError
from ..retry_manager import RetryPolicy
from ..utils.paths import join_remote, normalize_remote, parent_of
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

DEFAULT_BLOCK_SIZE = 64 * 1024

# Errors that mean the control connection is gone and must be rebuilt
_CONNECTION_ERRORS = (ConnectionError, OSError, asyncio.TimeoutError, asyncio.IncompleteReadError)


def _is_not_found(error: aioftp.StatusCodeError) -> bool:
    return any(str(code) == "550" for code in error.received_codes)


def _parse_modify(value: Optional[str]) -> Optional[datetime]:
    """Parse an MLST ``modify`` fact (``YYYYMMDDHHMMSS[.sss]``, UTC)."""
    if not value:
        return None
    try:
        return datetime.strptime(value[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
    except ValueError:
        return None


def _parse_size(value: Optional[str]) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class FtpTransport(RemoteTransport):
    """One authenticated FTP control connection.

    FTP has a single control channel per session, so protocol commands are
    serialized with a lock. Parallel transfers need several sessions, which
    is what :class:`~slotdeploy.core.transport.pool.PooledTransport` provides.
    """

    def __init__(
        self,
        host: str,
        username: str,
        password: str,
        port: int = 21,
        socket_timeout: Optional[float] = 30.0,
        retry_policy: Optional[RetryPolicy] = None,
        block_size: int = DEFAULT_BLOCK_SIZE,
        client_factory: Callable[..., aioftp.Client] = aioftp.Client,
    ):
        super().__init__(retry_policy)
        self.host = host
        self.port = port
        self.username = username
        self._password = password
        self.socket_timeout = socket_timeout
        self.block_size = block_size
        self._client_factory = client_factory
        self._client: Optional[aioftp.Client] = None
        self._connect_lock = asyncio.Lock()
        self._session_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings, retry_policy: Optional[RetryPolicy] = None) -> "FtpTransport":
        """Build a transport from ``FtpSettings``.

        Raises:
            MissingCredentialsError: If host, username or password is empty.
        """
        missing = [
            name
            for name, value in (
                ("host", settings.host),
                ("username", settings.username),
                ("password", settings.password.get_secret_value()),
            )
            if not value
        ]
        if missing:
            raise MissingCredentialsError(missing)

        return cls(
            host=settings.host,
            port=settings.port,
            username=settings.username,
            password=settings.password.get_secret_value(),
            socket_timeout=settings.socket_timeout,
            retry_policy=retry_policy,
        )

    def __repr__(self) -> str:
        return f"FtpTransport({self.username}@{self.host}:{self.port})"

    # Connection lifecycle ----------------------------------------------

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        self._ensure_open()
        async with self._connect_lock:
            if self._client is not None:
                return
            client = self._client_factory(
                socket_timeout=self.socket_timeout, path_timeout=self.socket_timeout
            )
            try:
                await client.connect(self.host, self.port)
                await client.login(self.username, self._password)
            except BaseException:
                client.close()
                raise
            self._client = client
            log.info(f"Connected to FTP server {self.host}:{self.port}")

    async def disconnect(self) -> None:
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await client.quit()
        except (aioftp.AIOFTPException, *_CONNECTION_ERRORS) as e:
            log.debug(f"Error during disconnect from {self.host}: {e}")
        finally:
            client.close()
        log.debug(f"Disconnected from {self.host}")

    def _drop_session(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            client.close()
            log.warning(f"FTP session to {self.host} dropped, will reconnect on next use")

    @asynccontextmanager
    async def _session(self, path: str) -> AsyncIterator[aioftp.Client]:
        """Hold the control channel for one command or transfer."""
        async with self._session_lock:
            client = self._client
            if client is None:
                raise ConnectionError(f"FTP session to {self.host} is not established")
            try:
                yield client
            except aioftp.StatusCodeError as e:
                if _is_not_found(e):
                    raise RemotePathNotFoundError(path) from e
                raise
            except _CONNECTION_ERRORS:
                self._drop_session()
                raise

    # Existence / metadata ----------------------------------------------

    async def file_exists(self, path: str) -> bool:
        remote = normalize_remote(path)

        async def op() -> bool:
            async with self._session(remote) as client:
                if not await client.exists(remote):
                    return False
                return await client.is_file(remote)

        return await self._run(f"file_exists {remote}", op)

    async def directory_exists(self, path: str) -> bool:
        remote = normalize_remote(path)

        async def op() -> bool:
            async with self._session(remote) as client:
                if remote == "/":
                    return True
                if not await client.exists(remote):
                    return False
                return await client.is_dir(remote)

        return await self._run(f"directory_exists {remote}", op)

    async def metadata(self, path: str) -> RemoteMetadata:
        remote = normalize_remote(path)

        async def op() -> RemoteMetadata:
            async with self._session(remote) as client:
                try:
                    info = await client.stat(remote)
                except aioftp.StatusCodeError as e:
                    log.debug(f"No metadata for {remote}: {e}")
                    return RemoteMetadata()
            return RemoteMetadata(
                size=_parse_size(info.get("size")),
                modified=_parse_modify(info.get("modify")),
            )

        return await self._run(f"metadata {remote}", op)

    # Listing -------------------------------------------------------------

    async def list(self, path: str) -> List[RemoteEntry]:
        remote = normalize_remote(path)

        async def op() -> List[RemoteEntry]:
            async with self._session(remote) as client:
                listing = await client.list(remote)
            entries = []
            for item_path, info in listing:
                kind = info.get("type")
                if kind in ("cdir", "pdir"):
                    continue
                entries.append(
                    RemoteEntry(
                        path=join_remote(remote, item_path.name),
                        kind=EntryKind.DIRECTORY if kind == "dir" else EntryKind.FILE,
                        size=_parse_size(info.get("size")),
                    )
                )
            return entries

        return await self._run(f"list {remote}", op)

    # Create / delete -----------------------------------------------------

    async def create_directory(self, path: str) -> None:
        remote = normalize_remote(path)

        async def op() -> None:
            async with self._session(remote) as client:
                await client.make_directory(remote, parents=True)

        await self._run(f"create_directory {remote}", op)
        log.info(f"Created directory {remote}")

    async def delete_directory(self, path: str, recursive: bool = False) -> None:
        remote = normalize_remote(path)

        async def op() -> None:
            async with self._session(remote) as client:
                if not await client.exists(remote):
                    return
                if recursive:
                    await client.remove(remote)
                else:
                    await client.remove_directory(remote)

        await self._run(f"delete_directory {remote}", op)
        log.info(f"Deleted directory {remote} (recursive={recursive})")

    async def delete_file(self, path: str) -> None:
        remote = normalize_remote(path)

        async def op() -> None:
            async with self._session(remote) as client:
                if await client.exists(remote):
                    await client.remove_file(remote)

        await self._run(f"delete_file {remote}", op)
        log.info(f"Deleted file {remote}")

    # Transfers -----------------------------------------------------------

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
        total = local.stat().st_size

        async def op() -> bool:
            async with self._session(remote) as client:
                if exists_mode == RemoteExists.SKIP and await client.exists(remote):
                    return False
                if create_remote_dir:
                    await client.make_directory(parent_of(remote), parents=True)
                sent = 0
                async with aiofiles.open(local, "rb") as source:
                    async with client.upload_stream(remote) as stream:
                        while block := await source.read(self.block_size):
                            await stream.write(block)
                            sent += len(block)
                            _report(progress, local, remote, sent, total)
                if total == 0:
                    _report(progress, local, remote, 0, 0)
            return True

        if await self._run(f"upload {remote}", op):
            log.info(f"Uploaded {local} -> {remote}")
        else:
            log.debug(f"Skipped upload of {local}, {remote} exists")

    async def download_file(
        self,
        local_path: LocalPath,
        remote_path: str,
        progress: Optional[ProgressCallback] = None,
        exists_mode: LocalExists = LocalExists.OVERWRITE,
    ) -> None:
        local = Path(local_path)
        remote = normalize_remote(remote_path)
        if exists_mode == LocalExists.SKIP and local.exists():
            log.debug(f"Skipped download of {remote}, {local} exists")
            return

        async def op() -> None:
            local.parent.mkdir(parents=True, exist_ok=True)
            async with self._session(remote) as client:
                info = await client.stat(remote)
                total = _parse_size(info.get("size"))
                received = 0
                async with aiofiles.open(local, "wb") as target:
                    async with client.download_stream(remote) as stream:
                        async for block in stream.iter_by_block(self.block_size):
                            await target.write(block)
                            received += len(block)
                            _report(progress, local, remote, received, total)

        await self._run(f"download {remote}", op)
        log.info(f"Downloaded {remote} -> {local}")

    # Move / rename -------------------------------------------------------

    async def move(self, source_path: str, destination_path: str) -> None:
        source = normalize_remote(source_path)
        destination = normalize_remote(destination_path)

        async def op() -> None:
            async with self._session(source) as client:
                await client.rename(source, destination)

        await self._run(f"move {source}", op)
        log.info(f"Moved {source} -> {destination}")


def _report(
    progress: Optional[ProgressCallback],
    local: Path,
    remote: str,
    transferred: int,
    total: Optional[int],
) -> None:
    if progress is None:
        return
    percent = 100.0 * transferred / total if total else 100.0
    progress(
        TransferProgress(
            local_path=str(local),
            remote_path=remote,
            transferred_bytes=transferred,
            total_bytes=total,
            percent=percent,
        )
    )
