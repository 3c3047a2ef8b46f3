"""Shared plumbing for commands that talk to the remote server."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Optional, Sequence

from ...config import SlotDeploySettings
from ...core.transport import PooledTransport, RemoteTransport, TransportPool


def load_settings(
    remote_root: Optional[str] = None,
    parallelism: Optional[int] = None,
    health_check_paths: Optional[Sequence[str]] = None,
) -> SlotDeploySettings:
    """Environment settings with command line options applied on top."""
    deployment: Dict[str, Any] = {"parallelism": parallelism}
    if health_check_paths:
        deployment["health_check_paths"] = list(health_check_paths)
    return SlotDeploySettings.from_env(
        ftp={"remote_root": remote_root},
        deployment=deployment,
    )


def create_pool(settings: SlotDeploySettings) -> TransportPool:
    return TransportPool.from_settings(settings)


@asynccontextmanager
async def open_transport(settings: SlotDeploySettings) -> AsyncIterator[RemoteTransport]:
    """Lease one pooled session for the duration of a command."""
    pool = create_pool(settings)
    try:
        async with PooledTransport(pool) as transport:
            yield transport
    finally:
        await pool.close()
