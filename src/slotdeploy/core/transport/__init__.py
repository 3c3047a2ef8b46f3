from .base import (
    DEFAULT_PARALLELISM,
    MAX_PARALLELISM,
    EntryKind,
    FolderSyncMode,
    LocalExists,
    ProgressCallback,
    RemoteEntry,
    RemoteExists,
    RemoteMetadata,
    RemoteTransport,
    TransferProgress,
    clamp_parallelism,
)
from .ftp import FtpTransport
from .memory import InMemoryStore, InMemoryTransport
from .pool import PooledTransport, TransportPool

__all__ = [
    "DEFAULT_PARALLELISM",
    "MAX_PARALLELISM",
    "EntryKind",
    "FolderSyncMode",
    "FtpTransport",
    "InMemoryStore",
    "InMemoryTransport",
    "LocalExists",
    "PooledTransport",
    "ProgressCallback",
    "RemoteEntry",
    "RemoteExists",
    "RemoteMetadata",
    "RemoteTransport",
    "TransferProgress",
    "TransportPool",
    "clamp_parallelism",
]
