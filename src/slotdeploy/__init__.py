# Load .env vars from file before everything else
from dotenv import load_dotenv

load_dotenv()

from .logger import setup_logging  # noqa: E402

setup_logging()

# TYPE_CHECKING imports provide full IDE support (autocomplete, type hints)
# while __getattr__ enables lazy loading at runtime for fast CLI startup
from typing import TYPE_CHECKING  # noqa: E402

if TYPE_CHECKING:
    from .config import SlotDeploySettings
    from .core.retry_manager import RetryPolicy
    from .core.transport import (
        FtpTransport,
        InMemoryTransport,
        PooledTransport,
        RemoteTransport,
        TransportPool,
    )
    from .deployment import (
        DeploymentOrchestrator,
        DeploymentOutcome,
        DeploymentReport,
        SlotLayout,
    )

_TRANSPORT_EXPORTS = (
    "FtpTransport",
    "InMemoryTransport",
    "PooledTransport",
    "RemoteTransport",
    "TransportPool",
)
_DEPLOYMENT_EXPORTS = (
    "DeploymentOrchestrator",
    "DeploymentOutcome",
    "DeploymentReport",
    "SlotLayout",
)


def __getattr__(name):
    """Lazily import core modules only when accessed."""
    if name == "SlotDeploySettings":
        from .config import SlotDeploySettings

        return SlotDeploySettings
    elif name == "RetryPolicy":
        from .core.retry_manager import RetryPolicy

        return RetryPolicy
    elif name in _TRANSPORT_EXPORTS:
        from .core import transport

        return getattr(transport, name)
    elif name in _DEPLOYMENT_EXPORTS:
        from . import deployment

        return getattr(deployment, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = [
    "SlotDeploySettings",
    "RetryPolicy",
    *_TRANSPORT_EXPORTS,
    *_DEPLOYMENT_EXPORTS,
]
