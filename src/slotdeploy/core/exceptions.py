"""Custom exceptions for slotdeploy.

Provides clear, actionable error messages for common failure scenarios.
"""

from typing import Optional, Sequence


class SlotDeployError(Exception):
    """Base exception for all slotdeploy errors."""

    pass


class ConfigurationError(SlotDeployError):
    """Raised when settings are present but invalid."""

    pass


class MissingCredentialsError(ConfigurationError):
    """Raised when FTP host or credentials are not configured.

    The default message explains every way the values can be supplied.
    """

    def __init__(self, missing: Optional[Sequence[str]] = None, message: Optional[str] = None):
        """Initialize with the missing setting names or a custom message.

        Args:
            missing: Names of the settings that were empty.
            message: Optional custom error message. If not provided, uses default.
        """
        self.missing = list(missing or [])
        if message is None:
            message = self._default_message(self.missing)
        super().__init__(message)

    @staticmethod
    def _default_message(missing: Sequence[str]) -> str:
        """Generate default error message with setup instructions.

        Returns:
            Formatted error message with actionable steps.
        """
        names = ", ".join(missing) if missing else "host, username, password"
        return f"""FTP connection settings are incomplete (missing: {names}).

Set them using one of these methods:

  1. Environment variables:
     export SLOTDEPLOY_FTP_HOST=ftp.example.com
     export SLOTDEPLOY_FTP_USERNAME=deploy
     export SLOTDEPLOY_FTP_PASSWORD=secret

  2. In your project's .env file:
     echo "SLOTDEPLOY_FTP_HOST=ftp.example.com" >> .env

Note: the .env file is read from the current directory."""


class TransportError(SlotDeployError):
    """Base exception for remote transport failures."""

    pass


class RemotePathNotFoundError(TransportError):
    """Raised when a remote path does not exist."""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"Remote path not found: {path}")


class TransportClosedError(TransportError):
    """Raised when an operation is attempted on a disposed transport."""

    pass


class PoolClosedError(TransportError):
    """Raised when acquiring from a transport pool that has been closed."""

    pass


class ArtifactNotFoundError(SlotDeployError):
    """Raised when the local build output cannot be located."""

    pass


class DeploymentError(SlotDeployError):
    """Base exception for failures inside a deployment run."""

    pass


class StagingValidationError(DeploymentError):
    """Raised when the staging slot holds no files after upload.

    Raised before any production path is touched.
    """

    pass


class HealthCheckFailedError(DeploymentError):
    """Describes a failed post-promotion health check.

    Not raised by the orchestrator: a failed check drives the rollback path
    and the instance is attached to the deployment report.
    """

    def __init__(self, missing_paths: Sequence[str]):
        self.missing_paths = list(missing_paths)
        super().__init__(
            "Health check failed, missing: " + ", ".join(self.missing_paths)
        )
