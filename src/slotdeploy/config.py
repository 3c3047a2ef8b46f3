"""Settings for connections, retries and deployments."""

import os
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator, model_validator

from .core.exceptions import ConfigurationError
from .core.transport.base import DEFAULT_PARALLELISM, clamp_parallelism
from .core.utils.backoff import BackoffStrategy
from .core.utils.paths import normalize_remote
from .deployment.slots import DEFAULT_BACKUP_SLOT, DEFAULT_STAGING_SLOT, validate_slot_name

ENV_PREFIX = "SLOTDEPLOY_"


class FtpSettings(BaseModel):
    host: str = Field(default="", description="FTP server host name")
    port: int = Field(default=21, ge=1, le=65535)
    username: str = Field(default="")
    password: SecretStr = Field(default=SecretStr(""))
    remote_root: str = Field(default="/", description="Deployment root on the server")
    pool_size: int = Field(default=8, ge=1, description="Maximum concurrent FTP sessions")
    socket_timeout: Optional[float] = Field(default=30.0, gt=0)

    @field_validator("remote_root")
    @classmethod
    def _normalize_root(cls, value: str) -> str:
        return normalize_remote(value)


class RetrySettings(BaseModel):
    max_retries: int = Field(default=3, ge=0, description="Retries after the first attempt")
    base_delay: float = Field(default=1.0, ge=0)
    max_delay: float = Field(default=30.0, ge=0)
    jitter: float = Field(default=0.0, ge=0, le=1)
    strategy: BackoffStrategy = Field(default=BackoffStrategy.LINEAR)


class DeploymentSettings(BaseModel):
    parallelism: int = Field(default=DEFAULT_PARALLELISM)
    health_check_paths: List[str] = Field(default_factory=lambda: ["index.html"])
    staging_slot: str = Field(default=DEFAULT_STAGING_SLOT)
    backup_slot: str = Field(default=DEFAULT_BACKUP_SLOT)

    @field_validator("parallelism", mode="before")
    @classmethod
    def _clamp_parallelism(cls, value: Any) -> int:
        try:
            return clamp_parallelism(int(value))
        except (TypeError, ValueError):
            return DEFAULT_PARALLELISM

    @field_validator("health_check_paths", mode="before")
    @classmethod
    def _split_paths(cls, value: Any) -> List[str]:
        if isinstance(value, str):
            value = value.split(",")
        paths = [str(p).strip() for p in value or [] if str(p).strip()]
        return paths or ["index.html"]

    @field_validator("staging_slot", "backup_slot")
    @classmethod
    def _single_segment(cls, value: str) -> str:
        try:
            return validate_slot_name(value)
        except ConfigurationError as e:
            raise ValueError(str(e)) from None

    @model_validator(mode="after")
    def _distinct_slots(self) -> "DeploymentSettings":
        if self.staging_slot.lower() == self.backup_slot.lower():
            raise ValueError("staging_slot and backup_slot must differ")
        return self


# env var suffix -> (section, field)
_ENV_FIELDS = {
    "FTP_HOST": ("ftp", "host"),
    "FTP_PORT": ("ftp", "port"),
    "FTP_USERNAME": ("ftp", "username"),
    "FTP_PASSWORD": ("ftp", "password"),
    "REMOTE_ROOT": ("ftp", "remote_root"),
    "POOL_SIZE": ("ftp", "pool_size"),
    "SOCKET_TIMEOUT": ("ftp", "socket_timeout"),
    "RETRY_MAX_RETRIES": ("retry", "max_retries"),
    "RETRY_BASE_DELAY": ("retry", "base_delay"),
    "RETRY_MAX_DELAY": ("retry", "max_delay"),
    "RETRY_STRATEGY": ("retry", "strategy"),
    "PARALLELISM": ("deployment", "parallelism"),
    "HEALTH_CHECK_PATHS": ("deployment", "health_check_paths"),
    "STAGING_SLOT": ("deployment", "staging_slot"),
    "BACKUP_SLOT": ("deployment", "backup_slot"),
}


class SlotDeploySettings(BaseModel):
    """All settings for one deployment target."""

    ftp: FtpSettings = Field(default_factory=FtpSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)
    deployment: DeploymentSettings = Field(default_factory=DeploymentSettings)

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Dict[str, Any],
    ) -> "SlotDeploySettings":
        """Load settings from ``SLOTDEPLOY_*`` environment variables.

        Environment variables:
        - SLOTDEPLOY_FTP_HOST / _FTP_PORT / _FTP_USERNAME / _FTP_PASSWORD
        - SLOTDEPLOY_REMOTE_ROOT: Deployment root (default: /)
        - SLOTDEPLOY_POOL_SIZE: FTP sessions in the pool (default: 8)
        - SLOTDEPLOY_SOCKET_TIMEOUT: Seconds (default: 30)
        - SLOTDEPLOY_RETRY_MAX_RETRIES: Retries per operation (default: 3)
        - SLOTDEPLOY_RETRY_BASE_DELAY: Seconds, grows linearly (default: 1.0)
        - SLOTDEPLOY_RETRY_MAX_DELAY: Seconds (default: 30)
        - SLOTDEPLOY_RETRY_STRATEGY: linear or exponential (default: linear)
        - SLOTDEPLOY_PARALLELISM: Concurrent uploads, 1-64 (default: 4)
        - SLOTDEPLOY_HEALTH_CHECK_PATHS: Comma separated (default: index.html)
        - SLOTDEPLOY_STAGING_SLOT / _BACKUP_SLOT: Slot directory names

        Args:
            environ: Mapping to read instead of ``os.environ``.
            **overrides: Per-section values that win over the environment,
                e.g. ``deployment={"parallelism": 8}``. ``None`` values are
                ignored.

        Raises:
            ConfigurationError: If a value cannot be parsed or is out of range.
        """
        environ = os.environ if environ is None else environ
        sections: Dict[str, Dict[str, Any]] = {"ftp": {}, "retry": {}, "deployment": {}}

        for suffix, (section, name) in _ENV_FIELDS.items():
            value = environ.get(ENV_PREFIX + suffix)
            if value is not None and value != "":
                sections[section][name] = value

        for section, values in overrides.items():
            if section not in sections:
                raise ConfigurationError(f"Unknown settings section: {section}")
            sections[section].update({k: v for k, v in (values or {}).items() if v is not None})

        try:
            return cls(**sections)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid slotdeploy settings:\n{e}") from e
