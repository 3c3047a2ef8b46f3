"""Remote layout of the production, staging and backup slots."""

from typing import Iterable, List, Union

from ..core.exceptions import ConfigurationError
from ..core.transport.base import RemoteEntry
from ..core.utils.paths import is_same_path, join_remote, normalize_remote, relative_to

DEFAULT_STAGING_SLOT = "staging"
DEFAULT_BACKUP_SLOT = "backup"


def validate_slot_name(name: str) -> str:
    """Return ``name`` stripped, or raise if it is not a single path segment."""
    cleaned = (name or "").strip()
    if not cleaned or "/" in cleaned or "\\" in cleaned or cleaned in (".", ".."):
        raise ConfigurationError(f"Slot name must be a single path segment, got {name!r}")
    return cleaned


class SlotLayout:
    """Where each slot lives under a deployment root.

    Production is the root itself; staging and backup are reserved child
    directories of it and are never treated as production content.

    Example:
        layout = SlotLayout("/public_html")
        layout.staging  # "/public_html/staging"
    """

    def __init__(
        self,
        root: str = "/",
        staging_name: str = DEFAULT_STAGING_SLOT,
        backup_name: str = DEFAULT_BACKUP_SLOT,
    ):
        staging_name = validate_slot_name(staging_name)
        backup_name = validate_slot_name(backup_name)
        if staging_name.lower() == backup_name.lower():
            raise ConfigurationError(
                f"Staging and backup slots must differ, both are {staging_name!r}"
            )

        self.base = normalize_remote(root)
        self.staging = join_remote(self.base, staging_name)
        self.backup = join_remote(self.base, backup_name)

    @classmethod
    def from_settings(cls, settings) -> "SlotLayout":
        """Layout for ``SlotDeploySettings``."""
        return cls(
            settings.ftp.remote_root,
            settings.deployment.staging_slot,
            settings.deployment.backup_slot,
        )

    @property
    def slots(self) -> List[str]:
        return [self.base, self.staging, self.backup]

    def slot(self, name: str) -> str:
        """Path of the slot called ``base``, ``staging`` or ``backup``."""
        try:
            return {"base": self.base, "staging": self.staging, "backup": self.backup}[name]
        except KeyError:
            raise ValueError(f"Unknown slot: {name}") from None

    def is_reserved(self, entry: Union[RemoteEntry, str]) -> bool:
        path = entry.path if isinstance(entry, RemoteEntry) else entry
        return is_same_path(path, self.staging) or is_same_path(path, self.backup)

    def production_entries(self, entries: Iterable[RemoteEntry]) -> List[RemoteEntry]:
        """Entries of a base listing that belong to production."""
        return [entry for entry in entries if not self.is_reserved(entry)]

    def relocate(self, path: str, from_slot: str, to_slot: str) -> str:
        """Map ``path`` under ``from_slot`` to the same relative path under ``to_slot``."""
        return join_remote(to_slot, relative_to(from_slot, path))

    def __repr__(self) -> str:
        return f"SlotLayout(base={self.base}, staging={self.staging}, backup={self.backup})"
