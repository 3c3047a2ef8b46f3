"""Value types produced and consumed by a deployment run."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class DeploymentPhase(Enum):
    """Steps of a deployment run, in execution order."""

    INIT = "init"
    ENSURE_SLOTS = "ensure_slots"
    CLEAN_STAGING = "clean_staging"
    UPLOAD_STAGING = "upload_staging"
    VALIDATE_STAGING = "validate_staging"
    BACKUP_PRODUCTION = "backup_production"
    PROMOTE_STAGING = "promote_staging"
    HEALTH_CHECK = "health_check"
    CLEAN_STAGING_FINAL = "clean_staging_final"
    ROLLBACK_FROM_BACKUP = "rollback_from_backup"
    DONE = "done"


class DeploymentOutcome(Enum):
    """Terminal result of a run."""

    SUCCEEDED = "succeeded"
    # failed before production was touched
    FAILED = "failed"
    FAILED_AND_ROLLED_BACK = "failed_and_rolled_back"
    FAILED_ROLLBACK_INCOMPLETE = "failed_rollback_incomplete"
    CANCELLED = "cancelled"

    @property
    def exit_code(self) -> int:
        if self is DeploymentOutcome.SUCCEEDED:
            return 0
        if self is DeploymentOutcome.CANCELLED:
            return 2
        return 1


@dataclass(frozen=True)
class MoveRecord:
    """A committed move, kept so it can be undone."""

    from_path: str
    to_path: str
    is_directory: bool

    def inverse(self) -> "MoveRecord":
        return MoveRecord(self.to_path, self.from_path, self.is_directory)


@dataclass(frozen=True)
class HealthCheckResult:
    path: str
    exists: bool


@dataclass
class DeploymentReport:
    """Everything a caller needs to know about a finished run."""

    outcome: DeploymentOutcome
    phase: DeploymentPhase
    error: Optional[BaseException] = None
    phases: List[DeploymentPhase] = field(default_factory=list)
    health_checks: List[HealthCheckResult] = field(default_factory=list)
    rollback_failures: List[str] = field(default_factory=list)
    files_uploaded: int = 0
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is DeploymentOutcome.SUCCEEDED

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def missing_paths(self) -> List[str]:
        return [check.path for check in self.health_checks if not check.exists]
