from .artifact import count_artifact_files, resolve_artifact_path
from .ledger import MoveLedger
from .models import (
    DeploymentOutcome,
    DeploymentPhase,
    DeploymentReport,
    HealthCheckResult,
    MoveRecord,
)
from .orchestrator import DeploymentOrchestrator, deploy
from .slots import SlotLayout

__all__ = [
    "DeploymentOrchestrator",
    "DeploymentOutcome",
    "DeploymentPhase",
    "DeploymentReport",
    "HealthCheckResult",
    "MoveLedger",
    "MoveRecord",
    "SlotLayout",
    "count_artifact_files",
    "deploy",
    "resolve_artifact_path",
]
