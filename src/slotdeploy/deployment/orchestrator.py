"""Blue-green deployment of a local build onto a remote slot layout."""

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Sequence, Union

from ..core.exceptions import HealthCheckFailedError, StagingValidationError
from ..core.transport.base import (
    DEFAULT_PARALLELISM,
    RemoteEntry,
    RemoteTransport,
    TransferProgress,
    clamp_parallelism,
)
from ..core.utils.paths import join_remote, name_of, normalize_remote
from .ledger import MoveLedger
from .models import (
    DeploymentOutcome,
    DeploymentPhase,
    DeploymentReport,
    HealthCheckResult,
)
from .slots import SlotLayout

log = logging.getLogger(__name__)

DEFAULT_HEALTH_CHECK_PATHS = ("index.html",)

# Phases from which a failure has already touched production
_PRODUCTION_PHASES = (
    DeploymentPhase.BACKUP_PRODUCTION,
    DeploymentPhase.PROMOTE_STAGING,
    DeploymentPhase.HEALTH_CHECK,
    DeploymentPhase.ROLLBACK_FROM_BACKUP,
)


class DeploymentOrchestrator:
    """Runs one deployment against a single remote root.

    The run uploads into the staging slot, validates it, moves the current
    production entries into the backup slot, promotes staging into
    production and probes the required health-check paths. A failed probe
    restores the backup. Backup and promotion keep a move ledger so a
    failure part way through can be undone.

    Steps run strictly one after another; only the upload fans out, bounded
    by ``parallelism``. One orchestrator must not run concurrently against
    the same root as another.

    Example:
        orchestrator = DeploymentOrchestrator(transport, SlotLayout("/www"), "dist")
        report = await orchestrator.run()
        sys.exit(report.exit_code)
    """

    def __init__(
        self,
        transport: RemoteTransport,
        layout: SlotLayout,
        source: Union[str, Path],
        parallelism: int = DEFAULT_PARALLELISM,
        health_check_paths: Sequence[str] = DEFAULT_HEALTH_CHECK_PATHS,
    ):
        self.transport = transport
        self.layout = layout
        self.source = Path(source)
        self.parallelism = clamp_parallelism(parallelism)
        self.health_check_paths = [p for p in health_check_paths if p and p.strip()] or list(
            DEFAULT_HEALTH_CHECK_PATHS
        )
        self._report: Optional[DeploymentReport] = None
        self._production_touched = False

    @property
    def phase(self) -> DeploymentPhase:
        return self._report.phase if self._report else DeploymentPhase.INIT

    def _enter(self, phase: DeploymentPhase) -> None:
        self._report.phase = phase
        self._report.phases.append(phase)
        log.info(f"Phase: {phase.value}", extra={"phase": phase.value})

    # Entry point ---------------------------------------------------------

    async def run(self) -> DeploymentReport:
        """Execute the deployment and return its report.

        Never raises for deployment failures; the causing exception is kept
        on the report. Cancellation stops the run where it is, without
        rollback, and yields a ``CANCELLED`` report.
        """
        self._report = report = DeploymentReport(
            outcome=DeploymentOutcome.FAILED, phase=DeploymentPhase.INIT
        )
        self._production_touched = False
        self._enter(DeploymentPhase.INIT)
        log.info(
            f"Deploying {self.source} to {self.layout.base} "
            f"(parallelism={self.parallelism})"
        )

        try:
            report.outcome = await self._deploy()
        except asyncio.CancelledError:
            report.outcome = DeploymentOutcome.CANCELLED
            log.warning(
                f"Deployment cancelled during {report.phase.value}; remote left as is",
                extra={"phase": report.phase.value},
            )
        except Exception as e:
            report.error = e
            report.outcome = self._failure_outcome(report)
            log.error(
                f"Deployment failed during {report.phase.value}: {e}",
                extra={"phase": report.phase.value},
            )
        finally:
            report.finished_at = datetime.now(timezone.utc)

        if report.outcome is not DeploymentOutcome.CANCELLED:
            self._enter(DeploymentPhase.DONE)
        log.info(f"Deployment finished: {report.outcome.value}")
        return report

    def _failure_outcome(self, report: DeploymentReport) -> DeploymentOutcome:
        if report.phase not in _PRODUCTION_PHASES or not self._production_touched:
            return DeploymentOutcome.FAILED
        if report.rollback_failures:
            return DeploymentOutcome.FAILED_ROLLBACK_INCOMPLETE
        return DeploymentOutcome.FAILED_AND_ROLLED_BACK

    async def _deploy(self) -> DeploymentOutcome:
        await self._ensure_slots()
        await self._clean_staging()
        await self._upload_staging()
        await self._validate_staging()
        backup_ledger = await self._backup_production()
        await self._promote_staging(backup_ledger)

        if await self._health_check():
            await self._clean_staging_final()
            return DeploymentOutcome.SUCCEEDED

        self._report.error = HealthCheckFailedError(self._report.missing_paths)
        self._enter(DeploymentPhase.ROLLBACK_FROM_BACKUP)
        failures = await self.restore_from_backup(allow_empty_backup=True)
        self._report.rollback_failures.extend(failures)
        if failures:
            log.error(f"Rollback incomplete, {len(failures)} item(s) not restored")
            return DeploymentOutcome.FAILED_ROLLBACK_INCOMPLETE
        log.error("Rollback completed. Deployment marked as failed.")
        return DeploymentOutcome.FAILED_AND_ROLLED_BACK

    # Steps ---------------------------------------------------------------

    async def _ensure_slots(self) -> None:
        self._enter(DeploymentPhase.ENSURE_SLOTS)
        for slot in self.layout.slots:
            if not await self.transport.directory_exists(slot):
                await self.transport.create_directory(slot)
                log.info(f"Created slot {slot}", extra={"path": slot})

    async def _clean_directory(self, path: str) -> None:
        """Leave ``path`` as an existing, empty directory."""
        if await self.transport.directory_exists(path):
            await self.transport.delete_directory(path, recursive=True)
        await self.transport.create_directory(path)

    async def _clean_staging(self) -> None:
        self._enter(DeploymentPhase.CLEAN_STAGING)
        await self._clean_directory(self.layout.staging)

    async def _upload_staging(self) -> None:
        self._enter(DeploymentPhase.UPLOAD_STAGING)
        phase = DeploymentPhase.UPLOAD_STAGING.value

        def on_progress(progress: TransferProgress) -> None:
            log.info(
                f"Upload {progress.percent:.1f}% {progress.remote_path}",
                extra={"phase": phase, "path": progress.remote_path, "percent": progress.percent},
            )

        self._report.files_uploaded = await self.transport.upload_directory(
            self.source,
            self.layout.staging,
            progress=on_progress,
            parallelism=self.parallelism,
        )

    async def _validate_staging(self) -> None:
        self._enter(DeploymentPhase.VALIDATE_STAGING)
        entries = await self.transport.list(self.layout.staging)
        if not any(entry.is_file for entry in entries):
            raise StagingValidationError(
                f"Staging upload validation failed: no files found in {self.layout.staging}"
            )

        reserved = {name_of(self.layout.staging).lower(), name_of(self.layout.backup).lower()}
        clashes = [entry.name for entry in entries if entry.name.lower() in reserved]
        if clashes:
            raise StagingValidationError(
                f"Artifact contains reserved slot name(s): {', '.join(clashes)}"
            )
        log.info(f"Staging upload validated: {len(entries)} items")

    async def _backup_production(self) -> MoveLedger:
        """Move every production entry into the emptied backup slot."""
        self._enter(DeploymentPhase.BACKUP_PRODUCTION)
        await self._clean_directory(self.layout.backup)

        entries = self.layout.production_entries(await self.transport.list(self.layout.base))
        ledger = MoveLedger(DeploymentPhase.BACKUP_PRODUCTION.value)
        try:
            for entry in entries:
                target = self.layout.relocate(entry.path, self.layout.base, self.layout.backup)
                await self.transport.move(entry.path, target)
                ledger.record(entry.path, target, entry.is_dir)
                self._production_touched = True
                log.info(
                    f"Backed up {entry.path} -> {target}",
                    extra={"phase": ledger.phase, "path": entry.path},
                )
        except Exception:
            self._report.rollback_failures.extend(await ledger.reverse(self.transport))
            raise

        log.info(f"Backed up {len(ledger)} production item(s)")
        return ledger

    async def _promote_staging(self, backup_ledger: MoveLedger) -> None:
        """Move staging entries into production.

        On failure the promotion is undone, then the backup moves are undone
        too, so production goes back to what it was before the run.
        """
        self._enter(DeploymentPhase.PROMOTE_STAGING)
        entries = await self.transport.list(self.layout.staging)
        ledger = MoveLedger(DeploymentPhase.PROMOTE_STAGING.value)
        try:
            for entry in entries:
                target = self.layout.relocate(entry.path, self.layout.staging, self.layout.base)
                await self.transport.move(entry.path, target)
                ledger.record(entry.path, target, entry.is_dir)
                self._production_touched = True
                log.info(
                    f"Promoted {entry.path} -> {target}",
                    extra={"phase": ledger.phase, "path": target},
                )
        except Exception:
            failures = await ledger.reverse(self.transport)
            failures += await backup_ledger.reverse(self.transport)
            self._report.rollback_failures.extend(failures)
            raise

        log.info(f"Promoted {len(ledger)} item(s) to production")

    async def _health_check(self) -> bool:
        self._enter(DeploymentPhase.HEALTH_CHECK)
        phase = DeploymentPhase.HEALTH_CHECK.value

        for relative in self.health_check_paths:
            remote = join_remote(self.layout.base, relative)
            try:
                exists = await self.transport.exists(remote)
            except Exception as e:
                log.warning(f"HealthCheck: {remote} could not be probed: {e}")
                exists = False
            self._report.health_checks.append(HealthCheckResult(remote, exists))
            log.info(
                f"HealthCheck: {remote} exists={exists}",
                extra={"phase": phase, "path": remote},
            )

        missing = self._report.missing_paths
        if missing:
            log.error(f"Health checks FAILED, missing: {', '.join(missing)}. Initiating rollback.")
            return False
        log.info("Health checks passed.")
        return True

    async def _clean_staging_final(self) -> None:
        self._enter(DeploymentPhase.CLEAN_STAGING_FINAL)
        try:
            await self._clean_directory(self.layout.staging)
        except Exception as e:
            # production is already live and healthy; next run cleans staging again
            log.warning(f"Could not clean {self.layout.staging} after deployment: {e}")

    # Rollback ------------------------------------------------------------

    async def _move_entries(
        self, entries: List[RemoteEntry], source: str, destination: str
    ) -> List[str]:
        """Move ``entries`` of ``source`` into ``destination``, continuing past failures."""
        phase = DeploymentPhase.ROLLBACK_FROM_BACKUP.value
        failures: List[str] = []
        for entry in entries:
            target = self.layout.relocate(entry.path, source, destination)
            try:
                await self.transport.move(entry.path, target)
                log.info(
                    f"Rollback move {entry.path} -> {target}",
                    extra={"phase": phase, "path": target},
                )
            except Exception as e:
                failures.append(f"{entry.path} -> {target}: {e}")
                log.error(
                    f"Rollback move {entry.path} -> {target} failed: {e}",
                    extra={"phase": phase, "path": entry.path},
                )
        return failures

    async def restore_from_backup(self, allow_empty_backup: bool = False) -> List[str]:
        """Put the backup slot back into production.

        The current production entries go to a freshly emptied staging slot
        so they can be inspected, then the backup entries move into
        production. Every item is attempted even when others fail.

        Nothing is touched when the backup slot is missing, or when it is
        empty and ``allow_empty_backup`` is false. An empty backup is only
        meaningful right after a run backed up an empty production.

        Returns:
            Descriptions of the items that could not be restored.
        """
        log.info("Starting rollback: restoring backup slot to production.")
        backup = self.layout.backup
        try:
            backup_entries = await self.transport.list(backup)
        except Exception as e:
            log.error(f"Rollback could not list {backup}, production left as is: {e}")
            return [f"list {backup}: {e}"]
        if not backup_entries and not allow_empty_backup:
            log.error(f"Backup slot {backup} is empty, production left as is")
            return [f"backup slot {backup} is empty"]

        try:
            live = await self.transport.list(self.layout.base)
        except Exception as e:
            log.error(f"Rollback could not list {self.layout.base}: {e}")
            return [f"list {self.layout.base}: {e}"]

        failures: List[str] = []
        try:
            await self._clean_directory(self.layout.staging)
        except Exception as e:
            log.error(f"Rollback could not clean {self.layout.staging}: {e}")
            failures.append(f"clean {self.layout.staging}: {e}")

        production = self.layout.production_entries(live)
        failures += await self._move_entries(production, self.layout.base, self.layout.staging)
        failures += await self._move_entries(backup_entries, backup, self.layout.base)
        return failures


async def deploy(
    transport: RemoteTransport,
    source: Union[str, Path],
    root: str = "/",
    parallelism: int = DEFAULT_PARALLELISM,
    health_check_paths: Sequence[str] = DEFAULT_HEALTH_CHECK_PATHS,
) -> DeploymentReport:
    """Run a deployment with the default slot names under ``root``."""
    orchestrator = DeploymentOrchestrator(
        transport,
        SlotLayout(normalize_remote(root)),
        source,
        parallelism=parallelism,
        health_check_paths=health_check_paths,
    )
    return await orchestrator.run()
