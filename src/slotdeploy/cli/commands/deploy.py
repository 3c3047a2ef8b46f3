"""Deployment and rollback commands."""

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.traceback import Traceback

from ...config import SlotDeploySettings
from ...core.exceptions import ArtifactNotFoundError, ConfigurationError
from ...deployment import (
    DeploymentOrchestrator,
    DeploymentOutcome,
    DeploymentReport,
    SlotLayout,
    count_artifact_files,
    resolve_artifact_path,
)
from ..utils.remote import load_settings, open_transport

console = Console()
err_console = Console(stderr=True)

CANCELLED_MESSAGE = "[CANCELLED] Deployment cancelled by user."

_OUTCOME_STYLE = {
    DeploymentOutcome.SUCCEEDED: ("green", "✅ Deployment Succeeded"),
    DeploymentOutcome.FAILED: ("red", "❌ Deployment Failed"),
    DeploymentOutcome.FAILED_AND_ROLLED_BACK: ("yellow", "↩️  Deployment Rolled Back"),
    DeploymentOutcome.FAILED_ROLLBACK_INCOMPLETE: ("red", "⚠️  Rollback Incomplete"),
    DeploymentOutcome.CANCELLED: ("yellow", "Deployment Cancelled"),
}


async def _run_deployment(settings: SlotDeploySettings, artifact: Path) -> DeploymentReport:
    async with open_transport(settings) as transport:
        orchestrator = DeploymentOrchestrator(
            transport,
            SlotLayout.from_settings(settings),
            artifact,
            parallelism=settings.deployment.parallelism,
            health_check_paths=settings.deployment.health_check_paths,
        )
        return await orchestrator.run()


async def _run_rollback(settings: SlotDeploySettings) -> List[str]:
    async with open_transport(settings) as transport:
        orchestrator = DeploymentOrchestrator(
            transport,
            SlotLayout.from_settings(settings),
            Path("."),
            parallelism=settings.deployment.parallelism,
        )
        return await orchestrator.restore_from_backup()


def _print_error(error: BaseException) -> None:
    err_console.print(f"[red][ERROR][/red] Deployment failed: {error}")
    if error.__traceback__ is not None:
        err_console.print(Traceback.from_exception(type(error), error, error.__traceback__))


def _print_report(report: DeploymentReport, settings: SlotDeploySettings) -> None:
    style, title = _OUTCOME_STYLE[report.outcome]

    content = f"Outcome: [bold {style}]{report.outcome.value}[/bold {style}]\n"
    content += f"Last phase: {report.phase.value}\n"
    content += f"Files uploaded: {report.files_uploaded}\n"
    content += f"Target: {settings.ftp.host}{settings.ftp.remote_root}"
    if report.duration is not None:
        content += f"\nDuration: {report.duration:.1f}s"
    console.print(Panel(content, title=title, expand=False))

    if report.health_checks:
        table = Table(title="Health Checks")
        table.add_column("Path", style="cyan")
        table.add_column("Status", justify="center")
        for check in report.health_checks:
            table.add_row(check.path, "🟢 present" if check.exists else "🔴 missing")
        console.print(table)

    if report.rollback_failures:
        console.print("[red]Items that could not be restored:[/red]")
        for failure in report.rollback_failures:
            console.print(f"  • {failure}")


def deploy_command(
    source: Optional[str],
    parallelism: Optional[int],
    health_checks: Optional[List[str]],
    remote_root: Optional[str],
):
    """Deploy a build directory with backup and rollback."""
    try:
        settings = load_settings(remote_root, parallelism, health_checks)
        artifact = resolve_artifact_path(source)
    except (ConfigurationError, ArtifactNotFoundError) as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(
        f"🚀 Deploying [bold]{artifact}[/bold] ({count_artifact_files(artifact)} files) "
        f"to [bold]{settings.ftp.host}{settings.ftp.remote_root}[/bold]"
    )

    try:
        report = asyncio.run(_run_deployment(settings, artifact))
    except KeyboardInterrupt:
        err_console.print(CANCELLED_MESSAGE, markup=False)
        raise typer.Exit(2)
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if report.outcome is DeploymentOutcome.CANCELLED:
        err_console.print(CANCELLED_MESSAGE, markup=False)
        raise typer.Exit(report.exit_code)

    _print_report(report, settings)
    if report.error is not None:
        _print_error(report.error)
    if report.exit_code:
        raise typer.Exit(report.exit_code)


def rollback_command(remote_root: Optional[str]):
    """Restore the backup slot into production."""
    try:
        settings = load_settings(remote_root)
    except ConfigurationError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    try:
        with console.status("Restoring backup slot..."):
            failures = asyncio.run(_run_rollback(settings))
    except KeyboardInterrupt:
        err_console.print("[CANCELLED] Rollback cancelled by user.", markup=False)
        raise typer.Exit(2)
    except Exception as e:
        err_console.print(f"[red][ERROR][/red] Rollback failed: {e}")
        err_console.print(Traceback.from_exception(type(e), e, e.__traceback__))
        raise typer.Exit(1)

    if failures:
        console.print(
            Panel(
                "\n".join(f"• {failure}" for failure in failures),
                title="⚠️  Rollback Incomplete",
                expand=False,
            )
        )
        raise typer.Exit(1)

    console.print(
        Panel(
            f"Backup restored to [bold]{settings.ftp.remote_root}[/bold]",
            title="↩️  Rollback Complete",
            expand=False,
        )
    )
