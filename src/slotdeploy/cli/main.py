"""Main CLI entry point for slotdeploy."""

from importlib import metadata
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel


def get_version() -> str:
    """Get the package version from metadata."""
    try:
        return metadata.version("slotdeploy")
    except metadata.PackageNotFoundError:
        return "unknown"


console = Console()

# command: slotdeploy
app = typer.Typer(
    name="slotdeploy",
    help="slotdeploy - blue-green deployments over FTP with automatic rollback",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

REMOTE_ROOT_OPTION = typer.Option(
    None, "--remote-root", "-r", help="Deployment root on the server (default: SLOTDEPLOY_REMOTE_ROOT or /)"
)

# command: slotdeploy <command>


@app.command("deploy")
def deploy_cmd(
    source: Optional[str] = typer.Argument(
        None, help="Build directory to deploy (default: ./dist, ./build or ../dist)"
    ),
    parallelism: Optional[int] = typer.Option(
        None, "--parallelism", "-p", help="Concurrent uploads, 1-64 (default: 4)"
    ),
    health_check: Optional[List[str]] = typer.Option(
        None, "--health-check", "-c", help="Path that must exist after promotion (repeatable)"
    ),
    remote_root: Optional[str] = REMOTE_ROOT_OPTION,
):
    """Upload to staging, promote to production and roll back on failure."""
    from .commands.deploy import deploy_command

    return deploy_command(source, parallelism, health_check, remote_root)


@app.command("rollback")
def rollback_cmd(remote_root: Optional[str] = REMOTE_ROOT_OPTION):
    """Restore the backup slot into production."""
    from .commands.deploy import rollback_command

    return rollback_command(remote_root)


@app.command("status")
def status_cmd(remote_root: Optional[str] = REMOTE_ROOT_OPTION):
    """Show the contents of the production, staging and backup slots."""
    from .commands.slots import status_command

    return status_command(remote_root)


@app.command("pull")
def pull_cmd(
    destination: str = typer.Argument(..., help="Local directory to download into"),
    slot: str = typer.Option("base", "--slot", "-s", help="Slot to download: base, staging or backup"),
    mirror: bool = typer.Option(False, "--mirror", help="Delete local files missing from the slot"),
    remote_root: Optional[str] = REMOTE_ROOT_OPTION,
):
    """Download a slot to a local directory."""
    from .commands.slots import pull_command

    return pull_command(destination, slot, mirror, remote_root)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    version: bool = typer.Option(False, "--version", "-v", help="Show version"),
):
    """slotdeploy - blue-green deployments over FTP with automatic rollback."""
    if version:
        console.print(f"slotdeploy v{get_version()}")
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(
            Panel(
                "[bold blue]slotdeploy[/bold blue]\n\n"
                "Deploys a build into a staging slot, promotes it and restores\n"
                "the previous release when health checks fail.\n\n"
                "Use [bold]slotdeploy --help[/bold] to see available commands.",
                title="Welcome",
                expand=False,
            )
        )


if __name__ == "__main__":
    app()
