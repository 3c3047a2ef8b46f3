"""Unit tests for the slotdeploy CLI."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from slotdeploy.cli.main import app
from slotdeploy.core.transport import InMemoryTransport, TransportPool


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def origin():
    return InMemoryTransport(name="origin").seed(
        {
            "/site/index.html": b"<html>v1</html>",
            "/site/about.html": b"<html>about v1</html>",
        }
    )


@pytest.fixture
def patched_pool(origin):
    """Serve every command from the in-memory tree instead of FTP."""

    def create(settings):
        return TransportPool(origin.sibling, size=settings.ftp.pool_size)

    with patch("slotdeploy.cli.utils.remote.create_pool", side_effect=create) as mock_create:
        yield mock_create


def interrupted(coro):
    coro.close()
    raise KeyboardInterrupt


class TestVersion:
    def test_version_flag(self, runner):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert "slotdeploy v" in result.output


class TestDeployCommand:
    def test_successful_deploy(self, runner, mock_env_vars, patched_pool, origin, build_dir):
        result = runner.invoke(app, ["deploy", str(build_dir)])

        assert result.exit_code == 0, result.output
        assert "Deployment Succeeded" in result.output
        assert origin.read("/site/index.html") == b"<html>v2</html>"
        assert origin.read("/site/backup/index.html") == b"<html>v1</html>"
        patched_pool.assert_called_once()

    def test_options_override_environment(self, runner, mock_env_vars, patched_pool, origin, build_dir):
        result = runner.invoke(
            app, ["deploy", str(build_dir), "--remote-root", "/other", "--parallelism", "2"]
        )

        assert result.exit_code == 0, result.output
        settings = patched_pool.call_args.args[0]
        assert settings.ftp.remote_root == "/other"
        assert settings.deployment.parallelism == 2
        assert origin.read("/other/index.html") == b"<html>v2</html>"
        assert origin.read("/site/index.html") == b"<html>v1</html>"

    def test_failed_health_check_exits_one(self, runner, mock_env_vars, patched_pool, origin, build_dir):
        result = runner.invoke(app, ["deploy", str(build_dir), "--health-check", "missing.html"])

        assert result.exit_code == 1
        assert "[ERROR]" in result.output
        assert origin.read("/site/index.html") == b"<html>v1</html>"

    def test_missing_artifact(self, runner, mock_env_vars, tmp_path):
        result = runner.invoke(app, ["deploy", str(tmp_path / "nope")])

        assert result.exit_code == 1
        assert "Artifact directory not found" in result.output

    def test_missing_credentials(self, runner, build_dir):
        result = runner.invoke(app, ["deploy", str(build_dir)])

        assert result.exit_code == 1
        assert "SLOTDEPLOY_FTP_HOST" in result.output

    def test_keyboard_interrupt_exits_two(self, runner, mock_env_vars, build_dir):
        with patch("slotdeploy.cli.commands.deploy.asyncio.run", side_effect=interrupted):
            result = runner.invoke(app, ["deploy", str(build_dir)])

        assert result.exit_code == 2
        assert "[CANCELLED] Deployment cancelled by user." in result.output


class TestRollbackCommand:
    def test_restores_backup(self, runner, mock_env_vars, patched_pool, origin):
        origin.seed({"/site/backup/index.html": b"good"})

        result = runner.invoke(app, ["rollback"])

        assert result.exit_code == 0, result.output
        assert "Rollback Complete" in result.output
        assert origin.read("/site/index.html") == b"good"
        assert origin.read("/site/staging/index.html") == b"<html>v1</html>"

    def test_incomplete_rollback_exits_one(self, runner, mock_env_vars, patched_pool, origin):
        result = runner.invoke(app, ["rollback"])

        assert result.exit_code == 1
        assert "Rollback Incomplete" in result.output

    def test_repeated_rollback_keeps_production(self, runner, mock_env_vars, patched_pool, origin):
        origin.seed({"/site/backup/index.html": b"good"})

        first = runner.invoke(app, ["rollback"])
        second = runner.invoke(app, ["rollback"])

        assert first.exit_code == 0, first.output
        assert second.exit_code == 1
        assert "is empty" in second.output
        assert origin.read("/site/index.html") == b"good"
        assert origin.read("/site/staging/index.html") == b"<html>v1</html>"


class TestSlotCommands:
    def test_status_lists_slots(self, runner, mock_env_vars, patched_pool, origin):
        origin.seed({"/site/backup/index.html": b"old"})

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0, result.output
        assert "about.html" in result.output
        assert "absent" in result.output

    def test_pull_downloads_slot(self, runner, mock_env_vars, patched_pool, origin, tmp_path):
        origin.seed({"/site/backup/index.html": b"old", "/site/backup/css/site.css": b"x"})
        target = tmp_path / "out"

        result = runner.invoke(app, ["pull", str(target), "--slot", "backup"])

        assert result.exit_code == 0, result.output
        assert (target / "index.html").read_bytes() == b"old"
        assert (target / "css" / "site.css").read_bytes() == b"x"

    def test_pull_unknown_slot(self, runner, mock_env_vars):
        result = runner.invoke(app, ["pull", "out", "--slot", "nope"])

        assert result.exit_code == 1
        assert "Unknown slot" in result.output
