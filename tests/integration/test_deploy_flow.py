"""End-to-end deployment flows through a pooled in-memory server."""

import pytest

from slotdeploy.core.transport import InMemoryTransport, PooledTransport, TransportPool
from slotdeploy.deployment import (
    DeploymentOrchestrator,
    DeploymentOutcome,
    DeploymentPhase,
    deploy,
)

PRODUCTION_FILES = {
    "/site/index.html": b"<html>v1</html>",
    "/site/about.html": b"<html>about v1</html>",
    "/site/assets/app.js": b"console.log('v1')",
}


@pytest.fixture
def server():
    """Shared tree every pooled session logs into."""
    return InMemoryTransport(name="server", latency=0.001).seed(PRODUCTION_FILES)


@pytest.fixture
def pool(server):
    return TransportPool(server.sibling, size=4)


@pytest.mark.asyncio
class TestDeployFlow:
    """Consecutive releases, rollback and fan-out against one server."""

    async def test_two_consecutive_releases(self, server, pool, build_dir, make_tree, tmp_path):
        v2 = build_dir
        v3 = make_tree(tmp_path / "v3", {"index.html": "<html>v3</html>"})

        async with PooledTransport(pool) as transport:
            first = await deploy(transport, v2, root="/site", parallelism=4)
        async with PooledTransport(pool) as transport:
            second = await deploy(transport, v3, root="/site", parallelism=4)

        assert first.outcome is DeploymentOutcome.SUCCEEDED
        assert second.outcome is DeploymentOutcome.SUCCEEDED
        assert server.read("/site/index.html") == b"<html>v3</html>"
        # backup holds exactly the release that was replaced
        assert server.snapshot("/site/backup") == {
            "app.css": b"body {}",
            "assets/app.js": b"console.log('v2')",
            "index.html": b"<html>v2</html>",
        }
        assert server.files_under("/site/staging") == []
        await pool.close()

    async def test_manual_rollback_after_release(self, server, pool, build_dir, layout):
        async with PooledTransport(pool) as transport:
            report = await deploy(transport, build_dir, root="/site")
            assert report.succeeded

            failures = await DeploymentOrchestrator(transport, layout, build_dir).restore_from_backup()

        assert failures == []
        assert server.snapshot("/site") == {
            "about.html": b"<html>about v1</html>",
            "assets/app.js": b"console.log('v1')",
            "index.html": b"<html>v1</html>",
            "staging/app.css": b"body {}",
            "staging/assets/app.js": b"console.log('v2')",
            "staging/index.html": b"<html>v2</html>",
        }
        await pool.close()

    async def test_upload_fans_out_over_idle_sessions(self, server, pool, make_tree, tmp_path):
        files = {f"page{i}.html": f"<p>{i}</p>" for i in range(12)}
        build = make_tree(tmp_path / "many", files)

        async with PooledTransport(pool) as transport:
            report = await deploy(
                transport, build, root="/site", parallelism=4, health_check_paths=["page0.html"]
            )

        assert report.outcome is DeploymentOutcome.SUCCEEDED
        assert report.files_uploaded == 12
        assert pool.created > 1
        assert pool.created <= 4
        assert server.files_under("/site") == sorted(
            [f"backup/{p[len('/site/'):]}" for p in PRODUCTION_FILES] + list(files)
        )
        await pool.close()

    async def test_failed_promotion_restores_production(self, server, pool, build_dir):
        server.fail_on("move", "/site/staging/assets")

        async with PooledTransport(pool) as transport:
            report = await deploy(transport, build_dir, root="/site")

        assert report.outcome is DeploymentOutcome.FAILED_AND_ROLLED_BACK
        assert report.phase is DeploymentPhase.PROMOTE_STAGING
        assert server.snapshot("/site") == {
            "about.html": b"<html>about v1</html>",
            "assets/app.js": b"console.log('v1')",
            "index.html": b"<html>v1</html>",
            "staging/app.css": b"body {}",
            "staging/assets/app.js": b"console.log('v2')",
            "staging/index.html": b"<html>v2</html>",
        }
        await pool.close()

    async def test_pool_size_one_still_deploys(self, server, build_dir):
        pool = TransportPool(server.sibling, size=1)

        async with PooledTransport(pool) as transport:
            report = await deploy(
                transport, build_dir, root="/site", health_check_paths=["index.html", "app.css"]
            )

        assert report.succeeded
        assert pool.created == 1
        assert [c.path for c in report.health_checks] == ["/site/index.html", "/site/app.css"]
        await pool.close()
