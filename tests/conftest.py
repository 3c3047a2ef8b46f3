"""
Test configuration and fixtures for slotdeploy tests.

Provides shared fixtures for:
- In-memory remote trees seeded with a production release
- Local build directories
- Environment variable management
"""

import os
from pathlib import Path
from typing import Dict

import pytest

from slotdeploy.core.transport import InMemoryTransport
from slotdeploy.deployment import SlotLayout

PRODUCTION_FILES: Dict[str, bytes] = {
    "/site/index.html": b"<html>v1</html>",
    "/site/about.html": b"<html>about v1</html>",
    "/site/assets/app.js": b"console.log('v1')",
}

BUILD_FILES: Dict[str, str] = {
    "index.html": "<html>v2</html>",
    "app.css": "body {}",
    "assets/app.js": "console.log('v2')",
}


def write_tree(root: Path, files: Dict[str, str]) -> Path:
    for relative, content in files.items():
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    return root


@pytest.fixture(autouse=True)
def clean_slotdeploy_env(monkeypatch: pytest.MonkeyPatch):
    """Keep developer SLOTDEPLOY_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("SLOTDEPLOY_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def layout() -> SlotLayout:
    return SlotLayout("/site")


@pytest.fixture
def remote() -> InMemoryTransport:
    """Remote tree holding release v1 at /site."""
    return InMemoryTransport().seed(PRODUCTION_FILES)


@pytest.fixture
def build_dir(tmp_path: Path) -> Path:
    """Local build output for release v2."""
    return write_tree(tmp_path / "dist", BUILD_FILES)


@pytest.fixture
def make_tree():
    """Write a {relative path: text} mapping below a directory."""
    return write_tree


@pytest.fixture
def mock_env_vars(monkeypatch: pytest.MonkeyPatch) -> Dict[str, str]:
    """Provide FTP settings through environment variables.

    Returns:
        Dictionary of environment variables set.
    """
    env_vars = {
        "SLOTDEPLOY_FTP_HOST": "ftp.example.com",
        "SLOTDEPLOY_FTP_USERNAME": "deploy",
        "SLOTDEPLOY_FTP_PASSWORD": "secret",
        "SLOTDEPLOY_REMOTE_ROOT": "/site",
        "LOG_LEVEL": "ERROR",  # Suppress logs during tests
    }

    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)

    return env_vars
