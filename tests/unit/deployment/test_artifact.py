"""Tests for artifact directory resolution."""

import pytest

from slotdeploy.core.exceptions import ArtifactNotFoundError
from slotdeploy.deployment import count_artifact_files, resolve_artifact_path


class TestResolveArtifactPath:
    def test_explicit_path(self, build_dir):
        assert resolve_artifact_path(build_dir) == build_dir.resolve()

    def test_explicit_missing_path(self, tmp_path):
        with pytest.raises(ArtifactNotFoundError):
            resolve_artifact_path(tmp_path / "nope")

    def test_first_existing_candidate(self, tmp_path):
        (tmp_path / "build").mkdir()
        (tmp_path / "dist").mkdir()
        assert resolve_artifact_path(search_roots=[tmp_path]) == (tmp_path / "dist").resolve()

    def test_parent_dist_candidate(self, tmp_path):
        project = tmp_path / "project"
        project.mkdir()
        (tmp_path / "dist").mkdir()
        assert resolve_artifact_path(search_roots=[project]) == (tmp_path / "dist").resolve()

    def test_roots_searched_in_order(self, tmp_path):
        first, second = tmp_path / "one", tmp_path / "two"
        first.mkdir()
        (second / "build").mkdir(parents=True)
        assert resolve_artifact_path(search_roots=[first, second]) == (second / "build").resolve()

    def test_defaults_to_working_directory(self, tmp_path, monkeypatch):
        (tmp_path / "dist").mkdir()
        monkeypatch.chdir(tmp_path)
        assert resolve_artifact_path() == (tmp_path / "dist").resolve()

    def test_nothing_found(self, tmp_path):
        with pytest.raises(ArtifactNotFoundError, match="Tried"):
            resolve_artifact_path(search_roots=[tmp_path / "empty"])


def test_count_artifact_files(build_dir):
    assert count_artifact_files(build_dir) == 3
