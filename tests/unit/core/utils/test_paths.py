"""Tests for remote path helpers."""

import pytest

from slotdeploy.core.utils.paths import (
    is_same_path,
    is_within,
    join_remote,
    name_of,
    normalize_remote,
    parent_of,
    relative_to,
)


class TestNormalizeRemote:
    """Test canonical remote path form."""

    @pytest.mark.parametrize(
        "raw",
        [
            "site/assets/app.js",
            "/site/assets/app.js",
            "\\site\\assets\\app.js",
            "site\\assets//app.js",
            "//site///assets/app.js/",
        ],
    )
    def test_spellings_collapse_to_one_form(self, raw):
        """Slash style, leading slash and doubled separators do not matter."""
        assert normalize_remote(raw) == "/site/assets/app.js"

    @pytest.mark.parametrize("raw", ["", "   ", "/", "//", "\\", None])
    def test_blank_and_root_map_to_root(self, raw):
        assert normalize_remote(raw) == "/"

    def test_trailing_separator_dropped(self):
        assert normalize_remote("/site/") == "/site"

    def test_idempotent(self):
        once = normalize_remote("a\\\\b//c/")
        assert normalize_remote(once) == once


class TestJoinAndSplit:
    """Test join/parent/name helpers."""

    def test_join_normalizes(self):
        assert join_remote("/site/", "/staging/", "a\\b.txt") == "/site/staging/a/b.txt"

    def test_join_skips_empty_parts(self):
        assert join_remote("/site", "", "index.html") == "/site/index.html"

    def test_join_from_root(self):
        assert join_remote("/", "index.html") == "/index.html"

    def test_parent_of(self):
        assert parent_of("/site/assets/app.js") == "/site/assets"
        assert parent_of("/site") == "/"
        assert parent_of("/") == "/"

    def test_name_of(self):
        assert name_of("/site/assets/app.js") == "app.js"
        assert name_of("/") == ""


class TestComparisons:
    """Test containment and relative paths."""

    def test_same_path_ignores_case_and_spelling(self):
        assert is_same_path("/Site/Staging", "site\\staging\\")

    def test_is_within(self):
        assert is_within("/site", "/site/staging/x")
        assert is_within("/site", "/site")
        assert not is_within("/site", "/site2/x")
        assert is_within("/", "/anything")

    def test_relative_to(self):
        assert relative_to("/site/staging", "/site/staging/assets/app.js") == "assets/app.js"
        assert relative_to("/", "/index.html") == "index.html"

    def test_relative_to_outside_base_strips_slashes(self):
        assert relative_to("/site/staging", "/other/file.txt") == "other/file.txt"
