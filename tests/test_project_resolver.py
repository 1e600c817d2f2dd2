"""
Tests for project root detection.
"""

import pytest

from uichecker.exceptions import ResolutionError
from uichecker.models import ProjectKind
from uichecker.project_resolver import find_project_root

from conftest import write_manifest


class TestFindProjectRoot:
    """Tests for find_project_root."""

    def test_manifest_at_top_level(self, tmp_path):
        """A package.json in the base directory marks a dynamic project."""
        write_manifest(tmp_path)

        info = find_project_root(tmp_path)

        assert info.root_path == tmp_path
        assert info.kind is ProjectKind.DYNAMIC

    def test_entry_point_at_top_level(self, tmp_path):
        """An index.html in the base directory marks a static project."""
        (tmp_path / "index.html").write_text("<html></html>")

        info = find_project_root(tmp_path)

        assert info.root_path == tmp_path
        assert info.kind is ProjectKind.STATIC

    def test_manifest_wins_over_entry_point(self, tmp_path):
        """Both markers in one directory resolve as dynamic."""
        write_manifest(tmp_path)
        (tmp_path / "index.html").write_text("<html></html>")

        assert find_project_root(tmp_path).kind is ProjectKind.DYNAMIC

    def test_project_one_level_down(self, tmp_path):
        """A single wrapping folder is looked into."""
        write_manifest(tmp_path / "my-app")

        info = find_project_root(tmp_path)

        assert info.root_path == tmp_path / "my-app"
        assert info.kind is ProjectKind.DYNAMIC

    def test_top_level_beats_subdirectory(self, tmp_path):
        """The base directory is checked before its children."""
        (tmp_path / "index.html").write_text("<html></html>")
        write_manifest(tmp_path / "nested")

        info = find_project_root(tmp_path)

        assert info.root_path == tmp_path
        assert info.kind is ProjectKind.STATIC

    def test_subdirectories_in_name_order(self, tmp_path):
        """With several candidates the first by name wins."""
        (tmp_path / "b-site").mkdir()
        (tmp_path / "b-site" / "index.html").write_text("<html></html>")
        write_manifest(tmp_path / "a-app")

        assert find_project_root(tmp_path).root_path == tmp_path / "a-app"

    def test_depth_two_is_not_searched(self, tmp_path):
        """Projects nested two levels deep are not found."""
        write_manifest(tmp_path / "outer" / "inner")

        with pytest.raises(ResolutionError) as excinfo:
            find_project_root(tmp_path)

        assert "No project root" in str(excinfo.value)

    def test_empty_directory(self, tmp_path):
        """An empty extraction has no root."""
        with pytest.raises(ResolutionError):
            find_project_root(tmp_path)

    def test_missing_directory(self, tmp_path):
        """A non-existent base directory has no root."""
        with pytest.raises(ResolutionError):
            find_project_root(tmp_path / "missing")
