"""
Locates the buildable root inside an extracted archive.

Archives are zipped in many ways: some contain the project files directly,
others wrap them in a single top-level folder. The search therefore looks at
the extraction directory and one level below it.
"""

from pathlib import Path

from .config import ENTRY_POINT_FILENAME, MANIFEST_FILENAME
from .exceptions import ResolutionError
from .models import ProjectInfo, ProjectKind


def _detect(directory: Path) -> ProjectInfo | None:
    if (directory / MANIFEST_FILENAME).is_file():
        return ProjectInfo(root_path=directory, kind=ProjectKind.DYNAMIC)
    if (directory / ENTRY_POINT_FILENAME).is_file():
        return ProjectInfo(root_path=directory, kind=ProjectKind.STATIC)
    return None


def find_project_root(base_dir: Path) -> ProjectInfo:
    """
    Find the project root within an extracted archive.

    A ``package.json`` marks a dynamic project and takes precedence over an
    ``index.html`` in the same directory. Subdirectories are visited in name
    order and only one level deep.

    Args:
        base_dir: Directory the archive was extracted into.

    Returns:
        ProjectInfo for the first matching directory.

    Raises:
        ResolutionError: If no manifest or entry point exists within depth 1.
    """
    if not base_dir.is_dir():
        raise ResolutionError(base_dir)

    found = _detect(base_dir)
    if found:
        return found

    subdirs = sorted(item for item in base_dir.iterdir() if item.is_dir())
    for subdir in subdirs:
        found = _detect(subdir)
        if found:
            return found

    raise ResolutionError(base_dir)
