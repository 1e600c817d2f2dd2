"""
Shared fixtures for the UI Checker tests.
"""

import json
import zipfile
from pathlib import Path

import pytest
from PIL import Image


def write_manifest(directory: Path, dependencies: dict | None = None, dev_dependencies: dict | None = None, **extra) -> Path:
    """Write a package.json into ``directory``."""
    directory.mkdir(parents=True, exist_ok=True)
    manifest = {"name": directory.name, **extra}
    if dependencies is not None:
        manifest["dependencies"] = dependencies
    if dev_dependencies is not None:
        manifest["devDependencies"] = dev_dependencies
    path = directory / "package.json"
    path.write_text(json.dumps(manifest), encoding="utf-8")
    return path


def write_png(path: Path, size: tuple[int, int], color: tuple[int, int, int, int]) -> Path:
    """Write a solid-colour RGBA PNG."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new("RGBA", size, color).save(path, format="PNG")
    return path


def make_zip(path: Path, files: dict[str, str]) -> Path:
    """Create a ZIP archive with the given member names and text contents."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, "w") as archive:
        for name, content in files.items():
            archive.writestr(name, content)
    return path


@pytest.fixture
def static_zip(tmp_path):
    """Archive wrapping a static site in a top-level folder."""
    return make_zip(tmp_path / "archives" / "site.zip", {"site/index.html": "<h1>Hello</h1>"})
