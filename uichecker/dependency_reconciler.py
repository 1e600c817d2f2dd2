"""
Dependency reconciliation against the shared master project.

Every dynamic submission runs on top of one pre-installed ``node_modules``
tree owned by the master project. Before a submission starts, its declared
packages are diffed against the master manifest; missing packages and major
version mismatches are installed into the master (never the submission), so
the shared store grows into a superset over time.
"""

import asyncio
import json
import logging
import re
import threading
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from pathlib import Path

from .config import (
    INSTALL_POLL_INTERVAL_SECONDS,
    MANIFEST_FILENAME,
    MASTER_INSTALL_FLAGS,
    NODE_MODULES_DIRNAME,
)
from .models import DependencyReport, DependencyStatus, ProjectInfo
from .process_handle import run_to_completion

logger = logging.getLogger(__name__)

CommandRunner = Callable[[list[str], Path], Awaitable[tuple[int, str]]]

# Leading range operators before the major component: ^1, ~1, >=1, =1, v1
_MAJOR_PATTERN = re.compile(r"^\s*(?:[\^~=v]|[<>]=?)*\s*(\d+)")


def read_manifest(manifest_path: Path) -> dict:
    """
    Read a ``package.json`` file.

    Args:
        manifest_path: Path to the manifest.

    Returns:
        Parsed manifest, or an empty dict if it is missing or invalid.
    """
    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning("Failed to read %s: %s", manifest_path, e)
        return {}
    return data if isinstance(data, dict) else {}


def merged_dependencies(manifest: dict) -> dict[str, str]:
    """Merge runtime and development dependencies (dev entries win)."""
    merged: dict[str, str] = {}
    for key in ("dependencies", "devDependencies"):
        declared = manifest.get(key) or {}
        if isinstance(declared, dict):
            merged.update({name: str(version) for name, version in declared.items()})
    return merged


def clean_version(version: str) -> str:
    """Strip caret and tilde range markers (``^5.2.0`` -> ``5.2.0``)."""
    return version.replace("^", "").replace("~", "")


def major_version(version: str) -> int | None:
    """
    Extract the leading numeric component of a version range.

    Returns:
        The major version, or None for tags, URLs and wildcards.
    """
    match = _MAJOR_PATTERN.match(version)
    return int(match.group(1)) if match else None


def dependency_status(version: str, master_version: str | None) -> DependencyStatus:
    """
    Classify one declared package against the master's declaration.

    Only the major version is compared; minor and patch differences are
    considered satisfied. Non-numeric ranges are never a mismatch.
    """
    if master_version is None:
        return DependencyStatus.MISSING

    student_major = major_version(version)
    master_major = major_version(master_version)
    if student_major is not None and master_major is not None and student_major != master_major:
        return DependencyStatus.MISMATCHED
    return DependencyStatus.SATISFIED


def classify_dependencies(
    student_deps: dict[str, str],
    master_deps: dict[str, str],
) -> DependencyReport:
    """
    Classify each declared package as satisfied, missing or mismatched.

    Args:
        student_deps: Merged dependency set of the submission.
        master_deps: Merged dependency set of the master project.

    Returns:
        DependencyReport listing packages per status and the install specs.
    """
    report = DependencyReport()

    for name, version in student_deps.items():
        status = dependency_status(version, master_deps.get(name))
        if status is DependencyStatus.SATISFIED:
            report.satisfied.append(name)
            continue

        if status is DependencyStatus.MISSING:
            report.missing.append(name)
        else:
            report.mismatched.append(name)
        report.install_specs.append(f"{name}@{clean_version(version)}")

    return report


class MasterStore:
    """
    Manager of the shared, pre-warmed dependency installation.

    One instance is created per process and injected into every pipeline.
    Installs are exclusive: a run that needs one polls until the install
    flag is clear, holds it for the duration of its own install, then
    clears it. The flag is a ``threading.Lock`` so that runs on different
    event loops (one per API request thread) still exclude each other.
    """

    def __init__(
        self,
        master_dir: Path,
        poll_interval: float = INSTALL_POLL_INTERVAL_SECONDS,
        command_runner: CommandRunner | None = None,
    ) -> None:
        """
        Initialize the master store.

        Args:
            master_dir: Directory of the master project (package.json + node_modules).
            poll_interval: Seconds between checks while waiting for the install flag.
            command_runner: Coroutine running a command in a directory and
                returning (exit code, output). Defaults to a real subprocess.
        """
        self.master_dir = master_dir
        self.poll_interval = poll_interval
        self.command_runner = command_runner or run_to_completion
        self._install_lock = threading.Lock()

    @property
    def manifest_path(self) -> Path:
        return self.master_dir / MANIFEST_FILENAME

    @property
    def modules_dir(self) -> Path:
        return self.master_dir / NODE_MODULES_DIRNAME

    @property
    def install_in_progress(self) -> bool:
        return self._install_lock.locked()

    def dependencies(self) -> dict[str, str]:
        """Current merged dependency set of the master manifest."""
        return merged_dependencies(read_manifest(self.manifest_path))

    @asynccontextmanager
    async def exclusive_install(self):
        """Hold the process-wide install flag for the duration of the block."""
        while not self._install_lock.acquire(blocking=False):
            await asyncio.sleep(self.poll_interval)
        try:
            yield
        finally:
            self._install_lock.release()

    async def wait_until_idle(self) -> None:
        """Block until no install is in flight."""
        while self._install_lock.locked():
            await asyncio.sleep(self.poll_interval)

    async def reconcile(self, project: ProjectInfo, tag: str = "") -> DependencyReport:
        """
        Bring the master store up to date with a submission's manifest.

        Install failures are logged and swallowed; the run continues with
        whatever the store already has.

        Args:
            project: Resolved dynamic project.
            tag: Prefix for log messages (usually the port, e.g. ``"[4123]"``).

        Returns:
            The DependencyReport computed before any install.
        """
        student_deps = merged_dependencies(read_manifest(project.root_path / MANIFEST_FILENAME))
        master_deps = self.dependencies()
        report = classify_dependencies(student_deps, master_deps)

        for name in report.mismatched:
            logger.info(
                "%s Major version mismatch for %s: master %s vs submission %s. Upgrading...",
                tag, name, master_deps.get(name), student_deps[name],
            )

        if not report.needs_install:
            return report

        async with self.exclusive_install():
            # An install that finished while we waited may already cover us
            pending = classify_dependencies(student_deps, self.dependencies())
            if pending.needs_install:
                await self._install(pending.install_specs, tag)

        return report

    async def _install(self, specs: list[str], tag: str) -> None:
        logger.info("%s Learning/Upgrading dependencies: %s...", tag, ", ".join(specs))
        command = ["npm", "install", "--save", *specs, *MASTER_INSTALL_FLAGS]
        try:
            code, output = await self.command_runner(command, self.master_dir)
        except OSError as e:
            logger.warning("%s Update failed: %s", tag, e)
            return

        if code != 0:
            logger.warning("%s npm install warning/error: %s", tag, output.strip()[-2000:])
        logger.info("%s Update complete. Result code: %s", tag, code)

    async def link_into(self, project_dir: Path, tag: str = "") -> bool:
        """
        Expose the master's dependency tree inside a submission by symlink.

        Waits for any in-flight install so a half-written tree is never
        observed. A ``node_modules`` already present in the submission is
        kept as is.

        Args:
            project_dir: Root of the dynamic submission.
            tag: Prefix for log messages.

        Returns:
            True if the submission has a dependency tree afterwards,
            False if linking failed and a local install is needed.
        """
        await self.wait_until_idle()

        target = project_dir / NODE_MODULES_DIRNAME
        if target.is_symlink() or target.exists():
            logger.info("%s Submission already has %s, keeping it", tag, NODE_MODULES_DIRNAME)
            return True

        if not self.modules_dir.is_dir():
            logger.warning("%s Master store has no %s at %s", tag, NODE_MODULES_DIRNAME, self.modules_dir)
            return False

        logger.info("%s Using shared node_modules for speed...", tag)
        try:
            target.symlink_to(self.modules_dir.resolve(), target_is_directory=True)
        except OSError as e:
            logger.warning("%s Symlink failed: %s", tag, e)
            return False
        return True
