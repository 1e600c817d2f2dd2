"""
Spawning and terminating child process trees.

Dev servers are started through ``npm``/``npx`` wrappers that fork the real
server, so killing the direct child is not enough. Every process is started
in its own session (POSIX) or process group (Windows) and terminated as a
tree.
"""

import asyncio
import logging
import os
import shutil
import signal
import subprocess
import sys
from pathlib import Path

from .config import TERMINATE_GRACE_SECONDS

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


def resolve_command(command: list[str]) -> list[str]:
    """Resolve the executable on PATH (``npm`` is ``npm.cmd`` on Windows)."""
    executable = shutil.which(command[0]) or command[0]
    return [executable, *command[1:]]


def _group_kwargs() -> dict:
    if IS_WINDOWS:
        return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    return {"start_new_session": True}


class ProcessHandle:
    """
    Owns one spawned process tree.

    ``terminate()`` is idempotent: the first call kills the tree, later calls
    are no-ops, so cleanup paths can call it unconditionally.
    """

    def __init__(self, process: asyncio.subprocess.Process, name: str) -> None:
        self.process = process
        self.name = name
        self._terminated = False

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def terminated(self) -> bool:
        return self._terminated

    async def wait(self) -> int:
        return await self.process.wait()

    async def terminate(self, grace_seconds: float = TERMINATE_GRACE_SECONDS) -> None:
        """
        Kill the process and all of its descendants.

        Args:
            grace_seconds: Time allowed for a graceful exit before SIGKILL (POSIX).
        """
        if self._terminated:
            return
        self._terminated = True

        if IS_WINDOWS:
            await self._taskkill()
        else:
            self._signal_group(signal.SIGTERM)
            try:
                await asyncio.wait_for(self.process.wait(), timeout=grace_seconds)
            except asyncio.TimeoutError:
                logger.warning("%s (pid %s) ignored SIGTERM, killing", self.name, self.pid)
                self._signal_group(signal.SIGKILL)
                await self.process.wait()
        logger.debug("Terminated %s (pid %s)", self.name, self.pid)

    def _signal_group(self, sig: signal.Signals) -> None:
        # Session leader pid doubles as the process group id
        try:
            os.killpg(self.pid, sig)
        except ProcessLookupError:
            pass

    async def _taskkill(self) -> None:
        killer = await asyncio.create_subprocess_exec(
            "taskkill", "/pid", str(self.pid), "/t", "/f",
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
        await killer.wait()
        await self.process.wait()


async def spawn_process(
    command: list[str],
    cwd: Path,
    name: str,
    log_path: Path | None = None,
    env: dict[str, str] | None = None,
) -> ProcessHandle:
    """
    Start a long-running process in its own process group.

    Args:
        command: Program and arguments.
        cwd: Working directory.
        name: Short name used in log messages.
        log_path: File receiving stdout and stderr (appended). Output is
            discarded when omitted.
        env: Full environment for the child. Inherits ours when omitted.

    Returns:
        ProcessHandle for the new process.
    """
    argv = resolve_command(command)
    log_file = open(log_path, "ab") if log_path else None
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            cwd=str(cwd),
            env=env,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=log_file if log_file else asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.STDOUT if log_file else asyncio.subprocess.DEVNULL,
            **_group_kwargs(),
        )
    finally:
        # The child holds its own descriptor
        if log_file:
            log_file.close()

    logger.debug("Spawned %s (pid %s): %s", name, process.pid, " ".join(command))
    return ProcessHandle(process, name)


async def run_to_completion(
    command: list[str],
    cwd: Path,
    log_path: Path | None = None,
) -> tuple[int, str]:
    """
    Run a short-lived command and collect its output.

    Args:
        command: Program and arguments.
        cwd: Working directory.
        log_path: Optional file that also receives the output.

    Returns:
        Tuple of (exit code, combined stdout/stderr text).

    Raises:
        OSError: If the program cannot be started (e.g. not installed).
    """
    process = await asyncio.create_subprocess_exec(
        *resolve_command(command),
        cwd=str(cwd),
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
    )
    stdout, _ = await process.communicate()
    output = stdout.decode("utf-8", errors="replace")
    if log_path:
        with open(log_path, "a", encoding="utf-8") as f:
            f.write(output)
    return process.returncode, output
