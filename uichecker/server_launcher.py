"""
Server lifecycle for resolved projects.

Static projects are served by a static file server; dynamic projects run
their own dev server on top of the shared master dependency tree, with an
optional mock API next to them. A launch only succeeds once the server
answers an HTTP probe:

    Spawning -> Polling -> Ready | Failed (exited early) | TimedOut
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlparse

import httpx

from .config import (
    CUSTOM_SERVER_FILENAME,
    DEV_SCRIPT,
    DEV_SERVER_LOG,
    LOCAL_INSTALL_FLAGS,
    LOCAL_INSTALL_LOG,
    MANIFEST_FILENAME,
    MOCK_API_GRACE_SECONDS,
    MOCK_API_PORT,
    MOCK_DATA_FILENAME,
    MOCK_SERVER_LOG,
    READY_LOG_EVERY,
    READY_MAX_ATTEMPTS,
    READY_POLL_INTERVAL_SECONDS,
    READY_PROBE_TIMEOUT_SECONDS,
    SERVER_HOST,
    START_SCRIPT,
    STATIC_SERVER_COMMAND,
    STATIC_SERVER_LOG,
)
from .dependency_reconciler import MasterStore, read_manifest
from .exceptions import LaunchExitedEarlyError, LaunchTimeoutError
from .models import ProjectInfo, ProjectKind
from .process_handle import ProcessHandle, run_to_completion, spawn_process

logger = logging.getLogger(__name__)


@dataclass
class ServerHandle:
    """
    A running, reachable server owned by one pipeline.

    Attributes:
        process: The server process tree.
        base_url: URL that answered the readiness probe (includes the base path).
        port: Port the server listens on.
        companions: Helper processes started for this server (mock APIs).
    """

    process: ProcessHandle
    base_url: str
    port: int
    companions: list[ProcessHandle] = field(default_factory=list)

    async def terminate(self) -> None:
        """Kill the server and its companions. Safe to call more than once."""
        for handle in (self.process, *self.companions):
            await handle.terminate()


def select_start_script(manifest: dict) -> str:
    """Prefer the ``dev`` script, fall back to ``start`` when only it exists."""
    scripts = manifest.get("scripts") or {}
    if not scripts.get(DEV_SCRIPT) and scripts.get(START_SCRIPT):
        return START_SCRIPT
    return DEV_SCRIPT


def resolve_base_path(manifest: dict) -> str:
    """
    Derive the URL base path from the manifest's ``homepage`` field.

    ``https://user.github.io/app/`` and ``/app/`` both give ``/app``;
    anything else (missing, ``.``, ``/``) gives the empty string.

    Args:
        manifest: Parsed package.json.

    Returns:
        Base path without a trailing slash.
    """
    homepage = manifest.get("homepage")
    if not isinstance(homepage, str):
        return ""

    if homepage.startswith("http"):
        try:
            path = urlparse(homepage).path
        except ValueError:
            logger.warning("Failed to parse homepage URL: %s", homepage)
            return ""
    elif homepage.startswith("/"):
        path = homepage
    else:
        return ""

    if path.endswith("/"):
        path = path[:-1]
    return path


def build_dev_command(script: str, port: int) -> list[str]:
    command = ["npm", "run", script]
    if script == DEV_SCRIPT:
        command += ["--", "--port", str(port), "--host"]
    return command


def build_server_env(port: int, host: str = SERVER_HOST) -> dict[str, str]:
    """Environment forcing headless, non-interactive dev servers."""
    env = os.environ.copy()
    env.update(
        {
            "PORT": str(port),
            "BROWSER": "none",
            "HOST": host,
            "CI": "true",
            "WDS_SOCKET_PORT": str(port),
            "SKIP_PREFLIGHT_CHECK": "true",
            "NODE_OPTIONS": "--openssl-legacy-provider",
        }
    )
    return env


async def wait_until_ready(
    process: ProcessHandle,
    url: str,
    port: int,
    poll_interval: float = READY_POLL_INTERVAL_SECONDS,
    max_attempts: int = READY_MAX_ATTEMPTS,
    probe_timeout: float = READY_PROBE_TIMEOUT_SECONDS,
    log_path: Path | None = None,
) -> str:
    """
    Poll a spawned server until it answers HTTP requests.

    Any HTTP response counts as reachable, including error statuses.

    Args:
        process: The server process; an exit aborts polling.
        url: URL to probe.
        port: Server port (for messages).
        poll_interval: Seconds between attempts.
        max_attempts: Attempts before giving up.
        probe_timeout: Timeout of a single probe request.
        log_path: Server log file referenced in the exit error.

    Returns:
        The probed URL.

    Raises:
        LaunchExitedEarlyError: If the process exits before answering.
        LaunchTimeoutError: If no probe succeeds within ``max_attempts``.
    """
    async with httpx.AsyncClient(timeout=probe_timeout, trust_env=False) as client:
        for attempt in range(1, max_attempts + 1):
            if process.returncode is not None:
                logger.error("[%s] Server process exited early with code %s", port, process.returncode)
                raise LaunchExitedEarlyError(port, process.returncode, log_path)

            if attempt % READY_LOG_EVERY == 0:
                logger.info("[%s] Still waiting for server... (attempt %s/%s)", port, attempt, max_attempts)

            try:
                await client.get(url)
            except httpx.HTTPError:
                if attempt < max_attempts:
                    await asyncio.sleep(poll_interval)
                continue

            logger.info("[%s] Server ready at %s", port, url)
            return url

    logger.error("[%s] Server startup timed out after %s attempts", port, max_attempts)
    raise LaunchTimeoutError(port, max_attempts)


class ServerLauncher:
    """
    Starts servers for resolved projects and waits until they are reachable.
    """

    def __init__(
        self,
        master_store: MasterStore | None = None,
        host: str = SERVER_HOST,
        poll_interval: float = READY_POLL_INTERVAL_SECONDS,
        max_attempts: int = READY_MAX_ATTEMPTS,
        probe_timeout: float = READY_PROBE_TIMEOUT_SECONDS,
        mock_api_port: int = MOCK_API_PORT,
        mock_api_grace_seconds: float = MOCK_API_GRACE_SECONDS,
        static_command: list[str] | None = None,
    ) -> None:
        """
        Initialize the launcher.

        Args:
            master_store: Shared dependency store for dynamic projects. When
                omitted, dynamic projects always install locally.
            host: Bind host handed to servers and used for probes.
            poll_interval: Seconds between readiness probes.
            max_attempts: Readiness probes before timing out.
            probe_timeout: Timeout of one readiness probe.
            mock_api_port: Port of the generic JSON mock server.
            mock_api_grace_seconds: Time given to a mock API to boot.
            static_command: Static server command; ``{port}`` is substituted.
        """
        self.master_store = master_store
        self.host = host
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts
        self.probe_timeout = probe_timeout
        self.mock_api_port = mock_api_port
        self.mock_api_grace_seconds = mock_api_grace_seconds
        self.static_command = static_command or STATIC_SERVER_COMMAND

    async def launch(self, project: ProjectInfo, port: int) -> ServerHandle:
        """
        Start a server for the project and block until it is reachable.

        Every process spawned here is terminated again if the launch fails.

        Args:
            project: Resolved project.
            port: Port assigned to this server.

        Returns:
            ServerHandle owned by the caller.

        Raises:
            LaunchExitedEarlyError: The server process died during startup.
            LaunchTimeoutError: The server never became reachable.
        """
        tag = f"[{port}]"
        process: ProcessHandle | None = None
        companions: list[ProcessHandle] = []
        ready = False

        try:
            if project.kind is ProjectKind.STATIC:
                log_path = project.root_path / STATIC_SERVER_LOG
                base_path = ""
                logger.info("%s Starting static server in %s...", tag, project.root_path)
                command = [part.replace("{port}", str(port)) for part in self.static_command]
                process = await spawn_process(command, project.root_path, "static-server", log_path)
            else:
                manifest = read_manifest(project.root_path / MANIFEST_FILENAME)
                await self._prepare_dependencies(project, tag)

                companion = await self._start_mock_api(project, tag)
                if companion:
                    companions.append(companion)

                log_path = project.root_path / DEV_SERVER_LOG
                base_path = resolve_base_path(manifest)
                script = select_start_script(manifest)
                logger.info("%s Starting server (npm run %s)...", tag, script)
                process = await spawn_process(
                    build_dev_command(script, port),
                    project.root_path,
                    "dev-server",
                    log_path,
                    env=build_server_env(port, self.host),
                )

            base_url = await wait_until_ready(
                process,
                f"http://{self.host}:{port}{base_path}",
                port,
                poll_interval=self.poll_interval,
                max_attempts=self.max_attempts,
                probe_timeout=self.probe_timeout,
                log_path=log_path,
            )
            ready = True
        finally:
            if not ready:
                for handle in (process, *companions):
                    if handle:
                        await handle.terminate()

        return ServerHandle(process=process, base_url=base_url, port=port, companions=companions)

    @asynccontextmanager
    async def running(self, project: ProjectInfo, port: int):
        """Launch a server for the duration of the block, terminating it on exit."""
        handle = await self.launch(project, port)
        try:
            yield handle
        finally:
            await handle.terminate()

    async def _prepare_dependencies(self, project: ProjectInfo, tag: str) -> None:
        linked = False
        if self.master_store:
            await self.master_store.reconcile(project, tag)
            linked = await self.master_store.link_into(project.root_path, tag)

        if not linked:
            await self._local_install(project, tag)

    async def _local_install(self, project: ProjectInfo, tag: str) -> None:
        logger.info("%s Installing dependencies locally...", tag)
        try:
            code, _ = await run_to_completion(
                ["npm", "install", *LOCAL_INSTALL_FLAGS],
                project.root_path,
                log_path=project.root_path / LOCAL_INSTALL_LOG,
            )
        except OSError as e:
            logger.warning("%s Local install failed: %s", tag, e)
            return
        if code != 0:
            logger.warning("%s Local install exited with code %s, continuing", tag, code)

    async def _start_mock_api(self, project: ProjectInfo, tag: str) -> ProcessHandle | None:
        root = project.root_path
        if not (root / MOCK_DATA_FILENAME).is_file():
            return None

        if (root / CUSTOM_SERVER_FILENAME).is_file():
            command = ["node", CUSTOM_SERVER_FILENAME]
        else:
            command = [
                "npx", "json-server",
                "--watch", MOCK_DATA_FILENAME,
                "--port", str(self.mock_api_port),
            ]

        logger.info("%s Starting mockup backend (%s)...", tag, " ".join(command))
        handle = await spawn_process(command, root, "mock-api", root / MOCK_SERVER_LOG)
        await asyncio.sleep(self.mock_api_grace_seconds)
        return handle
