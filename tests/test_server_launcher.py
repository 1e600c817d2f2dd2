"""
Tests for server launching and readiness polling.

Static launches use real Python child processes (``http.server``) in place of
the npm static server, so readiness, early exit and timeouts are exercised
end to end. Dynamic launches fake the spawner.
"""

import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

import uichecker.server_launcher as server_launcher
from uichecker.exceptions import LaunchExitedEarlyError, LaunchTimeoutError
from uichecker.models import ProjectInfo, ProjectKind
from uichecker.orchestrator import find_free_port
from uichecker.server_launcher import (
    ServerLauncher,
    build_dev_command,
    build_server_env,
    resolve_base_path,
    select_start_script,
)

from conftest import write_manifest

HTTP_SERVER = [sys.executable, "-m", "http.server", "{port}", "--bind", "127.0.0.1"]


def _static_project(tmp_path):
    (tmp_path / "index.html").write_text("<h1>Hello</h1>")
    return ProjectInfo(root_path=tmp_path, kind=ProjectKind.STATIC)


class TestLaunchHelpers:
    """Tests for command and URL helpers."""

    def test_select_start_script(self):
        """dev is preferred, start is the fallback."""
        assert select_start_script({"scripts": {"dev": "vite", "start": "x"}}) == "dev"
        assert select_start_script({"scripts": {"start": "react-scripts start"}}) == "start"
        assert select_start_script({}) == "dev"

    @pytest.mark.parametrize(
        "homepage, expected",
        [
            ("https://user.github.io/app/", "/app"),
            ("/portfolio/", "/portfolio"),
            ("/portfolio", "/portfolio"),
            (".", ""),
            ("/", ""),
            (None, ""),
        ],
    )
    def test_resolve_base_path(self, homepage, expected):
        """The homepage path becomes the URL prefix."""
        manifest = {} if homepage is None else {"homepage": homepage}
        assert resolve_base_path(manifest) == expected

    def test_build_dev_command(self):
        """Only the dev script receives port and host flags."""
        assert build_dev_command("dev", 4100) == ["npm", "run", "dev", "--", "--port", "4100", "--host"]
        assert build_dev_command("start", 4100) == ["npm", "run", "start"]

    def test_build_server_env(self):
        """The environment disables browsers and pins the port."""
        env = build_server_env(4100)

        assert env["PORT"] == "4100"
        assert env["BROWSER"] == "none"
        assert env["CI"] == "true"
        assert env["HOST"] == "127.0.0.1"
        assert env["WDS_SOCKET_PORT"] == "4100"


class TestStaticLaunch:
    """End-to-end launches with real child processes."""

    @pytest.mark.asyncio
    async def test_launch_and_terminate(self, tmp_path):
        """A static server becomes reachable and is killed on exit."""
        port = find_free_port()
        launcher = ServerLauncher(poll_interval=0.2, max_attempts=50, static_command=HTTP_SERVER)

        async with launcher.running(_static_project(tmp_path), port) as server:
            assert server.base_url == f"http://127.0.0.1:{port}"
            assert server.process.returncode is None

        assert server.process.terminated
        assert server.process.returncode is not None

    @pytest.mark.asyncio
    async def test_exited_early(self, tmp_path):
        """A server that dies during startup reports its exit code."""
        port = find_free_port()
        launcher = ServerLauncher(
            poll_interval=0.1,
            max_attempts=50,
            static_command=[sys.executable, "-c", "import sys; sys.exit(3)"],
        )

        with pytest.raises(LaunchExitedEarlyError) as excinfo:
            await launcher.launch(_static_project(tmp_path), port)

        assert excinfo.value.exit_code == 3
        assert "code 3" in str(excinfo.value)
        assert str(port) in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_timeout_terminates_process(self, tmp_path, monkeypatch):
        """A server that never answers times out and is killed."""
        spawned = []
        real_spawn = server_launcher.spawn_process

        async def recording_spawn(*args, **kwargs):
            handle = await real_spawn(*args, **kwargs)
            spawned.append(handle)
            return handle

        monkeypatch.setattr(server_launcher, "spawn_process", recording_spawn)
        port = find_free_port()
        launcher = ServerLauncher(
            poll_interval=0.05,
            max_attempts=3,
            probe_timeout=0.5,
            static_command=[sys.executable, "-c", "import time; time.sleep(30)"],
        )

        with pytest.raises(LaunchTimeoutError) as excinfo:
            await launcher.launch(_static_project(tmp_path), port)

        assert "after 3 attempts" in str(excinfo.value)
        assert len(spawned) == 1
        assert spawned[0].terminated
        assert spawned[0].returncode is not None


class FakeHandle:
    """Stand-in for ProcessHandle."""

    def __init__(self, name):
        self.name = name
        self.returncode = None
        self.terminated = False

    async def terminate(self, grace_seconds=0):
        self.terminated = True
        self.returncode = -15


class TestDynamicLaunch:
    """Dynamic launches with a faked spawner and readiness probe."""

    def setup_method(self):
        self.spawned = []
        self.master_store = MagicMock()
        self.master_store.reconcile = AsyncMock()
        self.master_store.link_into = AsyncMock(return_value=True)

    def _patch(self, monkeypatch, ready_error=None):
        async def fake_spawn(command, cwd, name, log_path=None, env=None):
            handle = FakeHandle(name)
            self.spawned.append((command, env, handle))
            return handle

        async def fake_ready(process, url, port, **kwargs):
            if ready_error:
                raise ready_error
            return url

        monkeypatch.setattr(server_launcher, "spawn_process", fake_spawn)
        monkeypatch.setattr(server_launcher, "wait_until_ready", fake_ready)

    @pytest.mark.asyncio
    async def test_dev_server_with_base_path(self, tmp_path, monkeypatch):
        """The dev server gets the port flags and the URL carries the base path."""
        self._patch(monkeypatch)
        write_manifest(tmp_path, scripts={"dev": "vite"}, homepage="/app/")
        project = ProjectInfo(root_path=tmp_path, kind=ProjectKind.DYNAMIC)
        launcher = ServerLauncher(master_store=self.master_store)

        server = await launcher.launch(project, 4100)

        assert server.base_url == "http://127.0.0.1:4100/app"
        command, env, _ = self.spawned[0]
        assert command == ["npm", "run", "dev", "--", "--port", "4100", "--host"]
        assert env["PORT"] == "4100"
        self.master_store.reconcile.assert_awaited_once()
        self.master_store.link_into.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_mock_api_started_and_cleaned_up(self, tmp_path, monkeypatch):
        """db.json starts a mock API that dies with the failed launch."""
        self._patch(monkeypatch, ready_error=LaunchTimeoutError(4100, 1))
        write_manifest(tmp_path, scripts={"dev": "vite"})
        (tmp_path / "db.json").write_text("{}")
        project = ProjectInfo(root_path=tmp_path, kind=ProjectKind.DYNAMIC)
        launcher = ServerLauncher(master_store=self.master_store, mock_api_grace_seconds=0)

        with pytest.raises(LaunchTimeoutError):
            await launcher.launch(project, 4100)

        assert [command[:2] for command, _, _ in self.spawned] == [["npx", "json-server"], ["npm", "run"]]
        assert "8000" in self.spawned[0][0]
        assert all(handle.terminated for _, _, handle in self.spawned)

    @pytest.mark.asyncio
    async def test_custom_mock_server(self, tmp_path, monkeypatch):
        """A server.js next to db.json is preferred over json-server."""
        self._patch(monkeypatch)
        write_manifest(tmp_path, scripts={"start": "react-scripts start"})
        (tmp_path / "db.json").write_text("{}")
        (tmp_path / "server.js").write_text("")
        project = ProjectInfo(root_path=tmp_path, kind=ProjectKind.DYNAMIC)
        launcher = ServerLauncher(master_store=self.master_store, mock_api_grace_seconds=0)

        server = await launcher.launch(project, 4100)
        await server.terminate()

        assert self.spawned[0][0] == ["node", "server.js"]
        assert self.spawned[1][0] == ["npm", "run", "start"]
        assert len(server.companions) == 1
        assert all(handle.terminated for _, _, handle in self.spawned)

    @pytest.mark.asyncio
    async def test_local_install_when_link_fails(self, tmp_path, monkeypatch):
        """A failed link falls back to installing inside the submission."""
        self._patch(monkeypatch)
        self.master_store.link_into = AsyncMock(return_value=False)
        runner = AsyncMock(return_value=(0, ""))
        monkeypatch.setattr(server_launcher, "run_to_completion", runner)
        write_manifest(tmp_path, scripts={"dev": "vite"})
        project = ProjectInfo(root_path=tmp_path, kind=ProjectKind.DYNAMIC)

        await ServerLauncher(master_store=self.master_store).launch(project, 4100)

        command = runner.await_args.args[0]
        assert command[:2] == ["npm", "install"]
