"""
Exception types raised by the checking pipeline.

Only failures that abort a pipeline are modelled as exceptions. Install
problems, single-route capture failures and unreadable screenshots are
logged and degraded instead of raised.
"""

from pathlib import Path


class CheckerError(Exception):
    """Base class for all pipeline failures."""


class ResolutionError(CheckerError):
    """No manifest or markup entry point was found within the search depth."""

    def __init__(self, base_dir: Path) -> None:
        self.base_dir = base_dir
        super().__init__(
            f"No project root (package.json or index.html) found in {base_dir}"
        )


class LaunchError(CheckerError):
    """A server could not be brought to a reachable state."""

    def __init__(self, port: int, message: str) -> None:
        self.port = port
        super().__init__(message)


class LaunchTimeoutError(LaunchError):
    """The server never answered a readiness probe."""

    def __init__(self, port: int, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(
            port, f"Timeout waiting for server on port {port} after {attempts} attempts"
        )


class LaunchExitedEarlyError(LaunchError):
    """The server process exited before it became reachable."""

    def __init__(self, port: int, exit_code: int, log_path: Path | None = None) -> None:
        self.exit_code = exit_code
        self.log_path = log_path
        hint = f" Check {log_path.name}." if log_path else ""
        super().__init__(
            port,
            f"Server process on port {port} exited early with code {exit_code}.{hint}",
        )
