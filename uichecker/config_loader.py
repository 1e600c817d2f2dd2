"""
Configuration loader for the UI Checker system.

Handles parsing and validation of YAML configuration files.
"""

from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from .config import (
    API_PORT,
    BATCH_SIZE,
    DEFAULT_LOG_FILE,
    DEFAULT_MASTER_PROJECT_DIR,
    DEFAULT_ROUTES,
    DEFAULT_UPLOADS_DIR,
    DEFAULT_WORK_DIR,
    DIFF_THRESHOLD,
    INCLUDE_ANTI_ALIASING,
    MOCK_API_GRACE_SECONDS,
    MOCK_API_PORT,
    READY_MAX_ATTEMPTS,
    READY_POLL_INTERVAL_SECONDS,
    SETTLE_DELAY_MS,
    STATIC_SERVER_COMMAND,
    VIEWPORT_HEIGHT,
    VIEWPORT_WIDTH,
)

_PATH_FIELDS = [
    "solution_archive",
    "submissions_dir",
    "work_dir",
    "uploads_dir",
    "master_project_dir",
    "log_file",
]


class CheckerConfig(BaseModel):
    """
    Configuration model for the checker.
    """
    # Batch inputs (CLI mode)
    solution_archive: Path | None = Field(None, description="ZIP archive of the reference solution")
    submission_archives: list[Path] = Field(default_factory=list, description="ZIP archives of student submissions")
    submissions_dir: Path | None = Field(None, description="Directory scanned for *.zip submissions")

    # Workspace
    work_dir: Path = Field(DEFAULT_WORK_DIR, description="Root directory for run artifacts")
    uploads_dir: Path = Field(DEFAULT_UPLOADS_DIR, description="Directory for uploaded archives (API mode)")
    master_project_dir: Path = Field(DEFAULT_MASTER_PROJECT_DIR, description="Shared template project with pre-installed node_modules")
    log_file: Path = Field(DEFAULT_LOG_FILE, description="Append-only log file")

    # Pipeline tuning
    routes: list[str] = Field(default_factory=lambda: list(DEFAULT_ROUTES), description="Routes captured per project")
    batch_size: int = Field(BATCH_SIZE, ge=1, description="Students processed concurrently")
    diff_threshold: float = Field(DIFF_THRESHOLD, ge=0, le=1, description="Per-pixel colour tolerance")
    include_anti_aliasing: bool = Field(INCLUDE_ANTI_ALIASING, description="Count anti-aliased edge pixels as differences")
    viewport_width: int = Field(VIEWPORT_WIDTH, gt=0)
    viewport_height: int = Field(VIEWPORT_HEIGHT, gt=0)
    settle_delay_ms: int = Field(SETTLE_DELAY_MS, ge=0, description="Wait after style injection before capture")
    ready_poll_interval: float = Field(READY_POLL_INTERVAL_SECONDS, gt=0, description="Seconds between readiness probes")
    ready_max_attempts: int = Field(READY_MAX_ATTEMPTS, ge=1, description="Readiness probes before timing out")
    mock_api_port: int = Field(MOCK_API_PORT, description="Port of the generic JSON mock server")
    mock_api_grace_seconds: float = Field(MOCK_API_GRACE_SECONDS, ge=0)
    static_server_command: list[str] = Field(default_factory=lambda: list(STATIC_SERVER_COMMAND), description="Static server command, {port} is substituted")

    # Modes
    serve_api: bool = Field(False, description="Run the HTTP API instead of a one-off batch")
    api_port: int = Field(API_PORT, description="Port for the HTTP API")
    only_dashboard: bool = Field(False, description="Launch dashboard with the latest saved run (skip checking)")
    skip_dashboard: bool = Field(False, description="Do not launch the dashboard after a batch")
    dashboard_port: int = Field(8050, description="Port for the dashboard")
    verbose: bool = Field(False, description="Enable verbose output")


def load_config(config_path: Path) -> CheckerConfig:
    """
    Load configuration from a YAML file.

    Relative paths are resolved against the directory of the config file.

    Args:
        config_path: Path to the YAML configuration file.

    Returns:
        CheckerConfig object with loaded values.

    Raises:
        FileNotFoundError: If config file doesn't exist.
        yaml.YAMLError: If config file is invalid YAML.
        ValidationError: If config data is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    config_dir = config_path.parent

    for path_field in _PATH_FIELDS:
        if config_data.get(path_field):
            config_data[path_field] = _resolve(config_dir, config_data[path_field])

    if config_data.get("submission_archives"):
        config_data["submission_archives"] = [
            _resolve(config_dir, item) for item in config_data["submission_archives"]
        ]

    config = CheckerConfig(**config_data)

    # Defaults are relative to the config file too
    for path_field in ["work_dir", "uploads_dir", "master_project_dir", "log_file"]:
        value = getattr(config, path_field)
        if not value.is_absolute():
            setattr(config, path_field, config_dir / value)

    return config


def _resolve(base: Path, value) -> Path:
    path = Path(value)
    return path if path.is_absolute() else base / path
