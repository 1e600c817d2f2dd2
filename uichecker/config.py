"""
Configuration constants for the UI Checker system.
"""

from pathlib import Path


# Project detection
MANIFEST_FILENAME: str = "package.json"
ENTRY_POINT_FILENAME: str = "index.html"
NODE_MODULES_DIRNAME: str = "node_modules"

# Mock backend detection (json-server style assessments)
MOCK_DATA_FILENAME: str = "db.json"
CUSTOM_SERVER_FILENAME: str = "server.js"
MOCK_API_PORT: int = 8000
MOCK_API_GRACE_SECONDS: float = 2.0

# Per-project log files, written inside the project root
STATIC_SERVER_LOG: str = "static-server.log"
DEV_SERVER_LOG: str = "dev-server.log"
MOCK_SERVER_LOG: str = "json-server.log"
LOCAL_INSTALL_LOG: str = "npm-install.log"

# Dev server launch
SERVER_HOST: str = "127.0.0.1"
DEV_SCRIPT: str = "dev"
START_SCRIPT: str = "start"
# "{port}" is substituted at launch time
STATIC_SERVER_COMMAND: list[str] = ["npx", "-y", "serve", ".", "-p", "{port}"]
MASTER_INSTALL_FLAGS: list[str] = [
    "--no-audit",
    "--no-fund",
    "--no-progress",
    "--legacy-peer-deps",
]
LOCAL_INSTALL_FLAGS: list[str] = ["--no-audit", "--no-fund", "--no-progress"]

# Readiness polling: one probe per second for at most three minutes
READY_POLL_INTERVAL_SECONDS: float = 1.0
READY_MAX_ATTEMPTS: int = 180
READY_PROBE_TIMEOUT_SECONDS: float = 5.0
READY_LOG_EVERY: int = 10

# Install mutex polling
INSTALL_POLL_INTERVAL_SECONDS: float = 1.0

# Process termination
TERMINATE_GRACE_SECONDS: float = 5.0

# Screenshot capture
VIEWPORT_WIDTH: int = 1280
VIEWPORT_HEIGHT: int = 800
SETTLE_DELAY_MS: int = 1000
DEFAULT_ROUTES: list[str] = ["/"]
FREEZE_STYLES: str = (
    "*, *::before, *::after { "
    "transition: none !important; "
    "animation: none !important; "
    "caret-color: transparent !important; }"
)

# Image comparison (pixelmatch-compatible calibration)
DIFF_THRESHOLD: float = 0.1
INCLUDE_ANTI_ALIASING: bool = True
DIFF_ALPHA: float = 0.1
DIFF_COLOR: tuple[int, int, int] = (255, 0, 0)
ANTI_ALIAS_COLOR: tuple[int, int, int] = (255, 255, 0)

# Batching
BATCH_SIZE: int = 2

# Run layout
SOLUTION_DIRNAME: str = "solution"
STUDENTS_DIRNAME: str = "students"
RAW_DIRNAME: str = "raw"
SCREENSHOTS_DIRNAME: str = "screenshots"
DIFFS_DIRNAME: str = "diffs"
RESULTS_JSON_FILENAME: str = "results.json"
RESULTS_CSV_FILENAME: str = "results.csv"
ARCHIVE_EXTENSIONS: list[str] = [".zip"]

# Default paths (can be overridden via the YAML config)
DEFAULT_WORK_DIR: Path = Path("temp")
DEFAULT_UPLOADS_DIR: Path = Path("uploads")
DEFAULT_MASTER_PROJECT_DIR: Path = Path("master_project")
DEFAULT_LOG_FILE: Path = Path("server.log")

# HTTP API
API_PORT: int = 3000
ARTIFACTS_URL_PREFIX: str = "/temp"
