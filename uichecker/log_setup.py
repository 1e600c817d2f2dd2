"""
Logging configuration shared by the CLI and the HTTP API.
"""

import logging
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


def configure_logging(log_file: Path | None = None, verbose: bool = False) -> None:
    """
    Send pipeline logs to the console and, optionally, to an append-only file.

    Calling it again replaces the handlers installed by a previous call.

    Args:
        log_file: File that collects every message (e.g. ``server.log``).
        verbose: Log DEBUG messages instead of INFO and above.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_uichecker", False):
            root.removeHandler(handler)
            handler.close()

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))

    formatter = logging.Formatter(LOG_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        handler._uichecker = True
        root.addHandler(handler)

    root.setLevel(logging.DEBUG if verbose else logging.INFO)
    # Probe requests would otherwise flood the log once per second
    logging.getLogger("httpx").setLevel(logging.WARNING)
