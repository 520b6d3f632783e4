from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Tuple

from .lib.env import PATHS

DEFAULT_LOG_PATH = PATHS.log_default
FALLBACK_LOG_NAME = "expedition-setup.log"

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S%z"


def _open_log_file(log_path: str) -> Tuple[logging.Handler, str]:
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path), log_path
    except OSError:
        # Not writable (non-root dry run): log next to the caller instead.
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = False,
) -> str:
    """Send log records to a file, and to stderr only when asked.

    The console carries the progress lines, so it stays quiet by default.
    Calling this again is a no-op. Returns the file actually written to.
    """

    root = logging.getLogger()
    root.setLevel(level)

    if getattr(root, "_expedition_configured", False):
        return getattr(root, "_expedition_log_path", log_path)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

    handler, chosen_path = _open_log_file(log_path)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    setattr(root, "_expedition_configured", True)
    setattr(root, "_expedition_log_path", chosen_path)

    logging.getLogger(__name__).info("Logging to %s (requested %s)", chosen_path, log_path)
    return chosen_path
