from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Tuple

DEFAULT_LOG_PATH = "logs/archrepo-provisioner.log"
FALLBACK_LOG_NAME = "archrepo-provisioner.log"

_FORMAT = logging.Formatter(
    fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%S%z",
)


def _open_log_file(log_path: str) -> Tuple[logging.Handler, str]:
    try:
        Path(os.path.dirname(log_path) or ".").mkdir(parents=True, exist_ok=True)
        return logging.FileHandler(log_path, encoding="utf-8"), log_path
    except OSError:
        fallback = str(Path.cwd() / FALLBACK_LOG_NAME)
        return logging.FileHandler(fallback, encoding="utf-8"), fallback


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
    verbose: bool = False,
) -> str:
    """Send every guest command and run transition to a host log file.

    The file always records at `level` (DEBUG with verbose, which adds the
    captured stdout/stderr of each guest command). The console mirrors the
    same records on stderr so stdout carries nothing but the summary document
    and the final outcome line. An unwritable log directory falls back to
    ./archrepo-provisioner.log.

    Safe to call more than once; later calls keep the first setup.
    Returns the log file actually in use.
    """

    root = logging.getLogger()
    if verbose:
        level = logging.DEBUG
    root.setLevel(level)

    if getattr(root, "_archrepo_configured", False):
        return getattr(root, "_archrepo_log_path", log_path)

    file_handler, chosen_path = _open_log_file(log_path)
    file_handler.setFormatter(_FORMAT)
    root.addHandler(file_handler)

    if also_console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(_FORMAT)
        root.addHandler(console)

    setattr(root, "_archrepo_configured", True)
    setattr(root, "_archrepo_log_path", chosen_path)

    if chosen_path != log_path:
        logging.getLogger(__name__).warning("Cannot write %s; logging to %s instead", log_path, chosen_path)
    else:
        logging.getLogger(__name__).info("Logging to %s", chosen_path)
    return chosen_path
