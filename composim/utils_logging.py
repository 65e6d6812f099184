from __future__ import annotations

"""Logging utilities.

Set up a consistent logging configuration for model runs: console output
always, plus `run.log` in a log directory when one is given. Library modules
only create loggers (`logging.getLogger(__name__)`); nothing in the package
configures logging unless the caller asks for it here.
"""

import logging
from pathlib import Path
from typing import Optional, Union


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(log_dir: Optional[Union[str, Path]] = None, debug: bool = False) -> Optional[Path]:
    """Configure root logging for a run.

    - Streams logs to the console
    - Also writes `<log_dir>/run.log` when `log_dir` is given (created if missing)
    - Uses DEBUG level (per-period progress) if `debug=True`, otherwise INFO

    Returns the log file path, or None when logging to the console only.
    """
    level = logging.DEBUG if debug else logging.INFO
    handlers = [logging.StreamHandler()]
    log_file = None
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / "run.log"
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))

    logging.basicConfig(level=level, format=LOG_FORMAT, handlers=handlers, force=True)
    return log_file
