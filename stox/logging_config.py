"""Shared logging configuration for StoX entry points.

Call ``configure_logging()`` once at a CLI entry point. Library modules only
create module loggers and never configure handlers themselves.
The function is idempotent: if the root logger already has handlers, it
only adjusts the level.
"""

import logging
import os
from typing import Optional, Union


def configure_logging(level: Union[int, str] = logging.INFO,
                      log_dir: Optional[str] = "logs") -> None:
    """Configure root logger with console + optional file handler.

    Args:
        level: Logging level or its name ("DEBUG", "INFO", ...).
        log_dir: Directory for ``stox.log``; None disables the file handler.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper())
    root = logging.getLogger()
    root.setLevel(level)
    if root.handlers:
        return

    fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter = logging.Formatter(fmt)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    # File handler only if the log directory exists or can be created
    if log_dir is not None:
        try:
            os.makedirs(log_dir, exist_ok=True)
            fh = logging.FileHandler(os.path.join(log_dir, "stox.log"), mode="a")
            fh.setFormatter(formatter)
            root.addHandler(fh)
        except OSError:
            root.warning("Cannot write logs to %s; logging to console only", log_dir)
