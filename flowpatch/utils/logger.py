# flowpatch/utils/logger.py
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler

ROOT_NAME = "flowpatch"

_FMT = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"
_DATEFMT = "%Y-%m-%d %H:%M:%S"

_COLORS = {
    logging.ERROR: "\033[91m",    # red
    logging.WARNING: "\033[93m",  # yellow
    logging.INFO: "\033[92m",     # green
}


def _env_level() -> int:
    """LOG_LEVEL from env (INFO, DEBUG, ...); unknown names fall back to INFO."""
    lvl = logging.getLevelName(os.getenv("LOG_LEVEL", "INFO").upper())
    return lvl if isinstance(lvl, int) else logging.INFO


class _ColorFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        if not sys.stderr.isatty():
            return base
        for level, color in _COLORS.items():
            if record.levelno >= level:
                return f"{color}{base}\033[0m"
        return base


def init_logger(level: int | None = None, log_dir: str | Path | None = None) -> logging.Logger:
    """
    Initialize the flowpatch logger. Logs go to stderr so stdout only carries
    command output; log_dir (or FLOWPATCH_LOG_DIR) adds a rotating flowpatch.log.
    """
    logger = logging.getLogger(ROOT_NAME)
    logger.handlers.clear()
    logger.propagate = False
    logger.setLevel(level if level is not None else _env_level())

    sh = logging.StreamHandler(sys.stderr)
    sh.setFormatter(_ColorFormatter(fmt=_FMT, datefmt=_DATEFMT))
    logger.addHandler(sh)

    log_dir = log_dir or os.getenv("FLOWPATCH_LOG_DIR")
    if log_dir:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = RotatingFileHandler(
            filename=str(log_dir / "flowpatch.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        fh.setFormatter(logging.Formatter(fmt=_FMT, datefmt=_DATEFMT))
        logger.addHandler(fh)

    return logger


def get_logger(child: str) -> logging.Logger:
    """Child logger under the flowpatch root, e.g. get_logger("patch.plan")."""
    return logging.getLogger(ROOT_NAME).getChild(child)
