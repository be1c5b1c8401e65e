"""
Revision Planner - Logging
Coloured console output plus a rotating planner.log; planning runs log
through an adapter that tags every line with the user and the mode.
"""

import logging
import sys
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

LOGGER_NAME = "RevisionPlanner"
LOGS_DIR = os.getenv("LOG_DIR") or os.path.join(os.path.dirname(__file__), "logs")
LOG_FILE = "planner.log"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 5

PLAIN_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ColourFormatter(logging.Formatter):
    """Console formatter, one colour per level"""

    COLOURS = {
        logging.DEBUG: "\x1b[38;20m",
        logging.INFO: "\x1b[34;20m",
        logging.WARNING: "\x1b[33;20m",
        logging.ERROR: "\x1b[31;20m",
        logging.CRITICAL: "\x1b[31;1m",
    }
    RESET = "\x1b[0m"
    CONSOLE_FORMAT = PLAIN_FORMAT + " (%(filename)s:%(lineno)d)"

    def format(self, record):
        colour = self.COLOURS.get(record.levelno, "")
        formatter = logging.Formatter(colour + self.CONSOLE_FORMAT + self.RESET, datefmt=DATE_FORMAT)
        return formatter.format(record)


class PlanningRunAdapter(logging.LoggerAdapter):
    """Prefixes messages with `[user=... mode=...]` and exposes both as record attributes."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return f"[user={self.extra['user_id']} mode={self.extra['mode']}] {msg}", kwargs


def _level_from_env() -> int:
    return getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO)


def setup_logger(name: str = LOGGER_NAME, level: Optional[int] = None) -> logging.Logger:
    """Configures and returns the planner logger"""
    logger = logging.getLogger(name)
    logger.setLevel(level if level is not None else _level_from_env())

    # Prevent duplicate handlers if function is called multiple times
    if logger.hasHandlers():
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(ColourFormatter())
    logger.addHandler(console_handler)

    os.makedirs(LOGS_DIR, exist_ok=True)
    file_handler = RotatingFileHandler(
        os.path.join(LOGS_DIR, LOG_FILE),
        maxBytes=MAX_LOG_BYTES,
        backupCount=LOG_BACKUPS,
        encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(file_handler)

    return logger


def run_logger(user_id: str, mode: str) -> PlanningRunAdapter:
    """Logger for one planning run."""
    return PlanningRunAdapter(logger, {"user_id": user_id, "mode": mode})


# Global logger instance
logger = setup_logger()
