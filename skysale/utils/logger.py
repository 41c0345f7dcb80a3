"""
Logging for the Skysale engine.

Every component logs under `skysale.<subsystem>`:

    auction     bid placement, auction creation, extensions
    finalize    settlement, mint dispatch, remediation
    tiers       phase activation, repricing, pause/resume
    deploy      weekly scheduled auctions
    ticker      job scheduling and the scheduler lease
    mint        mint adapter attempts
    notify      notification delivery
    storage.*   SQLite connections and catalog queries
    cli         command line

Storage loggers are held at WARNING unless the engine runs at DEBUG,
since every connection and transaction is logged there.
"""

import logging
import sys
from pathlib import Path
from typing import Dict, Optional

import colorlog

ROOT = "skysale"
LOG_FILE_NAME = "skysale.log"

CONSOLE_FORMAT = "%(log_color)s%(asctime)s [%(name)s] %(levelname)-8s%(reset)s %(message)s"
FILE_FORMAT = "%(asctime)s [%(name)s] %(levelname)-8s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_COLORS = {
    "DEBUG": "cyan",
    "INFO": "green",
    "WARNING": "yellow",
    "ERROR": "red",
    "CRITICAL": "red,bg_white",
}

# Subsystems that are only worth reading when debugging
QUIET_SUBSYSTEMS: Dict[str, int] = {
    "storage": logging.WARNING,
}


class SkysaleLogger:
    """Configures the `skysale` logger tree once per process (or per reset)."""

    _initialized = False
    _log_file: Optional[Path] = None

    @classmethod
    def setup(
        cls,
        level: int = logging.INFO,
        log_dir: Optional[Path] = None,
        log_to_file: bool = False,
    ):
        """
        Setup logging configuration.

        Args:
            level: Level for the engine subsystems
            log_dir: Directory for skysale.log. If None, uses ./logs
            log_to_file: Whether to also write to skysale.log
        """
        if cls._initialized:
            return

        root_logger = logging.getLogger(ROOT)
        root_logger.setLevel(level)
        root_logger.handlers.clear()

        console_handler = colorlog.StreamHandler(sys.stdout)
        console_handler.setFormatter(
            colorlog.ColoredFormatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT, log_colors=LOG_COLORS)
        )
        root_logger.addHandler(console_handler)

        if log_to_file:
            directory = Path(log_dir) if log_dir else Path("logs")
            directory.mkdir(exist_ok=True, parents=True)
            cls._log_file = directory / LOG_FILE_NAME
            file_handler = logging.FileHandler(cls._log_file)
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            root_logger.addHandler(file_handler)

        for subsystem, quiet_level in QUIET_SUBSYSTEMS.items():
            sub_level = level if level <= logging.DEBUG else max(level, quiet_level)
            logging.getLogger(f"{ROOT}.{subsystem}").setLevel(sub_level)

        cls._initialized = True

    @classmethod
    def reset(cls):
        """Close handlers so setup() can run again with new settings."""
        root_logger = logging.getLogger(ROOT)
        for handler in list(root_logger.handlers):
            handler.close()
            root_logger.removeHandler(handler)
        cls._initialized = False
        cls._log_file = None

    @classmethod
    def log_file(cls) -> Optional[Path]:
        return cls._log_file

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        if not cls._initialized:
            cls.setup()
        return logging.getLogger(f"{ROOT}.{name}")


def get_logger(name: str) -> logging.Logger:
    """Logger for an engine subsystem, e.g. get_logger("tiers")"""
    return SkysaleLogger.get_logger(name)


def setup_logging(
    level: int = logging.INFO,
    log_dir: Optional[Path] = None,
    log_to_file: bool = False,
):
    """Reconfigure logging, replacing whatever handlers were set up before."""
    SkysaleLogger.reset()
    SkysaleLogger.setup(level=level, log_dir=log_dir, log_to_file=log_to_file)
