"""
Logging setup for the intake agent.

All modules log through the "intake_agent" logger. Output goes to stdout and,
unless LOG_TO_FILE is false, to a rotating file under LOG_DIR. The chatty
third-party loggers (websockets, twilio's HTTP client) are capped at WARNING so
per-frame traffic does not drown the call log.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from intake_agent.config.constants import LOGGER_NAME
from intake_agent.config.settings import env_flag

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "intake_agent.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5

NOISY_LOGGERS = ("websockets", "twilio.http_client")


def _build_handlers(formatter: logging.Formatter) -> List[logging.Handler]:
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    handlers: List[logging.Handler] = [console]

    if not env_flag("LOG_TO_FILE", True):
        return handlers

    log_dir = Path(os.getenv("LOG_DIR", "logs"))
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        rotating = RotatingFileHandler(log_dir / LOG_FILE_NAME, maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUPS)
    except OSError as e:
        # Read-only filesystems still get console output
        sys.stderr.write(f"File logging disabled ({log_dir}): {e}\n")
        return handlers
    rotating.setFormatter(formatter)
    handlers.append(rotating)
    return handlers


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """
    (Re)configure the "intake_agent" logger.

    Args:
        level: Level name; falls back to LOG_LEVEL, then INFO

    Returns:
        logging.Logger: The configured logger
    """
    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    for handler in _build_handlers(logging.Formatter(LOG_FORMAT)):
        logger.addHandler(handler)
    logger.propagate = False

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging configured at {level_name}")
    return logger
