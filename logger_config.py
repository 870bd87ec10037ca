import logging
import os
import sys
from pathlib import Path

LOGGER_NAME = "share_server"

FILE_FORMAT = '%(asctime)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
CONSOLE_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def _handler(handler: logging.Handler, level, fmt: str) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt))
    return handler


def setup_logger(name: str = LOGGER_NAME):
    """Return the server logger, attaching its handlers on first use.

    LOG_DIR (default ``logs``) holds ``<name>.log`` with DEBUG detail.
    LOG_LEVEL (default INFO) sets what reaches stdout.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    console_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logs_dir = Path(os.getenv("LOG_DIR", "logs"))
    logs_dir.mkdir(parents=True, exist_ok=True)

    logger.setLevel(logging.DEBUG)
    logger.addHandler(_handler(logging.FileHandler(logs_dir / f"{name}.log"), logging.DEBUG, FILE_FORMAT))
    logger.addHandler(_handler(logging.StreamHandler(sys.stdout), console_level, CONSOLE_FORMAT))

    return logger
