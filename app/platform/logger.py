import logging
import os
from logging.handlers import RotatingFileHandler

from app.platform.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

log_dir = os.path.abspath(settings.LOG_DIR)
os.makedirs(log_dir, exist_ok=True)
log_file_path = os.path.join(log_dir, "ux_audit.log")


def get_logger(name: str) -> logging.Logger:
    """
    Logger that writes to the console and to logs/ux_audit.log.

    Handlers are attached once per name, so calling this at import time in
    every module is fine.
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    level = logging.getLevelName(settings.LOG_LEVEL.upper())
    if not isinstance(level, int):
        level = logging.INFO
    logger.setLevel(level)
    # Root gets a basicConfig handler in app.main; don't print twice
    logger.propagate = False

    formatter = logging.Formatter(LOG_FORMAT)

    # Rotating file handler, 10MB x 5
    file_handler = RotatingFileHandler(log_file_path, maxBytes=10_000_000, backupCount=5)
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger
