"""Configuración de logging para la aplicación."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOGGER_NAME = "salud_log"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(
    level: str = "WARNING", log_file: str | Path | None = None
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Level name (DEBUG, INFO, WARNING, ERROR).
        log_file: Optional file that receives the same records as the console.

    Returns:
        The configured ``salud_log`` logger.
    """
    numeric = getattr(logging, level.upper(), None)
    if not isinstance(numeric, int):
        raise ValueError(f"Unknown log level: {level}")

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(numeric)
    logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(numeric)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setLevel(numeric)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger
