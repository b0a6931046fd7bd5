from __future__ import annotations

import logging
from pathlib import Path

import pytest

from salud_log.logging_config import LOGGER_NAME, setup_logging


def test_setup_logging_console_and_file(tmp_path: Path) -> None:
    log_file = tmp_path / "logs" / "salud.log"

    logger = setup_logging("info", log_file)
    logging.getLogger(f"{LOGGER_NAME}.storage").info("guardado")
    for handler in logger.handlers:
        handler.flush()

    assert logger.level == logging.INFO
    assert len(logger.handlers) == 2
    assert "guardado" in log_file.read_text(encoding="utf-8")


def test_setup_logging_replaces_handlers() -> None:
    setup_logging("DEBUG")
    logger = setup_logging("WARNING")
    assert len(logger.handlers) == 1
    assert logger.level == logging.WARNING


def test_setup_logging_rejects_unknown_level() -> None:
    with pytest.raises(ValueError):
        setup_logging("chatty")
