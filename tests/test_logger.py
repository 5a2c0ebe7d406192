"""Logging setup: file output and per-area levels."""

import logging

import pytest
from wealth_drive.core.errors import ConfigError
from wealth_drive.core.logger import AREAS, setup_logging


@pytest.fixture
def package_logger():
    yield logging.getLogger("wealth_drive")
    root = logging.getLogger("wealth_drive")
    for handler in list(root.handlers):
        handler.close()
        root.removeHandler(handler)
    root.setLevel(logging.NOTSET)
    for area in AREAS:
        logging.getLogger(f"wealth_drive.{area}").setLevel(logging.NOTSET)


def test_file_handler_and_area_levels(tmp_path, package_logger):
    root = setup_logging("WARNING", tmp_path / "logs", "run.log", {"execution": "debug"})
    assert root is package_logger
    assert root.level == logging.WARNING
    assert logging.getLogger("wealth_drive.execution").level == logging.DEBUG
    assert logging.getLogger("wealth_drive.portfolio").getEffectiveLevel() == logging.WARNING

    logging.getLogger("wealth_drive.execution").debug("order o1 submitted")
    logging.getLogger("wealth_drive.portfolio").info("position opened")
    for handler in root.handlers:
        handler.flush()
    text = (tmp_path / "logs" / "run.log").read_text(encoding="utf-8")
    assert "wealth_drive.execution | order o1 submitted" in text
    assert "position opened" not in text


def test_setup_resets_previous_overrides(package_logger):
    setup_logging("INFO", area_levels={"risk": "ERROR"})
    setup_logging("INFO")
    assert logging.getLogger("wealth_drive.risk").level == logging.NOTSET
    assert len(package_logger.handlers) == 1


def test_unknown_area_is_a_config_error(package_logger):
    with pytest.raises(ConfigError):
        setup_logging("INFO", area_levels={"exchange": "DEBUG"})
