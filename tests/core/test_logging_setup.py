import logging

import pytest

from core.logging import LOG_FILE_NAME, configure_logging, get_logger


@pytest.fixture
def app_logger():
    logger = get_logger()
    yield logger
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()


def test_writes_utc_lines_to_rotating_file(tmp_path, app_logger):
    configure_logging(tmp_path / "logs", level="debug", console=False)

    get_logger("core.test").info("hello %s", "world")
    for handler in app_logger.handlers:
        handler.flush()

    text = (tmp_path / "logs" / LOG_FILE_NAME).read_text(encoding="utf-8")
    assert "INFO cachesift.core.test hello world" in text
    assert app_logger.level == logging.DEBUG


def test_reconfiguring_replaces_handlers(tmp_path, app_logger):
    configure_logging(tmp_path / "a", console=True)
    configure_logging(tmp_path / "b", level="nonsense", console=False)

    assert len(app_logger.handlers) == 1
    assert app_logger.level == logging.INFO
