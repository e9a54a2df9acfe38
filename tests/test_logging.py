import logging
from pathlib import Path

import pytest

from resin_link.logging import NETWORK_LOGGERS, configure_logging


@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    levels = {name: logging.getLogger(name).level for name in NETWORK_LOGGERS}
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)
    for name, value in levels.items():
        logging.getLogger(name).setLevel(value)


def test_file_handler_receives_records(tmp_path: Path, restore_logging):
    log_path = tmp_path / "logs" / "resin-link.log"

    configure_logging("debug", log_path=log_path)
    logging.getLogger("resin_link.test").debug("polled status #%d", 3)
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert logging.getLogger().level == logging.DEBUG
    assert "polled status #3" in log_path.read_text(encoding="utf-8")


def test_network_loggers_follow_log_network(restore_logging):
    configure_logging("INFO")
    assert logging.getLogger("aiohttp.client").level == logging.WARNING
    assert logging.getLogger("PIL").level == logging.WARNING

    configure_logging("INFO", log_network=True)
    assert logging.getLogger("aiohttp.client").level == logging.NOTSET
    assert logging.getLogger("aiohttp.access").level == logging.NOTSET


def test_reconfiguring_replaces_handlers(tmp_path: Path, restore_logging):
    configure_logging("INFO", log_path=tmp_path / "first.log")
    configure_logging("bogus")

    root = logging.getLogger()
    assert root.level == logging.INFO
    assert not any(isinstance(h, logging.FileHandler) for h in root.handlers)
