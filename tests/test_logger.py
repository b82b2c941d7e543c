"""
Tests for the logging setup.
"""

import json
import logging

import pytest

from bffgraph.utils.config import LoggingConfig
from bffgraph.utils.logger import get_crawler_logger, setup_logging


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_json_records_carry_range_context(tmp_path, restore_root_logger):
    log_file = tmp_path / "logs" / "crawler.log"
    setup_logging(LoggingConfig(level="DEBUG", file=str(log_file), json=True))

    get_crawler_logger("bffgraph.crawler.range_crawler", range_id=20000).warning("Retrying 20004/0")
    logging.getLogger("aiohttp.client").warning("per-request noise")
    for handler in logging.getLogger().handlers:
        handler.flush()

    records = [json.loads(line) for line in log_file.read_text(encoding='utf-8').splitlines()]
    retry = [record for record in records if record['message'] == "Retrying 20004/0"]
    assert len(retry) == 1
    assert retry[0]['range_id'] == 20000
    assert retry[0]['level'] == "WARNING"
    assert not any(record['logger'] == "aiohttp.client" for record in records)


def test_errors_go_to_separate_file(tmp_path, restore_root_logger):
    log_file = tmp_path / "crawler.log"
    setup_logging(LoggingConfig(file=str(log_file)))

    logging.getLogger("bffgraph.crawler.pipeline").error("Could not submit range 0")
    logging.getLogger("bffgraph.crawler.pipeline").info("Requesting an id range")
    for handler in logging.getLogger().handlers:
        handler.flush()

    errors = (tmp_path / "errors.log").read_text(encoding='utf-8')
    assert "Could not submit range 0" in errors
    assert "Requesting an id range" not in errors
    assert "Requesting an id range" in log_file.read_text(encoding='utf-8')
