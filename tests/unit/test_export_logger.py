"""
Unit tests for src/common/logger.py
"""

import logging

from src.common.logger import get_logger, setup_logging


class TestExportLogger:

    def test_job_stage_and_page_tags(self, caplog):
        log = get_logger("test.export", job_id="3f2a9c1e-7777-4444", stage="generate")

        with caplog.at_level(logging.DEBUG, logger="test.export"):
            log.info("Started")
            log.for_stage("rasterize").for_page(3).debug("Rasterized")

        assert caplog.messages == [
            "[job:3f2a9c1e] [generate] Started",
            "[job:3f2a9c1e] [rasterize] [page 4] Rasterized",
        ]

    def test_untagged_message_passes_through(self, caplog):
        with caplog.at_level(logging.INFO, logger="test.export"):
            get_logger("test.export").warning("plain")

        assert caplog.messages == ["plain"]


def test_setup_logging_debug_overrides_level():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    try:
        setup_logging("WARNING", debug=True)
        assert root.level == logging.DEBUG
        assert logging.getLogger("httpx").level == logging.INFO
    finally:
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
        for name in ("httpx", "httpcore", "asyncio"):
            logging.getLogger(name).setLevel(logging.NOTSET)
