"""Tests for the rich logging setup."""

import logging

from rich.logging import RichHandler

from repost.logs import configure_logging


class TestConfigureLogging:
    def test_installs_single_rich_handler(self):
        """
        Given configure_logging has been called before
        When it is called again with another level
        Then the repost logger still has one RichHandler and the new level
        """
        configure_logging("info")
        configure_logging("ERROR")

        logger = logging.getLogger("repost")
        handlers = [h for h in logger.handlers if isinstance(h, RichHandler)]
        assert len(handlers) == 1
        assert logger.level == logging.ERROR

    def test_child_loggers_propagate(self):
        """
        Given a module logger under repost
        When logging is configured
        Then records still propagate to the root logger
        """
        configure_logging("WARNING")

        assert logging.getLogger("repost.store").propagate is True
        assert logging.getLogger("repost").propagate is True
