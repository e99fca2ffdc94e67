"""Tests for logging setup."""

import logging

from tiered_fileio.logging_config import _rotate_log_if_needed, get_logger, setup_logging


class TestGetLogger:
    def test_module_name_not_prefixed_twice(self):
        assert get_logger("tiered_fileio.io.mapping").name == "tiered_fileio.io.mapping"

    def test_foreign_name_nested_under_package(self):
        assert get_logger("embedding_app").name == "tiered_fileio.embedding_app"


class TestSetupLogging:
    def test_writes_to_log_dir(self, tmp_path):
        logger = setup_logging(tmp_path / "logs")

        get_logger("tiered_fileio.test").warning("hello from test")
        for handler in logger.handlers:
            handler.flush()

        log_file = tmp_path / "logs" / "tiered_fileio.log"
        assert "hello from test" in log_file.read_text()

    def test_verbose_stream_handler_level(self):
        logger = setup_logging(verbose=True)

        levels = [h.level for h in logger.handlers if isinstance(h, logging.StreamHandler)]
        assert levels == [logging.DEBUG]

    def test_replaces_existing_handlers(self):
        setup_logging()
        logger = setup_logging()

        assert len(logger.handlers) == 1


class TestRotation:
    def test_rotates_large_log(self, tmp_path):
        log_file = tmp_path / "tiered_fileio.log"
        log_file.write_text("x" * 100)
        (tmp_path / "tiered_fileio.log.1").write_text("older")

        _rotate_log_if_needed(log_file, max_bytes=10)

        assert not log_file.exists()
        assert (tmp_path / "tiered_fileio.log.1").read_text() == "x" * 100
        assert (tmp_path / "tiered_fileio.log.2").read_text() == "older"

    def test_small_log_untouched(self, tmp_path):
        log_file = tmp_path / "tiered_fileio.log"
        log_file.write_text("small")

        _rotate_log_if_needed(log_file, max_bytes=1024)

        assert log_file.read_text() == "small"
