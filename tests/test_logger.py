"""Tests for logger setup."""

import io

import pytest

from launchfetch.logger import logger, setup_logger


@pytest.fixture
def console():
    stream = io.StringIO()
    yield stream
    logger.remove()


class TestSetupLogger:

    def test_console_level(self, console, monkeypatch):
        monkeypatch.delenv("LAUNCHFETCH_DEBUG", raising=False)
        monkeypatch.delenv("LAUNCHFETCH_LOG_FILE", raising=False)
        setup_logger(sink=console, enqueue=False, colorize=False)

        logger.debug("hidden detail")
        logger.info("[完成] done")

        output = console.getvalue()
        assert "hidden detail" not in output
        assert "INFO     | [完成] done" in output

    def test_debug_from_environment(self, console, monkeypatch):
        monkeypatch.setenv("LAUNCHFETCH_DEBUG", "1")
        monkeypatch.delenv("LAUNCHFETCH_LOG_FILE", raising=False)
        setup_logger(sink=console, enqueue=False, colorize=False)

        logger.debug("retry detail")

        assert "retry detail" in console.getvalue()

    def test_log_file_records_debug(self, console, tmp_path, monkeypatch):
        monkeypatch.delenv("LAUNCHFETCH_DEBUG", raising=False)
        log_file = tmp_path / "logs" / "launchfetch.log"
        setup_logger(sink=console, enqueue=False, colorize=False, log_file=log_file)

        logger.debug("[重试] lib-1")
        logger.warning("[完成] 1 failed")
        logger.remove()

        content = log_file.read_text(encoding="utf-8")
        assert "[重试] lib-1" in content
        assert "[完成] 1 failed" in content
        assert "[重试] lib-1" not in console.getvalue()

    def test_log_file_from_environment(self, console, tmp_path, monkeypatch):
        log_file = tmp_path / "env.log"
        monkeypatch.setenv("LAUNCHFETCH_LOG_FILE", str(log_file))
        setup_logger(sink=console, enqueue=False, colorize=False)

        logger.info("hello")
        logger.remove()

        assert "hello" in log_file.read_text(encoding="utf-8")
