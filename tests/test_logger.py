"""Tests for the logger module."""


import pytest

from linkbackup.config import LoggingConfig
from linkbackup.logger import (
    LOGGER_NAME,
    ErrorCode,
    LoggingError,
    get_error_guidance,
    log_run_completion,
    log_run_error,
    log_run_start,
    log_rsync_output,
    log_section,
    setup_run_logging,
    close_run_logging,
)


class TestSetupRunLogging:

    def test_file_and_console(self, tmp_path):
        logger = setup_run_logging(
            LoggingConfig(log_dir=tmp_path, console=True),
            tmp_path / "run.log",
        )
        assert logger.name == LOGGER_NAME
        assert len(logger.handlers) == 2

    def test_console_disabled(self, tmp_path):
        logger = setup_run_logging(
            LoggingConfig(log_dir=tmp_path, console=False),
            tmp_path / "run.log",
        )
        assert len(logger.handlers) == 1

    def test_creates_log_directory(self, tmp_path):
        log_file = tmp_path / "nested" / "logs" / "run.log"
        setup_run_logging(LoggingConfig(console=False), log_file)
        assert log_file.parent.is_dir()

    def test_appends_to_existing_log(self, tmp_path):
        log_file = tmp_path / "run.log"
        log_file.write_text("earlier line\n")
        logger = setup_run_logging(LoggingConfig(console=False), log_file)
        logger.info("later line")
        close_run_logging()
        content = log_file.read_text()
        assert content.startswith("earlier line\n")
        assert "later line" in content

    def test_invalid_level(self, tmp_path):
        with pytest.raises(LoggingError):
            setup_run_logging(LoggingConfig(level="LOUD", console=False), tmp_path / "run.log")

    def test_level_filters_file(self, tmp_path):
        log_file = tmp_path / "run.log"
        logger = setup_run_logging(LoggingConfig(level="ERROR", console=False), log_file)
        logger.info("quiet")
        logger.error("loud")
        close_run_logging()
        content = log_file.read_text()
        assert "quiet" not in content
        assert "loud" in content

    def test_repeated_setup_does_not_duplicate(self, tmp_path):
        setup_run_logging(LoggingConfig(console=False), tmp_path / "a.log")
        logger = setup_run_logging(LoggingConfig(console=False), tmp_path / "b.log")
        assert len(logger.handlers) == 1


class TestLogHelpers:

    @pytest.fixture
    def logger(self, tmp_path):
        return setup_run_logging(LoggingConfig(level="DEBUG", console=False), tmp_path / "run.log")

    def read(self, tmp_path):
        close_run_logging()
        return (tmp_path / "run.log").read_text()

    def test_section_marker(self, logger, tmp_path):
        log_section(logger, "creating snapshot")
        assert "===== creating snapshot =====" in self.read(tmp_path)

    def test_run_start(self, logger, tmp_path):
        log_run_start(logger, "/src", "host:/dst", "2025-01-01T00-00-00")
        content = self.read(tmp_path)
        assert "===== backup 2025-01-01T00-00-00 =====" in content
        assert "Source: /src" in content
        assert "Target: host:/dst" in content

    def test_run_completion_without_basis(self, logger, tmp_path):
        log_run_completion(logger, 1.5, "/dst/hourly/x")
        content = self.read(tmp_path)
        assert "full copy" in content
        assert "1.50 seconds" in content

    def test_run_error_includes_code_and_guidance(self, logger, tmp_path):
        log_run_error(logger, Exception("boom"), "snapshot creation", ErrorCode.TRANSFER_FAILED)
        content = self.read(tmp_path)
        assert "[E4001] Backup failed during snapshot creation: boom" in content
        assert get_error_guidance(ErrorCode.TRANSFER_FAILED) in content

    def test_rsync_output_at_debug(self, logger, tmp_path):
        log_rsync_output(logger, "line one\nline two\n")
        content = self.read(tmp_path)
        assert "rsync: line one" in content
        assert "rsync: line two" in content

    def test_rsync_output_blank_ignored(self, logger, tmp_path):
        log_rsync_output(logger, "  \n")
        assert "rsync:" not in self.read(tmp_path)


def test_every_error_code_has_guidance():
    for code in ErrorCode:
        assert get_error_guidance(code)
