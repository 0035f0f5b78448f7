"""Tests for logging helpers."""

import logging

import pytest

from opslens.core.logs import ROOT_LOGGER_NAME, configure_logging, get_logger, log_exception


class TestGetLogger:
    @pytest.mark.core
    def test_namespaces_foreign_names(self) -> None:
        assert get_logger("myapp.jobs").name == "opslens.myapp.jobs"

    @pytest.mark.core
    def test_keeps_names_inside_namespace(self) -> None:
        assert get_logger("opslens.core.service").name == "opslens.core.service"
        assert get_logger("opslens").name == "opslens"


class TestLogException:
    @pytest.mark.core
    def test_logs_error_with_traceback_and_attributes(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.ERROR, logger=ROOT_LOGGER_NAME):
            try:
                raise RuntimeError("boom")
            except RuntimeError:
                log_exception("Write failed", route="/api/games")

        (record,) = caplog.records
        assert record.getMessage() == "Write failed"
        assert record.exc_info is not None
        assert record.route == "/api/games"  # type: ignore[attr-defined]


class TestConfigureLogging:
    @pytest.mark.core
    def test_installs_single_handler(self) -> None:
        root = logging.getLogger(ROOT_LOGGER_NAME)
        try:
            first = configure_logging(logging.DEBUG)
            second = configure_logging("WARNING")

            assert first not in root.handlers
            assert second in root.handlers
            assert root.level == logging.WARNING
        finally:
            for handler in list(root.handlers):
                if getattr(handler, "_opslens_default", False):
                    root.removeHandler(handler)
            root.setLevel(logging.NOTSET)
