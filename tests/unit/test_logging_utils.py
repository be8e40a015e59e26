"""Unit tests for logging helpers."""

import logging

from agentrunner.config import ObservabilitySettings, Settings
from agentrunner.runtime.events import EventType, LoggingEventSink, RunEvent
from agentrunner.utils import preview, setup_logging, setup_logging_from_settings
from agentrunner.utils.logging_utils import DEFAULT_PREVIEW_LENGTH, log_error, log_transfer


class TestSetupLogging:
    def test_console_only(self):
        logger = setup_logging("warning")
        try:
            assert logger.name == "agentrunner"
            assert logger.propagate is False
            assert len(logger.handlers) == 1
            assert logger.handlers[0].level == logging.WARNING
        finally:
            logger.handlers = []
            logger.propagate = True

    def test_file_handler(self, tmp_path):
        logger = setup_logging(logging.INFO, log_dir=tmp_path / "logs")
        try:
            logging.getLogger("agentrunner.runtime.runner").debug("step detail")
            for handler in logger.handlers:
                handler.flush()

            (log_file,) = (tmp_path / "logs").glob("agentrunner_*.log")
            assert "step detail" in log_file.read_text(encoding="utf-8")
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers = []
            logger.propagate = True

    def test_from_settings_applies_observability(self, tmp_path):
        settings = Settings(
            observability=ObservabilitySettings(log_level="ERROR", log_dir=str(tmp_path), log_preview_length=120)
        )
        logger = setup_logging_from_settings(settings)
        try:
            console = [h for h in logger.handlers if type(h) is logging.StreamHandler]
            assert console[0].level == logging.ERROR
            assert list(tmp_path.glob("agentrunner_*.log"))
            assert preview("x" * 300) == "x" * 120 + "... (truncated)"
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers = []
            logger.propagate = True
            setup_logging(preview_length=DEFAULT_PREVIEW_LENGTH).handlers = []
            logger.propagate = True


class TestHelpers:
    def test_preview_truncates(self):
        assert preview("x" * 20, 5) == "xxxxx... (truncated)"
        assert preview({"a": 1}) == '{"a": 1}'

    def test_log_transfer_and_error(self, caplog):
        logger = logging.getLogger("agentrunner.tests")
        with caplog.at_level(logging.INFO, logger="agentrunner.tests"):
            log_transfer(logger, "triage", "billing", "refund", isolated=True)
            log_error(logger, ValueError("bad"), context="step 2")

        assert "triage → billing (isolated)" in caplog.text
        assert "ValueError: bad" in caplog.text
        assert "Context: step 2" in caplog.text

    def test_event_sink_uses_configured_preview_length(self, caplog):
        logger = setup_logging(preview_length=100)
        logger.handlers = []
        logger.propagate = True
        try:
            with caplog.at_level(logging.INFO, logger="agentrunner.events"):
                LoggingEventSink()(RunEvent(type=EventType.TOOL_CALL_ENDED, run_id="r1", data={"text": "y" * 400}))

            assert "... (truncated)" in caplog.text
            assert "y" * 101 not in caplog.text
        finally:
            setup_logging(preview_length=DEFAULT_PREVIEW_LENGTH).handlers = []
            logger.propagate = True
