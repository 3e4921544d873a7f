import json
import logging

from loanview.logging_config import (
    HumanReadableFormatter,
    StructuredJSONFormatter,
    TraceContext,
    get_current_trace_id,
    log_event,
    setup_logging,
)


class _Capture(logging.Handler):
    def __init__(self):
        super().__init__()
        self.records = []

    def emit(self, record):
        self.records.append(record)


def _capturing_logger(name):
    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    handler = _Capture()
    logger.handlers = [handler]
    return logger, handler


def test_trace_context_sets_and_resets_ids():
    assert get_current_trace_id() is None
    with TraceContext(trace_id="t-1", session_id="conv_1") as trace_id:
        assert trace_id == "t-1"
        assert get_current_trace_id() == "t-1"
        with TraceContext() as inner:
            assert get_current_trace_id() == inner != "t-1"
        assert get_current_trace_id() == "t-1"
    assert get_current_trace_id() is None


def test_json_formatter_includes_event_and_context():
    logger, handler = _capturing_logger("tests.json")

    with TraceContext(trace_id="t-2", session_id="conv_9"):
        log_event(logger, "interview_completed", "interview", {"lenders": 3})
        entry = json.loads(StructuredJSONFormatter().format(handler.records[0]))

    assert entry["event"] == "interview_completed"
    assert entry["component"] == "interview"
    assert entry["details"] == {"lenders": 3}
    assert entry["trace_id"] == "t-2"
    assert entry["session_id"] == "conv_9"
    assert entry["level"] == "INFO"


def test_log_event_level_and_readable_format():
    logger, handler = _capturing_logger("tests.readable")

    log_event(logger, "generator_failed", "generator", {"attempt": 1}, level="WARNING")
    record = handler.records[0]
    line = HumanReadableFormatter().format(record)

    assert record.levelno == logging.WARNING
    assert "(generator): generator_failed" in line
    assert "{'attempt': 1}" in line


def test_setup_logging_writes_json_file(tmp_path):
    log_file = tmp_path / "logs" / "loanview.log"
    previous_level = logging.getLogger().level
    root = setup_logging(log_file=str(log_file), level="DEBUG", json_logs=True)
    try:
        logging.getLogger("tests.file").info("hello")
        for handler in root.handlers:
            handler.flush()
        lines = log_file.read_text(encoding="utf-8").strip().splitlines()
        assert json.loads(lines[-1])["message"] == "hello"
    finally:
        for handler in list(root.handlers):
            handler.close()
            root.removeHandler(handler)
        root.setLevel(previous_level)
