"""
Structured logging configuration for the LoanView advisor

JSON logs for the file sink, readable lines for the console, and a per-turn
trace id (plus the conversation's session id) carried in context variables
so every event logged while a turn is processed can be correlated.
"""

import logging
import json
import os
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from contextvars import ContextVar


# One trace id per processed turn; session id scopes the whole conversation
trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
session_id_var: ContextVar[Optional[str]] = ContextVar("session_id", default=None)


class StructuredJSONFormatter(logging.Formatter):
    """
    Emit each record as one JSON object.

    Keys: timestamp (UTC, ISO 8601), level, logger, trace_id, session_id,
    event, message, and when present component, details and exception.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "trace_id": trace_id_var.get(),
            "session_id": session_id_var.get(),
            "event": getattr(record, "event", "log"),
            "message": record.getMessage(),
        }

        if hasattr(record, "component"):
            entry["component"] = record.component

        if hasattr(record, "details"):
            entry["details"] = record.details

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Console formatter.

    Example: 2025-01-15 10:30:45 [INFO] loanview.core.interview (interview): interview_step_rejected
    """

    def format(self, record: logging.LogRecord) -> str:
        base = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

        if hasattr(record, "component"):
            base = f"%(asctime)s [%(levelname)s] %(name)s ({record.component}): %(message)s"

        if hasattr(record, "details"):
            base += f" {record.details}"

        formatter = logging.Formatter(base, datefmt="%Y-%m-%d %H:%M:%S")
        return formatter.format(record)


def setup_logging(log_file: Optional[str] = "logs/loanview.log", level: str = "INFO", json_logs: bool = True):
    """
    Configure the root logger.

    Args:
        log_file: Path to the log file; None or "" disables the file sink
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: JSON formatter for the file sink when True, readable lines otherwise

    Returns:
        The configured root logger
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    logger = logging.getLogger()
    logger.setLevel(numeric_level)

    # Avoid duplicate handlers when called twice (tests, reloads)
    logger.handlers.clear()

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(StructuredJSONFormatter() if json_logs else HumanReadableFormatter())
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(numeric_level)
    console_handler.setFormatter(HumanReadableFormatter())
    logger.addHandler(console_handler)

    return logger


class TraceContext:
    """
    Context manager binding a trace id (and optionally a session id) to the current turn.

    Usage:
        with TraceContext(session_id="conv_1") as trace_id:
            log_event(logger, "utterance_received", "assembler", {...})
    """

    def __init__(self, trace_id: Optional[str] = None, session_id: Optional[str] = None):
        self.trace_id = trace_id or str(uuid.uuid4())
        self.session_id = session_id
        self._tokens = []

    def __enter__(self):
        self._tokens.append((trace_id_var, trace_id_var.set(self.trace_id)))
        if self.session_id is not None:
            self._tokens.append((session_id_var, session_id_var.set(self.session_id)))
        return self.trace_id

    def __exit__(self, *args):
        while self._tokens:
            var, token = self._tokens.pop()
            var.reset(token)


def log_event(
    logger: logging.Logger,
    event: str,
    component: str = "engine",
    details: Optional[Dict[str, Any]] = None,
    level: str = "INFO"
):
    """
    Log a structured event.

    Args:
        logger: Logger instance to use
        event: Event name (e.g. 'utterance_received', 'interview_step_rejected')
        component: Emitting component (e.g. 'classifier', 'interview', 'evaluator')
        details: Extra structured data
        level: Log level name

    Example:
        log_event(logger, "interview_step_rejected", "interview", {
            "step": "creditScore",
            "hint": "Credit score must be between 300 and 900."
        }, level="WARNING")
    """
    extra = {"event": event, "component": component}
    if details:
        extra["details"] = details

    logger.log(getattr(logging, level.upper(), logging.INFO), event, extra=extra)


def get_current_trace_id() -> Optional[str]:
    """Return the trace id of the turn being processed, if any"""
    return trace_id_var.get()
