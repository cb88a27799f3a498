"""
Shared logging infrastructure for the character voice relay.

Every package (relay_server, providers, observability) logs through this module
so that all output is one JSON object per line.

Features:
- JSON-formatted structured logs
- Configurable log levels
- Request ID correlation across handler and provider logs
- Component tagging
- PII-aware logging helpers
"""

import json
import logging
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class Component(str, Enum):
    """System components for log tagging."""
    RELAY_SERVER = "relay_server"
    CHAT = "chat"
    TTS = "tts"
    VOICE_DESIGN = "voice_design"
    STT = "stt"
    LLM_PROVIDER = "llm_provider"
    VOICE_PROVIDER = "voice_provider"
    OBSERVABILITY = "observability"


# Attributes every LogRecord carries; anything else came in through `extra`.
_RESERVED_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "thread", "threadName", "taskName", "exc_info", "exc_text", "stack_info",
    "component", "request_id", "message",
})


class JSONFormatter(logging.Formatter):
    """
    Formats a record as a single JSON line:
    timestamp, severity, component, request_id (when bound), message and
    any keyword fields passed to StructuredLogger.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "severity": record.levelname.lower(),
            "component": getattr(record, "component", record.name),
            "message": record.getMessage(),
        }

        if hasattr(record, "request_id"):
            log_data["request_id"] = record.request_id

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)


class StructuredLogger:
    """
    Wrapper around Python's logging with keyword fields.

    Usage:
        logger = StructuredLogger(Component.CHAT, request_id="req_123")
        logger.info("Completion received", text_length=42)
        logger.debug_pii("Prompt", prompt="...")
    """

    def __init__(
        self,
        component: str | Component,
        request_id: Optional[str] = None,
        logger_name: Optional[str] = None,
    ):
        self.component = component.value if isinstance(component, Component) else component
        self.request_id = request_id
        self.logger = logging.getLogger(logger_name or self.component)

    def _log(
        self,
        level: int,
        message: str,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs,
    ):
        exc_info = kwargs.pop("exc_info", None)
        stack_info = kwargs.pop("stack_info", None)
        stacklevel = kwargs.pop("stacklevel", 1)

        extra = {"component": self.component, **kwargs}

        if self.request_id:
            extra["request_id"] = self.request_id

        if pii:
            extra["pii"] = pii

        self.logger.log(
            level,
            message,
            exc_info=exc_info,
            stack_info=stack_info,
            stacklevel=stacklevel,
            extra=extra,
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def exception(self, message: str, **kwargs):
        """Log an error message with the active exception attached."""
        kwargs.setdefault("exc_info", True)
        self._log(logging.ERROR, message, **kwargs)

    def debug_pii(self, message: str, **pii_fields):
        """
        Log debug with PII fields explicitly marked.

        Example:
            logger.debug_pii("Prompt built", character="Bob", prompt="You see a dragon.")
        """
        self._log(logging.DEBUG, message, pii=pii_fields)

    def with_request(self, request_id: str) -> "StructuredLogger":
        """Create a new logger bound to a request ID."""
        return StructuredLogger(
            self.component,
            request_id=request_id,
            logger_name=self.logger.name,
        )


def setup_logging(level: str = "INFO", use_json: bool = True) -> None:
    """
    Configure the root logger. Call once at application startup.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        use_json: Use JSONFormatter (True) or a plain text format (False)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    if use_json:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(levelname)s - %(name)s - %(message)s")
        )
    root_logger.addHandler(console_handler)

    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))


def get_logger(
    component: str | Component,
    request_id: Optional[str] = None,
) -> StructuredLogger:
    """
    Get a structured logger for a component.

    Example:
        logger = get_logger(Component.RELAY_SERVER)
        logger.info("Relay started", port=3001)
    """
    return StructuredLogger(component, request_id=request_id)
