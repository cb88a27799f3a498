"""
Structured relay events with pluggable sinks.

Handlers describe what happened (request received, fallback used, provider
failed) by emitting events. Where those events go is decided once, when the
application is built: stdout, the logging pipeline, an in-memory EventStore,
or any callable taking the event dict.
"""

from __future__ import annotations

import json
import sys
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from logging_setup import Component as LogComponent, get_logger

EventSink = Callable[[Dict[str, Any]], None]

DEFAULT_PII = {"contains_pii": False, "fields": [], "handling": "none"}

logger = get_logger(LogComponent.OBSERVABILITY)


class Component(str, Enum):
    """Event-emitting components."""

    RELAY_SERVER = "relay_server"
    CHAT = "chat"
    TTS = "tts"
    VOICE_DESIGN = "voice_design"
    STT = "stt"


class Severity(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


def stdout_sink(event: Dict[str, Any]) -> None:
    """Write the event as one JSON line to stdout."""
    sys.stdout.write(json.dumps(event, ensure_ascii=False, default=str))
    sys.stdout.write("\n")
    sys.stdout.flush()


class LoggingSink:
    """Route events through logging_setup so they share the log stream."""

    _LEVELS = {
        Severity.DEBUG.value: "debug",
        Severity.INFO.value: "info",
        Severity.WARN.value: "warning",
        Severity.ERROR.value: "error",
    }

    def __init__(self, component: LogComponent = LogComponent.OBSERVABILITY):
        self._logger = get_logger(component)

    def __call__(self, event: Dict[str, Any]) -> None:
        fields = {k: v for k, v in event.items() if k not in ("event_type", "severity", "component")}
        log = getattr(self._logger, self._LEVELS.get(event.get("severity"), "info"))
        log(event["event_type"], event_component=event.get("component"), **fields)


class EventEmitter:
    """Builds event envelopes and fans them out to sinks."""

    def __init__(self, component: Component, sinks: Optional[Iterable[EventSink]] = None):
        self.component = component
        self.sinks: List[EventSink] = list(sinks) if sinks is not None else [stdout_sink]

    def for_component(self, component: Component) -> "EventEmitter":
        """Same sinks, different component tag."""
        emitter = EventEmitter(component, sinks=())
        emitter.sinks = self.sinks
        return emitter

    def emit(
        self,
        event_type: str,
        request_id: str,
        severity: Severity = Severity.INFO,
        correlation_id: Optional[str] = None,
        pii: Optional[Dict[str, Any]] = None,
        **kwargs: Any,
    ) -> Dict[str, Any]:
        """
        Emit a structured event.

        Args:
            event_type: Stable event type string (e.g. "chat.fallback")
            request_id: Request identifier assigned by the relay middleware
            severity: Event severity level
            correlation_id: Optional correlation ID, defaults to request_id
            pii: PII metadata dict with contains_pii, fields, handling
            **kwargs: Event-specific fields

        A sink that raises is logged and skipped; emitting never fails a request.
        """
        event = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "request_id": request_id,
            "component": self.component.value,
            "event_type": event_type,
            "severity": severity.value,
            "correlation_id": correlation_id or request_id,
            "pii": pii or DEFAULT_PII,
        }
        event.update(kwargs)

        for sink in self.sinks:
            try:
                sink(event)
            except Exception as e:
                logger.warning(
                    "Event sink failed",
                    event_type=event_type,
                    error=str(e),
                    error_type=type(e).__name__,
                )
        return event
