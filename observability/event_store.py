"""
In-memory store for relay events.

An EventStore is itself an event sink: pass it to EventEmitter(sinks=[...])
and every emitted event lands here, queryable by request_id or event_type.
Tests use it to assert handler behaviour without reading log output.
"""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional, Tuple


def _event_time(event: Dict[str, Any]) -> datetime:
    ts = event.get("ts")
    if isinstance(ts, str):
        return datetime.fromisoformat(ts.replace("Z", "+00:00"))
    return datetime.now(timezone.utc)


class EventStore:
    """
    Bounded FIFO of event envelopes.

    Oldest events are dropped once max_events is reached. Stored events are
    copies, so a sink further down the list cannot alter them.
    """

    def __init__(self, max_events: int = 10000):
        self._max_events = max_events
        self._entries: Deque[Tuple[datetime, Dict[str, Any]]] = deque(maxlen=max_events)

    def __call__(self, event: Dict[str, Any]) -> None:
        self.store(event)

    def __len__(self) -> int:
        return len(self._entries)

    def store(self, event: Dict[str, Any]) -> None:
        """Keep a copy of an envelope as produced by EventEmitter."""
        self._entries.append((_event_time(event), dict(event)))

    def query(
        self,
        request_id: Optional[str] = None,
        event_type: Optional[str] = None,
        component: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Events matching every given filter, oldest first.

        since/until bound the event timestamp inclusively.
        """
        matches: List[Dict[str, Any]] = []
        for ts, event in self._entries:
            if request_id and event.get("request_id") != request_id:
                continue
            if event_type and event.get("event_type") != event_type:
                continue
            if component and event.get("component") != component:
                continue
            if since and ts < since:
                continue
            if until and ts > until:
                continue
            matches.append(dict(event))
            if limit and len(matches) >= limit:
                break
        return matches

    def event_types(self, request_id: Optional[str] = None) -> List[str]:
        """Event types in emission order, optionally for one request."""
        return [
            event.get("event_type", "unknown")
            for _, event in self._entries
            if request_id is None or event.get("request_id") == request_id
        ]

    def clear(self) -> None:
        self._entries.clear()

    def get_stats(self) -> Dict[str, Any]:
        oldest = self._entries[0][0].isoformat() if self._entries else None
        newest = self._entries[-1][0].isoformat() if self._entries else None
        return {
            "total_events": len(self._entries),
            "max_events": self._max_events,
            "oldest_event_ts": oldest,
            "newest_event_ts": newest,
        }
