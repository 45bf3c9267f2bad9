"""ChaosLab Event Sinks.

Pipelines and the tripwire report what they do (faults applied, retries,
recoveries, loop arrests, fallbacks) to an injected sink instead of a
process-wide hook. The default sink discards everything.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class EventKind:
    """Event kinds emitted by the core."""
    FAULT = "fault"
    RETRY = "retry"
    RECOVERED = "recovered"
    LOOP_ARREST = "loop_arrest"
    FALLBACK = "fallback"


@dataclass
class ChaosEvent:
    """A recorded chaos event."""

    kind: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind,
            "sequence": self.sequence,
            "timestamp": self.timestamp,
            "data": dict(self.data),
        }


class ChaosEventSink(ABC):
    """Receiver for chaos events."""

    @abstractmethod
    def record(self, event_kind: str, data: Optional[Dict[str, Any]] = None) -> None:
        """Handle a chaos event."""
        pass


class NullEventSink(ChaosEventSink):
    """Sink that drops every event."""

    def record(self, event_kind: str, data: Optional[Dict[str, Any]] = None) -> None:
        return None


class RecordingEventSink(ChaosEventSink):
    """Keeps an ordered, in-memory event log for one run."""

    def __init__(self) -> None:
        self._events: List[ChaosEvent] = []

    def record(self, event_kind: str, data: Optional[Dict[str, Any]] = None) -> None:
        self._events.append(ChaosEvent(
            kind=event_kind,
            data=dict(data or {}),
            sequence=len(self._events) + 1,
        ))

    @property
    def events(self) -> List[ChaosEvent]:
        return list(self._events)

    def get_event_log(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._events]

    def count(self, event_kind: str) -> int:
        wanted = event_kind.lower()
        return sum(1 for e in self._events if e.kind.lower() == wanted)

    def counts(self) -> Dict[str, int]:
        return dict(Counter(e.kind for e in self._events))

    def clear(self) -> None:
        self._events.clear()


class LoggingEventSink(ChaosEventSink):
    """Forwards events to the structured log, optionally teeing to another sink."""

    def __init__(self, inner: Optional[ChaosEventSink] = None, run_id: Optional[str] = None) -> None:
        self._inner = inner
        self._run_id = run_id

    def record(self, event_kind: str, data: Optional[Dict[str, Any]] = None) -> None:
        logger.info("Chaos event", event_kind=event_kind, run_id=self._run_id, **(data or {}))
        if self._inner is not None:
            self._inner.record(event_kind, data)


NULL_SINK = NullEventSink()


def ensure_sink(sink: Optional[ChaosEventSink]) -> ChaosEventSink:
    return sink if sink is not None else NULL_SINK
