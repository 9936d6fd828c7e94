"""Common utilities and types for the lifecycle driver."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class EventSink(Protocol):
    """Receives structured progress events from the core.

    The core never configures logging itself; whatever owns the process
    decides where events go by choosing the sink.
    """

    def emit(self, event: str, **fields: Any) -> None:
        ...


def format_fields(fields: dict) -> str:
    """Render fields as space-separated key=value pairs in insertion order."""
    parts = []
    for key, value in fields.items():
        if value is None:
            continue
        text = str(value)
        if ' ' in text or text == '':
            text = repr(text)
        parts.append(f"{key}={text}")
    return ' '.join(parts)


class LoggingEventSink:
    """Forward events to a stdlib logger as 'event key=value ...' lines.

    Events named in error_events are logged at ERROR, everything else at
    INFO.
    """

    error_events = frozenset({'stage_failed', 'run_failed'})

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logging.getLogger('kube_driver.events')

    def emit(self, event: str, **fields: Any) -> None:
        level = logging.ERROR if event in self.error_events else logging.INFO
        rendered = format_fields(fields)
        self.log.log(level, f"{event} {rendered}" if rendered else event)


@dataclass
class RecordedEvent:
    """An event captured by RecordingEventSink."""
    event: str
    fields: dict = field(default_factory=dict)


class RecordingEventSink:
    """Keep events in memory (tests, JSON output)."""

    def __init__(self):
        self.events: list[RecordedEvent] = []

    def emit(self, event: str, **fields: Any) -> None:
        self.events.append(RecordedEvent(event=event, fields=dict(fields)))

    def names(self) -> list[str]:
        return [e.event for e in self.events]

    def find(self, event: str) -> list[RecordedEvent]:
        return [e for e in self.events if e.event == event]


class FanoutEventSink:
    """Send every event to several sinks."""

    def __init__(self, *sinks: EventSink):
        self.sinks = sinks

    def emit(self, event: str, **fields: Any) -> None:
        for sink in self.sinks:
            sink.emit(event, **fields)
