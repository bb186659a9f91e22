"""
Media Event Sink Adapters.

Receivers for pipeline diagnostic events (orphaned objects, rendition
failures, reorder failures).

- LoggingEventSink: writes each event to the log
- RecordingEventSink: logs and keeps events in memory for assertions
- NullEventSink: discards everything
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from lodging_media.core.ports.events import MediaEvent, MediaEventKind

logger = logging.getLogger(__name__)


@dataclass
class LoggingEventSink:
    """Event sink that logs instead of publishing anywhere."""

    log_level: int = logging.WARNING
    max_keys_logged: int = 20

    def emit(self, event: MediaEvent) -> None:
        shown = list(event.keys[: self.max_keys_logged])
        extra = len(event.keys) - len(shown)
        logger.log(
            self.log_level,
            "[media-event] %s op=%s owner=%s/%s keys=%s%s reason=%s",
            event.kind.value,
            event.operation,
            event.owner_kind or "-",
            event.owner_id or "-",
            shown,
            f" (+{extra} more)" if extra > 0 else "",
            event.reason,
        )


@dataclass
class RecordingEventSink(LoggingEventSink):
    """
    Event sink that keeps every event in memory.

    For local development and tests.
    """

    events: list[MediaEvent] = field(default_factory=list)

    def emit(self, event: MediaEvent) -> None:
        self.events.append(event)
        super().emit(event)

    def of_kind(self, kind: MediaEventKind) -> list[MediaEvent]:
        """Events of one kind, in emission order."""
        return [e for e in self.events if e.kind == kind]

    def orphaned_keys(self) -> list[str]:
        """Every key reported as left behind by a failed cleanup."""
        keys: list[str] = []
        for event in self.of_kind(MediaEventKind.ORPHANED_OBJECTS):
            keys.extend(event.keys)
        return keys

    def clear(self) -> None:
        self.events.clear()


class NullEventSink:
    """Discards events."""

    def emit(self, event: MediaEvent) -> None:
        return None
