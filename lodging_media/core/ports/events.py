"""
Media Event Port Interface.

Best-effort steps in the pipeline (rendition derivation, compensating
deletes, staging cleanup) swallow their secondary failures so the caller
sees one clear result. Those failures are still published here so that
orphaned objects can be found operationally.

Event kinds:
- rendition_failed: a rendition could not be derived, written, or copied
- orphaned_objects: a cleanup delete failed; keys lists what was left behind
- reorder_failed: a display-order update failed for one key
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Protocol


class MediaEventKind(str, Enum):
    """Diagnostic event type."""

    RENDITION_FAILED = "rendition_failed"
    ORPHANED_OBJECTS = "orphaned_objects"
    REORDER_FAILED = "reorder_failed"


@dataclass(frozen=True)
class MediaEvent:
    """A single diagnostic event."""

    kind: MediaEventKind
    keys: tuple[str, ...]
    reason: str
    operation: str
    owner_kind: str | None = None
    owner_id: str | None = None
    occurred_at: datetime = field(default_factory=lambda: datetime.now(UTC))


class MediaEventSink(Protocol):
    """Receiver for pipeline diagnostic events."""

    def emit(self, event: MediaEvent) -> None:
        """Publish an event. Must not raise."""
        ...
