# lodging-media - Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from lodging_media.core.ports.events import MediaEvent, MediaEventKind, MediaEventSink
from lodging_media.core.ports.storage import (
    IntegrityError,
    KeyExistsError,
    KeyNotFoundError,
    ObjectStorePort,
    StorageError,
    StoredObject,
    Visibility,
)
from lodging_media.core.ports.time import TimePort

__all__ = [
    # Object store
    "IntegrityError",
    "KeyExistsError",
    "KeyNotFoundError",
    "ObjectStorePort",
    "StorageError",
    "StoredObject",
    "Visibility",
    # Events
    "MediaEvent",
    "MediaEventKind",
    "MediaEventSink",
    # Time
    "TimePort",
]
