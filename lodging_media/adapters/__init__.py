"""
Adapters - concrete implementations of the core ports.

create_object_store() picks the backend named in the store rules.
"""

from __future__ import annotations

from lodging_media.adapters.clock import FrozenClock, SystemClock
from lodging_media.adapters.events import LoggingEventSink, NullEventSink, RecordingEventSink
from lodging_media.adapters.local_storage import LocalFileStorage, create_local_storage
from lodging_media.adapters.memory_store import InMemoryObjectStore
from lodging_media.adapters.s3_store import S3ObjectStore, create_s3_store
from lodging_media.core.ports.storage import ObjectStorePort
from lodging_media.rules.models import MediaRules


def create_object_store(rules: MediaRules) -> ObjectStorePort:
    """Build the object store adapter selected by rules.store.backend."""
    if rules.store.backend == "local":
        return create_local_storage(
            default_path=rules.store.local_path,
            signing_secret=rules.urls.signing_secret,
        )
    return create_s3_store(rules.store)


__all__ = [
    "FrozenClock",
    "InMemoryObjectStore",
    "LocalFileStorage",
    "LoggingEventSink",
    "NullEventSink",
    "RecordingEventSink",
    "S3ObjectStore",
    "SystemClock",
    "create_local_storage",
    "create_object_store",
    "create_s3_store",
]
