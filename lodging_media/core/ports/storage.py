"""
Object Store Port Interface.

Protocol-based interface for the remote object store that backs every
media asset. Implementations: S3 (boto3) and local filesystem.

The store offers no multi-object transaction. Each call succeeds or fails
on its own; callers compose them into best-effort sequences.

Invariants:
- Keys are immutable once written: content is never overwritten in place
- Metadata may be replaced without touching content
- delete_many is idempotent and never fails on missing keys
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Protocol


class Visibility(str, Enum):
    """Access level for a stored object."""

    PRIVATE = "private"
    PUBLIC = "public"


@dataclass(frozen=True)
class StoredObject:
    """Metadata for a stored object."""

    key: str
    size_bytes: int
    content_type: str
    etag: str
    metadata: dict[str, str] = field(default_factory=dict)
    sha256: str | None = None  # Only backends that hash content locally


class ObjectStorePort(Protocol):
    """
    Object store port interface.

    Every method is a single remote call (or its local equivalent).
    Retry policy belongs to the SDK, configured once when the adapter
    is built; nothing here retries.
    """

    def put(
        self,
        key: str,
        data: bytes | BinaryIO,
        content_type: str,
        *,
        visibility: Visibility = Visibility.PRIVATE,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        """
        Store object bytes under the given key.

        Raises:
            StorageError: If the store rejects the write
        """
        ...

    def copy(
        self,
        source_key: str,
        dest_key: str,
        *,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> None:
        """
        Copy an object (content and metadata) to a new key.

        Raises:
            KeyNotFoundError: If source_key doesn't exist
            StorageError: If the copy fails
        """
        ...

    def delete_many(self, keys: list[str]) -> None:
        """
        Delete a batch of keys in one call.

        Missing keys are ignored.

        Raises:
            StorageError: If the store rejects the batch
        """
        ...

    def get(self, key: str) -> tuple[bytes, StoredObject]:
        """
        Retrieve object bytes by key.

        Raises:
            KeyNotFoundError: If key doesn't exist
        """
        ...

    def get_metadata(self, key: str) -> StoredObject | None:
        """Get object metadata without fetching bytes, or None if absent."""
        ...

    def list_keys(self, prefix: str) -> list[str]:
        """List every key under a prefix, sorted."""
        ...

    def replace_metadata(
        self,
        key: str,
        attrs: dict[str, str],
        *,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> None:
        """
        Replace user metadata on an existing object, content unchanged.

        Attributes not named in attrs are preserved. Stores without an
        in-place update implement this as a copy onto the same key, so the
        visibility is re-applied.

        Raises:
            KeyNotFoundError: If key doesn't exist
            StorageError: If the update fails
        """
        ...

    def sign_url(self, key: str, expires_in_seconds: int) -> str:
        """
        Produce a time-bounded GET URL for key.

        Signing is local; no round-trip to the store.
        """
        ...

    def origin_url(self, key: str) -> str:
        """Unsigned URL served directly by the store's own origin."""
        ...


class StorageError(Exception):
    """
    Base class for storage errors.

    transient=True marks failures (throttling, timeouts, 5xx) that are safe
    to retry at the batch level.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        transient: bool = False,
    ) -> None:
        self.key = key
        self.transient = transient
        super().__init__(message)


class KeyExistsError(StorageError):
    """Raised when attempting to write to an existing key (immutability violation)."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Key already exists (immutable): {key}", key=key)


class KeyNotFoundError(StorageError):
    """Raised when key doesn't exist."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Key not found: {key}", key=key)


class IntegrityError(StorageError):
    """Raised when data integrity check fails."""

    def __init__(self, expected: str, actual: str, *, key: str | None = None) -> None:
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Integrity check failed: expected {expected}, got {actual}",
            key=key,
        )
