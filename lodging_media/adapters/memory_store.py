"""
In-memory Object Store Adapter.

Implements the ObjectStorePort interface with a dict. Records every call
and can be told to fail specific operations, for development and tests.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass, replace
from typing import BinaryIO
from urllib.parse import quote, urlencode

from lodging_media.core.ports.storage import (
    KeyNotFoundError,
    StorageError,
    StoredObject,
    Visibility,
)


@dataclass
class _Entry:
    data: bytes
    obj: StoredObject
    visibility: Visibility


@dataclass
class _Failure:
    key: str | None  # None matches every key
    transient: bool
    remaining: int | None  # None fails forever


class InMemoryObjectStore:
    """
    Dict-backed ObjectStorePort.

    Unlike the filesystem store, put() and copy() overwrite, like S3.
    """

    def __init__(self, *, base_url: str = "https://store.test") -> None:
        self.base_url = base_url.rstrip("/")
        self._objects: dict[str, _Entry] = {}
        self._failures: dict[str, list[_Failure]] = {}
        self._signed = 0

        # Call log
        self.puts: list[str] = []
        self.copies: list[tuple[str, str]] = []
        self.delete_batches: list[list[str]] = []
        self.metadata_updates: list[str] = []

    # --- Failure injection ---

    def fail_on(
        self,
        operation: str,
        key: str | None = None,
        *,
        transient: bool = False,
        times: int | None = None,
    ) -> None:
        """
        Make an operation raise StorageError.

        operation is a method name (put, copy, delete_many, get,
        get_metadata, list_keys, replace_metadata). For copy the source key
        is matched; for delete_many a batch fails if it contains key.
        """
        self._failures.setdefault(operation, []).append(
            _Failure(key=key, transient=transient, remaining=times)
        )

    def clear_failures(self) -> None:
        self._failures.clear()

    def _check(self, operation: str, keys: list[str]) -> None:
        for failure in self._failures.get(operation, []):
            if failure.remaining == 0:
                continue
            if failure.key is not None and failure.key not in keys:
                continue
            if failure.remaining is not None:
                failure.remaining -= 1
            key = failure.key or (keys[0] if keys else None)
            raise StorageError(
                f"Injected {operation} failure", key=key, transient=failure.transient
            )

    # --- ObjectStorePort ---

    def put(
        self,
        key: str,
        data: bytes | BinaryIO,
        content_type: str,
        *,
        visibility: Visibility = Visibility.PRIVATE,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        self._check("put", [key])
        body = data if isinstance(data, bytes) else data.read()
        sha256_hex = hashlib.sha256(body).hexdigest()
        obj = StoredObject(
            key=key,
            size_bytes=len(body),
            content_type=content_type,
            etag=f'"{sha256_hex[:32]}"',
            metadata=dict(metadata or {}),
            sha256=sha256_hex,
        )
        self._objects[key] = _Entry(data=body, obj=obj, visibility=visibility)
        self.puts.append(key)
        return obj

    def copy(
        self,
        source_key: str,
        dest_key: str,
        *,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> None:
        self._check("copy", [source_key])
        entry = self._objects.get(source_key)
        if entry is None:
            raise KeyNotFoundError(source_key)
        self._objects[dest_key] = _Entry(
            data=entry.data,
            obj=replace(entry.obj, key=dest_key, metadata=dict(entry.obj.metadata)),
            visibility=visibility,
        )
        self.copies.append((source_key, dest_key))

    def delete_many(self, keys: list[str]) -> None:
        self._check("delete_many", list(keys))
        self.delete_batches.append(list(keys))
        for key in keys:
            self._objects.pop(key, None)

    def get(self, key: str) -> tuple[bytes, StoredObject]:
        self._check("get", [key])
        entry = self._objects.get(key)
        if entry is None:
            raise KeyNotFoundError(key)
        return entry.data, entry.obj

    def get_metadata(self, key: str) -> StoredObject | None:
        self._check("get_metadata", [key])
        entry = self._objects.get(key)
        return entry.obj if entry else None

    def list_keys(self, prefix: str) -> list[str]:
        self._check("list_keys", [prefix])
        return sorted(k for k in self._objects if k.startswith(prefix))

    def replace_metadata(
        self,
        key: str,
        attrs: dict[str, str],
        *,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> None:
        self._check("replace_metadata", [key])
        entry = self._objects.get(key)
        if entry is None:
            raise KeyNotFoundError(key)
        entry.obj = replace(entry.obj, metadata={**entry.obj.metadata, **attrs})
        entry.visibility = visibility
        self.metadata_updates.append(key)

    def sign_url(self, key: str, expires_in_seconds: int) -> str:
        # Counter keeps two signatures for the same key distinct
        self._signed += 1
        signature = hmac.new(
            b"in-memory", f"{key}:{expires_in_seconds}:{self._signed}".encode(), hashlib.sha256
        ).hexdigest()
        query = urlencode({"expires_in": expires_in_seconds, "signature": signature})
        return f"{self.base_url}/{quote(key)}?{query}"

    def origin_url(self, key: str) -> str:
        return f"{self.base_url}/{quote(key)}"

    # --- Inspection ---

    def keys(self) -> list[str]:
        return sorted(self._objects)

    def contains(self, key: str) -> bool:
        return key in self._objects

    def visibility_of(self, key: str) -> Visibility:
        return self._objects[key].visibility

    def clear(self) -> None:
        self._objects.clear()
        self.puts.clear()
        self.copies.clear()
        self.delete_batches.clear()
        self.metadata_updates.clear()
