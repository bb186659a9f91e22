"""
Local Filesystem Object Store Adapter.

Implements the ObjectStorePort interface using the local filesystem.
Used for development, single-server deployments, and integration tests.

Invariants:
- Object bytes are immutable; sha256 stored equals sha256 served
- Keys once written cannot be overwritten (copy and metadata replace
  only ever write metadata for an existing key, or a brand new key)
"""

from __future__ import annotations

import hashlib
import hmac
import json
import os
import time
from pathlib import Path
from typing import Any, BinaryIO
from urllib.parse import quote, urlencode

from lodging_media.core.ports.storage import (
    IntegrityError,
    KeyExistsError,
    KeyNotFoundError,
    StorageError,
    StoredObject,
    Visibility,
)

_DATA_SUFFIX = ".bin"
_META_SUFFIX = ".meta.json"


class LocalFileStorage:
    """
    Local filesystem implementation of ObjectStorePort.

    Stores objects as files with accompanying metadata JSON.
    Directory structure: {base_path}/{key}.bin + {base_path}/{key}.meta.json

    Example key: "units/42/images/ab12.jpg"
        -> {base_path}/units/42/images/ab12.jpg.bin + .meta.json
    """

    def __init__(
        self,
        base_path: str | Path,
        *,
        signing_secret: str = "",
        url_base: str = "/media",
        create_dirs: bool = True,
    ) -> None:
        """
        Initialize local file storage.

        Args:
            base_path: Root directory for storage
            signing_secret: HMAC secret for signed URLs
            url_base: Path prefix that serves stored objects
            create_dirs: Whether to create directories if they don't exist
        """
        self.base_path = Path(base_path)
        self.signing_secret = signing_secret
        self.url_base = url_base.rstrip("/")

        if create_dirs:
            self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_to_paths(self, key: str) -> tuple[Path, Path]:
        """Convert storage key to file paths (data and metadata)."""
        # Sanitize key to prevent directory traversal
        safe_key = key.replace("..", "").lstrip("/")
        data_path = self.base_path / f"{safe_key}{_DATA_SUFFIX}"
        meta_path = self.base_path / f"{safe_key}{_META_SUFFIX}"
        return data_path, meta_path

    def _read_bytes(self, data: bytes | BinaryIO) -> bytes:
        if isinstance(data, bytes):
            return data

        chunks = []
        while True:
            chunk = data.read(8192)
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    def _compute_etag(self, sha256_hex: str) -> str:
        """Compute ETag from sha256 hash."""
        return f'"{sha256_hex[:32]}"'

    def _write_metadata(self, meta_path: Path, obj: StoredObject, visibility: str) -> None:
        meta_path.parent.mkdir(parents=True, exist_ok=True)
        with open(meta_path, "w") as f:
            json.dump(
                {
                    "key": obj.key,
                    "size_bytes": obj.size_bytes,
                    "content_type": obj.content_type,
                    "sha256": obj.sha256,
                    "etag": obj.etag,
                    "metadata": obj.metadata,
                    "visibility": visibility,
                },
                f,
            )

    def _load_raw_metadata(self, meta_path: Path, key: str) -> dict[str, Any]:
        if not meta_path.exists():
            # Reconstruct metadata if missing
            data_path = meta_path.with_name(meta_path.name[: -len(_META_SUFFIX)] + _DATA_SUFFIX)
            with open(data_path, "rb") as f:
                data = f.read()
            sha256_hex = hashlib.sha256(data).hexdigest()
            return {
                "key": key,
                "size_bytes": len(data),
                "content_type": "application/octet-stream",
                "sha256": sha256_hex,
                "etag": self._compute_etag(sha256_hex),
                "metadata": {},
                "visibility": Visibility.PRIVATE.value,
            }

        with open(meta_path) as f:
            raw: dict[str, Any] = json.load(f)
        return raw

    def _load_metadata(self, meta_path: Path, key: str) -> StoredObject:
        """Load metadata from JSON file."""
        meta = self._load_raw_metadata(meta_path, key)
        return StoredObject(
            key=meta["key"],
            size_bytes=meta["size_bytes"],
            content_type=meta["content_type"],
            etag=meta["etag"],
            metadata=dict(meta.get("metadata", {})),
            sha256=meta.get("sha256"),
        )

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

        Enforces immutability: raises KeyExistsError if key already exists.
        """
        data_path, meta_path = self._key_to_paths(key)

        # Immutability check: key must not exist
        if data_path.exists():
            raise KeyExistsError(key)

        data_bytes = self._read_bytes(data)
        sha256_hex = hashlib.sha256(data_bytes).hexdigest()

        try:
            data_path.parent.mkdir(parents=True, exist_ok=True)
            with open(data_path, "wb") as f:
                f.write(data_bytes)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}", key=key) from e

        stored = StoredObject(
            key=key,
            size_bytes=len(data_bytes),
            content_type=content_type,
            etag=self._compute_etag(sha256_hex),
            metadata=dict(metadata or {}),
            sha256=sha256_hex,
        )
        self._write_metadata(meta_path, stored, visibility.value)
        return stored

    def copy(
        self,
        source_key: str,
        dest_key: str,
        *,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> None:
        """Copy content and metadata to a new, unused key."""
        src_data, src_meta = self._key_to_paths(source_key)
        if not src_data.exists():
            raise KeyNotFoundError(source_key)

        source = self._load_metadata(src_meta, source_key)
        with open(src_data, "rb") as f:
            data = f.read()

        self.put(
            dest_key,
            data,
            source.content_type,
            visibility=visibility,
            metadata=source.metadata,
        )

    def get(self, key: str) -> tuple[bytes, StoredObject]:
        """Retrieve object bytes by key."""
        data_path, meta_path = self._key_to_paths(key)

        if not data_path.exists():
            raise KeyNotFoundError(key)

        with open(data_path, "rb") as f:
            data = f.read()

        metadata = self._load_metadata(meta_path, key)

        # Verify integrity on read
        actual_sha256 = hashlib.sha256(data).hexdigest()
        if metadata.sha256 and actual_sha256 != metadata.sha256:
            raise IntegrityError(metadata.sha256, actual_sha256, key=key)

        return data, metadata

    def exists(self, key: str) -> bool:
        """Check if key exists in storage."""
        data_path, _ = self._key_to_paths(key)
        return data_path.exists()

    def delete_many(self, keys: list[str]) -> None:
        """Delete every key that exists; missing keys are a no-op."""
        for key in keys:
            data_path, meta_path = self._key_to_paths(key)
            try:
                if data_path.exists():
                    data_path.unlink()
                if meta_path.exists():
                    meta_path.unlink()
            except OSError as e:
                raise StorageError(f"Failed to delete {key}: {e}", key=key) from e

    def get_metadata(self, key: str) -> StoredObject | None:
        """Get object metadata without fetching bytes."""
        data_path, meta_path = self._key_to_paths(key)

        if not data_path.exists():
            return None

        return self._load_metadata(meta_path, key)

    def list_keys(self, prefix: str) -> list[str]:
        """List stored keys that start with prefix."""
        if not self.base_path.exists():
            return []

        keys = []
        for path in self.base_path.rglob(f"*{_DATA_SUFFIX}"):
            rel = path.relative_to(self.base_path).as_posix()
            key = rel[: -len(_DATA_SUFFIX)]
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def replace_metadata(
        self,
        key: str,
        attrs: dict[str, str],
        *,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> None:
        """Merge attrs into the object's metadata; bytes are not touched."""
        data_path, meta_path = self._key_to_paths(key)
        if not data_path.exists():
            raise KeyNotFoundError(key)

        raw = self._load_raw_metadata(meta_path, key)
        merged = {**raw.get("metadata", {}), **attrs}
        updated = StoredObject(
            key=key,
            size_bytes=raw["size_bytes"],
            content_type=raw["content_type"],
            etag=raw["etag"],
            metadata=merged,
            sha256=raw.get("sha256"),
        )
        self._write_metadata(meta_path, updated, visibility.value)

    def _signature(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode()
        return hmac.new(self.signing_secret.encode(), message, hashlib.sha256).hexdigest()

    def sign_url(self, key: str, expires_in_seconds: int) -> str:
        """Build an HMAC-signed URL served by the application under url_base."""
        expires = int(time.time()) + expires_in_seconds
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return f"{self.url_base}/{quote(key)}?{query}"

    def origin_url(self, key: str) -> str:
        return f"{self.url_base}/{quote(key)}"

    def verify_signature(self, key: str, expires: int, signature: str) -> bool:
        """Check a signed URL's signature and window."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(key, expires), signature)


def create_local_storage(
    base_path: str | Path | None = None,
    *,
    env_var: str = "MEDIA_STORAGE_PATH",
    default_path: str = "./media-storage",
    signing_secret: str = "",
) -> LocalFileStorage:
    """
    Factory function to create LocalFileStorage from config.

    Args:
        base_path: Explicit base path (overrides env var)
        env_var: Environment variable name for storage path
        default_path: Default path if not configured
        signing_secret: HMAC secret for signed URLs

    Returns:
        Configured LocalFileStorage instance
    """
    if base_path is None:
        base_path = os.environ.get(env_var, default_path)

    return LocalFileStorage(base_path, signing_secret=signing_secret)
