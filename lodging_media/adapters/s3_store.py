"""
S3 Object Store Adapter.

Implements the ObjectStorePort interface on top of a boto3 S3 client.

Retry and timeout policy is configured once, on the botocore client, when
the adapter is built. Nothing in this module retries a call by itself.

Error mapping:
- NoSuchKey / 404 -> KeyNotFoundError
- Throttling, timeouts, 5xx -> StorageError(transient=True)
- Any other ClientError -> StorageError(transient=False)
- Credential errors are not caught; they are configuration problems
"""

from __future__ import annotations

import logging
import os
from typing import Any, BinaryIO
from urllib.parse import quote, urlsplit

import boto3
from botocore.config import Config
from botocore.exceptions import (
    ClientError,
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

from lodging_media.core.ports.storage import (
    KeyNotFoundError,
    StorageError,
    StoredObject,
    Visibility,
)
from lodging_media.rules.models import StoreRules

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "NotFound", "404"})
_TRANSIENT_CODES = frozenset(
    {
        "SlowDown",
        "Throttling",
        "ThrottlingException",
        "RequestTimeout",
        "RequestTimeoutException",
        "InternalError",
        "ServiceUnavailable",
    }
)
_NETWORK_ERRORS = (
    ConnectionClosedError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

# S3 DeleteObjects accepts at most 1000 keys per request
DELETE_BATCH_SIZE = 1000

_ACL = {
    Visibility.PRIVATE: "private",
    Visibility.PUBLIC: "public-read",
}


def _translate(error: ClientError, key: str | None) -> StorageError:
    """Map a botocore ClientError onto the storage error hierarchy."""
    err = error.response.get("Error", {})
    code = str(err.get("Code", ""))
    status = int(error.response.get("ResponseMetadata", {}).get("HTTPStatusCode", 0) or 0)

    if code in _NOT_FOUND_CODES and key is not None:
        return KeyNotFoundError(key)

    transient = code in _TRANSIENT_CODES or status >= 500
    message = err.get("Message") or str(error)
    return StorageError(f"S3 {code or status}: {message}", key=key, transient=transient)


class S3ObjectStore:
    """
    S3 implementation of ObjectStorePort.

    One bucket per store. Metadata keys are sent as S3 user metadata
    (x-amz-meta-*), which S3 lower-cases.
    """

    def __init__(self, client: Any, bucket: str) -> None:
        self.client = client
        self.bucket = bucket

    def put(
        self,
        key: str,
        data: bytes | BinaryIO,
        content_type: str,
        *,
        visibility: Visibility = Visibility.PRIVATE,
        metadata: dict[str, str] | None = None,
    ) -> StoredObject:
        body = data if isinstance(data, bytes) else data.read()
        try:
            response = self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                ACL=_ACL[visibility],
                Metadata=dict(metadata or {}),
            )
        except ClientError as e:
            raise _translate(e, key) from e
        except _NETWORK_ERRORS as e:
            raise StorageError(f"S3 put failed: {e}", key=key, transient=True) from e

        return StoredObject(
            key=key,
            size_bytes=len(body),
            content_type=content_type,
            etag=response.get("ETag", ""),
            metadata=dict(metadata or {}),
        )

    def copy(
        self,
        source_key: str,
        dest_key: str,
        *,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> None:
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=dest_key,
                CopySource={"Bucket": self.bucket, "Key": source_key},
                ACL=_ACL[visibility],
                MetadataDirective="COPY",
            )
        except ClientError as e:
            raise _translate(e, source_key) from e
        except _NETWORK_ERRORS as e:
            raise StorageError(f"S3 copy failed: {e}", key=source_key, transient=True) from e

    def delete_many(self, keys: list[str]) -> None:
        unique = list(dict.fromkeys(k for k in keys if k))
        for start in range(0, len(unique), DELETE_BATCH_SIZE):
            batch = unique[start : start + DELETE_BATCH_SIZE]
            try:
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except ClientError as e:
                raise _translate(e, None) from e
            except _NETWORK_ERRORS as e:
                raise StorageError(f"S3 delete failed: {e}", transient=True) from e

            # S3 reports per-key failures in the body of a 200 response
            failed = [
                err
                for err in response.get("Errors", [])
                if err.get("Code") not in _NOT_FOUND_CODES
            ]
            if failed:
                first = failed[0]
                raise StorageError(
                    f"S3 delete failed for {len(failed)} key(s): "
                    f"{first.get('Key')} ({first.get('Code')})",
                    key=first.get("Key"),
                    transient=any(err.get("Code") in _TRANSIENT_CODES for err in failed),
                )

    def get(self, key: str) -> tuple[bytes, StoredObject]:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
            data = response["Body"].read()
        except ClientError as e:
            raise _translate(e, key) from e
        except _NETWORK_ERRORS as e:
            raise StorageError(f"S3 get failed: {e}", key=key, transient=True) from e

        return data, StoredObject(
            key=key,
            size_bytes=len(data),
            content_type=response.get("ContentType", "application/octet-stream"),
            etag=response.get("ETag", ""),
            metadata=dict(response.get("Metadata", {})),
        )

    def get_metadata(self, key: str) -> StoredObject | None:
        try:
            response = self.client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            translated = _translate(e, key)
            if isinstance(translated, KeyNotFoundError):
                return None
            raise translated from e
        except _NETWORK_ERRORS as e:
            raise StorageError(f"S3 head failed: {e}", key=key, transient=True) from e

        return StoredObject(
            key=key,
            size_bytes=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType", "application/octet-stream"),
            etag=response.get("ETag", ""),
            metadata=dict(response.get("Metadata", {})),
        )

    def list_keys(self, prefix: str) -> list[str]:
        keys: list[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        try:
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
        except ClientError as e:
            raise _translate(e, None) from e
        except _NETWORK_ERRORS as e:
            raise StorageError(f"S3 list failed: {e}", transient=True) from e
        return sorted(keys)

    def replace_metadata(
        self,
        key: str,
        attrs: dict[str, str],
        *,
        visibility: Visibility = Visibility.PRIVATE,
    ) -> None:
        """S3 has no in-place metadata update: copy the object onto itself."""
        current = self.get_metadata(key)
        if current is None:
            raise KeyNotFoundError(key)

        merged = {**current.metadata, **attrs}
        try:
            self.client.copy_object(
                Bucket=self.bucket,
                Key=key,
                CopySource={"Bucket": self.bucket, "Key": key},
                ACL=_ACL[visibility],
                ContentType=current.content_type,
                Metadata=merged,
                MetadataDirective="REPLACE",
            )
        except ClientError as e:
            raise _translate(e, key) from e
        except _NETWORK_ERRORS as e:
            raise StorageError(
                f"S3 metadata update failed: {e}", key=key, transient=True
            ) from e

    def sign_url(self, key: str, expires_in_seconds: int) -> str:
        url: str = self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires_in_seconds,
        )
        return url

    def origin_url(self, key: str) -> str:
        """
        Direct bucket URL, used when no content-delivery domain is set.

        Built from the client's endpoint: AWS endpoints address the bucket by
        host, custom endpoints (MinIO, LocalStack) by path.
        """
        endpoint = self.client.meta.endpoint_url.rstrip("/")
        parts = urlsplit(endpoint)
        path = quote(key)
        if parts.hostname and parts.hostname.endswith(".amazonaws.com"):
            return f"{parts.scheme}://{self.bucket}.{parts.netloc}/{path}"
        return f"{endpoint}/{self.bucket}/{path}"


def create_s3_store(
    rules: StoreRules,
    *,
    client: Any | None = None,
) -> S3ObjectStore:
    """
    Factory function to create an S3ObjectStore from rules and environment.

    MEDIA_BUCKET, MEDIA_REGION and MEDIA_ENDPOINT_URL override the rules.

    Args:
        rules: Store rules (bucket, region, timeouts, retry policy)
        client: Pre-built boto3 S3 client (tests, shared sessions)

    Returns:
        Configured S3ObjectStore instance

    Raises:
        ValueError: If no bucket is configured
    """
    bucket = os.environ.get("MEDIA_BUCKET", rules.bucket or "")
    if not bucket:
        raise ValueError("S3 bucket name not configured (store.bucket or MEDIA_BUCKET)")

    if client is None:
        config = Config(
            connect_timeout=rules.connect_timeout_seconds,
            read_timeout=rules.read_timeout_seconds,
            retries={"max_attempts": rules.max_attempts, "mode": rules.retry_mode},
        )
        client = boto3.client(
            "s3",
            region_name=os.environ.get("MEDIA_REGION", rules.region),
            endpoint_url=os.environ.get("MEDIA_ENDPOINT_URL", rules.endpoint_url),
            config=config,
        )
        logger.info("S3 object store ready (bucket=%s)", bucket)

    return S3ObjectStore(client, bucket)
