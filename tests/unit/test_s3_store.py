"""
S3 object store adapter tests.

A hand-written fake stands in for the boto3 client; failures are raised as
real botocore exceptions so the error mapping is exercised as in production.
"""

from __future__ import annotations

import io
from collections.abc import Iterator
from types import SimpleNamespace
from typing import Any

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError, NoCredentialsError

from lodging_media.adapters import S3ObjectStore, create_s3_store
from lodging_media.core.ports import KeyNotFoundError, StorageError, Visibility
from lodging_media.rules import StoreRules

BUCKET = "media-bucket"
KEY = "units/42/images/ab12.jpg"


def client_error(code: str, status: int, operation: str = "PutObject") -> ClientError:
    return ClientError(
        {
            "Error": {"Code": code, "Message": f"{code} happened"},
            "ResponseMetadata": {"HTTPStatusCode": status},
        },
        operation,
    )


class FakePaginator:
    def __init__(self, client: MockS3Client) -> None:
        self.client = client

    def paginate(self, *, Bucket: str, Prefix: str) -> Iterator[dict[str, Any]]:
        self.client._raise_if("list_objects_v2")
        keys = sorted(k for k in self.client.objects if k.startswith(Prefix))
        # Two keys per page to exercise pagination
        for start in range(0, len(keys), 2):
            yield {"Contents": [{"Key": k} for k in keys[start : start + 2]]}
        if not keys:
            yield {"KeyCount": 0}


class MockS3Client:
    """Records calls and keeps objects in a dict."""

    def __init__(self, endpoint_url: str = "https://s3.eu-west-1.amazonaws.com") -> None:
        self.meta = SimpleNamespace(endpoint_url=endpoint_url)
        self.objects: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.errors: dict[str, Exception] = {}
        self.delete_errors: list[dict[str, str]] = []

    def _raise_if(self, operation: str) -> None:
        if operation in self.errors:
            raise self.errors[operation]

    def put_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("put_object", kwargs))
        self._raise_if("put_object")
        self.objects[kwargs["Key"]] = {
            "Body": kwargs["Body"],
            "ContentType": kwargs["ContentType"],
            "Metadata": kwargs["Metadata"],
            "ACL": kwargs["ACL"],
        }
        return {"ETag": '"abc123"'}

    def copy_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("copy_object", kwargs))
        self._raise_if("copy_object")
        source = self.objects.get(kwargs["CopySource"]["Key"])
        if source is None:
            raise client_error("NoSuchKey", 404, "CopyObject")
        copied = dict(source, ACL=kwargs["ACL"])
        if kwargs["MetadataDirective"] == "REPLACE":
            copied["Metadata"] = kwargs["Metadata"]
            copied["ContentType"] = kwargs["ContentType"]
        self.objects[kwargs["Key"]] = copied
        return {}

    def delete_objects(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("delete_objects", kwargs))
        self._raise_if("delete_objects")
        for obj in kwargs["Delete"]["Objects"]:
            self.objects.pop(obj["Key"], None)
        return {"Errors": self.delete_errors} if self.delete_errors else {}

    def get_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("get_object", kwargs))
        self._raise_if("get_object")
        obj = self.objects.get(kwargs["Key"])
        if obj is None:
            raise client_error("NoSuchKey", 404, "GetObject")
        return {
            "Body": io.BytesIO(obj["Body"]),
            "ContentType": obj["ContentType"],
            "ETag": '"abc123"',
            "Metadata": obj["Metadata"],
        }

    def head_object(self, **kwargs: Any) -> dict[str, Any]:
        self.calls.append(("head_object", kwargs))
        self._raise_if("head_object")
        obj = self.objects.get(kwargs["Key"])
        if obj is None:
            # HEAD responses have no body, so botocore reports the bare status
            raise client_error("404", 404, "HeadObject")
        return {
            "ContentLength": len(obj["Body"]),
            "ContentType": obj["ContentType"],
            "ETag": '"abc123"',
            "Metadata": obj["Metadata"],
        }

    def get_paginator(self, name: str) -> FakePaginator:
        assert name == "list_objects_v2"
        return FakePaginator(self)

    def generate_presigned_url(self, method: str, Params: dict[str, str], ExpiresIn: int) -> str:
        return f"https://{Params['Bucket']}.s3.test/{Params['Key']}?X-Amz-Expires={ExpiresIn}"

    def operations(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def client() -> MockS3Client:
    return MockS3Client()


@pytest.fixture
def s3(client: MockS3Client) -> S3ObjectStore:
    return S3ObjectStore(client, BUCKET)


class TestS3Writes:
    def test_put_sends_metadata_and_acl(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        obj = s3.put(
            KEY, b"bytes", "image/jpeg", visibility=Visibility.PUBLIC, metadata={"owner-id": "42"}
        )

        _, kwargs = client.calls[0]
        assert kwargs["Bucket"] == BUCKET
        assert kwargs["ACL"] == "public-read"
        assert kwargs["Metadata"] == {"owner-id": "42"}
        assert obj.size_bytes == 5
        assert obj.etag == '"abc123"'

    def test_put_stream(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        s3.put(KEY, io.BytesIO(b"streamed"), "image/jpeg")
        assert client.objects[KEY]["Body"] == b"streamed"

    def test_copy_keeps_metadata(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        s3.put(KEY, b"bytes", "image/jpeg", metadata={"display-order": "1"})

        s3.copy(KEY, "units/7/images/x.jpg")

        _, kwargs = client.calls[-1]
        assert kwargs["MetadataDirective"] == "COPY"
        assert kwargs["CopySource"] == {"Bucket": BUCKET, "Key": KEY}
        assert client.objects["units/7/images/x.jpg"]["Metadata"] == {"display-order": "1"}

    def test_copy_missing_source(self, s3: S3ObjectStore) -> None:
        with pytest.raises(KeyNotFoundError):
            s3.copy(KEY, "units/7/images/x.jpg")

    def test_replace_metadata_copies_onto_itself(
        self, s3: S3ObjectStore, client: MockS3Client
    ) -> None:
        s3.put(KEY, b"bytes", "image/jpeg", metadata={"owner-id": "42", "display-order": "0"})

        s3.replace_metadata(KEY, {"display-order": "4"})

        _, kwargs = client.calls[-1]
        assert kwargs["Key"] == KEY
        assert kwargs["MetadataDirective"] == "REPLACE"
        assert kwargs["ContentType"] == "image/jpeg"
        assert kwargs["Metadata"] == {"owner-id": "42", "display-order": "4"}
        assert client.objects[KEY]["Body"] == b"bytes"

    def test_replace_metadata_missing(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        with pytest.raises(KeyNotFoundError):
            s3.replace_metadata(KEY, {"display-order": "4"})
        assert "copy_object" not in client.operations()


class TestS3Deletes:
    def test_single_request(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        s3.delete_many([KEY, "units/42/images/ab12_small.jpg", KEY])

        assert client.operations() == ["delete_objects"]
        _, kwargs = client.calls[0]
        assert kwargs["Delete"]["Objects"] == [
            {"Key": KEY},
            {"Key": "units/42/images/ab12_small.jpg"},
        ]
        assert kwargs["Delete"]["Quiet"] is True

    def test_large_batches_split(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        s3.delete_many([f"units/1/images/{i}.jpg" for i in range(2500)])

        sizes = [len(kw["Delete"]["Objects"]) for _, kw in client.calls]
        assert sizes == [1000, 1000, 500]

    def test_empty_is_noop(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        s3.delete_many([])
        assert client.calls == []

    def test_per_key_errors_raise(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        client.delete_errors = [{"Key": KEY, "Code": "AccessDenied", "Message": "no"}]

        with pytest.raises(StorageError) as exc:
            s3.delete_many([KEY])

        assert exc.value.key == KEY
        assert exc.value.transient is False

    def test_missing_keys_are_not_errors(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        client.delete_errors = [{"Key": KEY, "Code": "NoSuchKey", "Message": "gone"}]
        s3.delete_many([KEY])


class TestS3Reads:
    def test_get(self, s3: S3ObjectStore) -> None:
        s3.put(KEY, b"bytes", "image/jpeg", metadata={"owner-id": "42"})

        data, obj = s3.get(KEY)

        assert data == b"bytes"
        assert obj.content_type == "image/jpeg"
        assert obj.metadata == {"owner-id": "42"}

    def test_get_missing(self, s3: S3ObjectStore) -> None:
        with pytest.raises(KeyNotFoundError):
            s3.get(KEY)

    def test_head_missing_is_none(self, s3: S3ObjectStore) -> None:
        assert s3.get_metadata(KEY) is None

    def test_head(self, s3: S3ObjectStore) -> None:
        s3.put(KEY, b"12345", "image/png")
        obj = s3.get_metadata(KEY)
        assert obj is not None
        assert obj.size_bytes == 5
        assert obj.content_type == "image/png"

    def test_list_keys_across_pages(self, s3: S3ObjectStore) -> None:
        for name in ("c", "a", "b", "d", "e"):
            s3.put(f"units/42/images/{name}.jpg", b"x", "image/jpeg")
        s3.put("units/420/images/z.jpg", b"x", "image/jpeg")

        keys = s3.list_keys("units/42/images/")

        assert keys == [f"units/42/images/{n}.jpg" for n in "abcde"]

    def test_list_empty_prefix(self, s3: S3ObjectStore) -> None:
        assert s3.list_keys("offers/") == []


class TestS3ErrorMapping:
    @pytest.mark.parametrize(
        "code,status,transient",
        [
            ("SlowDown", 503, True),
            ("InternalError", 500, True),
            ("RequestTimeout", 400, True),
            ("AccessDenied", 403, False),
            ("InvalidRequest", 400, False),
        ],
    )
    def test_client_errors(
        self,
        s3: S3ObjectStore,
        client: MockS3Client,
        code: str,
        status: int,
        transient: bool,
    ) -> None:
        client.errors["put_object"] = client_error(code, status)

        with pytest.raises(StorageError) as exc:
            s3.put(KEY, b"x", "image/jpeg")

        assert not isinstance(exc.value, KeyNotFoundError)
        assert exc.value.transient is transient
        assert exc.value.key == KEY
        assert code in str(exc.value)

    def test_network_error_is_transient(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        client.errors["copy_object"] = EndpointConnectionError(endpoint_url="https://s3.test")

        with pytest.raises(StorageError) as exc:
            s3.copy(KEY, "units/7/images/x.jpg")

        assert exc.value.transient is True
        assert exc.value.key == KEY

    def test_head_error_other_than_not_found(
        self, s3: S3ObjectStore, client: MockS3Client
    ) -> None:
        client.errors["head_object"] = client_error("403", 403, "HeadObject")
        with pytest.raises(StorageError):
            s3.get_metadata(KEY)

    def test_list_error(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        client.errors["list_objects_v2"] = client_error("SlowDown", 503, "ListObjectsV2")
        with pytest.raises(StorageError) as exc:
            s3.list_keys("units/")
        assert exc.value.transient is True

    def test_credential_errors_propagate(self, s3: S3ObjectStore, client: MockS3Client) -> None:
        client.errors["put_object"] = NoCredentialsError()
        with pytest.raises(NoCredentialsError):
            s3.put(KEY, b"x", "image/jpeg")


class TestS3Urls:
    def test_sign_url(self, s3: S3ObjectStore) -> None:
        assert s3.sign_url(KEY, 900).endswith("?X-Amz-Expires=900")

    def test_origin_url_aws_endpoint(self, s3: S3ObjectStore) -> None:
        assert s3.origin_url(KEY) == f"https://{BUCKET}.s3.eu-west-1.amazonaws.com/{KEY}"

    def test_origin_url_custom_endpoint(self) -> None:
        s3 = S3ObjectStore(MockS3Client("http://minio.local:9000/"), BUCKET)
        assert s3.origin_url(KEY) == f"http://minio.local:9000/{BUCKET}/{KEY}"

    def test_origin_url_quotes_key(self, s3: S3ObjectStore) -> None:
        url = s3.origin_url("units/42/images/a b#1.jpg")
        assert url.endswith("/units/42/images/a%20b%231.jpg")


class TestCreateS3Store:
    def test_bucket_required(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MEDIA_BUCKET", raising=False)
        with pytest.raises(ValueError):
            create_s3_store(StoreRules())

    def test_env_overrides_bucket(
        self, monkeypatch: pytest.MonkeyPatch, client: MockS3Client
    ) -> None:
        monkeypatch.setenv("MEDIA_BUCKET", "from-env")
        store = create_s3_store(StoreRules(bucket="from-rules"), client=client)
        assert store.bucket == "from-env"

    def test_builds_boto3_client(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("MEDIA_BUCKET", raising=False)
        monkeypatch.delenv("MEDIA_ENDPOINT_URL", raising=False)
        monkeypatch.setenv("MEDIA_REGION", "eu-west-1")
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
        monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
        monkeypatch.delenv("AWS_PROFILE", raising=False)

        store = create_s3_store(
            StoreRules(bucket=BUCKET, connect_timeout_seconds=2.5, retry_mode="adaptive")
        )

        config = store.client.meta.config
        assert store.client.meta.region_name == "eu-west-1"
        assert config.connect_timeout == 2.5
        assert config.retries["mode"] == "adaptive"
        # Presigning is local; no request is sent
        url = store.sign_url(KEY, 600)
        assert BUCKET in url
        assert KEY in url
