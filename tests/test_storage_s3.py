import io

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from dams.core.errors import StorageFailureError
from dams.services.storage import S3BlobStore

BUCKET = "dams-test"


@pytest.fixture
def s3():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield client, stubber
        stubber.assert_no_pending_responses()


def _bucket_ok(stubber: Stubber) -> None:
    stubber.add_response("head_bucket", {}, {"Bucket": BUCKET})


def test_put_writes_object_and_returns_location(s3) -> None:
    client, stubber = s3
    _bucket_ok(stubber)
    stubber.add_response(
        "put_object",
        {"ETag": '"abc"'},
        {"Bucket": BUCKET, "Key": "assets/k-report.pdf", "Body": b"data", "ContentType": "application/pdf"},
    )
    store = S3BlobStore(client, BUCKET, region="eu-west-1")

    location = store.put("assets/k-report.pdf", b"data", "application/pdf")

    assert location == f"https://{BUCKET}.s3.eu-west-1.amazonaws.com/assets/k-report.pdf"


def test_missing_bucket_is_created_once(s3) -> None:
    client, stubber = s3
    stubber.add_client_error("head_bucket", service_error_code="404", http_status_code=404)
    stubber.add_response("create_bucket", {}, {"Bucket": BUCKET})
    stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "a"})
    stubber.add_response("delete_object", {}, {"Bucket": BUCKET, "Key": "b"})
    store = S3BlobStore(client, BUCKET)

    store.delete("a")
    store.delete("b")


def test_put_failure_maps_to_storage_failure(s3) -> None:
    client, stubber = s3
    _bucket_ok(stubber)
    stubber.add_client_error("put_object", service_error_code="AccessDenied", http_status_code=403)
    store = S3BlobStore(client, BUCKET)

    with pytest.raises(StorageFailureError):
        store.put("assets/x", b"x", "text/plain")


def test_exists_and_get(s3) -> None:
    client, stubber = s3
    _bucket_ok(stubber)
    stubber.add_response("head_object", {"ContentLength": 2}, {"Bucket": BUCKET, "Key": "assets/here"})
    stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)
    stubber.add_response(
        "get_object",
        {"Body": StreamingBody(io.BytesIO(b"hi"), 2), "ContentType": "text/plain"},
        {"Bucket": BUCKET, "Key": "assets/here"},
    )
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
    store = S3BlobStore(client, BUCKET)

    assert store.exists("assets/here") is True
    assert store.exists("assets/gone") is False
    assert store.get("assets/here") == (b"hi", "text/plain")
    with pytest.raises(FileNotFoundError):
        store.get("assets/gone")


def test_iter_keys_lists_prefix(s3) -> None:
    client, stubber = s3
    _bucket_ok(stubber)
    stubber.add_response(
        "list_objects_v2",
        {"Contents": [{"Key": "assets/a"}, {"Key": "assets/b"}], "IsTruncated": False, "KeyCount": 2},
        {"Bucket": BUCKET, "Prefix": "assets/"},
    )
    store = S3BlobStore(client, BUCKET)

    assert list(store.iter_keys("assets/")) == ["assets/a", "assets/b"]


def test_location_prefers_public_base_then_endpoint() -> None:
    public = S3BlobStore(None, BUCKET, public_base_url="https://cdn.example.com/")
    minio = S3BlobStore(None, BUCKET, endpoint_url="http://localhost:9000")

    assert public.location_for("assets/a b.pdf") == "https://cdn.example.com/assets/a%20b.pdf"
    assert minio.location_for("assets/a.pdf") == f"http://localhost:9000/{BUCKET}/assets/a.pdf"
