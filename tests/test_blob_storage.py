from __future__ import annotations

import asyncio
import io

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import Stubber

from sentiment_tally.blob_storage import (
    BlobConflict,
    BlobNotFound,
    BlobStorageError,
    S3BlobStorage,
    S3Config,
)

BUCKET = "sentiments-data"
KEY = "sentiment.csv"


@pytest.fixture
def s3():
    client = boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="testing",
        aws_secret_access_key="testing",
    )
    with Stubber(client) as stubber:
        yield S3BlobStorage(S3Config(bucket=BUCKET, region="us-east-1"), client=client), stubber


def _body(data: bytes) -> StreamingBody:
    return StreamingBody(io.BytesIO(data), len(data))


def test_get_returns_body_and_etag(s3):
    storage, stubber = s3
    data = b"Sentiment,Count\nPositive,1\n"
    stubber.add_response(
        "get_object",
        {"Body": _body(data), "ETag": '"v1"'},
        {"Bucket": BUCKET, "Key": KEY},
    )
    blob = asyncio.run(storage.get(KEY))
    assert blob.data == data
    assert blob.version == '"v1"'


def test_get_missing_key_raises_not_found(s3):
    storage, stubber = s3
    stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)
    with pytest.raises(BlobNotFound):
        asyncio.run(storage.get(KEY))


def test_get_access_denied_is_storage_error(s3):
    storage, stubber = s3
    stubber.add_client_error("get_object", service_error_code="AccessDenied", http_status_code=403)
    with pytest.raises(BlobStorageError):
        asyncio.run(storage.get(KEY))


def test_put_if_match_sends_if_match(s3):
    storage, stubber = s3
    stubber.add_response(
        "put_object",
        {"ETag": '"v2"'},
        {
            "Bucket": BUCKET,
            "Key": KEY,
            "Body": b"x",
            "ContentType": "text/csv; charset=utf-8",
            "IfMatch": '"v1"',
        },
    )
    assert asyncio.run(storage.put_if_match(KEY, b"x", '"v1"')) == '"v2"'


def test_put_if_match_without_version_requires_absent_key(s3):
    storage, stubber = s3
    stubber.add_response(
        "put_object",
        {"ETag": '"v1"'},
        {
            "Bucket": BUCKET,
            "Key": KEY,
            "Body": b"x",
            "ContentType": "text/csv; charset=utf-8",
            "IfNoneMatch": "*",
        },
    )
    assert asyncio.run(storage.put_if_match(KEY, b"x", None)) == '"v1"'


@pytest.mark.parametrize("code,status", [("PreconditionFailed", 412), ("ConditionalRequestConflict", 409)])
def test_put_if_match_conflict(s3, code, status):
    storage, stubber = s3
    stubber.add_client_error("put_object", service_error_code=code, http_status_code=status)
    with pytest.raises(BlobConflict):
        asyncio.run(storage.put_if_match(KEY, b"x", '"v1"'))


def test_unconditional_put_failure_is_storage_error(s3):
    storage, stubber = s3
    stubber.add_client_error("put_object", service_error_code="PreconditionFailed", http_status_code=412)
    with pytest.raises(BlobStorageError):
        asyncio.run(storage.put(KEY, b"x"))
