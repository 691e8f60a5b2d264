from __future__ import annotations

import asyncio
import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_CONFLICT_CODES = {"PreconditionFailed", "412", "ConditionalRequestConflict", "409"}


class BlobNotFound(Exception):
    def __init__(self, key: str):
        super().__init__(f"Blob not found: {key}")
        self.key = key


class BlobConflict(Exception):
    """Conditional put rejected because the stored version changed."""

    def __init__(self, key: str, expected_version: Optional[str]):
        super().__init__(f"Blob version mismatch: key={key} expected={expected_version}")
        self.key = key
        self.expected_version = expected_version


class BlobStorageError(Exception):
    """Any other storage failure (auth, network, permission, throttling)."""


@dataclass(frozen=True)
class Blob:
    data: bytes
    version: str


class BlobStorage(Protocol):
    async def get(self, key: str) -> Blob:
        """Raises BlobNotFound or BlobStorageError."""
        ...

    async def put(self, key: str, data: bytes) -> str:
        """Unconditional write; returns the new version."""
        ...

    async def put_if_match(self, key: str, data: bytes, expected_version: Optional[str]) -> str:
        """
        Write only if the stored version equals expected_version.
        expected_version=None means the key must not exist yet.

        Raises BlobConflict on mismatch.
        """
        ...


@dataclass(frozen=True)
class S3Config:
    bucket: str
    region: Optional[str] = None
    endpoint_url: Optional[str] = None


class S3BlobStorage:
    """
    Blob storage over a single S3 bucket.

    Versions are object ETags; conditional writes use S3's If-Match /
    If-None-Match headers on PutObject. boto3 calls run in a worker thread.
    """

    def __init__(self, cfg: S3Config, client: Any = None):
        self.cfg = cfg
        self._client = client or boto3.client(
            "s3",
            region_name=cfg.region,
            endpoint_url=cfg.endpoint_url,
        )
        logger.info("S3 blob storage ready: bucket=%s region=%s", cfg.bucket, cfg.region)

    async def get(self, key: str) -> Blob:
        return await asyncio.to_thread(self._get, key)

    async def put(self, key: str, data: bytes) -> str:
        return await asyncio.to_thread(self._put, key, data, {})

    async def put_if_match(self, key: str, data: bytes, expected_version: Optional[str]) -> str:
        if expected_version is None:
            condition = {"IfNoneMatch": "*"}
        else:
            condition = {"IfMatch": expected_version}
        return await asyncio.to_thread(self._put, key, data, condition, expected_version)

    def _get(self, key: str) -> Blob:
        try:
            resp = self._client.get_object(Bucket=self.cfg.bucket, Key=key)
            body = resp["Body"].read()
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise BlobNotFound(key) from e
            raise BlobStorageError(f"S3 get failed: bucket={self.cfg.bucket} key={key} err={e}") from e
        except BotoCoreError as e:
            raise BlobStorageError(f"S3 get failed: bucket={self.cfg.bucket} key={key} err={e}") from e
        return Blob(data=body, version=resp["ETag"])

    def _put(
            self,
            key: str,
            data: bytes,
            condition: dict[str, str],
            expected_version: Optional[str] = None,
    ) -> str:
        try:
            resp = self._client.put_object(
                Bucket=self.cfg.bucket,
                Key=key,
                Body=data,
                ContentType="text/csv; charset=utf-8",
                **condition,
            )
        except ClientError as e:
            if condition and _error_code(e) in _CONFLICT_CODES:
                raise BlobConflict(key, expected_version) from e
            raise BlobStorageError(f"S3 put failed: bucket={self.cfg.bucket} key={key} err={e}") from e
        except BotoCoreError as e:
            raise BlobStorageError(f"S3 put failed: bucket={self.cfg.bucket} key={key} err={e}") from e
        return resp["ETag"]


def _error_code(e: ClientError) -> str:
    return str(e.response.get("Error", {}).get("Code", ""))


class InMemoryBlobStorage:
    """
    Process-local blob storage for tests and local runs.

    Each operation yields to the event loop before touching state, so
    concurrent read-modify-write cycles interleave the way they would against
    a remote store.
    """

    def __init__(self, initial: Optional[dict[str, bytes]] = None):
        self._blobs: dict[str, Blob] = {}
        for key, data in (initial or {}).items():
            self._blobs[key] = Blob(data=data, version=_etag(data, 0))
        self._writes = 0
        self.get_calls = 0
        self.put_calls = 0

    async def get(self, key: str) -> Blob:
        await asyncio.sleep(0)
        self.get_calls += 1
        try:
            return self._blobs[key]
        except KeyError:
            raise BlobNotFound(key) from None

    async def put(self, key: str, data: bytes) -> str:
        await asyncio.sleep(0)
        self.put_calls += 1
        return self._store(key, data)

    async def put_if_match(self, key: str, data: bytes, expected_version: Optional[str]) -> str:
        await asyncio.sleep(0)
        self.put_calls += 1
        current = self._blobs.get(key)
        current_version = current.version if current else None
        if current_version != expected_version:
            raise BlobConflict(key, expected_version)
        return self._store(key, data)

    def peek(self, key: str) -> Optional[bytes]:
        blob = self._blobs.get(key)
        return blob.data if blob else None

    def _store(self, key: str, data: bytes) -> str:
        self._writes += 1
        blob = Blob(data=bytes(data), version=_etag(data, self._writes))
        self._blobs[key] = blob
        return blob.version


def _etag(data: bytes, generation: int) -> str:
    digest = hashlib.md5(data + str(generation).encode("ascii")).hexdigest()
    return f'"{digest}"'
