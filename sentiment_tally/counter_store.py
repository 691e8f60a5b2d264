from __future__ import annotations

import logging
from typing import Optional

from sentiment_tally import counter_codec
from sentiment_tally.blob_storage import BlobConflict, BlobNotFound, BlobStorage, BlobStorageError
from sentiment_tally.errors import StoreError, VersionConflict
from sentiment_tally.sentiment_types import CounterDocument, VersionedDocument

logger = logging.getLogger(__name__)


class CounterStore:
    """
    Typed load/save of a counter document over blob storage.

    No locking here: concurrent callers must use save_if_version to detect
    lost updates.
    """

    def __init__(self, blobs: BlobStorage):
        self._blobs = blobs

    async def load(self, key: str) -> CounterDocument:
        return (await self.load_versioned(key)).document

    async def load_versioned(self, key: str) -> VersionedDocument:
        """
        Missing key -> empty document with version None.

        Raises:
            StoreError: retrieval failure other than not-found
            EncodingError: stored bytes are malformed
        """
        try:
            blob = await self._blobs.get(key)
        except BlobNotFound:
            logger.info("Counter document missing, starting empty: key=%s", key)
            return VersionedDocument(document=CounterDocument.empty(), version=None)
        except BlobStorageError as e:
            raise StoreError(f"Failed to load counter document: key={key}") from e

        return VersionedDocument(document=counter_codec.decode(blob.data), version=blob.version)

    async def save(self, key: str, doc: CounterDocument) -> str:
        """
        Raises:
            StoreError: write failure
        """
        data = counter_codec.encode(doc)
        try:
            return await self._blobs.put(key, data)
        except BlobStorageError as e:
            raise StoreError(f"Failed to save counter document: key={key}") from e

    async def save_if_version(
            self,
            key: str,
            doc: CounterDocument,
            expected_version: Optional[str],
    ) -> str:
        """
        Raises:
            VersionConflict: stored version moved since load
            StoreError: any other write failure
        """
        data = counter_codec.encode(doc)
        try:
            return await self._blobs.put_if_match(key, data, expected_version)
        except BlobConflict as e:
            raise VersionConflict(key, expected_version) from e
        except BlobStorageError as e:
            raise StoreError(f"Failed to save counter document: key={key}") from e
