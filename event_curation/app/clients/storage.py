# event_curation/app/clients/storage.py
"""Blob storage for flyer media (Google Cloud Storage)."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

from google.cloud import storage

logger = logging.getLogger(__name__)


class BlobStorage:
    """
    Upload-by-path and signed read URLs on one bucket.

    google-cloud-storage is synchronous; calls run on a worker thread so the
    event loop keeps serving other items.
    """

    def __init__(self, client: storage.Client, bucket_name: Optional[str]):
        self._client = client
        self._bucket_name = bucket_name

    @property
    def bucket(self) -> storage.Bucket:
        if not self._bucket_name:
            raise RuntimeError("STORAGE_BUCKET is not configured")
        return self._client.bucket(self._bucket_name)

    async def upload(
        self,
        path: str,
        data: bytes,
        *,
        content_type: str = "image/jpeg",
        metadata: Optional[dict[str, str]] = None,
    ) -> str:
        blob = self.bucket.blob(path)
        if metadata:
            blob.metadata = metadata
        await asyncio.to_thread(blob.upload_from_string, data, content_type=content_type)
        logger.info("Uploaded %d bytes to gs://%s/%s", len(data), self._bucket_name, path)
        return path

    async def signed_read_url(self, path: str, *, minutes: int = 60) -> str:
        blob = self.bucket.blob(path)
        return await asyncio.to_thread(
            blob.generate_signed_url,
            version="v4",
            expiration=timedelta(minutes=minutes),
            method="GET",
        )

    async def delete_prefix(self, prefix: str) -> int:
        """Remove every object under `prefix`; returns the number deleted."""

        def _delete() -> int:
            count = 0
            for blob in self._client.list_blobs(self._bucket_name, prefix=prefix):
                blob.delete()
                count += 1
            return count

        return await asyncio.to_thread(_delete)
