# event_curation/app/clients/media.py

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from event_curation.app.errors import MediaFetchError
from event_curation.app.retry import http_retry

logger = logging.getLogger(__name__)

# Instagram's CDN rejects requests without a browser-ish user agent.
_HEADERS = {"User-Agent": "Mozilla/5.0 (compatible; event-curation/1.0)"}


@dataclass(frozen=True)
class MediaBlob:
    data: bytes
    content_type: str


class MediaFetcher:
    def __init__(self, http: httpx.AsyncClient, max_bytes: int = 15 * 1024 * 1024):
        self._http = http
        self._max_bytes = max_bytes

    def _too_large(self, size: int, url: str) -> MediaFetchError:
        return MediaFetchError(
            f"Media too large ({size} bytes > {self._max_bytes}) from {url[:120]}"
        )

    @http_retry
    async def _download(self, url: str) -> MediaBlob:
        """Streams the body and stops reading once it passes max_bytes."""
        async with self._http.stream(
            "GET", url, headers=_HEADERS, follow_redirects=True
        ) as resp:
            resp.raise_for_status()
            declared = resp.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > self._max_bytes:
                raise self._too_large(int(declared), url)

            chunks: list[bytes] = []
            size = 0
            async for chunk in resp.aiter_bytes():
                size += len(chunk)
                if size > self._max_bytes:
                    raise self._too_large(size, url)
                chunks.append(chunk)
            content_type = resp.headers.get("content-type", "image/jpeg").split(";")[0].strip()

        return MediaBlob(data=b"".join(chunks), content_type=content_type or "image/jpeg")

    async def fetch(self, url: str) -> MediaBlob:
        try:
            blob = await self._download(url)
        except httpx.HTTPError as e:
            raise MediaFetchError(f"Failed to fetch media {url[:120]}: {type(e).__name__}: {e}") from e

        if not blob.data:
            raise MediaFetchError(f"Empty media body from {url[:120]}")
        return blob
