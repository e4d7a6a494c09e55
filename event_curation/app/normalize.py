# event_curation/app/normalize.py
"""
Provider payload -> ScrapedItem normalization.

The posts and stories actors disagree on field names (and both drift over
time), so every ScrapedItem field is resolved from an ordered list of
accessors. Supporting a new provider quirk means appending an accessor.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from event_curation.app.utils import as_datetime
from event_curation.models.firestore_docs import ScrapedItem

logger = logging.getLogger(__name__)

Accessor = Callable[[Mapping[str, Any]], Any]


def path(*keys: str | int) -> Accessor:
    """Accessor walking nested dict keys / list indices; missing steps yield None."""

    def _get(raw: Mapping[str, Any]) -> Any:
        cur: Any = raw
        for key in keys:
            if isinstance(key, int):
                if not isinstance(cur, list) or len(cur) <= key:
                    return None
                cur = cur[key]
            else:
                if not isinstance(cur, Mapping):
                    return None
                cur = cur.get(key)
            if cur is None:
                return None
        return cur

    _get.__name__ = "path(" + ".".join(str(k) for k in keys) + ")"
    return _get


# ---- field resolution tables (order = priority) ----------------------------

ITEM_ID_FIELDS: Sequence[Accessor] = (
    path("id"),
    path("shortCode"),
    path("shortcode"),
    path("code"),
    path("pk"),
)
SHORTCODE_FIELDS: Sequence[Accessor] = (
    path("shortCode"),
    path("shortcode"),
    path("code"),
)
OWNER_FIELDS: Sequence[Accessor] = (
    path("ownerUsername"),
    path("username"),
    path("owner", "username"),
    path("user", "username"),
)
CAPTION_FIELDS: Sequence[Accessor] = (
    path("caption"),
    path("caption", "text"),
    path("text"),
    path("title"),
    path("accessibilityCaption"),
)
MEDIA_URL_FIELDS: Sequence[Accessor] = (
    path("displayUrl"),
    path("images", 0, "url"),
    path("images", 0),
    path("imageUrl"),
    path("image"),
    path("mediaUrl"),
    path("media"),
    path("videoUrl"),
)
THUMBNAIL_FIELDS: Sequence[Accessor] = (
    path("thumbnailUrl"),
    path("thumbnail"),
    path("thumbnail_url"),
)
TIMESTAMP_FIELDS: Sequence[Accessor] = (
    path("timestamp"),
    path("takenAt"),
    path("taken_at"),
    path("createdAt"),
    path("date"),
)
PERMALINK_FIELDS: Sequence[Accessor] = (
    path("url"),
    path("permalink"),
)
MEDIA_TYPE_FIELDS: Sequence[Accessor] = (
    path("type"),
    path("mediaType"),
    path("media_type"),
    path("productType"),
)

_MEDIA_TYPES = {
    "video": "video",
    "reel": "video",
    "clips": "video",
    "igtv": "video",
    "2": "video",
    "image": "image",
    "photo": "image",
    "graphimage": "image",
    "1": "image",
    "sidecar": "carousel",
    "carousel": "carousel",
    "carousel_album": "carousel",
    "8": "carousel",
}


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return None


def first_present(
    raw: Mapping[str, Any],
    accessors: Iterable[Accessor],
    coerce: Callable[[Any], Any] = _as_text,
) -> Any:
    """Return the first accessor value that survives `coerce` as non-None."""
    for accessor in accessors:
        value = coerce(accessor(raw))
        if value is not None:
            return value
    return None


def looks_like_video_file(url: Optional[str]) -> bool:
    return bool(url) and ".mp4" in url.lower()


def _media_type(raw: Mapping[str, Any], media_url: Optional[str]) -> str:
    if raw.get("isVideo") is True:
        return "video"
    declared = first_present(raw, MEDIA_TYPE_FIELDS)
    if declared:
        mapped = _MEDIA_TYPES.get(declared.lower())
        if mapped:
            return mapped
    if looks_like_video_file(media_url):
        return "video"
    return "image"


def _timestamp(raw: Mapping[str, Any]) -> Optional[str]:
    for accessor in TIMESTAMP_FIELDS:
        dt = as_datetime(accessor(raw))
        if dt is not None:
            return dt.isoformat()
    return None


def normalize_item(raw: Mapping[str, Any], index: int) -> ScrapedItem:
    media_url = first_present(raw, MEDIA_URL_FIELDS)
    return ScrapedItem(
        item_id=first_present(raw, ITEM_ID_FIELDS) or str(index),
        original_index=index,
        owner_username=first_present(raw, OWNER_FIELDS),
        media_url=media_url,
        thumbnail_url=first_present(raw, THUMBNAIL_FIELDS),
        media_type=_media_type(raw, media_url),
        caption=first_present(raw, CAPTION_FIELDS) or "",
        timestamp=_timestamp(raw),
        shortcode=first_present(raw, SHORTCODE_FIELDS),
        permalink=first_present(raw, PERMALINK_FIELDS),
    )


def normalize_items(raw_items: Iterable[Any]) -> list[ScrapedItem]:
    """Normalize a provider dataset; non-object rows are dropped, duplicate ids keep the first."""
    items: list[ScrapedItem] = []
    seen: set[str] = set()
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, Mapping):
            logger.warning("Skipping non-object dataset row at index %d", index)
            continue
        item = normalize_item(raw, index)
        if item.item_id in seen:
            logger.debug("Dropping duplicate item %s at index %d", item.item_id, index)
            continue
        seen.add(item.item_id)
        items.append(item)
    return items
