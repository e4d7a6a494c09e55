# event_curation/pipeline/materializer.py
"""
Positive classifications -> canonical events.

A classification carrying `event_id` is done; everything else is attempted
again on the next pass, including items whose venue is not in the directory
yet.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING, Any

from google.cloud.firestore_v1.vector import Vector

from event_curation.app.errors import MaterializationError, VenueNotFoundError
from event_curation.app.schemas import ExtractedEvent, MaterializeStats
from event_curation.app.utils import error_message, utc_now
from event_curation.models.firestore_docs import ClassificationDoc, VenueDoc

if TYPE_CHECKING:
    from event_curation.app.services import Services

logger = logging.getLogger(__name__)

PLATFORM = "instagram"
SOURCE_TAG = "auto-classified"
# keys the extractor may emit that the event record owns itself
_RESERVED_KEYS = {"id", "venue", "source", "embedding", "path", "venue_id"}


def media_path(run_id: str, item_id: str) -> str:
    return f"{SOURCE_TAG}/{run_id}/{item_id}.jpg"


def stable_event_id(run_id: str, item_id: str) -> str:
    """Same classification, same event id: a retried commit overwrites instead of duplicating."""
    return uuid.uuid5(uuid.NAMESPACE_URL, f"{PLATFORM}:{run_id}:{item_id}").hex


def extraction_context(rec: ClassificationDoc) -> str:
    return f"Caption: {rec.caption or ''}\nUsername: {rec.owner_username or ''}"


def build_event_doc(
    extracted: ExtractedEvent,
    venue: VenueDoc,
    rec: ClassificationDoc,
    *,
    path: str,
    vector: list[float],
) -> dict[str, Any]:
    now = utc_now()
    extra = {k: v for k, v in (extracted.model_extra or {}).items() if k not in _RESERVED_KEYS}
    return {
        **extra,
        "name": extracted.name,
        "date": extracted.date.model_dump(),
        "venue": {
            "id": venue.venue_id,
            "name": venue.name,
            "address": venue.address,
            "geo": venue.geo,
        },
        "venue_id": venue.venue_id,
        "pricing": extracted.pricing,
        "tags": extracted.tags,
        "search_text": extracted.search_text,
        "raw_text": extracted.raw_text,
        "embedding": Vector(vector),
        "source": {
            "platform": PLATFORM,
            "run_id": rec.run_id,
            "item_id": rec.item_id,
            "from": SOURCE_TAG,
            "owner_username": rec.owner_username,
            "image_url": rec.image_url,
        },
        "path": path,
        "created_at": now,
        "updated_at": now,
    }


async def materialize_item(services: "Services", rec: ClassificationDoc) -> tuple[str, bool]:
    """
    Materialize one positive classification.
    Returns (event_id, created) where created is False when an identical event
    already existed and the record was linked to it.
    """
    if not rec.image_url:
        raise MaterializationError("classification has no image_url")

    media = await services.media.fetch(rec.image_url)
    path = media_path(rec.run_id, rec.item_id)
    await services.storage.upload(
        path,
        media.data,
        content_type=media.content_type,
        metadata={"source": SOURCE_TAG, "run_id": rec.run_id, "item_id": rec.item_id},
    )

    extracted = await services.extractor.extract(path, extraction_context(rec))

    venue = await services.venues.resolve(extracted.venue.name)
    if venue is None:
        raise VenueNotFoundError(extracted.venue.name)

    duplicate_id = await services.events.find_duplicate(
        extracted.name, extracted.date.start, venue.venue_id
    )
    if duplicate_id:
        logger.info("Item %s/%s duplicates event %s", rec.run_id, rec.item_id, duplicate_id)
        await services.classifications.mark_materialized(
            rec.run_id, rec.item_id, event_id=duplicate_id, path=path
        )
        return duplicate_id, False

    vector = await services.embedder.embed(extracted.search_text)

    event_id = stable_event_id(rec.run_id, rec.item_id)
    await services.events.commit(
        event_id, build_event_doc(extracted, venue, rec, path=path, vector=vector)
    )
    await services.classifications.mark_materialized(
        rec.run_id, rec.item_id, event_id=event_id, path=path
    )
    return event_id, True


async def materialize_run(services: "Services", run_id: str) -> MaterializeStats:
    stats = MaterializeStats()
    for rec in await services.classifications.list_positive(run_id):
        stats.processed += 1
        if rec.event_id:
            stats.skipped += 1
            continue
        try:
            _, created = await materialize_item(services, rec)
        except VenueNotFoundError as e:
            stats.errors += 1
            stats.venue_not_found += 1
            stats.error_items.append({"item_id": rec.item_id, "error": str(e)})
            logger.warning("Venue unresolved for %s/%s: %r", run_id, rec.item_id, e.venue_name)
            await services.classifications.record_error(
                run_id,
                rec.item_id,
                str(e),
                kind=e.kind,
                extra={"unresolved_venue": e.venue_name},
            )
            continue
        except Exception as e:
            message = error_message(e)
            stats.errors += 1
            stats.error_items.append({"item_id": rec.item_id, "error": message})
            logger.warning("Materialization failed for %s/%s: %s", run_id, rec.item_id, message)
            kind = getattr(e, "kind", "materialization")
            await services.classifications.record_error(run_id, rec.item_id, message, kind=kind)
            continue

        if created:
            stats.saved += 1
        else:
            stats.duplicates += 1

    logger.info(
        "Materialized run %s: processed=%d saved=%d duplicates=%d errors=%d",
        run_id,
        stats.processed,
        stats.saved,
        stats.duplicates,
        stats.errors,
    )
    return stats
