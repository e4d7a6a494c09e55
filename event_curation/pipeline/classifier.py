# event_curation/pipeline/classifier.py
"""
Per-item event classification for one run.

Two model tiers: a cheap triage model answers first; when its confidence is
below the policy threshold a stronger model is asked again. Items that already
have a classification record are never sent to a model.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional, Protocol, Sequence

from event_curation.app.errors import ItemNotFoundError, ResultsNotFoundError
from event_curation.app.normalize import looks_like_video_file
from event_curation.app.schemas import ClassifyStats, EventVerdict, ModelMeta
from event_curation.app.utils import error_message
from event_curation.models.firestore_docs import ClassificationDoc, ScrapedItem

if TYPE_CHECKING:
    from event_curation.app.services import Services

logger = logging.getLogger(__name__)

REASON_NO_IMAGE = "no-image"
REASON_VIDEO_DEFERRED = "video-without-thumbnail: deferred"
INSTAGRAM_MEDIA_URL = "https://www.instagram.com/p/{shortcode}/media/?size=l"


class TierModel(Protocol):
    model_name: str

    async def classify(self, image_url: str, caption: str) -> EventVerdict: ...


@dataclass(frozen=True)
class EscalationPolicy:
    triage: TierModel
    escalate: Optional[TierModel] = None
    threshold: float = 0.7

    def should_escalate(self, verdict: EventVerdict) -> bool:
        return self.escalate is not None and verdict.confidence < self.threshold


# Priority order for the image handed to the model.
IMAGE_URL_SOURCES: Sequence[Callable[[ScrapedItem], Optional[str]]] = (
    lambda item: None if looks_like_video_file(item.media_url) else item.media_url,
    lambda item: item.thumbnail_url,
    lambda item: INSTAGRAM_MEDIA_URL.format(shortcode=item.shortcode) if item.shortcode else None,
)


def pick_image_url(item: ScrapedItem) -> Optional[str]:
    for source in IMAGE_URL_SOURCES:
        url = source(item)
        if url:
            return url
    return None


def is_video_without_thumbnail(item: ScrapedItem) -> bool:
    if not item.is_video or item.thumbnail_url:
        return False
    return not item.media_url or looks_like_video_file(item.media_url)


async def decide(
    item: ScrapedItem, policy: EscalationPolicy
) -> tuple[EventVerdict, Optional[str], ModelMeta]:
    """
    Verdict for one item. Raises when the triage model fails; an escalation
    failure falls back to the triage verdict.
    """
    meta: ModelMeta = {"triage": None, "escalate": None, "used": None}

    if is_video_without_thumbnail(item):
        return EventVerdict.negative(REASON_VIDEO_DEFERRED), None, meta

    image_url = pick_image_url(item)
    if not image_url:
        return EventVerdict.negative(REASON_NO_IMAGE), None, meta

    verdict = await policy.triage.classify(image_url, item.caption)
    meta["triage"] = meta["used"] = policy.triage.model_name

    if policy.should_escalate(verdict):
        try:
            verdict = await policy.escalate.classify(image_url, item.caption)
            meta["escalate"] = meta["used"] = policy.escalate.model_name
        except Exception as e:
            logger.warning(
                "Escalation failed for item %s, keeping triage verdict: %s",
                item.item_id,
                error_message(e),
            )
    return verdict, image_url, meta


def build_record(
    run_id: str,
    kind: str,
    item: ScrapedItem,
    verdict: EventVerdict,
    image_url: Optional[str],
    meta: ModelMeta,
) -> ClassificationDoc:
    return ClassificationDoc(
        run_id=run_id,
        item_id=item.item_id,
        kind=kind,
        is_event=verdict.is_event,
        confidence=verdict.confidence,
        reasons=verdict.reasons,
        signals=verdict.signals.model_dump(),
        image_url=image_url,
        caption=item.caption,
        owner_username=item.owner_username,
        timestamp=item.timestamp,
        model=dict(meta),
    )


async def classify_run(
    services: "Services",
    run_id: str,
    *,
    policy: Optional[EscalationPolicy] = None,
    max_concurrent: Optional[int] = None,
) -> ClassifyStats:
    """Classify every not-yet-classified item of a run with at most N model calls in flight."""
    policy = policy or services.policy
    limit = max(1, max_concurrent or services.settings.classify_max_concurrent)

    cached = await services.results.get(run_id)
    if cached is None:
        raise ResultsNotFoundError(run_id)

    stats = ClassifyStats()
    existing = await services.classifications.existing_item_ids(run_id)

    # Existence is checked before anything is queued, so no item can reach a
    # model twice within one invocation or after an earlier one stored it.
    queue: asyncio.Queue[ScrapedItem] = asyncio.Queue()
    for item in cached.items:
        stats.processed += 1
        if item.item_id in existing:
            stats.skipped += 1
            continue
        existing.add(item.item_id)
        queue.put_nowait(item)

    async def worker() -> None:
        while True:
            try:
                item = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                verdict, image_url, meta = await decide(item, policy)
                await services.classifications.save(
                    build_record(run_id, cached.kind, item, verdict, image_url, meta)
                )
                stats.classified += 1
            except Exception as e:
                stats.errors += 1
                logger.warning(
                    "Classification failed for %s/%s: %s", run_id, item.item_id, error_message(e)
                )
            finally:
                queue.task_done()

    workers = [asyncio.create_task(worker()) for _ in range(min(limit, queue.qsize()))]
    await asyncio.gather(*workers)

    logger.info("Classified run %s: %s", run_id, stats.as_dict())
    return stats


async def reclassify_item(
    services: "Services",
    run_id: str,
    item_id: str,
    *,
    policy: Optional[EscalationPolicy] = None,
) -> dict:
    """
    Forced re-classification of one item, overwriting (merge) any earlier verdict.
    The item comes from the results cache, or is rebuilt from its existing record.
    """
    policy = policy or services.policy
    cached = await services.results.get(run_id)
    existing = await services.classifications.get(run_id, item_id)

    item = None
    kind = "posts"
    if cached is not None:
        kind = cached.kind
        item = next((it for it in cached.items if it.item_id == item_id), None)
    if item is None and existing is not None and existing.image_url:
        kind = existing.kind
        item = ScrapedItem(
            item_id=item_id,
            original_index=-1,
            media_url=existing.image_url,
            caption=existing.caption,
            owner_username=existing.owner_username,
            timestamp=existing.timestamp,
        )
    if item is None:
        raise ItemNotFoundError(run_id, item_id)

    try:
        verdict, image_url, meta = await decide(item, policy)
    except Exception as e:
        message = error_message(e)
        logger.warning("Re-classification failed for %s/%s: %s", run_id, item_id, message)
        # an error-only record would read as "already classified" to the batch path
        if existing is not None:
            await services.classifications.record_error(
                run_id, item_id, message, kind="classification"
            )
        return {"success": False, "run_id": run_id, "item_id": item_id, "error": message}

    record = build_record(run_id, kind, item, verdict, image_url, meta)
    await services.classifications.save(record, overwrite=existing is not None)
    return {
        "success": True,
        "run_id": run_id,
        "item_id": item_id,
        "is_event": record.is_event,
        "confidence": record.confidence,
        "reasons": record.reasons,
        "model": record.model,
    }
