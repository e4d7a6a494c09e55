# event_curation/data/results.py
"""Results Cache: one `scrape_results` document per run holding its normalized items."""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from event_curation.app.retry import firestore_retry
from event_curation.app.utils import utc_now
from event_curation.models.firestore_docs import ResultsDoc, ScrapedItem

from .firestore_client import RESULTS, parse_doc, update_if_unchanged

logger = logging.getLogger(__name__)


class ResultsCache:
    def __init__(self, db):
        self._db = db
        self._col = db.collection(RESULTS)

    @firestore_retry
    async def exists(self, run_id: str) -> bool:
        snap = await self._col.document(run_id).get()
        return snap.exists

    @firestore_retry
    async def get(self, run_id: str) -> Optional[ResultsDoc]:
        snap = await self._col.document(run_id).get()
        if not snap.exists:
            return None
        return parse_doc(ResultsDoc, snap.to_dict(), run_id=run_id)

    @firestore_retry
    async def put(self, run_id: str, kind: str, items: list[ScrapedItem]) -> None:
        """Idempotent upsert: the items array is replaced as a whole, never appended to."""
        now = utc_now()
        await self._col.document(run_id).set(
            {
                "run_id": run_id,
                "kind": kind,
                "items": [item.model_dump() for item in items],
                "item_count": len(items),
                "completed_at": now,
                "updated_at": now,
            },
            merge=True,
        )
        logger.info("Cached %d items for run %s", len(items), run_id)

    async def trim(self, run_id: str, item_ids: Iterable[str], attempts: int = 3) -> int:
        """Drop consumed/rejected items. Returns how many were removed."""
        drop = set(item_ids)
        for _ in range(attempts):
            snap = await self._col.document(run_id).get()
            if not snap.exists:
                return 0
            items = (snap.to_dict() or {}).get("items") or []
            kept = [it for it in items if it.get("item_id") not in drop]
            removed = len(items) - len(kept)
            if removed == 0:
                return 0
            ok = await update_if_unchanged(
                self._db,
                snap,
                {"items": kept, "item_count": len(kept), "updated_at": utc_now()},
            )
            if ok:
                logger.info("Trimmed %d items from run %s", removed, run_id)
                return removed
        raise RuntimeError(f"Could not trim results for run {run_id}: concurrent writers")

    @firestore_retry
    async def delete(self, run_id: str) -> None:
        await self._col.document(run_id).delete()
