# event_curation/data/runs.py
"""Run Store: one document per scrape run in `scrape_runs`."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from event_curation.app.retry import firestore_retry
from event_curation.app.utils import utc_now
from event_curation.models.firestore_docs import RunDoc

from .firestore_client import RUNS, parse_doc, update_if_unchanged

logger = logging.getLogger(__name__)


class RunStore:
    def __init__(self, db):
        self._db = db
        self._col = db.collection(RUNS)

    async def _query(self, query) -> list[RunDoc]:
        runs = []
        async for doc in query.stream():
            run = parse_doc(RunDoc, doc.to_dict(), run_id=doc.id)
            if run is not None:
                runs.append(run)
        return runs

    # --- reads ---

    @firestore_retry
    async def get(self, run_id: str) -> Optional[RunDoc]:
        snap = await self._col.document(run_id).get()
        if not snap.exists:
            return None
        return parse_doc(RunDoc, snap.to_dict(), run_id=run_id)

    async def list_by_status(self, statuses: Iterable[str], limit: Optional[int] = None) -> list[RunDoc]:
        query = self._col.where(filter=FieldFilter("status", "in", list(statuses)))
        if limit:
            query = query.limit(limit)
        return await self._query(query)

    async def list_ready(self, limit: int) -> list[RunDoc]:
        """Completed runs waiting for classification."""
        query = (
            self._col.where(filter=FieldFilter("status", "==", "completed"))
            .where(filter=FieldFilter("classification_status", "==", "ready"))
            .limit(limit)
        )
        return await self._query(query)

    async def list_completed(self, limit: int) -> list[RunDoc]:
        query = self._col.where(filter=FieldFilter("status", "==", "completed")).limit(limit)
        return await self._query(query)

    async def list_in_progress(self, limit: Optional[int] = None) -> list[RunDoc]:
        """Completed runs currently claimed for classification."""
        query = self._col.where(filter=FieldFilter("status", "==", "completed")).where(
            filter=FieldFilter("classification_status", "==", "in_progress")
        )
        if limit:
            query = query.limit(limit)
        return await self._query(query)

    async def list_recent(self, limit: int = 50) -> list[RunDoc]:
        query = self._col.order_by(
            "initiated_at", direction=firestore.Query.DESCENDING
        ).limit(limit)
        return await self._query(query)

    # --- writes (all merge) ---

    @firestore_retry
    async def create(self, run: RunDoc) -> None:
        await self._col.document(run.run_id).set(run.model_dump(), merge=True)
        logger.info("Recorded run %s (%s, %d targets)", run.run_id, run.kind, len(run.targets))

    @firestore_retry
    async def _merge(self, run_id: str, data: dict[str, Any]) -> None:
        await self._col.document(run_id).set({**data, "updated_at": utc_now()}, merge=True)

    async def mark_completed(
        self,
        run_id: str,
        *,
        dataset_ref: Optional[str] = None,
        kind: Optional[str] = None,
    ) -> bool:
        """
        Flip a run to completed and make it ready for classification.

        classification_status is only initialised when unset, so a repeated
        completion never rewinds a run the scheduler already picked up.
        Returns True when this call performed the status flip.
        """
        snap = await self._col.document(run_id).get()
        current = (snap.to_dict() or {}) if snap.exists else {}

        update: dict[str, Any] = {"run_id": run_id, "status": "completed"}
        flipped = current.get("status") != "completed"
        if flipped:
            update["completed_at"] = utc_now()
            update["error"] = None
        if current.get("classification_status") is None:
            update["classification_status"] = "ready"
        if dataset_ref and not current.get("dataset_ref"):
            update["dataset_ref"] = dataset_ref
        if kind and not current.get("kind"):
            update["kind"] = kind
        await self._merge(run_id, update)
        return flipped

    async def mark_failed(self, run_id: str, error: Optional[str]) -> bool:
        """Completed runs are never downgraded by a late failure notice."""
        snap = await self._col.document(run_id).get()
        if snap.exists and (snap.to_dict() or {}).get("status") == "completed":
            logger.warning("Ignoring failure for already completed run %s: %s", run_id, error)
            return False
        await self._merge(
            run_id,
            {"run_id": run_id, "status": "failed", "error": error, "failed_at": utc_now()},
        )
        return True

    # --- classification lifecycle ---

    async def claim_for_classification(self, run_id: str, now: Optional[datetime] = None) -> bool:
        """ready -> in_progress, guarded by a compare-and-swap on the document."""
        snap = await self._col.document(run_id).get()
        if not snap.exists:
            return False
        data = snap.to_dict() or {}
        if data.get("status") != "completed" or data.get("classification_status") != "ready":
            return False
        now = now or utc_now()
        return await update_if_unchanged(
            self._db,
            snap,
            {
                "classification_status": "in_progress",
                "classification_started_at": now,
                "classification_error": None,
                "updated_at": now,
            },
        )

    async def reset_classification(
        self, run_id: str, *, expected: Optional[str], reason: str
    ) -> bool:
        """Self-heal: put a run back to ready if its status is still `expected`."""
        snap = await self._col.document(run_id).get()
        if not snap.exists:
            return False
        if (snap.to_dict() or {}).get("classification_status") != expected:
            return False
        return await update_if_unchanged(
            self._db,
            snap,
            {
                "classification_status": "ready",
                "classification_reset_reason": reason,
                "classification_reset_at": utc_now(),
                "updated_at": utc_now(),
            },
        )

    async def mark_classification_completed(
        self, run_id: str, stats: dict[str, Any], *, item_errors: int = 0
    ) -> None:
        """item_errors counts items left unclassified; a manual classify retries only those."""
        await self._merge(
            run_id,
            {
                "classification_status": "completed",
                "classification_completed_at": utc_now(),
                "classification_item_errors": item_errors,
                "processing_stats": stats,
            },
        )

    async def mark_classification_failed(self, run_id: str, error: str) -> None:
        await self._merge(
            run_id,
            {
                "classification_status": "failed",
                "classification_failed_at": utc_now(),
                "classification_error": error,
            },
        )

    # --- admin ---

    @firestore_retry
    async def delete(self, run_id: str) -> None:
        await self._col.document(run_id).delete()
