# event_curation/data/classifications.py
"""Classification Store: `classifications/{run_id}_{item_id}`, the per-item idempotency key."""

from __future__ import annotations

import logging
from typing import Any, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from event_curation.app.retry import firestore_retry, firestore_write_with_retry
from event_curation.app.utils import utc_now
from event_curation.models.firestore_docs import ClassificationDoc

from .firestore_client import CLASSIFICATIONS, parse_doc

logger = logging.getLogger(__name__)


def classification_id(run_id: str, item_id: str) -> str:
    return f"{run_id}_{item_id}".replace("/", "_")


class ClassificationStore:
    def __init__(self, db):
        self._col = db.collection(CLASSIFICATIONS)

    def _ref(self, run_id: str, item_id: str):
        return self._col.document(classification_id(run_id, item_id))

    async def _query(self, query) -> list[ClassificationDoc]:
        out = []
        async for doc in query.stream():
            rec = parse_doc(ClassificationDoc, doc.to_dict())
            if rec is not None:
                out.append(rec)
        return out

    # --- reads ---

    @firestore_retry
    async def get(self, run_id: str, item_id: str) -> Optional[ClassificationDoc]:
        snap = await self._ref(run_id, item_id).get()
        if not snap.exists:
            return None
        return parse_doc(ClassificationDoc, snap.to_dict())

    async def existing_item_ids(self, run_id: str) -> set[str]:
        """Item ids that already have a record for this run, in one query."""
        ids: set[str] = set()
        query = self._col.where(filter=FieldFilter("run_id", "==", run_id))
        async for doc in query.stream():
            item_id = (doc.to_dict() or {}).get("item_id")
            if item_id is not None:
                ids.add(str(item_id))
        return ids

    async def list_positive(self, run_id: str) -> list[ClassificationDoc]:
        query = self._col.where(filter=FieldFilter("run_id", "==", run_id)).where(
            filter=FieldFilter("is_event", "==", True)
        )
        return await self._query(query)

    async def list_for_run(self, run_id: str) -> list[ClassificationDoc]:
        return await self._query(self._col.where(filter=FieldFilter("run_id", "==", run_id)))

    # --- writes (all merge) ---

    @firestore_retry
    async def save(self, record: ClassificationDoc, *, overwrite: bool = False) -> None:
        """Merge a verdict. An overwrite keeps the record's original created_at."""
        exclude = {"event_id", "path"}
        if overwrite:
            exclude.add("created_at")
        data = record.model_dump(exclude=exclude)
        data["updated_at"] = utc_now()
        await self._ref(record.run_id, record.item_id).set(data, merge=True)

    async def annotate(self, run_id: str, item_id: str, data: dict[str, Any]) -> None:
        await firestore_write_with_retry(
            self._ref(run_id, item_id), {**data, "updated_at": utc_now()}, merge=True
        )

    async def mark_materialized(self, run_id: str, item_id: str, *, event_id: str, path: str) -> None:
        await self.annotate(
            run_id,
            item_id,
            {"event_id": event_id, "path": path, "error": None, "error_kind": None},
        )

    async def record_error(
        self,
        run_id: str,
        item_id: str,
        error: str,
        *,
        kind: str,
        extra: Optional[dict[str, Any]] = None,
    ) -> None:
        await self.annotate(
            run_id, item_id, {"error": error, "error_kind": kind, **(extra or {})}
        )

    @firestore_retry
    async def delete(self, run_id: str, item_id: str) -> bool:
        ref = self._ref(run_id, item_id)
        snap = await ref.get()
        if not snap.exists:
            return False
        await ref.delete()
        return True
