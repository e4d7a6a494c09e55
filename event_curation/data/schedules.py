# event_curation/data/schedules.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from event_curation.app.retry import firestore_retry
from event_curation.app.utils import utc_now
from event_curation.models.firestore_docs import ScrapeScheduleDoc

from .firestore_client import SCHEDULES, parse_doc, update_if_unchanged

logger = logging.getLogger(__name__)


class ScheduleStore:
    def __init__(self, db):
        self._db = db
        self._col = db.collection(SCHEDULES)

    @firestore_retry
    async def create(self, schedule: ScrapeScheduleDoc) -> str:
        ref = self._col.document(schedule.schedule_id) if schedule.schedule_id else self._col.document()
        await ref.set(schedule.model_dump(exclude={"schedule_id"}), merge=True)
        return ref.id

    async def list_due(self, now: datetime, limit: int = 10) -> list[ScrapeScheduleDoc]:
        query = (
            self._col.where(filter=FieldFilter("status", "==", "pending"))
            .where(filter=FieldFilter("scheduled_for", "<=", now))
            .limit(limit)
        )
        due = []
        async for doc in query.stream():
            sched = parse_doc(ScrapeScheduleDoc, doc.to_dict(), schedule_id=doc.id)
            if sched is not None:
                due.append(sched)
        return due

    async def claim(self, schedule_id: str) -> bool:
        """pending -> processing, so two sweeps never fire the same schedule."""
        snap = await self._col.document(schedule_id).get()
        if not snap.exists or (snap.to_dict() or {}).get("status") != "pending":
            return False
        return await update_if_unchanged(
            self._db, snap, {"status": "processing", "updated_at": utc_now()}
        )

    @firestore_retry
    async def finish(self, schedule_id: str, data: dict[str, Any]) -> None:
        await self._col.document(schedule_id).set({**data, "updated_at": utc_now()}, merge=True)

    @firestore_retry
    async def get(self, schedule_id: str) -> Optional[ScrapeScheduleDoc]:
        snap = await self._col.document(schedule_id).get()
        if not snap.exists:
            return None
        return parse_doc(ScrapeScheduleDoc, snap.to_dict(), schedule_id=schedule_id)
