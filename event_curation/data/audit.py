# event_curation/data/audit.py
"""Append-only observability collections: poll logs and scrape errors."""

from __future__ import annotations

import logging
from typing import Optional

from event_curation.app.retry import firestore_retry
from event_curation.app.utils import utc_now
from event_curation.models.firestore_docs import PollLogDoc

from .firestore_client import POLLING_LOGS, SCRAPE_ERRORS

logger = logging.getLogger(__name__)


class PollLogStore:
    def __init__(self, db):
        self._col = db.collection(POLLING_LOGS)

    @firestore_retry
    async def add(self, log: PollLogDoc) -> str:
        _, ref = await self._col.add(log.model_dump())
        return ref.id

    @firestore_retry
    async def delete(self, log_id: str) -> bool:
        ref = self._col.document(log_id)
        snap = await ref.get()
        if not snap.exists:
            return False
        await ref.delete()
        return True


class ScrapeErrorLog:
    def __init__(self, db):
        self._col = db.collection(SCRAPE_ERRORS)

    @firestore_retry
    async def add(self, run_id: str, status: Optional[str], error: Optional[str]) -> str:
        _, ref = await self._col.add(
            {
                "run_id": run_id,
                "status": status,
                "error": error or "unknown error",
                "created_at": utc_now(),
            }
        )
        logger.warning("Scrape run %s reported %s: %s", run_id, status, error)
        return ref.id
