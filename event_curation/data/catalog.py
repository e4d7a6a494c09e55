# event_curation/data/catalog.py
"""Venue directory (read-only here) and the canonical event collection."""

from __future__ import annotations

import logging
from typing import Any, Optional

from google.cloud.firestore_v1.base_query import FieldFilter

from event_curation.app.retry import firestore_retry, firestore_write_with_retry
from event_curation.models.firestore_docs import VenueDoc

from .firestore_client import EVENTS, VENUES, parse_doc

logger = logging.getLogger(__name__)


def _fold(name: Optional[str]) -> str:
    return (name or "").strip().casefold()


class VenueDirectory:
    def __init__(self, db):
        self._col = db.collection(VENUES)

    async def all(self) -> list[VenueDoc]:
        venues = []
        async for doc in self._col.stream():
            venue = parse_doc(VenueDoc, doc.to_dict(), venue_id=doc.id)
            if venue is not None:
                venues.append(venue)
        return venues

    async def resolve(self, name: Optional[str]) -> Optional[VenueDoc]:
        """
        Exact canonical-name match first, then a case-insensitive scan of
        every venue's name and alternate names.
        """
        wanted = (name or "").strip()
        if not wanted:
            return None

        query = self._col.where(filter=FieldFilter("name", "==", wanted)).limit(1)
        async for doc in query.stream():
            venue = parse_doc(VenueDoc, doc.to_dict(), venue_id=doc.id)
            if venue is not None:
                return venue

        folded = _fold(wanted)
        for venue in await self.all():
            if _fold(venue.name) == folded:
                return venue
            if any(_fold(alt) == folded for alt in venue.name_variations):
                return venue
        logger.info("No venue matches %r", wanted)
        return None

    async def source_identifiers(self) -> list[str]:
        """Union of every venue's instagram usernames: trimmed, de-duplicated, non-empty."""
        seen: dict[str, None] = {}
        for venue in await self.all():
            for username in venue.instagram_usernames:
                cleaned = (username or "").strip()
                if cleaned:
                    seen.setdefault(cleaned, None)
        return list(seen)

    @firestore_retry
    async def upsert(self, venue: VenueDoc) -> None:
        data = venue.model_dump(exclude={"venue_id"})
        await self._col.document(venue.venue_id).set(data, merge=True)


class EventStore:
    def __init__(self, db):
        self._col = db.collection(EVENTS)

    @firestore_retry
    async def get(self, event_id: str) -> Optional[dict[str, Any]]:
        snap = await self._col.document(event_id).get()
        return snap.to_dict() if snap.exists else None

    async def find_duplicate(
        self, name: Optional[str], start: Optional[str], venue_id: str
    ) -> Optional[str]:
        """Id of an existing event with the same name, start and venue, if any."""
        if not name or not start:
            return None
        query = (
            self._col.where(filter=FieldFilter("venue_id", "==", venue_id))
            .where(filter=FieldFilter("name", "==", name))
            .where(filter=FieldFilter("date.start", "==", start))
            .limit(1)
        )
        async for doc in query.stream():
            return doc.id
        return None

    async def commit(self, event_id: str, data: dict[str, Any]) -> str:
        await firestore_write_with_retry(self._col.document(event_id), data, merge=True)
        logger.info("Saved event %s (%s)", event_id, data.get("name"))
        return event_id
