# event_curation/scripts/seed_venues.py
"""
Load venues into Firestore from a JSON file:

    python -m event_curation.scripts.seed_venues venues.json

Each entry: {"id", "name", "nameVariations"?, "address"?, "latitude"?,
"longitude"?, "instagramUsernames"?}
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Iterable

from event_curation.app.config import get_settings
from event_curation.data import VenueDirectory, close_db, create_db
from event_curation.models.firestore_docs import VenueDoc

logger = logging.getLogger(__name__)


def _slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def venue_from_entry(entry: dict[str, Any]) -> VenueDoc:
    name = (entry.get("name") or "").strip()
    if not name:
        raise ValueError(f"venue entry without a name: {entry!r}")
    return VenueDoc(
        venue_id=entry.get("id") or _slug(name),
        name=name,
        name_variations=entry.get("nameVariations") or entry.get("name_variations") or [],
        address=entry.get("address"),
        latitude=entry.get("latitude"),
        longitude=entry.get("longitude"),
        instagram_usernames=entry.get("instagramUsernames")
        or entry.get("instagram_usernames")
        or [],
    )


async def seed(directory: VenueDirectory, entries: Iterable[dict[str, Any]]) -> int:
    count = 0
    for entry in entries:
        venue = venue_from_entry(entry)
        await directory.upsert(venue)
        logger.info("[ok] venue %s (%s)", venue.venue_id, venue.name)
        count += 1
    return count


async def main(path: str) -> int:
    entries = json.loads(Path(path).read_text(encoding="utf-8"))
    db = create_db(get_settings())
    try:
        return await seed(VenueDirectory(db), entries)
    finally:
        await close_db(db)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s - %(message)s")
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path")
    args = parser.parse_args()
    print(f"seeded {asyncio.run(main(args.path))} venues")
