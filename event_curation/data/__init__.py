"""
event_curation.data

Firestore-backed stores. Each takes an explicitly constructed
`google.cloud.firestore.AsyncClient`; nothing here holds a module-level client.

    db = create_db(settings)
    runs = RunStore(db)
    ...
    await close_db(db)

Collections:
- scrape_runs       RunStore            run lifecycle + classification status
- scrape_results    ResultsCache        normalized items, one doc per run
- classifications   ClassificationStore verdict per {run_id}_{item_id}
- venues            VenueDirectory      canonical venues + instagram usernames
- events            EventStore          materialized events
- polling_logs      PollLogStore        one doc per poll cycle
- scrape_errors     ScrapeErrorLog      provider-reported failures
- scrape_schedules  ScheduleStore       deferred / daily scrapes
"""
from __future__ import annotations

from .audit import PollLogStore, ScrapeErrorLog
from .catalog import EventStore, VenueDirectory
from .classifications import ClassificationStore, classification_id
from .firestore_client import close_db, create_db
from .results import ResultsCache
from .runs import RunStore
from .schedules import ScheduleStore

__all__ = [
    "ClassificationStore",
    "EventStore",
    "PollLogStore",
    "ResultsCache",
    "RunStore",
    "ScheduleStore",
    "ScrapeErrorLog",
    "VenueDirectory",
    "classification_id",
    "close_db",
    "create_db",
]
