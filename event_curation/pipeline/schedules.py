# event_curation/pipeline/schedules.py
"""Deferred and daily scrapes stored in `scrape_schedules`."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Iterable, Optional

from event_curation.app.errors import InvalidPayloadError
from event_curation.app.utils import as_datetime, error_message, utc_now
from event_curation.models.firestore_docs import ScrapeScheduleDoc

from .trigger import start_scrape

if TYPE_CHECKING:
    from event_curation.app.services import Services

logger = logging.getLogger(__name__)

_KINDS = ("posts", "stories")


async def create_schedule(
    services: "Services",
    scheduled_for: Any,
    *,
    repeat: str = "once",
    kinds: Optional[Iterable[str]] = None,
) -> str:
    when = as_datetime(scheduled_for)
    if when is None:
        raise InvalidPayloadError("scheduledFor must be an ISO-8601 date-time")
    if repeat not in ("once", "daily"):
        raise InvalidPayloadError("repeat must be 'once' or 'daily'")
    kinds = list(kinds or _KINDS)
    unknown = [k for k in kinds if k not in _KINDS]
    if unknown or not kinds:
        raise InvalidPayloadError(f"kinds must be a subset of {list(_KINDS)}")

    schedule_id = await services.schedules.create(
        ScrapeScheduleDoc(scheduled_for=when, repeat=repeat, kinds=kinds)
    )
    logger.info("Scheduled %s scrape %s for %s", repeat, schedule_id, when.isoformat())
    return schedule_id


def next_occurrence(previous: datetime, now: datetime) -> datetime:
    nxt = previous + timedelta(days=1)
    while nxt <= now:
        nxt += timedelta(days=1)
    return nxt


async def process_due_schedules(
    services: "Services", now: Optional[datetime] = None
) -> list[dict[str, Any]]:
    now = now or utc_now()
    results = []
    for sched in await services.schedules.list_due(now):
        if not await services.schedules.claim(sched.schedule_id):
            continue

        run_ids: list[str] = []
        errors: list[str] = []
        for kind in sched.kinds:
            try:
                run = await start_scrape(services, kind=kind, now=now)
                run_ids.append(run.run_id)
            except Exception as e:
                errors.append(f"{kind}: {error_message(e)}")
                logger.warning("Scheduled %s scrape %s failed: %s", kind, sched.schedule_id, e)

        update: dict[str, Any] = {
            "last_run_ids": run_ids,
            "last_run_at": now,
            "error": "; ".join(errors) or None,
        }
        if sched.repeat == "daily":
            update["status"] = "pending"
            update["scheduled_for"] = next_occurrence(as_datetime(sched.scheduled_for), now)
        else:
            update["status"] = "completed" if run_ids else "failed"
        await services.schedules.finish(sched.schedule_id, update)
        results.append({"schedule_id": sched.schedule_id, "run_ids": run_ids, "errors": errors})
    return results
