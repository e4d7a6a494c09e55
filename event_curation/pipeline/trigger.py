# event_curation/pipeline/trigger.py

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any, Iterable, Optional, Union

from event_curation.app.config import Settings
from event_curation.app.errors import InvalidPayloadError, NoTargetsError
from event_curation.app.utils import as_datetime, default_lookback, iso_z, utc_now
from event_curation.models.firestore_docs import RunDoc

if TYPE_CHECKING:
    from event_curation.app.services import Services

logger = logging.getLogger(__name__)


def parse_targets(value: Union[str, Iterable[str], None]) -> list[str]:
    """Accept a list or a comma-separated string; trim, drop '@', de-duplicate, drop empty."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    seen: dict[str, None] = {}
    for raw in value:
        name = str(raw or "").strip().lstrip("@").strip()
        if name:
            seen.setdefault(name, None)
    return list(seen)


def resolve_window(newer_than: Optional[str], now: datetime, hours: int) -> str:
    if not newer_than:
        return default_lookback(now, hours)
    parsed = as_datetime(newer_than)
    if parsed is None:
        raise InvalidPayloadError(f"startDate is not an ISO-8601 date: {newer_than!r}")
    return iso_z(parsed)


def build_actor_input(
    kind: str, targets: list[str], newer_than: str, settings: Settings
) -> tuple[str, dict[str, Any]]:
    if kind == "posts":
        return settings.apify_posts_actor, {"username": targets, "onlyPostsNewerThan": newer_than}
    if kind == "stories":
        return settings.apify_stories_actor, {"profiles": targets}
    raise InvalidPayloadError(f"Unknown run kind {kind!r}")


async def start_scrape(
    services: "Services",
    *,
    kind: str = "posts",
    targets: Union[str, Iterable[str], None] = None,
    newer_than: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RunDoc:
    """
    Start a provider scrape and record the run.
    Nothing is persisted when the provider call fails.
    """
    settings = services.settings
    now = now or utc_now()

    names = parse_targets(targets)
    if not names:
        names = await services.venues.source_identifiers()
        logger.info("Derived %d scrape targets from venues", len(names))
    if not names:
        raise NoTargetsError()

    window = resolve_window(newer_than, now, settings.scrape_lookback_hours)
    actor, run_input = build_actor_input(kind, names, window, settings)

    provider_run = await services.provider.start_run(
        actor, run_input, webhook_url=settings.scrape_webhook_url
    )

    run = RunDoc(
        run_id=provider_run.run_id,
        external_job_id=provider_run.run_id,
        dataset_ref=provider_run.dataset_id,
        kind=kind,
        status="initiated",
        targets=names,
        newer_than=window,
        initiated_at=now,
    )
    await services.runs.create(run)
    return run
