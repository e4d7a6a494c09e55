# event_curation/pipeline/scheduler.py
"""Auto-pipeline control loop: classify + materialize ready runs, then self-heal."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Optional

import structlog

from event_curation.app.utils import as_datetime, error_message, utc_now
from event_curation.models.firestore_docs import RunDoc

from .classifier import classify_run
from .materializer import materialize_run

if TYPE_CHECKING:
    from event_curation.app.services import Services

log = structlog.get_logger(__name__)


@dataclass
class CycleReport:
    processed: list[dict[str, Any]] = field(default_factory=list)
    healed: list[dict[str, Any]] = field(default_factory=list)
    logs: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


async def process_run(
    services: "Services", run_id: str, now: Optional[datetime] = None
) -> Optional[dict[str, Any]]:
    """
    Claim a ready run, classify and materialize it, and record the outcome.
    Returns None when the claim was lost (someone else has the run).
    """
    if not await services.runs.claim_for_classification(run_id, now):
        log.info("auto_pipeline.claim_skipped", run_id=run_id)
        return None

    log.info("auto_pipeline.claimed", run_id=run_id)
    try:
        classified = await classify_run(services, run_id)
        materialized = await materialize_run(services, run_id)
    except Exception as e:
        message = error_message(e)
        log.error("auto_pipeline.run_failed", run_id=run_id, error=message)
        await services.runs.mark_classification_failed(run_id, message)
        return {"run_id": run_id, "status": "failed", "error": message}

    stats = {
        "classification": classified.as_dict(),
        "materialization": {
            k: v for k, v in materialized.as_dict().items() if k != "error_items"
        },
    }
    await services.runs.mark_classification_completed(
        run_id, stats, item_errors=classified.errors
    )
    if classified.errors:
        log.warning(
            "auto_pipeline.items_unclassified", run_id=run_id, item_errors=classified.errors
        )
    log.info("auto_pipeline.run_completed", run_id=run_id, **stats["materialization"])
    return {
        "run_id": run_id,
        "status": "completed",
        "item_errors": classified.errors,
        "stats": stats,
    }


def heal_reason(run: RunDoc, now: datetime, stale_after: timedelta) -> Optional[str]:
    """Why a completed run should go back to ready, or None if it is fine."""
    if run.classification_status is None:
        return "missing_status"
    if run.classification_status == "in_progress":
        started = as_datetime(run.classification_started_at)
        if started is None or now - started > stale_after:
            return "stale_in_progress"
    return None


async def self_heal(services: "Services", now: Optional[datetime] = None) -> list[dict[str, Any]]:
    settings = services.settings
    now = now or utc_now()
    stale_after = timedelta(minutes=settings.stale_in_progress_minutes)

    # Claimed runs are found by query; a missing status can't be queried, so
    # that repair only looks at a bounded sample.
    candidates = {run.run_id: run for run in await services.runs.list_in_progress()}
    for run in await services.runs.list_completed(settings.self_heal_sample_size):
        if run.classification_status is None:
            candidates.setdefault(run.run_id, run)

    healed = []
    for run in candidates.values():
        reason = heal_reason(run, now, stale_after)
        if reason is None:
            continue
        reset = await services.runs.reset_classification(
            run.run_id, expected=run.classification_status, reason=reason
        )
        if reset:
            log.info("self_heal.reset_to_ready", run_id=run.run_id, reason=reason)
            healed.append({"run_id": run.run_id, "reason": reason})
    return healed


async def run_auto_pipeline(services: "Services", now: Optional[datetime] = None) -> CycleReport:
    """One scheduler tick."""
    report = CycleReport()
    ready = await services.runs.list_ready(services.settings.auto_pipeline_batch_size)
    report.logs.append(f"Found {len(ready)} run(s) ready for classification")

    for run in ready:
        outcome = await process_run(services, run.run_id, now)
        if outcome is None:
            report.logs.append(f"{run.run_id}: claimed elsewhere, skipped")
            continue
        report.processed.append(outcome)
        if outcome["status"] == "completed":
            mat = outcome["stats"]["materialization"]
            line = f"{run.run_id}: completed, {mat['saved']} event(s) saved, {mat['errors']} error(s)"
            if outcome["item_errors"]:
                line += f", {outcome['item_errors']} item(s) unclassified, re-run classify to retry"
            report.logs.append(line)
        else:
            report.logs.append(f"{run.run_id}: failed: {outcome['error']}")

    report.healed = await self_heal(services, now)
    for item in report.healed:
        report.logs.append(f"{item['run_id']}: reset to ready ({item['reason']})")
    return report
