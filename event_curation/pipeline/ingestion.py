# event_curation/pipeline/ingestion.py
"""
Scrape completion ingestion.

Two independent paths reach the same end state (items cached, run completed,
classification ready):
  * push: the provider's webhook
  * pull: a poll over runs still waiting on the provider
The results-cache check is what keeps them from doing the work twice.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Optional

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from event_curation.app.clients.apify import SUCCEEDED, TERMINAL_FAILURE_STATES, ProviderRun
from event_curation.app.errors import InvalidPayloadError, ProviderError
from event_curation.app.normalize import normalize_items
from event_curation.app.tasks import SideEffects
from event_curation.app.utils import error_message
from event_curation.models.firestore_docs import OPEN_RUN_STATUSES, PollLogDoc, RunDoc

from .scheduler import process_run

if TYPE_CHECKING:
    from event_curation.app.services import Services

logger = logging.getLogger(__name__)


class WebhookPayload(BaseModel):
    run_id: str = Field(validation_alias=AliasChoices("runId", "run_id"), min_length=1)
    dataset_ref: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("datasetId", "datasetRef", "dataset_id")
    )
    status: str
    error: Optional[str] = None

    @field_validator("status")
    @classmethod
    def _upper(cls, v: str) -> str:
        return (v or "").strip().upper()

    @field_validator("dataset_ref", "error")
    @classmethod
    def _blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        # unrendered template variables come through as empty strings
        return v.strip() or None if isinstance(v, str) else v


def parse_webhook(payload: Any) -> WebhookPayload:
    if not isinstance(payload, dict):
        raise InvalidPayloadError("Webhook body must be a JSON object")
    try:
        return WebhookPayload.model_validate(payload)
    except ValidationError as e:
        raise InvalidPayloadError(f"Invalid webhook payload: {e.errors()[0]['msg']}") from e


async def store_results(
    services: "Services",
    run_id: str,
    kind: str,
    raw_items: list[dict[str, Any]],
    dataset_ref: Optional[str],
) -> int:
    """Normalize, cache, then flip the run. Safe to repeat."""
    items = normalize_items(raw_items)
    await services.results.put(run_id, kind, items)
    await services.runs.mark_completed(run_id, dataset_ref=dataset_ref, kind=kind)
    return len(items)


def _schedule_cleanup(services: "Services", side_effects: SideEffects, dataset_ref: Optional[str]) -> None:
    if dataset_ref:
        side_effects.spawn(
            services.provider.delete_dataset(dataset_ref), name=f"delete-dataset-{dataset_ref}"
        )


# ---- push -------------------------------------------------------------------


async def handle_webhook(
    services: "Services", payload: Any, side_effects: SideEffects
) -> dict[str, Any]:
    event = parse_webhook(payload)
    run = await services.runs.get(event.run_id)
    kind = run.kind if run else "posts"

    if event.status == SUCCEEDED:
        if await services.results.exists(event.run_id):
            # redelivery, or the poller got here first
            await services.runs.mark_completed(event.run_id)
            logger.info("Webhook for run %s already ingested", event.run_id)
            return {"run_id": event.run_id, "status": "completed", "duplicate": True}

        dataset_ref = event.dataset_ref or (run.dataset_ref if run else None)
        if not dataset_ref:
            raise InvalidPayloadError("datasetId is required for a SUCCEEDED run")

        raw_items = await services.provider.get_dataset_items(dataset_ref)
        count = await store_results(services, event.run_id, kind, raw_items, dataset_ref)
        _schedule_cleanup(services, side_effects, dataset_ref)
        logger.info("Webhook ingested %d items for run %s", count, event.run_id)
        return {"run_id": event.run_id, "status": "completed", "items": count}

    if event.status in TERMINAL_FAILURE_STATES:
        await services.scrape_errors.add(event.run_id, event.status, event.error)
        await services.runs.mark_failed(event.run_id, event.error or event.status)
        return {"run_id": event.run_id, "status": "failed", "error": event.error}

    raise InvalidPayloadError(f"Unsupported webhook status {event.status!r}")


# ---- pull -------------------------------------------------------------------


async def _poll_one(services: "Services", run: RunDoc, side_effects: SideEffects) -> str:
    """Returns "completed", "ingested", "failed" or "pending"."""
    if await services.results.exists(run.run_id):
        await services.runs.mark_completed(run.run_id)
        return "completed"

    provider_run: Optional[ProviderRun] = None
    lookup_error: Optional[ProviderError] = None
    try:
        provider_run = await services.provider.get_run(run.external_job_id or run.run_id)
    except ProviderError as e:
        lookup_error = e
        logger.warning("Status lookup failed for run %s: %s", run.run_id, e)

    if provider_run is not None and provider_run.failed:
        await services.runs.mark_failed(run.run_id, f"Provider reported {provider_run.status}")
        return "failed"

    if provider_run is not None and provider_run.succeeded:
        dataset_ref = provider_run.dataset_id or run.dataset_ref
        if not dataset_ref:
            raise ProviderError(f"Run {run.run_id} succeeded without a dataset")
        raw_items = await services.provider.get_dataset_items(dataset_ref)
        await store_results(services, run.run_id, run.kind, raw_items, dataset_ref)
        _schedule_cleanup(services, side_effects, dataset_ref)
        return "ingested"

    if provider_run is None:
        if not run.dataset_ref:
            raise lookup_error
        # status unknown, but the dataset may already hold the results
        raw_items = await services.provider.get_dataset_items(run.dataset_ref)
        if not raw_items:
            return "pending"
        await store_results(services, run.run_id, run.kind, raw_items, run.dataset_ref)
        _schedule_cleanup(services, side_effects, run.dataset_ref)
        return "ingested"

    return "pending"


async def poll_runs(
    services: "Services",
    side_effects: SideEffects,
    *,
    trigger_downstream: bool = True,
) -> tuple[str, PollLogDoc]:
    """One poll cycle over every run still waiting on the provider."""
    entry = PollLogDoc()
    runs = await services.runs.list_by_status(OPEN_RUN_STATUSES)

    for run in runs:
        entry.checked_run_ids.append(run.run_id)
        try:
            outcome = await _poll_one(services, run, side_effects)
        except Exception as e:
            message = error_message(e)
            logger.warning("Polling run %s failed: %s", run.run_id, message)
            entry.errors.append({"run_id": run.run_id, "error": message})
            continue

        if outcome in ("completed", "ingested"):
            entry.completed_run_ids.append(run.run_id)
        elif outcome == "failed":
            entry.failed_run_ids.append(run.run_id)

        if outcome == "ingested" and trigger_downstream:
            side_effects.spawn(
                process_run(services, run.run_id), name=f"process-run-{run.run_id}"
            )

    log_id = await services.poll_logs.add(entry)
    logger.info(
        "Poll %s: checked=%d completed=%d failed=%d errors=%d",
        log_id,
        len(entry.checked_run_ids),
        len(entry.completed_run_ids),
        len(entry.failed_run_ids),
        len(entry.errors),
    )
    return log_id, entry
