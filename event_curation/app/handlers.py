# event_curation/app/handlers.py
"""
HTTP (functions-framework) and CloudEvent entry points.

Every HTTP handler answers:
  200 {"success": true, ...}          on success
  400 / 404 {"success": false, ...}   on caller errors
  500 {"success": false, ...}         on anything else
  204                                 on CORS preflight
"""

from __future__ import annotations

import asyncio
import dataclasses
import functools
import logging
from datetime import date, datetime
from typing import Any, Awaitable, Callable

import functions_framework
from flask import Request

from event_curation.app.config import get_settings
from event_curation.app.errors import (
    InputError,
    InvalidPayloadError,
    MissingFieldError,
    NotFoundError,
    PipelineError,
    RunNotFoundError,
)
from event_curation.app.services import Services, open_services
from event_curation.app.tasks import SideEffects
from event_curation.app.utils import error_message
from event_curation.pipeline.classifier import classify_run as classify_run_items
from event_curation.pipeline.classifier import reclassify_item
from event_curation.pipeline.ingestion import handle_webhook, poll_runs
from event_curation.pipeline.materializer import materialize_run
from event_curation.pipeline.scheduler import run_auto_pipeline
from event_curation.pipeline.schedules import create_schedule, process_due_schedules
from event_curation.pipeline.trigger import start_scrape

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)

CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}
PREFLIGHT_HEADERS = {
    **CORS_HEADERS,
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "3600",
}

Handler = Callable[[dict[str, Any], Services, SideEffects], Awaitable[dict[str, Any]]]


# --- helpers ---


def jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(k): jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [jsonable(v) for v in value]
    if hasattr(value, "model_dump"):
        return jsonable(value.model_dump())
    return value


def _payload(request: Request) -> dict[str, Any]:
    body = request.get_json(silent=True)
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise InvalidPayloadError("Request body must be a JSON object")
    return {**request.args.to_dict(), **body}


def require(payload: dict[str, Any], *fields: str) -> list[str]:
    values = []
    for name in fields:
        value = payload.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            raise MissingFieldError(name)
        values.append(str(value).strip() if isinstance(value, str) else value)
    return values


def _error(status: int, message: str):
    return {"success": False, "error": message}, status, CORS_HEADERS


async def _invoke(fn: Handler, payload: dict[str, Any]) -> dict[str, Any]:
    async with open_services() as services:
        side_effects = SideEffects()
        try:
            return await fn(payload, services, side_effects)
        finally:
            await side_effects.drain()


def http_handler(*methods: str):
    allowed = set(methods or ("POST",))

    def decorator(fn: Handler):
        @functools.wraps(fn)
        def handler(request: Request):
            if request.method == "OPTIONS":
                return "", 204, PREFLIGHT_HEADERS
            if request.method not in allowed:
                return _error(405, f"Method {request.method} not allowed")
            try:
                payload = _payload(request)
                body = asyncio.run(_invoke(fn, payload))
            except InputError as e:
                logger.info("%s rejected input: %s", fn.__name__, e)
                return _error(400, str(e))
            except NotFoundError as e:
                return _error(404, str(e))
            except Exception as e:
                logger.exception("%s failed", fn.__name__)
                return _error(500, error_message(e))
            return {"success": True, **jsonable(body)}, 200, CORS_HEADERS

        return handler

    return decorator


def _int_arg(payload: dict[str, Any], name: str, default: int) -> int:
    try:
        return int(payload.get(name, default))
    except (TypeError, ValueError) as e:
        raise InvalidPayloadError(f"{name} must be an integer") from e


# ---- scrape trigger ---------------------------------------------------------


async def _start(kind: str, payload: dict[str, Any], services: Services) -> dict[str, Any]:
    run = await start_scrape(
        services,
        kind=kind,
        targets=payload.get("usernames"),
        newer_than=payload.get("startDate"),
    )
    return {
        "run_id": run.run_id,
        "dataset_id": run.dataset_ref,
        "kind": run.kind,
        "status": run.status,
        "targets": run.targets,
        "start_date": run.newer_than,
    }


@functions_framework.http
@http_handler("POST")
async def start_instagram_scraper(payload, services, side_effects):
    return await _start("posts", payload, services)


@functions_framework.http
@http_handler("POST")
async def start_instagram_stories_scraper(payload, services, side_effects):
    return await _start("stories", payload, services)


@functions_framework.http
@http_handler("POST")
async def schedule_scrape(payload, services, side_effects):
    (scheduled_for,) = require(payload, "scheduledFor")
    schedule_id = await create_schedule(
        services,
        scheduled_for,
        repeat=payload.get("repeat", "once"),
        kinds=payload.get("kinds"),
    )
    return {"schedule_id": schedule_id}


# ---- completion ingestion ---------------------------------------------------


@functions_framework.http
@http_handler("POST")
async def scrape_webhook(payload, services, side_effects):
    return await handle_webhook(services, payload, side_effects)


@functions_framework.http
@http_handler("GET", "POST")
async def poll_scrape_runs(payload, services, side_effects):
    log_id, entry = await poll_runs(services, side_effects)
    return {"log_id": log_id, **entry.model_dump()}


@functions_framework.http
@http_handler("POST")
async def delete_polling_log(payload, services, side_effects):
    (log_id,) = require(payload, "logId")
    if not await services.poll_logs.delete(log_id):
        raise NotFoundError(f"Polling log {log_id} not found")
    return {"log_id": log_id}


# ---- classification ---------------------------------------------------------


@functions_framework.http
@http_handler("POST")
async def classify_run(payload, services, side_effects):
    (run_id,) = require(payload, "runId")
    policy = services.policy
    if payload.get("confidenceThreshold") is not None:
        try:
            threshold = float(payload["confidenceThreshold"])
        except (TypeError, ValueError) as e:
            raise InvalidPayloadError("confidenceThreshold must be a number") from e
        if not 0.0 <= threshold <= 1.0:
            raise InvalidPayloadError("confidenceThreshold must be between 0 and 1")
        policy = dataclasses.replace(policy, threshold=threshold)
    max_concurrent = _int_arg(
        payload, "maxConcurrent", services.settings.classify_max_concurrent
    )
    stats = await classify_run_items(
        services, run_id, policy=policy, max_concurrent=max_concurrent
    )
    return {"run_id": run_id, **stats.as_dict()}


@functions_framework.http
@http_handler("POST")
async def retry_classify_item(payload, services, side_effects):
    run_id, item_id = require(payload, "runId", "itemId")
    result = await reclassify_item(services, run_id, str(item_id))
    if not result["success"]:
        raise PipelineError(result["error"])
    return {k: v for k, v in result.items() if k != "success"}


@functions_framework.http
@http_handler("POST")
async def delete_classification_item(payload, services, side_effects):
    run_id, item_id = require(payload, "runId", "itemId")
    if not await services.classifications.delete(run_id, str(item_id)):
        raise NotFoundError(f"No classification for {run_id}/{item_id}")
    return {"run_id": run_id, "item_id": item_id}


# ---- materialization / scheduler --------------------------------------------


@functions_framework.http
@http_handler("POST")
async def process_classified_run(payload, services, side_effects):
    (run_id,) = require(payload, "runId")
    stats = await materialize_run(services, run_id)
    return {"run_id": run_id, **stats.as_dict()}


@functions_framework.http
@http_handler("GET", "POST")
async def auto_classify_runs(payload, services, side_effects):
    report = await run_auto_pipeline(services)
    return report.as_dict()


# ---- run admin --------------------------------------------------------------


@functions_framework.http
@http_handler("GET")
async def list_runs(payload, services, side_effects):
    limit = min(max(_int_arg(payload, "limit", 50), 1), 500)
    runs = await services.runs.list_recent(limit)
    return {"runs": [r.model_dump() for r in runs]}


@functions_framework.http
@http_handler("GET")
async def get_run_results(payload, services, side_effects):
    (run_id,) = require(payload, "runId")
    run = await services.runs.get(run_id)
    cached = await services.results.get(run_id)
    if run is None and cached is None:
        raise RunNotFoundError(run_id)
    return {
        "run": run.model_dump() if run else None,
        "items": [item.model_dump() for item in cached.items] if cached else [],
        "item_count": cached.item_count if cached else 0,
    }


@functions_framework.http
@http_handler("POST")
async def reject_scraped_items(payload, services, side_effects):
    run_id, item_ids = require(payload, "runId", "itemIds")
    if not isinstance(item_ids, list):
        raise InvalidPayloadError("itemIds must be a list")
    removed = await services.results.trim(run_id, [str(i) for i in item_ids])
    return {"run_id": run_id, "removed": removed}


@functions_framework.http
@http_handler("POST")
async def delete_run(payload, services, side_effects):
    (run_id,) = require(payload, "runId")
    run = await services.runs.get(run_id)
    if run is None and not await services.results.exists(run_id):
        raise RunNotFoundError(run_id)
    await services.results.delete(run_id)
    await services.runs.delete(run_id)
    logger.info("Purged run %s", run_id)
    return {"run_id": run_id}


# ---- scheduled (Pub/Sub via Cloud Scheduler) --------------------------------


async def _scheduled(name: str, job: Callable[[Services, SideEffects], Awaitable[Any]]) -> Any:
    async with open_services() as services:
        side_effects = SideEffects()
        try:
            result = await job(services, side_effects)
        finally:
            await side_effects.drain()
    logger.info("%s finished", name)
    return result


@functions_framework.cloud_event
def scheduled_poll(cloud_event):
    asyncio.run(_scheduled("scheduled_poll", lambda s, fx: poll_runs(s, fx)))


@functions_framework.cloud_event
def scheduled_auto_classify(cloud_event):
    asyncio.run(_scheduled("scheduled_auto_classify", lambda s, fx: run_auto_pipeline(s)))


@functions_framework.cloud_event
def scheduled_scrapes(cloud_event):
    asyncio.run(_scheduled("scheduled_scrapes", lambda s, fx: process_due_schedules(s)))
