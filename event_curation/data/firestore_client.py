# event_curation/data/firestore_client.py
from __future__ import annotations

import inspect
import logging
from typing import Any, Optional

from google.api_core.exceptions import FailedPrecondition, NotFound
from google.auth.exceptions import DefaultCredentialsError
from google.cloud import firestore
from pydantic import BaseModel, ValidationError

from event_curation.app.config import Settings
from event_curation.app.utils import resolve_credentials

logger = logging.getLogger(__name__)

# Collection names
RUNS = "scrape_runs"
RESULTS = "scrape_results"
CLASSIFICATIONS = "classifications"
VENUES = "venues"
EVENTS = "events"
POLLING_LOGS = "polling_logs"
SCRAPE_ERRORS = "scrape_errors"
SCHEDULES = "scrape_schedules"


def create_db(settings: Settings) -> firestore.AsyncClient:
    """
    Build an async Firestore client. The caller owns it and must close() it.

    Settings used:
        GOOGLE_CLOUD_PROJECT - Firestore project ID
        FIRESTORE_DATABASE_ID - defaults to "(default)"
        ENVIRONMENT=local - load credentials from GOOGLE_APPLICATION_CREDENTIALS file
        FIRESTORE_EMULATOR_HOST - honoured by the client library itself
    """
    project = settings.google_cloud_project
    database = settings.firestore_database_id
    creds = resolve_credentials(settings.environment)
    logger.debug("creds type: %s", type(creds))

    try:
        db = firestore.AsyncClient(project=project, database=database, credentials=creds)
    except DefaultCredentialsError as e:
        raise RuntimeError(
            "Firestore credentials not found. Please set GOOGLE_APPLICATION_CREDENTIALS "
            "and GOOGLE_CLOUD_PROJECT, or run `gcloud auth application-default login`, "
            "or set FIRESTORE_EMULATOR_HOST."
        ) from e

    logger.info("Initialized Firestore client for project '%s' (DB: %s)", project, database)
    return db


async def update_if_unchanged(db, snapshot, data: dict[str, Any]) -> bool:
    """
    Compare-and-swap: apply `data` only if the document has not been written
    since `snapshot` was read. Returns False when another writer got there first.
    """
    option = db.write_option(last_update_time=snapshot.update_time)
    try:
        await snapshot.reference.update(data, option=option)
    except (FailedPrecondition, NotFound):
        logger.info("Conditional update lost race on %s", snapshot.reference.id)
        return False
    return True


def parse_doc(model: type[BaseModel], data: Optional[dict[str, Any]], **extra) -> Optional[BaseModel]:
    """Validate a stored document, logging (not raising) on legacy or corrupt shapes."""
    if data is None:
        return None
    try:
        return model.model_validate({**data, **extra})
    except ValidationError as e:
        logger.warning("Skipping unreadable %s document: %s", model.__name__, e)
        return None


async def close_db(db) -> None:
    """AsyncClient.close() is a coroutine on newer client versions, plain on older ones."""
    result = db.close()
    if inspect.isawaitable(result):
        await result
