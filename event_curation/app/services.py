# event_curation/app/services.py
"""
Explicitly constructed collaborators for one handler invocation.

    async with open_services() as services:
        await classify_run(services, run_id)

Every client is created on entry and closed on exit; nothing is cached at
module level, so each event loop gets its own connections.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

import httpx
from google.cloud import storage

from event_curation.app.clients.apify import ApifyClient
from event_curation.app.clients.embeddings import EMBEDDING_DIM, Embedder, get_embeddings_model
from event_curation.app.clients.llms import FlyerExtractor, VisionEventClassifier
from event_curation.app.clients.media import MediaFetcher
from event_curation.app.clients.storage import BlobStorage
from event_curation.app.config import Settings, get_settings
from event_curation.app.utils import resolve_credentials
from event_curation.data import (
    ClassificationStore,
    EventStore,
    PollLogStore,
    ResultsCache,
    RunStore,
    ScheduleStore,
    ScrapeErrorLog,
    VenueDirectory,
    close_db,
    create_db,
)
from event_curation.pipeline.classifier import EscalationPolicy

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    # stores
    runs: RunStore
    results: ResultsCache
    classifications: ClassificationStore
    venues: VenueDirectory
    events: EventStore
    poll_logs: PollLogStore
    scrape_errors: ScrapeErrorLog
    schedules: ScheduleStore
    # external collaborators
    provider: ApifyClient
    media: MediaFetcher
    storage: BlobStorage
    extractor: FlyerExtractor
    embedder: Embedder
    policy: EscalationPolicy


def build_policy(settings: Settings) -> EscalationPolicy:
    def tier(model_name: str) -> VisionEventClassifier:
        return VisionEventClassifier(
            model_name=model_name, provider=settings.llm_provider, settings=settings
        )

    return EscalationPolicy(
        triage=tier(settings.triage_model),
        escalate=tier(settings.escalate_model),
        threshold=settings.confidence_threshold,
    )


@asynccontextmanager
async def open_services(settings: Optional[Settings] = None) -> AsyncIterator[Services]:
    settings = settings or get_settings()
    db = create_db(settings)
    http = httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=10.0))
    gcs = storage.Client(
        project=settings.google_cloud_project,
        credentials=resolve_credentials(settings.environment),
    )
    try:
        blobs = BlobStorage(gcs, settings.storage_bucket)
        dim = EMBEDDING_DIM if settings.embedding_model == "text-embedding-004" else None
        yield Services(
            settings=settings,
            runs=RunStore(db),
            results=ResultsCache(db),
            classifications=ClassificationStore(db),
            venues=VenueDirectory(db),
            events=EventStore(db),
            poll_logs=PollLogStore(db),
            scrape_errors=ScrapeErrorLog(db),
            schedules=ScheduleStore(db),
            provider=ApifyClient(http, settings.apify_api_token, settings.apify_base_url),
            media=MediaFetcher(http),
            storage=blobs,
            extractor=FlyerExtractor(
                storage=blobs,
                model_name=settings.extraction_model,
                provider=settings.llm_provider,
                settings=settings,
            ),
            embedder=Embedder(factory=lambda: get_embeddings_model(settings), dim=dim),
            policy=build_policy(settings),
        )
    finally:
        await http.aclose()
        await close_db(db)
        gcs.close()
        logger.debug("Closed service clients")
