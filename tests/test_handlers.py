# tests/test_handlers.py
"""HTTP entry points: status codes, envelopes, payload handling."""

from __future__ import annotations

import asyncio
import os
from contextlib import asynccontextmanager

import pytest
from flask import Flask, request

os.environ.setdefault("LANGSMITH_TRACING", "false")

from event_curation.app import handlers
from event_curation.app.clients.apify import ProviderRun
from event_curation.app.schemas import EventVerdict
from event_curation.app.utils import utc_now
from event_curation.models.firestore_docs import RunDoc, ScrapedItem
from event_curation.pipeline.classifier import EscalationPolicy
from tests.fakes import StubProvider, StubTier, make_services

app = Flask(__name__)


def call(fn, method="POST", json=None, query=None):
    with app.test_request_context("/", method=method, json=json, query_string=query):
        return fn(request)


@pytest.fixture
def services(db, monkeypatch):
    services = make_services(
        db,
        provider=StubProvider(
            runs={"r1": ProviderRun("r1", "ds1", "SUCCEEDED")},
            datasets={"ds1": [{"id": "p1", "displayUrl": "https://cdn/p1.jpg"}]},
        ),
    )

    @asynccontextmanager
    async def fake_open_services(settings=None):
        yield services

    monkeypatch.setattr(handlers, "open_services", fake_open_services)
    return services


def _seed(services, run_id="r1", items=("a", "b")):
    async def go():
        await services.runs.create(RunDoc(run_id=run_id, status="pending", initiated_at=utc_now()))
        await services.results.put(
            run_id,
            "posts",
            [ScrapedItem(item_id=i, original_index=n, media_url=f"https://cdn/{i}.jpg") for n, i in enumerate(items)],
        )

    asyncio.run(go())


# ---------------------------------------------------------------------------
# 1. Envelope and status mapping
# ---------------------------------------------------------------------------


class TestEnvelope:
    def test_preflight(self, services):
        body, status, headers = call(handlers.classify_run, method="OPTIONS")
        assert status == 204
        assert headers["Access-Control-Allow-Origin"] == "*"
        assert "POST" in headers["Access-Control-Allow-Methods"]

    def test_wrong_method(self, services):
        body, status, _ = call(handlers.classify_run, method="GET")
        assert status == 405
        assert body["success"] is False

    def test_missing_field(self, services):
        body, status, _ = call(handlers.classify_run, json={})
        assert status == 400
        assert body == {"success": False, "error": "runId is required"}

    def test_not_found(self, services):
        body, status, _ = call(handlers.classify_run, json={"runId": "nope"})
        assert status == 404
        assert "nope" in body["error"]

    def test_non_object_body(self, services):
        body, status, _ = call(handlers.scrape_webhook, json=["x"])
        assert status == 400

    def test_unexpected_error_is_500(self, db, monkeypatch):
        @asynccontextmanager
        async def broken(settings=None):
            raise RuntimeError("firestore unavailable")
            yield

        monkeypatch.setattr(handlers, "open_services", broken)
        body, status, _ = call(handlers.poll_scrape_runs)
        assert status == 500
        assert body == {"success": False, "error": "firestore unavailable"}


# ---------------------------------------------------------------------------
# 2. Handlers
# ---------------------------------------------------------------------------


class TestClassifyHandlers:
    def test_classify_run(self, services):
        _seed(services)
        body, status, _ = call(handlers.classify_run, json={"runId": "r1", "maxConcurrent": 1})
        assert status == 200
        assert body == {
            "success": True,
            "run_id": "r1",
            "processed": 2,
            "classified": 2,
            "skipped": 0,
            "errors": 0,
        }

    def test_confidence_threshold_override(self, services):
        _seed(services, items=("a",))
        services.policy = EscalationPolicy(
            triage=StubTier("triage-model", EventVerdict(is_event=True, confidence=0.8)),
            escalate=StubTier("escalate-model"),
            threshold=0.7,
        )

        call(handlers.classify_run, json={"runId": "r1", "confidenceThreshold": 0.85})

        assert len(services.policy.escalate.calls) == 1

    def test_bad_confidence_threshold(self, services):
        body, status, _ = call(handlers.classify_run, json={"runId": "r1", "confidenceThreshold": 2})
        assert status == 400

    def test_retry_failure_is_500(self, services):
        _seed(services, items=("a",))
        services.policy = EscalationPolicy(triage=StubTier("triage-model", RuntimeError("quota")))

        body, status, _ = call(handlers.retry_classify_item, json={"runId": "r1", "itemId": "a"})
        assert status == 500
        assert body["error"] == "quota"

    def test_retry_success(self, services):
        _seed(services, items=("a",))
        body, status, _ = call(handlers.retry_classify_item, json={"runId": "r1", "itemId": "a"})
        assert status == 200
        assert body["is_event"] is True
        assert body["success"] is True

    def test_delete_classification(self, services):
        _seed(services, items=("a",))
        call(handlers.classify_run, json={"runId": "r1"})

        _, status, _ = call(handlers.delete_classification_item, json={"runId": "r1", "itemId": "a"})
        assert status == 200
        _, status, _ = call(handlers.delete_classification_item, json={"runId": "r1", "itemId": "a"})
        assert status == 404


class TestRunHandlers:
    def test_webhook(self, services):
        body, status, _ = call(
            handlers.scrape_webhook,
            json={"runId": "r1", "datasetId": "ds1", "status": "SUCCEEDED"},
        )
        assert status == 200
        assert body["items"] == 1
        assert services.provider.deleted == ["ds1"]

    def test_poll(self, services, db):
        asyncio.run(services.runs.create(RunDoc(run_id="r1", status="initiated")))

        body, status, _ = call(handlers.poll_scrape_runs, method="GET")

        assert status == 200
        assert body["completed_run_ids"] == ["r1"]
        assert body["log_id"] in db.docs("polling_logs")
        assert isinstance(body["timestamp"], str)

    def test_delete_missing_poll_log(self, services):
        _, status, _ = call(handlers.delete_polling_log, json={"logId": "nope"})
        assert status == 404

    def test_list_runs_query_args(self, services):
        _seed(services)
        body, status, _ = call(handlers.list_runs, method="GET", query={"limit": "5"})
        assert status == 200
        assert [r["run_id"] for r in body["runs"]] == ["r1"]
        assert isinstance(body["runs"][0]["initiated_at"], str)

    def test_run_results(self, services):
        _seed(services)
        body, status, _ = call(handlers.get_run_results, method="GET", query={"runId": "r1"})
        assert status == 200
        assert body["item_count"] == 2
        assert body["run"]["status"] == "pending"

        _, status, _ = call(handlers.get_run_results, method="GET", query={"runId": "zzz"})
        assert status == 404

    def test_reject_items(self, services):
        _seed(services)
        body, status, _ = call(handlers.reject_scraped_items, json={"runId": "r1", "itemIds": ["a"]})
        assert (status, body["removed"]) == (200, 1)

        _, status, _ = call(handlers.reject_scraped_items, json={"runId": "r1", "itemIds": "a"})
        assert status == 400

    def test_delete_run(self, services, db):
        _seed(services)
        _, status, _ = call(handlers.delete_run, json={"runId": "r1"})
        assert status == 200
        assert db.docs("scrape_runs") == {}
        assert db.docs("scrape_results") == {}
        _, status, _ = call(handlers.delete_run, json={"runId": "r1"})
        assert status == 404

    def test_start_scraper_without_targets(self, services):
        body, status, _ = call(handlers.start_instagram_scraper, json={})
        assert status == 400
        assert "No scrape targets" in body["error"]

    def test_start_stories_scraper(self, services):
        body, status, _ = call(
            handlers.start_instagram_stories_scraper, json={"usernames": ["@club"]}
        )
        assert status == 200
        assert body["kind"] == "stories"
        assert body["targets"] == ["club"]

    def test_schedule_scrape(self, services):
        body, status, _ = call(
            handlers.schedule_scrape,
            json={"scheduledFor": "2030-01-01T09:00:00Z", "repeat": "daily"},
        )
        assert status == 200
        assert body["schedule_id"]


def test_scheduled_poll_cloud_event(services, db):
    handlers.scheduled_poll({"type": "google.cloud.pubsub.topic.v1.messagePublished"})
    assert len(db.docs("polling_logs")) == 1
