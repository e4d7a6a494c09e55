# tests/test_scheduler.py
"""Auto-pipeline ticks and self-healing."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from event_curation.models.firestore_docs import RunDoc, ScrapedItem
from event_curation.pipeline.classifier import EscalationPolicy
from event_curation.pipeline.scheduler import (
    heal_reason,
    process_run,
    run_auto_pipeline,
    self_heal,
)
from tests.fakes import StubTier, make_services, make_settings

NOW = datetime(2025, 3, 10, 12, 0, tzinfo=UTC)
STALE_AFTER = timedelta(minutes=15)


async def _completed_run(services, run_id, items=("a",)):
    await services.runs.create(RunDoc(run_id=run_id))
    await services.results.put(
        run_id,
        "posts",
        [ScrapedItem(item_id=i, original_index=n) for n, i in enumerate(items)],
    )
    await services.runs.mark_completed(run_id)


class TestHealReason:
    def test_missing_status(self):
        run = RunDoc(run_id="r", status="completed")
        assert heal_reason(run, NOW, STALE_AFTER) == "missing_status"

    def test_stale_in_progress(self):
        run = RunDoc(
            run_id="r",
            status="completed",
            classification_status="in_progress",
            classification_started_at=NOW - timedelta(minutes=16),
        )
        assert heal_reason(run, NOW, STALE_AFTER) == "stale_in_progress"

    def test_fresh_in_progress_left_alone(self):
        run = RunDoc(
            run_id="r",
            status="completed",
            classification_status="in_progress",
            classification_started_at=NOW - timedelta(minutes=5),
        )
        assert heal_reason(run, NOW, STALE_AFTER) is None

    def test_in_progress_without_start_time_is_stale(self):
        run = RunDoc(run_id="r", status="completed", classification_status="in_progress")
        assert heal_reason(run, NOW, STALE_AFTER) == "stale_in_progress"

    @pytest.mark.parametrize("status", ["ready", "completed", "failed"])
    def test_settled_states(self, status):
        run = RunDoc(run_id="r", status="completed", classification_status=status)
        assert heal_reason(run, NOW, STALE_AFTER) is None


class TestSelfHeal:
    @pytest.mark.asyncio
    async def test_resets_only_broken_runs(self, services, db):
        await services.runs.create(RunDoc(run_id="missing", status="completed"))
        await services.runs.create(
            RunDoc(
                run_id="stale",
                status="completed",
                classification_status="in_progress",
                classification_started_at=NOW - timedelta(hours=1),
            )
        )
        await services.runs.create(
            RunDoc(
                run_id="fresh",
                status="completed",
                classification_status="in_progress",
                classification_started_at=NOW - timedelta(minutes=2),
            )
        )

        healed = await self_heal(services, NOW)

        assert sorted(h["run_id"] for h in healed) == ["missing", "stale"]
        assert (await services.runs.get("missing")).classification_status == "ready"
        assert (await services.runs.get("stale")).classification_status == "ready"
        assert (await services.runs.get("fresh")).classification_status == "in_progress"
        assert db.docs("scrape_runs")["stale"]["classification_reset_reason"] == "stale_in_progress"

    @pytest.mark.asyncio
    async def test_stale_run_found_beyond_sample_size(self, db):
        services = make_services(db, settings=make_settings(self_heal_sample_size=5))
        for n in range(12):
            await services.runs.create(
                RunDoc(run_id=f"done-{n:02d}", status="completed", classification_status="completed")
            )
        await services.runs.create(
            RunDoc(
                run_id="zz-stale",
                status="completed",
                classification_status="in_progress",
                classification_started_at=NOW - timedelta(hours=2),
            )
        )

        healed = await self_heal(services, NOW)

        assert healed == [{"run_id": "zz-stale", "reason": "stale_in_progress"}]
        assert (await services.runs.get("zz-stale")).classification_status == "ready"


class TestProcessRun:
    @pytest.mark.asyncio
    async def test_completes_with_stats(self, services):
        await _completed_run(services, "r1", items=("a", "b"))

        outcome = await process_run(services, "r1", NOW)

        assert outcome["status"] == "completed"
        run = await services.runs.get("r1")
        assert run.classification_status == "completed"
        assert run.processing_stats["classification"]["classified"] == 2
        assert "error_items" not in run.processing_stats["materialization"]

    @pytest.mark.asyncio
    async def test_unclassified_items_are_recorded_on_the_run(self, db):
        policy = EscalationPolicy(triage=StubTier("triage-model", RuntimeError("quota")))
        services = make_services(db, policy=policy)
        await services.runs.create(RunDoc(run_id="r1"))
        await services.results.put(
            "r1",
            "posts",
            [
                ScrapedItem(item_id=i, original_index=n, media_url=f"https://cdn/{i}.jpg")
                for n, i in enumerate("ab")
            ],
        )
        await services.runs.mark_completed("r1")

        report = await run_auto_pipeline(services, NOW)

        assert report.processed[0]["item_errors"] == 2
        run = await services.runs.get("r1")
        assert run.classification_status == "completed"
        assert run.classification_item_errors == 2
        assert any("2 item(s) unclassified" in line for line in report.logs)

    @pytest.mark.asyncio
    async def test_claim_lost_returns_none(self, services):
        await _completed_run(services, "r1")
        assert await services.runs.claim_for_classification("r1")

        assert await process_run(services, "r1", NOW) is None

    @pytest.mark.asyncio
    async def test_stage_failure_marks_run_failed(self, services):
        await services.runs.create(RunDoc(run_id="r1"))
        await services.runs.mark_completed("r1")  # no cached results

        outcome = await process_run(services, "r1", NOW)

        assert outcome["status"] == "failed"
        run = await services.runs.get("r1")
        assert run.classification_status == "failed"
        assert "No cached results" in run.classification_error


class TestAutoPipeline:
    @pytest.mark.asyncio
    async def test_tick_processes_ready_runs_then_heals(self, services):
        await _completed_run(services, "r1")
        await services.runs.create(RunDoc(run_id="orphan", status="completed"))

        report = await run_auto_pipeline(services, NOW)

        assert [p["run_id"] for p in report.processed] == ["r1"]
        assert report.healed == [{"run_id": "orphan", "reason": "missing_status"}]
        assert any("r1: completed" in line for line in report.logs)

    @pytest.mark.asyncio
    async def test_batch_size_limits_work(self, db):
        services = make_services(db, settings=make_settings(auto_pipeline_batch_size=1))
        await _completed_run(services, "r1")
        await _completed_run(services, "r2")

        report = await run_auto_pipeline(services, NOW)

        assert len(report.processed) == 1
