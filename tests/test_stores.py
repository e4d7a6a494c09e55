# tests/test_stores.py
"""Firestore stores against the in-memory client."""

from __future__ import annotations

from datetime import timedelta

import pytest
import pytest_asyncio

from event_curation.app.utils import utc_now
from event_curation.data import (
    ClassificationStore,
    EventStore,
    PollLogStore,
    ResultsCache,
    RunStore,
    VenueDirectory,
    classification_id,
)
from event_curation.data.firestore_client import RUNS, update_if_unchanged
from event_curation.models.firestore_docs import (
    ClassificationDoc,
    PollLogDoc,
    RunDoc,
    ScrapedItem,
    VenueDoc,
)


def _items(*ids):
    return [ScrapedItem(item_id=i, original_index=n, caption=f"c{i}") for n, i in enumerate(ids)]


# ---------------------------------------------------------------------------
# 1. RunStore
# ---------------------------------------------------------------------------


class TestRunStore:
    @pytest.mark.asyncio
    async def test_mark_completed_initialises_ready_once(self, db):
        runs = RunStore(db)
        await runs.create(RunDoc(run_id="r1", status="initiated"))

        assert await runs.mark_completed("r1", dataset_ref="ds1") is True
        run = await runs.get("r1")
        assert run.status == "completed"
        assert run.classification_status == "ready"
        assert run.dataset_ref == "ds1"
        assert run.completed_at is not None

    @pytest.mark.asyncio
    async def test_repeat_completion_never_rewinds_classification(self, db):
        runs = RunStore(db)
        await runs.create(RunDoc(run_id="r1"))
        await runs.mark_completed("r1")
        assert await runs.claim_for_classification("r1")

        assert await runs.mark_completed("r1") is False
        assert (await runs.get("r1")).classification_status == "in_progress"

    @pytest.mark.asyncio
    async def test_mark_failed_does_not_downgrade_completed(self, db):
        runs = RunStore(db)
        await runs.create(RunDoc(run_id="r1"))
        await runs.mark_completed("r1")

        assert await runs.mark_failed("r1", "late TIMED-OUT") is False
        assert (await runs.get("r1")).status == "completed"

    @pytest.mark.asyncio
    async def test_mark_failed_on_open_run(self, db):
        runs = RunStore(db)
        await runs.create(RunDoc(run_id="r1"))

        assert await runs.mark_failed("r1", "ABORTED") is True
        run = await runs.get("r1")
        assert run.status == "failed"
        assert run.error == "ABORTED"

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, db):
        runs = RunStore(db)
        await runs.create(RunDoc(run_id="r1"))
        await runs.mark_completed("r1")

        assert await runs.claim_for_classification("r1") is True
        assert await runs.claim_for_classification("r1") is False

    @pytest.mark.asyncio
    async def test_claim_requires_completed_run(self, db):
        runs = RunStore(db)
        await runs.create(RunDoc(run_id="r1", status="pending", classification_status="ready"))
        assert await runs.claim_for_classification("r1") is False
        assert await runs.claim_for_classification("missing") is False

    @pytest.mark.asyncio
    async def test_concurrent_write_loses_compare_and_swap(self, db):
        await RunStore(db).create(RunDoc(run_id="r1"))
        ref = db.collection(RUNS).document("r1")
        stale = await ref.get()
        await ref.set({"status": "pending"}, merge=True)

        assert await update_if_unchanged(db, stale, {"status": "failed"}) is False
        assert (await ref.get()).to_dict()["status"] == "pending"

    @pytest.mark.asyncio
    async def test_reset_classification_checks_expected_status(self, db):
        runs = RunStore(db)
        await runs.create(RunDoc(run_id="r1"))
        await runs.mark_completed("r1")
        await runs.claim_for_classification("r1")

        assert await runs.reset_classification("r1", expected="ready", reason="x") is False
        assert await runs.reset_classification("r1", expected="in_progress", reason="stale_in_progress")
        assert (await runs.get("r1")).classification_status == "ready"

    @pytest.mark.asyncio
    async def test_list_recent_newest_first(self, db):
        runs = RunStore(db)
        now = utc_now()
        for n in range(3):
            await runs.create(RunDoc(run_id=f"r{n}", initiated_at=now + timedelta(minutes=n)))

        assert [r.run_id for r in await runs.list_recent(2)] == ["r2", "r1"]

    @pytest.mark.asyncio
    async def test_list_by_status(self, db):
        runs = RunStore(db)
        await runs.create(RunDoc(run_id="a", status="initiated"))
        await runs.create(RunDoc(run_id="b", status="pending"))
        await runs.create(RunDoc(run_id="c", status="failed"))

        found = {r.run_id for r in await runs.list_by_status(("initiated", "pending"))}
        assert found == {"a", "b"}


# ---------------------------------------------------------------------------
# 2. ResultsCache
# ---------------------------------------------------------------------------


class TestResultsCache:
    @pytest.mark.asyncio
    async def test_put_replaces_items(self, db):
        cache = ResultsCache(db)
        await cache.put("r1", "posts", _items("a", "b"))
        await cache.put("r1", "posts", _items("c"))

        cached = await cache.get("r1")
        assert [i.item_id for i in cached.items] == ["c"]
        assert cached.item_count == 1

    @pytest.mark.asyncio
    async def test_trim(self, db):
        cache = ResultsCache(db)
        await cache.put("r1", "posts", _items("a", "b", "c"))

        assert await cache.trim("r1", ["b", "zzz"]) == 1
        cached = await cache.get("r1")
        assert [i.item_id for i in cached.items] == ["a", "c"]
        assert cached.item_count == 2
        assert await cache.trim("missing", ["a"]) == 0


# ---------------------------------------------------------------------------
# 3. ClassificationStore
# ---------------------------------------------------------------------------


class TestClassificationStore:
    def test_id_replaces_slashes(self):
        assert classification_id("r/1", "i/2") == "r_1_i_2"

    @pytest.mark.asyncio
    async def test_save_keeps_materialization_link(self, db):
        store = ClassificationStore(db)
        await store.save(ClassificationDoc(run_id="r1", item_id="i1", is_event=True))
        await store.mark_materialized("r1", "i1", event_id="e1", path="p")
        await store.save(ClassificationDoc(run_id="r1", item_id="i1", is_event=True, confidence=0.9))

        rec = await store.get("r1", "i1")
        assert rec.event_id == "e1"
        assert rec.confidence == pytest.approx(0.9)

    @pytest.mark.asyncio
    async def test_existing_ids_and_positive(self, db):
        store = ClassificationStore(db)
        await store.save(ClassificationDoc(run_id="r1", item_id="a", is_event=True))
        await store.save(ClassificationDoc(run_id="r1", item_id="b", is_event=False))
        await store.save(ClassificationDoc(run_id="r2", item_id="c", is_event=True))

        assert await store.existing_item_ids("r1") == {"a", "b"}
        assert [r.item_id for r in await store.list_positive("r1")] == ["a"]

    @pytest.mark.asyncio
    async def test_error_then_materialized_clears_error(self, db):
        store = ClassificationStore(db)
        await store.save(ClassificationDoc(run_id="r1", item_id="a", is_event=True))
        await store.record_error("r1", "a", "Venue not found: X", kind="venue_not_found")
        assert (await store.get("r1", "a")).error_kind == "venue_not_found"

        await store.mark_materialized("r1", "a", event_id="e", path="p")
        rec = await store.get("r1", "a")
        assert rec.error is None
        assert rec.error_kind is None

    @pytest.mark.asyncio
    async def test_delete(self, db):
        store = ClassificationStore(db)
        await store.save(ClassificationDoc(run_id="r1", item_id="a"))
        assert await store.delete("r1", "a") is True
        assert await store.delete("r1", "a") is False


# ---------------------------------------------------------------------------
# 4. Venues, events, poll logs
# ---------------------------------------------------------------------------


class TestVenueDirectory:
    @pytest_asyncio.fixture
    async def venues(self, db):
        directory = VenueDirectory(db)
        await directory.upsert(
            VenueDoc(
                venue_id="blue-room",
                name="Blue Room",
                name_variations=["The Blue Room", "BLUE RM"],
                instagram_usernames=[" blueroom ", "blueroom_events"],
            )
        )
        await directory.upsert(
            VenueDoc(venue_id="hall", name="Town Hall", instagram_usernames=["blueroom", ""])
        )
        return directory

    @pytest.mark.asyncio
    async def test_exact_name(self, venues):
        assert (await venues.resolve("Blue Room")).venue_id == "blue-room"

    @pytest.mark.asyncio
    async def test_case_insensitive_and_variations(self, venues):
        assert (await venues.resolve("blue room")).venue_id == "blue-room"
        assert (await venues.resolve("blue rm")).venue_id == "blue-room"

    @pytest.mark.asyncio
    async def test_no_partial_match(self, venues):
        assert await venues.resolve("Blue") is None
        assert await venues.resolve("") is None

    @pytest.mark.asyncio
    async def test_source_identifiers_deduped(self, venues):
        assert sorted(await venues.source_identifiers()) == ["blueroom", "blueroom_events"]


class TestEventStore:
    @pytest.mark.asyncio
    async def test_find_duplicate(self, db):
        events = EventStore(db)
        await events.commit(
            "e1", {"name": "Jazz", "date": {"start": "2025-02-01"}, "venue_id": "v1"}
        )

        assert await events.find_duplicate("Jazz", "2025-02-01", "v1") == "e1"
        assert await events.find_duplicate("Jazz", "2025-02-02", "v1") is None
        assert await events.find_duplicate("Jazz", "2025-02-01", "v2") is None
        assert await events.find_duplicate(None, "2025-02-01", "v1") is None


@pytest.mark.asyncio
async def test_poll_log_add_and_delete(db):
    logs = PollLogStore(db)
    log_id = await logs.add(PollLogDoc(checked_run_ids=["r1"]))

    assert db.docs("polling_logs")[log_id]["checked_run_ids"] == ["r1"]
    assert await logs.delete(log_id) is True
    assert await logs.delete(log_id) is False
