# gcp/runs-report/main.py
"""FastAPI app for the scrape runs report. Run from repo root:
  uvicorn main:app --reload --app-dir gcp/runs-report
"""
from __future__ import annotations

import os
import sys
from contextlib import asynccontextmanager
from typing import Any

# Ensure repo root is on path so event_curation is importable
_here = os.path.dirname(os.path.abspath(__file__))
_root = os.path.abspath(os.path.join(_here, "..", ".."))
if _root not in sys.path:
    sys.path.insert(0, _root)

from dotenv import load_dotenv  # noqa: E402
from fastapi import Depends, FastAPI, HTTPException, Query, Request  # noqa: E402

load_dotenv(os.path.join(_root, ".env"))

from event_curation.app.config import get_settings  # noqa: E402
from event_curation.data import ClassificationStore, RunStore, close_db, create_db  # noqa: E402


@asynccontextmanager
async def lifespan(app: FastAPI):
    db = create_db(get_settings())
    app.state.db = db
    try:
        yield
    finally:
        await close_db(db)


app = FastAPI(title="Scrape runs report", description="Runs, classifications and events", lifespan=lifespan)


def get_run_store(request: Request) -> RunStore:
    return RunStore(request.app.state.db)


def get_classification_store(request: Request) -> ClassificationStore:
    return ClassificationStore(request.app.state.db)


def _serialize(data: dict[str, Any]) -> dict[str, Any]:
    """Timestamps to ISO strings."""
    out = dict(data)
    for key, val in out.items():
        if hasattr(val, "isoformat"):
            out[key] = val.isoformat()
    return out


@app.get("/api/runs")
async def get_runs(
    limit: int = Query(50, ge=1, le=500),
    runs: RunStore = Depends(get_run_store),
):
    """Most recent runs first."""
    try:
        recent = await runs.list_recent(limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {"runs": [_serialize(r.model_dump()) for r in recent]}


@app.get("/api/runs/{run_id}/classifications")
async def get_run_classifications(
    run_id: str,
    only_events: bool = Query(False, alias="onlyEvents"),
    runs: RunStore = Depends(get_run_store),
    classifications: ClassificationStore = Depends(get_classification_store),
):
    run = await runs.get(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail=f"Run {run_id} not found")
    records = await classifications.list_for_run(run_id)
    if only_events:
        records = [r for r in records if r.is_event]
    rows = [_serialize(r.model_dump()) for r in records]
    return {
        "run": _serialize(run.model_dump()),
        "classifications": rows,
        "summary": {
            "total": len(rows),
            "events": sum(1 for r in records if r.is_event),
            "materialized": sum(1 for r in records if r.event_id),
            "venue_missing": sum(1 for r in records if r.error_kind == "venue_not_found"),
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
