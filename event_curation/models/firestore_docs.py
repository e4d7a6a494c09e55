# event_curation/models/firestore_docs.py
from __future__ import annotations
from datetime import UTC, datetime
from typing import Optional, Dict, Any, List, Literal
from pydantic import BaseModel, ConfigDict, Field, field_validator

RunKind = Literal["posts", "stories"]
RunStatus = Literal["initiated", "pending", "running", "completed", "failed"]
ClassificationStatus = Literal["ready", "in_progress", "completed", "failed"]

# Runs in these states are still waiting on the provider.
OPEN_RUN_STATUSES = ("initiated", "pending")


class _BaseDoc(BaseModel):
    """Shared options for Firestore documents."""

    model_config = ConfigDict(extra="allow")

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", mode="before")
    @classmethod
    def _default_created_at(cls, v):
        return v or datetime.now(UTC)

    @field_validator("updated_at", mode="before")
    @classmethod
    def _default_updated_at(cls, v):
        return v or datetime.now(UTC)


class RunDoc(_BaseDoc):
    # Required
    run_id: str
    kind: RunKind = "posts"
    status: RunStatus = "initiated"
    # Optional
    external_job_id: Optional[str] = None
    dataset_ref: Optional[str] = None
    targets: List[str] = Field(default_factory=list)
    newer_than: Optional[str] = None
    classification_status: Optional[ClassificationStatus] = None
    initiated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    classification_started_at: Optional[datetime] = None
    classification_completed_at: Optional[datetime] = None
    classification_failed_at: Optional[datetime] = None
    classification_error: Optional[str] = None
    classification_item_errors: int = 0
    processing_stats: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class ScrapedItem(BaseModel):
    """One normalized scraped post or story."""

    item_id: str
    original_index: int
    owner_username: Optional[str] = None
    media_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    media_type: str = "image"
    caption: str = ""
    timestamp: Optional[str] = None
    shortcode: Optional[str] = None
    permalink: Optional[str] = None

    @property
    def is_video(self) -> bool:
        return self.media_type == "video"


class ResultsDoc(_BaseDoc):
    run_id: str
    kind: RunKind = "posts"
    items: List[ScrapedItem] = Field(default_factory=list)
    item_count: int = 0
    completed_at: Optional[datetime] = None


class ClassificationDoc(_BaseDoc):
    run_id: str
    item_id: str
    kind: RunKind = "posts"
    is_event: bool = False
    confidence: float = 0.0
    reasons: List[str] = Field(default_factory=list)
    signals: Dict[str, Any] = Field(default_factory=dict)
    image_url: Optional[str] = None
    caption: str = ""
    owner_username: Optional[str] = None
    timestamp: Optional[str] = None
    model: Dict[str, Optional[str]] = Field(default_factory=dict)
    # set by the materializer
    event_id: Optional[str] = None
    path: Optional[str] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None


class VenueDoc(BaseModel):
    model_config = ConfigDict(extra="allow")

    venue_id: str
    name: str
    name_variations: List[str] = Field(default_factory=list)
    address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    instagram_usernames: List[str] = Field(default_factory=list)

    @property
    def geo(self) -> Optional[Dict[str, float]]:
        if self.latitude is None or self.longitude is None:
            return None
        return {"lat": self.latitude, "lon": self.longitude}


class PollLogDoc(BaseModel):
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    checked_run_ids: List[str] = Field(default_factory=list)
    completed_run_ids: List[str] = Field(default_factory=list)
    failed_run_ids: List[str] = Field(default_factory=list)
    errors: List[Dict[str, str]] = Field(default_factory=list)


class ScrapeScheduleDoc(_BaseDoc):
    schedule_id: Optional[str] = None
    scheduled_for: datetime
    repeat: Literal["once", "daily"] = "once"
    kinds: List[RunKind] = Field(default_factory=lambda: ["posts", "stories"])
    status: Literal["pending", "processing", "completed", "failed"] = "pending"
    last_run_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None
