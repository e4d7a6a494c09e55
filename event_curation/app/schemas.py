# event_curation/app/schemas.py

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, TypedDict

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

MAX_REASONS = 10


# ----------------------------
# Structured schema for LLM output
# ----------------------------

class EventSignals(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    date_found: bool = Field(
        default=False, validation_alias=AliasChoices("dateFound", "date_found")
    )
    venue_found: bool = Field(
        default=False, validation_alias=AliasChoices("venueFound", "venue_found")
    )


class EventVerdict(BaseModel):
    """Classifier verdict for one scraped item."""

    model_config = ConfigDict(populate_by_name=True)

    is_event: bool = Field(..., validation_alias=AliasChoices("isEvent", "is_event"))
    confidence: float = Field(default=0.0, description="Confidence score [0,1]")
    reasons: List[str] = Field(default_factory=list)
    signals: EventSignals = Field(default_factory=EventSignals)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        if v is None:
            return 0.0
        return min(1.0, max(0.0, float(v)))

    @field_validator("reasons", mode="before")
    @classmethod
    def _cap_reasons(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            v = [v]
        return [str(r) for r in v][:MAX_REASONS]

    @field_validator("signals", mode="before")
    @classmethod
    def _signals_default(cls, v):
        return v or {}

    @classmethod
    def negative(cls, reason: str) -> "EventVerdict":
        """Verdict for items decided without calling a model."""
        return cls(is_event=False, confidence=0.0, reasons=[reason])


class EventDate(BaseModel):
    model_config = ConfigDict(extra="allow")

    start: Optional[str] = None
    end: Optional[str] = None


class ExtractedVenue(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    address: Optional[str] = None


class ExtractedEvent(BaseModel):
    """Fields the flyer extraction model reads off an event flyer."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: Optional[str] = None
    date: EventDate = Field(default_factory=EventDate)
    venue: ExtractedVenue = Field(default_factory=ExtractedVenue)
    pricing: Optional[Dict[str, Any]] = None
    tags: List[str] = Field(default_factory=list)
    search_text: str = Field(
        default="", validation_alias=AliasChoices("searchText", "search_text")
    )
    raw_text: str = Field(default="", validation_alias=AliasChoices("rawText", "raw_text"))

    @field_validator("date", mode="before")
    @classmethod
    def _date_from_string(cls, v):
        if isinstance(v, str):
            return {"start": v}
        return v or {}

    @field_validator("venue", mode="before")
    @classmethod
    def _venue_from_string(cls, v):
        if isinstance(v, str):
            return {"name": v}
        return v or {}

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [t.strip() for t in v.split(",") if t.strip()]
        return v

    @field_validator("search_text", "raw_text", mode="before")
    @classmethod
    def _text_or_empty(cls, v):
        return (v or "").strip() if isinstance(v, str) or v is None else str(v)


# ----------------------------
# Metadata about model execution
# ----------------------------

class ModelMeta(TypedDict, total=False):
    triage: Optional[str]
    escalate: Optional[str]
    used: Optional[str]


# ----------------------------
# Batch counters returned by pipeline stages
# ----------------------------

@dataclass
class ClassifyStats:
    processed: int = 0
    classified: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class MaterializeStats:
    processed: int = 0
    saved: int = 0
    errors: int = 0
    skipped: int = 0
    duplicates: int = 0
    venue_not_found: int = 0
    error_items: List[Dict[str, str]] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
