# tests/test_schemas_and_parsing.py
"""Model-reply parsing and the pydantic schemas behind it."""

from __future__ import annotations

import os

import pytest

os.environ.setdefault("LANGSMITH_TRACING", "false")

from event_curation.app.clients.llms.base import PredictionError
from event_curation.app.clients.llms.vision import (
    build_classify_messages,
    parse_verdict,
    proxied_image_url,
)
from event_curation.app.schemas import MAX_REASONS, EventVerdict, ExtractedEvent
from event_curation.app.utils import as_datetime, default_lookback, iso_z, parse_json_object


# ---------------------------------------------------------------------------
# 1. EventVerdict
# ---------------------------------------------------------------------------


class TestEventVerdict:
    def test_camel_case_reply(self):
        v = EventVerdict.model_validate(
            {
                "isEvent": True,
                "confidence": 0.82,
                "reasons": ["date on flyer"],
                "signals": {"dateFound": True, "venueFound": False},
            }
        )
        assert v.is_event is True
        assert v.signals.date_found is True
        assert v.signals.venue_found is False

    def test_confidence_is_clamped(self):
        assert EventVerdict(is_event=True, confidence=1.7).confidence == 1.0
        assert EventVerdict(is_event=False, confidence=-0.2).confidence == 0.0
        assert EventVerdict(is_event=False, confidence=None).confidence == 0.0

    def test_reasons_are_capped(self):
        v = EventVerdict(is_event=True, reasons=[f"r{i}" for i in range(25)])
        assert len(v.reasons) == MAX_REASONS

    def test_negative(self):
        v = EventVerdict.negative("no-image")
        assert v.is_event is False
        assert v.confidence == 0.0
        assert v.reasons == ["no-image"]


# ---------------------------------------------------------------------------
# 2. Reply parsing
# ---------------------------------------------------------------------------


class TestParseVerdict:
    def test_fenced_json(self):
        text = '```json\n{"isEvent": false, "confidence": 0.3, "reasons": ["meme"]}\n```'
        v = parse_verdict(text, "openai:gpt-4o-mini")
        assert v.is_event is False
        assert v.confidence == pytest.approx(0.3)

    @pytest.mark.parametrize(
        "text",
        ["", "not json at all", "[1, 2]", '{"confidence": 0.9}'],
    )
    def test_malformed_reply_is_prediction_error(self, text):
        with pytest.raises(PredictionError) as exc:
            parse_verdict(text, "openai:gpt-4o-mini")
        assert exc.value.model_ref == "openai:gpt-4o-mini"

    def test_parse_json_object_rejects_arrays(self):
        with pytest.raises(ValueError):
            parse_json_object("[]")


# ---------------------------------------------------------------------------
# 3. ExtractedEvent coercions
# ---------------------------------------------------------------------------


class TestExtractedEvent:
    def test_string_date_and_venue(self):
        e = ExtractedEvent.model_validate(
            {"name": "Jazz Night", "date": "2025-02-01", "venue": "Blue Room", "tags": "jazz, live"}
        )
        assert e.date.start == "2025-02-01"
        assert e.venue.name == "Blue Room"
        assert e.tags == ["jazz", "live"]
        assert e.search_text == ""

    def test_extra_fields_kept(self):
        e = ExtractedEvent.model_validate({"name": "X", "ageRestriction": "21+", "searchText": " x "})
        assert e.model_extra["ageRestriction"] == "21+"
        assert e.search_text == "x"


# ---------------------------------------------------------------------------
# 4. Message building
# ---------------------------------------------------------------------------


def test_proxied_image_url():
    url = "https://scontent.cdninstagram.com/v/a.jpg?x=1&y=2"
    assert proxied_image_url(url, None) == url
    proxied = proxied_image_url(url, "https://proxy.example/img")
    assert proxied.startswith("https://proxy.example/img?url=https%3A%2F%2F")
    assert "&y=2" not in proxied


def test_classify_messages_carry_image_and_caption():
    system, human = build_classify_messages("https://img/1.jpg", "Doors 9pm")
    parts = human.content
    assert any(p.get("image_url", {}).get("url") == "https://img/1.jpg" for p in parts)
    assert any("Doors 9pm" in p.get("text", "") for p in parts)
    assert system.content


# ---------------------------------------------------------------------------
# 5. Time helpers
# ---------------------------------------------------------------------------


class TestTimeHelpers:
    def test_iso_z_and_lookback(self):
        now = as_datetime("2025-01-02T12:00:00.123456+00:00")
        assert iso_z(now) == "2025-01-02T12:00:00Z"
        assert default_lookback(now, hours=25) == "2025-01-01T11:00:00Z"

    def test_epoch_seconds_and_millis(self):
        assert as_datetime(1735689600) == as_datetime(1735689600000)

    def test_garbage_is_none(self):
        assert as_datetime("next friday") is None
        assert as_datetime("") is None
