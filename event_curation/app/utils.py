# event_curation/app/utils.py
from __future__ import annotations

import json
import logging
import os
import re
from datetime import UTC, datetime, timedelta
from typing import Any, Optional

from google.oauth2 import service_account

logger = logging.getLogger(__name__)

_SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


# --- credentials ------------------------------------------------------------


def load_credentials(path: Optional[str] = None) -> service_account.Credentials:
    """Service-account credentials from a key file (local development)."""
    key_path = path or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if not key_path:
        raise RuntimeError("GOOGLE_APPLICATION_CREDENTIALS is not set")
    return service_account.Credentials.from_service_account_file(key_path, scopes=_SCOPES)


def make_credentials_from_env() -> Optional[service_account.Credentials]:
    """
    GOOGLE_APPLICATION_CREDENTIALS may hold a key file path or the key JSON itself.
    Returns None when unset so the client libraries fall back to ADC.
    """
    raw = os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
    if not raw:
        return None

    if not raw.strip().startswith("{"):
        return service_account.Credentials.from_service_account_file(raw, scopes=_SCOPES)

    info = json.loads(raw)
    return service_account.Credentials.from_service_account_info(info, scopes=_SCOPES)


def resolve_credentials(environment: Optional[str]) -> Optional[service_account.Credentials]:
    if environment == "local":
        logger.info("Running in LOCAL environment, loading credentials from file.")
        return load_credentials()
    logger.info("Running in NOT LOCAL environment, loading credentials from env.")
    return make_credentials_from_env()


# --- time -------------------------------------------------------------------


def utc_now() -> datetime:
    return datetime.now(UTC)


def iso_z(dt: datetime) -> str:
    """ISO-8601 to whole seconds with a Z suffix, e.g. 2025-01-01T10:00:00Z."""
    return dt.astimezone(UTC).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def default_lookback(now: Optional[datetime] = None, hours: int = 25) -> str:
    return iso_z((now or utc_now()) - timedelta(hours=hours))


def as_datetime(value: Any) -> Optional[datetime]:
    """Coerce Firestore timestamps, ISO strings and epoch numbers to aware datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if isinstance(value, (int, float)):
        # provider timestamps arrive in seconds, JS-style ones in milliseconds
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)
    return None


# --- model output -----------------------------------------------------------


def parse_json_object(text: str) -> dict[str, Any]:
    """
    Parse a model reply that should be a single JSON object.
    Tolerates a surrounding markdown code fence; raises ValueError otherwise.
    """
    cleaned = _FENCE_RE.sub("", (text or "").strip()).strip()
    if not cleaned:
        raise ValueError("empty model response")
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data


def error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
