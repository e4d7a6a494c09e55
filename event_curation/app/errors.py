# event_curation/app/errors.py
"""Error taxonomy for the scrape -> classify -> materialize pipeline.

Handlers map these onto HTTP status codes:
  InputError    -> 400
  NotFoundError -> 404
  anything else -> 500
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for every error raised deliberately by the pipeline."""


# --- caller input -----------------------------------------------------------


class InputError(PipelineError):
    pass


class InvalidPayloadError(InputError):
    pass


class MissingFieldError(InputError):
    def __init__(self, field: str):
        super().__init__(f"{field} is required")
        self.field = field


class NoTargetsError(InputError):
    def __init__(self, message: str = "No scrape targets: no usernames given and no venue lists any"):
        super().__init__(message)


# --- lookups ----------------------------------------------------------------


class NotFoundError(PipelineError):
    pass


class RunNotFoundError(NotFoundError):
    def __init__(self, run_id: str):
        super().__init__(f"Run {run_id} not found")
        self.run_id = run_id


class ResultsNotFoundError(NotFoundError):
    def __init__(self, run_id: str):
        super().__init__(f"No cached results for run {run_id}")
        self.run_id = run_id


class ItemNotFoundError(NotFoundError):
    def __init__(self, run_id: str, item_id: str):
        super().__init__(f"Item {item_id} not found in run {run_id}")
        self.run_id = run_id
        self.item_id = item_id


# --- upstream services ------------------------------------------------------


class ProviderError(PipelineError):
    """Scrape provider call failed (transport error or non-2xx response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MediaFetchError(PipelineError):
    pass


class ExtractionError(PipelineError):
    pass


# --- materialization --------------------------------------------------------


class MaterializationError(PipelineError):
    kind = "materialization"


class VenueNotFoundError(MaterializationError):
    """No canonical venue matches the extracted venue name.

    Stays retryable: once the venue is added, the next materializer pass
    picks the item up again.
    """

    kind = "venue_not_found"

    def __init__(self, venue_name: Optional[str]):
        super().__init__(f"Venue not found: {venue_name or '<missing>'}")
        self.venue_name = venue_name


class EmptySearchTextError(MaterializationError):
    kind = "empty_search_text"

    def __init__(self):
        super().__init__("Extracted event has no search text to embed")
