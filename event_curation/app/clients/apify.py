# event_curation/app/clients/apify.py
"""Thin async client for the Apify REST API (actor runs + datasets)."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from event_curation.app.errors import ProviderError
from event_curation.app.retry import http_retry

logger = logging.getLogger(__name__)

SUCCEEDED = "SUCCEEDED"
TERMINAL_FAILURE_STATES = frozenset({"FAILED", "ABORTED", "TIMED-OUT", "TIMED_OUT"})

WEBHOOK_EVENT_TYPES = (
    "ACTOR.RUN.SUCCEEDED",
    "ACTOR.RUN.FAILED",
    "ACTOR.RUN.ABORTED",
    "ACTOR.RUN.TIMED_OUT",
)
# Rendered by Apify into the body POSTed to our webhook handler.
WEBHOOK_PAYLOAD_TEMPLATE = (
    '{"runId": "{{resource.id}}", "datasetId": "{{resource.defaultDatasetId}}", '
    '"status": "{{resource.status}}", "error": "{{resource.statusMessage}}"}'
)


@dataclass(frozen=True)
class ProviderRun:
    run_id: str
    dataset_id: Optional[str]
    status: Optional[str]

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCEEDED

    @property
    def failed(self) -> bool:
        return self.status in TERMINAL_FAILURE_STATES


def encode_webhooks(request_url: str) -> str:
    """Ad-hoc webhook registration, base64 JSON as the `webhooks` query param expects."""
    spec = [
        {
            "eventTypes": list(WEBHOOK_EVENT_TYPES),
            "requestUrl": request_url,
            "payloadTemplate": WEBHOOK_PAYLOAD_TEMPLATE,
        }
    ]
    return base64.b64encode(json.dumps(spec).encode("utf-8")).decode("ascii")


def _run_from_payload(payload: dict[str, Any]) -> ProviderRun:
    data = payload.get("data") or {}
    run_id = data.get("id")
    if not run_id:
        raise ProviderError("Apify response did not include a run id")
    return ProviderRun(
        run_id=run_id,
        dataset_id=data.get("defaultDatasetId"),
        status=data.get("status"),
    )


class ApifyClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        token: Optional[str],
        base_url: str = "https://api.apify.com",
    ):
        self._http = http
        self._token = token
        self._base_url = base_url.rstrip("/")

    # --- helpers ---

    def _headers(self) -> dict[str, str]:
        if not self._token:
            raise ProviderError("APIFY_API_TOKEN is not configured")
        return {"Authorization": f"Bearer {self._token}"}

    async def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        resp = await self._http.request(
            method, f"{self._base_url}{path}", headers=self._headers(), **kwargs
        )
        resp.raise_for_status()
        return resp

    @http_retry
    async def _send_with_retry(self, method: str, path: str, **kwargs) -> httpx.Response:
        return await self._send(method, path, **kwargs)

    async def _call(self, method: str, path: str, *, idempotent: bool = True, **kwargs):
        try:
            if idempotent:
                return await self._send_with_retry(method, path, **kwargs)
            return await self._send(method, path, **kwargs)
        except httpx.HTTPStatusError as e:
            raise ProviderError(
                f"Apify {method} {path} -> {e.response.status_code}: {e.response.text[:300]}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"Apify {method} {path} failed: {type(e).__name__}: {e}") from e

    # --- API ---

    async def start_run(
        self,
        actor_id: str,
        run_input: dict[str, Any],
        *,
        webhook_url: Optional[str] = None,
    ) -> ProviderRun:
        """Start an actor run asynchronously. Not retried: a repeat could start a second run."""
        params = {}
        if webhook_url:
            params["webhooks"] = encode_webhooks(webhook_url)
        resp = await self._call(
            "POST",
            f"/v2/acts/{actor_id}/runs",
            idempotent=False,
            params=params,
            json=run_input,
        )
        run = _run_from_payload(resp.json())
        logger.info("Started Apify actor %s run=%s dataset=%s", actor_id, run.run_id, run.dataset_id)
        return run

    async def get_run(self, run_id: str) -> ProviderRun:
        resp = await self._call("GET", f"/v2/actor-runs/{run_id}")
        return _run_from_payload(resp.json())

    async def get_dataset_items(self, dataset_id: str) -> list[dict[str, Any]]:
        resp = await self._call(
            "GET",
            f"/v2/datasets/{dataset_id}/items",
            params={"clean": "true", "format": "json"},
        )
        items = resp.json()
        if not isinstance(items, list):
            raise ProviderError(f"Dataset {dataset_id} did not return a list")
        return items

    async def delete_dataset(self, dataset_id: str) -> None:
        await self._call("DELETE", f"/v2/datasets/{dataset_id}")
        logger.info("Deleted Apify dataset %s", dataset_id)
