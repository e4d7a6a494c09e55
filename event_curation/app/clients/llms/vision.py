# event_curation/app/clients/llms/vision.py

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from langchain_core.messages import HumanMessage, SystemMessage
from langsmith import traceable
from pydantic import ValidationError

from event_curation.app.clients.llms.base import LLMPredictionClient, PredictionError
from event_curation.app.clients.llms.registry import get_chat_model
from event_curation.app.config import Settings, get_settings
from event_curation.app.prompts import (
    PROMPT_CLASSIFY_CAPTION,
    PROMPT_CLASSIFY_RULES,
    PROMPT_CLASSIFY_SYSTEM,
)
from event_curation.app.schemas import EventVerdict
from event_curation.app.utils import parse_json_object

logger = logging.getLogger(__name__)


def proxied_image_url(url: str, proxy_url: Optional[str]) -> str:
    """Route a CDN image through the readable proxy when one is configured."""
    if not proxy_url:
        return url
    sep = "&" if "?" in proxy_url else "?"
    return f"{proxy_url}{sep}url={quote(url, safe='')}"


def build_classify_messages(image_url: str, caption: str) -> list:
    return [
        SystemMessage(content=PROMPT_CLASSIFY_SYSTEM),
        HumanMessage(
            content=[
                {"type": "text", "text": PROMPT_CLASSIFY_RULES},
                {"type": "image_url", "image_url": {"url": image_url, "detail": "low"}},
                {"type": "text", "text": PROMPT_CLASSIFY_CAPTION.format(caption=caption or "")},
            ]
        ),
    ]


def parse_verdict(text: str, model_ref: str) -> EventVerdict:
    """Malformed or non-JSON replies are classification failures, never crashes."""
    try:
        return EventVerdict.model_validate(parse_json_object(text))
    except (ValueError, ValidationError) as e:
        raise PredictionError(
            f"Unparseable classifier reply: {type(e).__name__}: {e}", model_ref
        ) from e


class VisionEventClassifier(LLMPredictionClient):
    """
    Image + caption -> EventVerdict using one model tier.
    The classifier pipeline holds one instance per tier (triage, escalate).
    """

    def __init__(
        self,
        *,
        model_name: str,
        provider: str = "openai",
        settings: Optional[Settings] = None,
        model_ref: Optional[str] = None,
        prompt_config: Optional[dict] = None,
        log=None,
    ):
        super().__init__(
            model_ref=model_ref or f"{provider}:{model_name}",
            model_name=model_name,
            user_prompt=PROMPT_CLASSIFY_RULES,
            system_prompt=PROMPT_CLASSIFY_SYSTEM,
            prompt_config=prompt_config,
            log=log,
        )
        self.provider = provider
        self.settings = settings or get_settings()

    # ---- lifecycle --------------------------------------------------------

    def setup(self) -> None:
        cfg = self.prompt_config or {}
        self.client = get_chat_model(
            self.provider,
            self.model_name,
            self.settings,
            temperature=cfg.get("temperature", 0.2),
            max_tokens=cfg.get("max_tokens", 400),
            json_mode=True,
        )

    # ---- classification ---------------------------------------------------

    @traceable(name="classify_item", tags=["classifier"])
    async def classify(self, image_url: str, caption: str) -> EventVerdict:
        image_ref = proxied_image_url(image_url, self.settings.image_proxy_url)
        result = await self._ainvoke(
            build_classify_messages(image_ref, caption), prompt=caption or ""
        )
        verdict = parse_verdict(result.text, self.model_ref)
        logger.debug(
            "%s -> is_event=%s confidence=%.2f (%.0f ms)",
            self.model_ref,
            verdict.is_event,
            verdict.confidence,
            result.duration_ms,
        )
        return verdict
