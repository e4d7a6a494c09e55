# event_curation/app/clients/llms/flyer.py

from __future__ import annotations

import logging
from typing import Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langsmith import traceable
from pydantic import ValidationError

from event_curation.app.clients.llms.base import LLMPredictionClient, PredictionError
from event_curation.app.clients.llms.registry import get_chat_model
from event_curation.app.clients.storage import BlobStorage
from event_curation.app.config import Settings, get_settings
from event_curation.app.errors import ExtractionError
from event_curation.app.prompts import PROMPT_EXTRACT_SYSTEM
from event_curation.app.schemas import ExtractedEvent
from event_curation.app.utils import parse_json_object

logger = logging.getLogger(__name__)


class FlyerExtractor(LLMPredictionClient):
    """
    Reads structured event fields off a stored flyer image.

    The model cannot reach private storage, so every call hands it a
    short-lived signed read URL for the stored path.
    """

    def __init__(
        self,
        *,
        storage: BlobStorage,
        model_name: str = "gpt-4o",
        provider: str = "openai",
        settings: Optional[Settings] = None,
        prompt_config: Optional[dict] = None,
        log=None,
    ):
        super().__init__(
            model_ref=f"{provider}:{model_name}",
            model_name=model_name,
            user_prompt="",
            system_prompt=PROMPT_EXTRACT_SYSTEM,
            prompt_config=prompt_config,
            log=log,
        )
        self.provider = provider
        self.storage = storage
        self.settings = settings or get_settings()

    def setup(self) -> None:
        cfg = self.prompt_config or {}
        self.client = get_chat_model(
            self.provider,
            self.model_name,
            self.settings,
            temperature=cfg.get("temperature", 0.1),
            max_tokens=cfg.get("max_tokens", 1500),
            json_mode=True,
        )

    @traceable(name="extract_flyer", tags=["materializer"])
    async def extract(self, path: str, context: str) -> ExtractedEvent:
        """Signed URL for `path` + caption context -> ExtractedEvent. Raises ExtractionError."""
        signed_url = await self.storage.signed_read_url(
            path, minutes=self.settings.signed_url_ttl_minutes
        )
        messages = [
            SystemMessage(content=self.system_prompt),
            HumanMessage(
                content=[
                    {"type": "text", "text": context},
                    {"type": "image_url", "image_url": {"url": signed_url, "detail": "high"}},
                ]
            ),
        ]
        try:
            result = await self._ainvoke(messages, prompt=context)
            event = ExtractedEvent.model_validate(parse_json_object(result.text))
        except PredictionError as e:
            raise ExtractionError(f"Flyer extraction failed for {path}: {e.message}") from e
        except (ValueError, ValidationError) as e:
            raise ExtractionError(f"Unparseable flyer extraction for {path}: {e}") from e

        logger.info("Extracted %r from %s (%.0f ms)", event.name, path, result.duration_ms)
        return event
