# event_curation/app/clients/llms/openai.py

from __future__ import annotations

import logging
import os

from langchain_openai import ChatOpenAI

from event_curation.app.clients.llms.base import PredictionError
from event_curation.app.config import Settings

logger = logging.getLogger(__name__)


def build_openai_chat(
    model_name: str,
    settings: Settings,
    *,
    temperature: float,
    max_tokens: int,
    json_mode: bool,
    timeout: int = 60,
    max_retries: int = 2,
):
    """
    ChatOpenAI for a vision-capable model.
    API key resolution precedence: settings.openai_api_key -> env OPENAI_API_KEY
    """
    api_key = settings.openai_api_key or os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise PredictionError("OPENAI_API_KEY missing", f"openai:{model_name}")

    logger.debug("OpenAI chat model=%s json_mode=%s", model_name, json_mode)
    chat = ChatOpenAI(
        model=model_name,
        temperature=temperature,
        max_tokens=max_tokens,
        timeout=timeout,
        max_retries=max_retries,
        api_key=api_key,
    )
    if json_mode:
        return chat.bind(response_format={"type": "json_object"})
    return chat
