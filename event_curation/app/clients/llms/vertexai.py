# event_curation/app/clients/llms/vertexai.py

from __future__ import annotations

import logging
import os

from langchain_google_vertexai import (
    ChatVertexAI,
    HarmBlockThreshold,
    HarmCategory,
)

from event_curation.app.clients.llms.base import PredictionError
from event_curation.app.config import Settings
from event_curation.app.utils import resolve_credentials

logger = logging.getLogger(__name__)

os.environ.setdefault("GRPC_VERBOSITY", "ERROR")
os.environ.setdefault("GLOG_minloglevel", "2")

# Flyers for club nights trip the default filters far too often.
SAFETY_SETTINGS = {
    HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
    HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_ONLY_HIGH,
}


def build_vertex_chat(
    model_name: str,
    settings: Settings,
    *,
    temperature: float,
    max_tokens: int,
    json_mode: bool,
    timeout: int = 60,
    max_retries: int = 2,
) -> ChatVertexAI:
    """
    ChatVertexAI (Gemini) client.
    Project/Location precedence: settings -> env GOOGLE_CLOUD_PROJECT / GOOGLE_CLOUD_LOCATION
    """
    project = settings.google_cloud_project or os.getenv("GOOGLE_CLOUD_PROJECT")
    if not project:
        raise PredictionError("GOOGLE_CLOUD_PROJECT missing", f"vertexai:{model_name}")
    location = settings.google_cloud_location or os.getenv(
        "GOOGLE_CLOUD_LOCATION", "us-central1"
    )
    creds = resolve_credentials(settings.environment)

    logger.info(
        "VertexAI config: project=%s location=%s model=%s", project, location, model_name
    )
    extra = {"response_mime_type": "application/json"} if json_mode else {}
    return ChatVertexAI(
        model=model_name,
        temperature=temperature,
        max_output_tokens=max_tokens,
        project=project,
        location=location,
        safety_settings=SAFETY_SETTINGS,
        credentials=creds,
        timeout=timeout,
        max_retries=max_retries,
        **extra,
    )
