# event_curation/app/clients/embeddings.py

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

from langchain_core.embeddings import Embeddings
from langchain_google_vertexai import VertexAIEmbeddings

from event_curation.app.config import Settings
from event_curation.app.errors import EmptySearchTextError
from event_curation.app.retry import embedding_retry
from event_curation.app.utils import resolve_credentials

logger = logging.getLogger(__name__)

EMBEDDING_DIM = 768  # text-embedding-004


def get_embeddings_model(settings: Settings) -> VertexAIEmbeddings:
    """Initialize VertexAIEmbeddings with proper credentials."""
    project = settings.google_cloud_project or os.getenv("GCP_PROJECT")
    location = settings.google_cloud_location or os.getenv(
        "GOOGLE_CLOUD_LOCATION", "us-central1"
    )
    return VertexAIEmbeddings(
        model_name=settings.embedding_model,
        project=project,
        location=location,
        credentials=resolve_credentials(settings.environment),
    )


class Embedder:
    """Search text -> fixed-dimension vector. No text, no embedding, no event."""

    def __init__(
        self,
        model: Optional[Embeddings] = None,
        *,
        factory: Optional[Callable[[], Embeddings]] = None,
        dim: Optional[int] = EMBEDDING_DIM,
    ):
        if model is None and factory is None:
            raise ValueError("Embedder needs a model or a factory")
        self._model = model
        self._factory = factory
        self._dim = dim

    @property
    def model(self) -> Embeddings:
        if self._model is None:
            self._model = self._factory()
        return self._model

    @embedding_retry
    async def _embed(self, text: str) -> list[float]:
        return await self.model.aembed_query(text)

    async def embed(self, text: str) -> list[float]:
        text = (text or "").strip()
        if not text:
            raise EmptySearchTextError()
        vector = await self._embed(text)
        if not vector:
            raise RuntimeError("Embedding model returned an empty vector")
        if self._dim and len(vector) != self._dim:
            raise RuntimeError(f"Embedding dim {len(vector)} != expected {self._dim}")
        return vector
