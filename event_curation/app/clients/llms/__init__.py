# event_curation/app/clients/llms/__init__.py

from .base import LLMPredictionClient, PredictionError, PredictionResult
from .flyer import FlyerExtractor
from .registry import get_chat_model
from .vision import VisionEventClassifier

__all__ = [
    "FlyerExtractor",
    "LLMPredictionClient",
    "PredictionError",
    "PredictionResult",
    "VisionEventClassifier",
    "get_chat_model",
]
