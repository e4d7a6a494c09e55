# event_curation/app/clients/llms/base.py

from __future__ import annotations

import json
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Union

from langchain_core.messages import BaseMessage

from event_curation.app.retry import llm_retry


class PredictionError(Exception):
    def __init__(self, message: str, model_ref: str, duration_ms: float = 0.0):
        super().__init__(message)
        self.message = message
        self.model_ref = model_ref
        self.duration_ms = duration_ms


@dataclass(frozen=True)
class PredictionResult:
    model_ref: str
    prompt: str
    text: str
    duration_ms: float


class LLMPredictionClient(ABC):
    def __init__(
        self,
        model_ref: str,
        model_name: str,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        prompt_config: Optional[Union[dict[str, Any], str]] = None,
        log: Any = None,
    ):
        self.model_ref = str(model_ref)
        self.model_name = model_name
        self.system_prompt = system_prompt or None
        self.user_prompt = user_prompt
        if isinstance(prompt_config, str):
            self.prompt_config = json.loads(prompt_config)
        else:
            self.prompt_config = prompt_config or {}
        self.log = log
        self.client = None  # set in setup()

    @abstractmethod
    def setup(self) -> None:
        pass

    # ---- shared invoke ----------------------------------------------------

    @llm_retry
    async def _call_model(self, messages: list[BaseMessage]) -> Any:
        return await self.client.ainvoke(messages)

    async def _ainvoke(self, messages: Sequence[BaseMessage], prompt: str) -> PredictionResult:
        """Run the chat model (set up on first use, retried) and wrap every failure as a PredictionError."""
        if self.client is None:
            try:
                self.setup()
            except PredictionError:
                raise
            except Exception as e:
                raise PredictionError(
                    f"{self.model_name} setup failed: {type(e).__name__}: {e}", self.model_ref
                ) from e

        start = time.perf_counter()
        try:
            resp = await self._call_model(list(messages))
        except Exception as e:
            duration_ms = (time.perf_counter() - start) * 1000.0
            raise PredictionError(
                f"{self.model_name} call failed: {type(e).__name__}: {e}",
                self.model_ref,
                duration_ms,
            ) from e

        content = getattr(resp, "content", resp)
        if isinstance(content, list):
            # multimodal replies come back as content blocks
            content = "".join(
                b.get("text", "") if isinstance(b, dict) else str(b) for b in content
            )
        return PredictionResult(
            model_ref=self.model_ref,
            prompt=prompt,
            text=str(content or ""),
            duration_ms=(time.perf_counter() - start) * 1000.0,
        )
