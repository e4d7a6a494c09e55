# event_curation/app/clients/llms/registry.py

from __future__ import annotations

from event_curation.app.config import Settings

from .openai import build_openai_chat
from .vertexai import build_vertex_chat


_CHAT_BUILDERS = {
    "openai": build_openai_chat,
    "vertexai": build_vertex_chat,
}


def get_chat_model(
    provider: str,
    model_name: str,
    settings: Settings,
    *,
    temperature: float = 0.2,
    max_tokens: int = 400,
    json_mode: bool = True,
):
    """
    Return a LangChain chat runnable for the chosen provider.

    Example:
        chat = get_chat_model("openai", "gpt-4o-mini", settings)
        reply = await chat.ainvoke(messages)
    """
    key = provider.lower()
    if key not in _CHAT_BUILDERS:
        raise ValueError(
            f"Unknown provider '{provider}'. Valid options: {', '.join(_CHAT_BUILDERS.keys())}"
        )
    return _CHAT_BUILDERS[key](
        model_name,
        settings,
        temperature=temperature,
        max_tokens=max_tokens,
        json_mode=json_mode,
    )
