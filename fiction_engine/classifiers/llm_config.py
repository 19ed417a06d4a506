from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from autogen import LLMConfig


@dataclass(frozen=True, slots=True)
class OpenAICompatibleSettings:
    model: str
    base_url: str | None
    api_key: str | None


def settings_from_env(*, default_model: str) -> OpenAICompatibleSettings:
    return OpenAICompatibleSettings(
        model=os.environ.get("OPENAI_MODEL", default_model),
        # For Ollama's OpenAI-compatible API, typically http://127.0.0.1:11434/v1
        base_url=os.environ.get("OPENAI_BASE_URL"),
        api_key=os.environ.get("OPENAI_API_KEY"),
    )


def llm_config_from_env(*, default_model: str) -> LLMConfig:
    s = settings_from_env(default_model=default_model)

    # Local OpenAI-compatible servers ignore the key, but the client insists on one.
    api_key = s.api_key or ("ollama" if s.base_url else None)
    if not api_key:
        raise RuntimeError(
            "LLM classifier needs OPENAI_API_KEY (hosted) or OPENAI_BASE_URL (local OpenAI-compatible server)"
        )

    entry: dict[str, Any] = {"model": s.model, "api_key": api_key}
    if s.base_url:
        entry["base_url"] = s.base_url
    return LLMConfig(config_list=[entry])
