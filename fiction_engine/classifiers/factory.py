from __future__ import annotations

import logging
import os
from typing import cast

from fiction_engine.classifiers.base import IntentClassifier
from fiction_engine.classifiers.keyword import KeywordClassifier
from fiction_engine.classifiers.lexical import LexicalClassifier

logger = logging.getLogger(__name__)

# Accepted AI_PROVIDER values, including the older names.
_ALIASES = {
    "keyword": "keyword",
    "mock": "keyword",
    "lexical": "lexical",
    "nlp": "lexical",
    "ollama": "ollama",
    "custom": "custom",
    "custom_ai": "custom",
    "llm": "llm",
    "openai": "llm",
}


def create_classifier(provider: str | None = None) -> IntentClassifier:
    """Create the classifier named by `provider` (default: AI_PROVIDER env, then "keyword").

    Remote backends read their endpoint/model settings from env.
    """

    raw = (provider or os.environ.get("AI_PROVIDER") or "keyword").strip().lower()
    kind = _ALIASES.get(raw)
    if kind is None:
        raise ValueError(f"Unknown AI_PROVIDER {raw!r}; expected one of {sorted(_ALIASES)}")

    logger.info("Using %s intent classifier", kind)

    if kind == "keyword":
        return cast(IntentClassifier, KeywordClassifier())
    if kind == "lexical":
        return cast(IntentClassifier, LexicalClassifier())

    if kind == "ollama":
        from fiction_engine.classifiers.http_backend import OllamaClassifier

        return cast(
            IntentClassifier,
            OllamaClassifier(
                host=os.environ.get("OLLAMA_HOST", "http://localhost:11434"),
                model=os.environ.get("OLLAMA_MODEL", "phi3:mini"),
            ),
        )
    if kind == "custom":
        from fiction_engine.classifiers.http_backend import CustomHttpClassifier

        return cast(
            IntentClassifier,
            CustomHttpClassifier(
                url=os.environ.get("CUSTOM_AI_URL", "http://localhost:3005/generate"),
                model=os.environ.get("CUSTOM_AI_MODEL") or None,
                api_key=os.environ.get("CUSTOM_AI_API_KEY", ""),
            ),
        )

    # AG2 import is heavy; only pay for it when asked.
    from fiction_engine.classifiers.ag2_backend import LlmClassifier

    return cast(IntentClassifier, LlmClassifier(model=os.environ.get("OPENAI_MODEL", "gpt-4o-mini")))
