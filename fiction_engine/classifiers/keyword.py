from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from fiction_engine.api.models import Intent, Node
from fiction_engine.classifiers.base import UNKNOWN_INTENT
from fiction_engine.intent_cache import normalize_input

DEFAULT_GLOBAL_KEYWORDS: dict[str, tuple[str, ...]] = {
    "global_look_around": ("look around", "look", "surroundings"),
    "global_inventory": ("inventory", "carrying", "my items"),
    "global_status": ("status", "health"),
}


def _contains_phrase(text: str, phrase: str) -> bool:
    return bool(phrase) and f" {phrase} " in f" {text} "


@dataclass(slots=True)
class KeywordClassifier:
    """Deterministic phrase matcher. No model, no network; the test and offline default.

    An intent matches when one of its phrases occurs as whole words in the input.
    Phrases come from `keywords[intent.id]` when given, else from the intent id
    (underscores as spaces) and its description. Story intents win over globals.
    """

    keywords: Mapping[str, Sequence[str]] = field(default_factory=dict)
    name: str = "keyword"

    def _phrases_for(self, intent: Intent) -> list[str]:
        explicit = self.keywords.get(intent.id) or DEFAULT_GLOBAL_KEYWORDS.get(intent.id)
        if explicit:
            return [normalize_input(p) for p in explicit]

        phrases = [normalize_input(intent.id.replace("_", " "))]
        if intent.intent_description:
            phrases.append(normalize_input(intent.intent_description))
        return phrases

    async def classify_intent(
        self,
        *,
        raw_input: str,
        local_intents: Sequence[Intent],
        global_intents: Sequence[Intent],
        scene_text: str,
        node: Node | None = None,
    ) -> str:
        text = normalize_input(raw_input)
        if not text:
            return UNKNOWN_INTENT

        for intent in [*local_intents, *global_intents]:
            if any(_contains_phrase(text, phrase) for phrase in self._phrases_for(intent)):
                return intent.id
        return UNKNOWN_INTENT
