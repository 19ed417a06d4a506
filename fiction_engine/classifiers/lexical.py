from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from difflib import get_close_matches

from nltk.stem import PorterStemmer
from nltk.tokenize import RegexpTokenizer

from fiction_engine.api.models import Intent, Node
from fiction_engine.classifiers.base import UNKNOWN_INTENT

logger = logging.getLogger(__name__)

# Filler that every helper text carries ("The user wants to ...").
STOPWORDS = frozenset(
    {"a", "an", "and", "at", "i", "is", "it", "of", "or", "the", "their", "to", "user", "want", "wants", "what"}
)

_tokenizer = RegexpTokenizer(r"[a-z0-9]+")
_stemmer = PorterStemmer()


def tokenize(text: str) -> list[str]:
    """Lowercased word tokens, stopwords dropped, Porter-stemmed ("ladies" and "lady" both give "ladi")."""

    return [_stemmer.stem(t) for t in _tokenizer.tokenize((text or "").lower()) if t not in STOPWORDS]


def similarity(tokens_a: Sequence[str], tokens_b: Sequence[str], *, fuzzy_cutoff: float = 0.85) -> float:
    """Jaccard coefficient where near-identical tokens (typos) count as shared."""

    set_a, set_b = set(tokens_a), set(tokens_b)
    if not set_a or not set_b:
        return 0.0

    pool = sorted(set_b)
    shared = sum(1 for token in set_a if token in set_b or get_close_matches(token, pool, n=1, cutoff=fuzzy_cutoff))
    union = len(set_a) + len(set_b) - shared
    return shared / union


@dataclass(slots=True)
class LexicalClassifier:
    """Scores the input against each intent's helper text, description and id words."""

    threshold: float = 0.10
    name: str = "lexical"

    async def classify_intent(
        self,
        *,
        raw_input: str,
        local_intents: Sequence[Intent],
        global_intents: Sequence[Intent],
        scene_text: str,
        node: Node | None = None,
    ) -> str:
        user_tokens = tokenize(raw_input)
        if not user_tokens:
            return UNKNOWN_INTENT

        best_id: str | None = None
        best_score = 0.0
        for intent in [*local_intents, *global_intents]:
            intent_tokens = tokenize(
                " ".join(
                    [intent.ai_intent_helper, intent.description, intent.intent_description, intent.id.replace("_", " ")]
                )
            )
            score = similarity(user_tokens, intent_tokens)
            if score > best_score:
                best_id, best_score = intent.id, score

        logger.debug("Lexical match for %r: %s (score %.2f)", raw_input, best_id, best_score)
        if best_id is not None and best_score >= self.threshold:
            return best_id
        return UNKNOWN_INTENT
