from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Protocol

from fiction_engine.api.models import Intent, Node

logger = logging.getLogger(__name__)

UNKNOWN_INTENT = "unknown"


class IntentClassifier(Protocol):
    """Contract: return an id from local+global intents, or "unknown".

    Anything else is a classifier bug; the engine reports it as a system error.
    """

    name: str

    async def classify_intent(
        self,
        *,
        raw_input: str,
        local_intents: Sequence[Intent],
        global_intents: Sequence[Intent],
        scene_text: str,
        node: Node | None = None,
    ) -> str:  # pragma: no cover
        ...


def valid_intent_ids(local_intents: Sequence[Intent], global_intents: Sequence[Intent]) -> list[str]:
    return [i.id for i in [*local_intents, *global_intents]]


async def classify_with_timeout(
    classifier: IntentClassifier,
    *,
    raw_input: str,
    local_intents: Sequence[Intent],
    global_intents: Sequence[Intent],
    scene_text: str,
    node: Node | None = None,
    timeout_s: float = 10.0,
) -> str:
    """Run a classifier; timeouts, errors and empty output all degrade to "unknown"."""

    try:
        result = await asyncio.wait_for(
            classifier.classify_intent(
                raw_input=raw_input,
                local_intents=local_intents,
                global_intents=global_intents,
                scene_text=scene_text,
                node=node,
            ),
            timeout=timeout_s,
        )
    except TimeoutError:
        logger.warning("Classifier %s timed out after %.1fs", classifier.name, timeout_s)
        return UNKNOWN_INTENT
    except Exception as e:
        logger.warning("Classifier %s failed: %s", classifier.name, e)
        return UNKNOWN_INTENT

    if not isinstance(result, str) or not result.strip():
        return UNKNOWN_INTENT

    logger.info("Classifier %s: %r -> %s", classifier.name, raw_input, result.strip())
    return result.strip()
