from __future__ import annotations

import logging
import re

import redis

logger = logging.getLogger(__name__)

INTENT_CACHE_KEY_PREFIX = "intent_cache:"  # + {story}:{node}:{normalized input}

_NOT_ALLOWED = re.compile(r"[^a-z0-9 ]")


def normalize_input(raw_input: str) -> str:
    return _NOT_ALLOWED.sub("", raw_input.strip().lower())


def cache_key(*, story_id: str, node_id: str, normalized_input: str) -> str:
    return f"{INTENT_CACHE_KEY_PREFIX}{story_id}:{node_id}:{normalized_input}"


def get_cached_intent(*, r: redis.Redis, story_id: str, node_id: str, normalized_input: str) -> str | None:
    return r.get(cache_key(story_id=story_id, node_id=node_id, normalized_input=normalized_input)) or None


def cache_intent(*, r: redis.Redis, story_id: str, node_id: str, normalized_input: str, intent_id: str) -> None:
    """Record (or overwrite) the intent an input resolves to on a node."""

    r.set(cache_key(story_id=story_id, node_id=node_id, normalized_input=normalized_input), intent_id)
    logger.info("Cached intent mapping %s/%s: %r -> %s", story_id, node_id, normalized_input, intent_id)
