from __future__ import annotations

import logging

import redis
from pydantic import ValidationError

from fiction_engine.api.models import Node, StoryManifest

logger = logging.getLogger(__name__)

STORY_KEY_PREFIX = "story:"  # + {story_id}:manifest | {story_id}:node:{node_id}


class StoryDataError(RuntimeError):
    """Story content is missing or corrupt. Not recoverable by the player."""


class StoryNotFound(StoryDataError):
    pass


class NodeNotFound(StoryDataError):
    pass


def _manifest_key(story_id: str) -> str:
    return f"{STORY_KEY_PREFIX}{story_id}:manifest"


def _node_key(story_id: str, node_id: str) -> str:
    return f"{STORY_KEY_PREFIX}{story_id}:node:{node_id}"


def save_manifest(*, r: redis.Redis, story_id: str, manifest: StoryManifest) -> None:
    r.set(_manifest_key(story_id), manifest.model_dump_json())


def save_node(*, r: redis.Redis, story_id: str, node: Node) -> None:
    r.set(_node_key(story_id, node.id), node.model_dump_json())


def get_manifest(*, r: redis.Redis, story_id: str) -> StoryManifest | None:
    raw = r.get(_manifest_key(story_id))
    if not raw:
        return None
    try:
        return StoryManifest.model_validate_json(raw)
    except ValidationError:
        logger.exception("Corrupt manifest for story %s", story_id)
        return None


def get_node(*, r: redis.Redis, story_id: str, node_id: str) -> Node | None:
    raw = r.get(_node_key(story_id, node_id))
    if not raw:
        return None
    try:
        return Node.model_validate_json(raw)
    except ValidationError:
        logger.exception("Corrupt node %s for story %s", node_id, story_id)
        return None


def require_manifest(*, r: redis.Redis, story_id: str) -> StoryManifest:
    manifest = get_manifest(r=r, story_id=story_id)
    if manifest is None:
        raise StoryNotFound(f"Story {story_id} not found (manifest missing)")
    return manifest


def require_node(*, r: redis.Redis, story_id: str, node_id: str) -> Node:
    node = get_node(r=r, story_id=story_id, node_id=node_id)
    if node is None:
        raise NodeNotFound(f"Node {node_id} missing for story {story_id}")
    return node
