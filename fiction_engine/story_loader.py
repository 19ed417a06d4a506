"""Story directories on disk: verification and seeding into Redis.

Layout:

    <root>/<story_id>/manifest.json
    <root>/<story_id>/nodes/<node_id>.json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import redis
from pydantic import ValidationError

from fiction_engine.api.models import IntentAction, Node, StoryManifest
from fiction_engine.story_store import save_manifest, save_node

logger = logging.getLogger(__name__)

MANDATORY_MANIFEST_FIELDS = ("id", "title", "startNode", "language")


def _start_node(manifest: dict[str, Any]) -> Any:
    return manifest.get("startNode") or manifest.get("start_node")


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


def verify_story_dir(story_dir: Path) -> list[str]:
    """Return human-readable problems with one story directory (empty list: valid)."""

    story_id = story_dir.name
    errors: list[str] = []

    manifest_path = story_dir / "manifest.json"
    if not manifest_path.exists():
        return [f"Story '{story_id}' is missing manifest.json"]

    try:
        manifest = _read_json(manifest_path)
    except json.JSONDecodeError as e:
        return [f"Story '{story_id}' manifest.json is invalid JSON: {e}"]
    if not isinstance(manifest, dict):
        return [f"Story '{story_id}' manifest.json must be a JSON object"]

    missing = [f for f in MANDATORY_MANIFEST_FIELDS if not (_start_node(manifest) if f == "startNode" else manifest.get(f))]
    if missing:
        errors.append(f"Story '{story_id}' manifest is missing fields: {', '.join(missing)}")

    nodes_dir = story_dir / "nodes"
    if not nodes_dir.is_dir():
        errors.append(f"Story '{story_id}' is missing 'nodes' directory")
        return errors

    node_ids: set[str] = set()
    targets: list[tuple[str, str]] = []
    for path in sorted(nodes_dir.glob("*.json")):
        try:
            data = _read_json(path)
        except json.JSONDecodeError as e:
            errors.append(f"Story '{story_id}' node '{path.name}' is invalid JSON: {e}")
            continue
        if not isinstance(data, dict):
            errors.append(f"Story '{story_id}' node '{path.name}' must be a JSON object")
            continue

        node_id = data.get("id")
        if not node_id:
            errors.append(f"Story '{story_id}' node '{path.name}' is missing 'id'")
        else:
            node_ids.add(node_id)
            if path.name != f"{node_id}.json":
                errors.append(f"Story '{story_id}' node filename '{path.name}' does not match id '{node_id}'")

        if not data.get("text") and not data.get("text_conditionals"):
            errors.append(f"Story '{story_id}' node '{path.name}' is missing 'text' (and has no conditionals)")

        for intent in data.get("intents") or []:
            if isinstance(intent, dict) and intent.get("action") == IntentAction.transition.value:
                targets.append((path.name, str(intent.get("target") or "")))

    start = _start_node(manifest)
    if start and start not in node_ids:
        errors.append(f"Story '{story_id}' manifest startNode '{start}' does not exist in nodes.")

    for file_name, target in targets:
        if target not in node_ids:
            errors.append(f"Story '{story_id}' node '{file_name}' transitions to missing node '{target}'")

    return errors


def story_dirs(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    return sorted(p for p in root.iterdir() if p.is_dir())


def verify_stories(root: Path) -> dict[str, list[str]]:
    """Problems per story id; stories without problems are left out."""

    report: dict[str, list[str]] = {}
    for story_dir in story_dirs(root):
        errors = verify_story_dir(story_dir)
        if errors:
            report[story_dir.name] = errors
    return report


def load_stories(*, r: redis.Redis, root: Path) -> list[str]:
    """Seed every valid story under `root` into Redis. Invalid stories are logged and skipped."""

    if not root.is_dir():
        logger.info("No stories directory at %s", root)
        return []

    loaded: list[str] = []
    for story_dir in story_dirs(root):
        story_id = story_dir.name
        errors = verify_story_dir(story_dir)
        if errors:
            for err in errors:
                logger.error("%s", err)
            logger.warning("Skipping story %s (%d problems)", story_id, len(errors))
            continue

        try:
            manifest = StoryManifest.model_validate(_read_json(story_dir / "manifest.json"))
            nodes = [Node.model_validate(_read_json(p)) for p in sorted((story_dir / "nodes").glob("*.json"))]
        except ValidationError:
            logger.exception("Story %s does not match the story schema; skipping", story_id)
            continue

        save_manifest(r=r, story_id=story_id, manifest=manifest)
        for node in nodes:
            save_node(r=r, story_id=story_id, node=node)
        logger.info("Loaded story %s (%d nodes)", story_id, len(nodes))
        loaded.append(story_id)

    return loaded
