from __future__ import annotations

import os
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any

import fakeredis
import pytest

TESTS_DIR = Path(__file__).resolve().parent
STORIES_DIR = TESTS_DIR / "stories"
PLUGINS_DIR = TESTS_DIR / "plugins"


@pytest.fixture(scope="session", autouse=True)
def _load_dotenv_for_tests() -> None:
    """Load repo .env for local runs.

    Makes OPENAI_BASE_URL / OLLAMA_HOST available to the env-gated classifier
    integration tests. In CI we don't auto-load `.env`, so those stay skipped
    unless explicitly opted-in with FICTION_ENGINE_LOAD_DOTENV_FOR_TESTS=1.
    """

    if os.environ.get("CI") and os.environ.get("FICTION_ENGINE_LOAD_DOTENV_FOR_TESTS") != "1":
        return

    env_path = TESTS_DIR.parent / ".env"
    if env_path.exists():
        from dotenv import load_dotenv

        load_dotenv(dotenv_path=env_path, override=False)

    # If using a local OpenAI-compatible endpoint, some clients require a key string.
    if os.environ.get("OPENAI_BASE_URL") and not os.environ.get("OPENAI_API_KEY"):
        os.environ["OPENAI_API_KEY"] = "ollama"


class ScriptedClassifier:
    """Test double: maps normalized input to an intent id and records every call."""

    name = "scripted"

    def __init__(self, mapping: dict[str, str] | None = None, default: str = "unknown") -> None:
        self.mapping = dict(mapping or {})
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def classify_intent(
        self,
        *,
        raw_input: str,
        local_intents: Sequence[Any],
        global_intents: Sequence[Any],
        scene_text: str,
        node: Any = None,
    ) -> str:
        from fiction_engine.intent_cache import normalize_input

        self.calls.append(
            {
                "raw_input": raw_input,
                "local_ids": [i.id for i in local_intents],
                "global_ids": [i.id for i in global_intents],
                "scene_text": scene_text,
            }
        )
        return self.mapping.get(normalize_input(raw_input), self.default)


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def scripted() -> Callable[..., ScriptedClassifier]:
    return ScriptedClassifier


@pytest.fixture()
def seed_story(r: fakeredis.FakeRedis) -> Callable[..., None]:
    """Write a story straight into Redis: seed_story("s", start="a", nodes=[{...}, ...])."""

    from fiction_engine.api.models import Node, StoryManifest
    from fiction_engine.story_store import save_manifest, save_node

    def _seed(story_id: str, *, start: str, nodes: list[dict[str, Any]], **manifest: Any) -> None:
        save_manifest(
            r=r,
            story_id=story_id,
            manifest=StoryManifest.model_validate({"id": story_id, "title": story_id, "startNode": start, **manifest}),
        )
        for node in nodes:
            save_node(r=r, story_id=story_id, node=Node.model_validate(node))

    return _seed


@pytest.fixture()
def lighthouse(r: fakeredis.FakeRedis) -> str:
    from fiction_engine.story_loader import load_stories

    # Only the valid fixture story loads; "broken" is skipped.
    assert load_stories(r=r, root=STORIES_DIR) == ["lighthouse"]
    return "lighthouse"


@pytest.fixture()
def client_and_redis():
    """FastAPI TestClient wired to fakeredis and a scripted classifier.

    Yields (client, redis, classifier); tests add classifier mappings as needed.
    """

    from collections.abc import Generator

    from fastapi.testclient import TestClient

    from fiction_engine.api.deps import get_redis
    from fiction_engine.config import EngineSettings
    from fiction_engine.hooks import HookBus
    from fiction_engine.main import app

    r = fakeredis.FakeRedis(decode_responses=True)
    classifier = ScriptedClassifier()

    def _override() -> Generator[fakeredis.FakeRedis, None, None]:
        yield r

    app.dependency_overrides[get_redis] = _override
    # No story preload or plugin scan against real services.
    app.state.settings = EngineSettings()
    app.state.hooks = HookBus()
    app.state.classifier = classifier
    with TestClient(app) as c:
        yield c, r, classifier
    app.dependency_overrides.clear()
