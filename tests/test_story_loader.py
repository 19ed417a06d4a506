from __future__ import annotations

import json
from pathlib import Path

import pytest

from fiction_engine.api.models import Node
from fiction_engine.story_loader import load_stories, verify_stories, verify_story_dir
from fiction_engine.story_store import (
    NodeNotFound,
    StoryNotFound,
    get_manifest,
    get_node,
    require_manifest,
    require_node,
    save_node,
)

STORIES = Path(__file__).resolve().parent / "stories"


def test_valid_story_has_no_problems() -> None:
    assert verify_story_dir(STORIES / "lighthouse") == []


def test_broken_story_reports_every_problem() -> None:
    errors = verify_story_dir(STORIES / "broken")
    joined = "\n".join(errors)

    assert "missing fields: language" in joined
    assert "'attic.json' is invalid JSON" in joined
    assert "filename 'hall.json' does not match id 'hallway'" in joined
    assert "'hall.json' is missing 'text'" in joined
    assert "startNode 'entrance' does not exist" in joined
    assert "transitions to missing node 'cellar'" in joined


def test_verify_stories_only_lists_failing_stories() -> None:
    report = verify_stories(STORIES)
    assert list(report) == ["broken"]


def test_missing_manifest_and_nodes_dir(tmp_path: Path) -> None:
    (tmp_path / "empty").mkdir()
    assert verify_story_dir(tmp_path / "empty") == ["Story 'empty' is missing manifest.json"]

    story = tmp_path / "no_nodes"
    story.mkdir()
    (story / "manifest.json").write_text(
        json.dumps({"id": "no_nodes", "title": "T", "startNode": "a", "language": "en"}), encoding="utf-8"
    )
    assert verify_story_dir(story) == ["Story 'no_nodes' is missing 'nodes' directory"]


def test_load_stories_seeds_valid_stories_only(r) -> None:
    loaded = load_stories(r=r, root=STORIES)

    assert loaded == ["lighthouse"]
    manifest = get_manifest(r=r, story_id="lighthouse")
    assert manifest is not None
    assert manifest.start_node == "shore"
    assert manifest.author_name == "Ada Keeper"

    shore = get_node(r=r, story_id="lighthouse", node_id="shore")
    assert shore is not None
    assert [i.id for i in shore.intents] == ["look_sea", "take_lamp", "go_north"]
    assert get_manifest(r=r, story_id="broken") is None


def test_load_stories_without_directory(r, tmp_path: Path) -> None:
    assert load_stories(r=r, root=tmp_path / "missing") == []


def test_require_helpers_raise_data_errors(r) -> None:
    with pytest.raises(StoryNotFound):
        require_manifest(r=r, story_id="nope")

    save_node(r=r, story_id="s", node=Node(id="a", text="A"))
    assert require_node(r=r, story_id="s", node_id="a").text == "A"
    with pytest.raises(NodeNotFound):
        require_node(r=r, story_id="s", node_id="b")


def test_corrupt_node_is_treated_as_missing(r) -> None:
    r.set("story:s:node:a", "{not json")
    assert get_node(r=r, story_id="s", node_id="a") is None
    with pytest.raises(NodeNotFound):
        require_node(r=r, story_id="s", node_id="a")
