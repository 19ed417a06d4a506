from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

# Session state values are compared with strict (type-aware) equality, see engine._state_equals.
StateValue = bool | int | float | str

HISTORY_LIMIT = 50


def _none_to_empty_list(value: Any) -> Any:
    return [] if value is None else value


def _none_to_empty_dict(value: Any) -> Any:
    return {} if value is None else value


def _dedupe(values: list[Any]) -> list[Any]:
    # Set semantics with first-seen order kept (inventory listing order is user-visible).
    return list(dict.fromkeys(values))


class IntentAction(StrEnum):
    text = "text"
    transition = "transition"
    pickup = "pickup"
    end_game = "end_game"


class Intent(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    # Hint for the classifier ("The user wants to open the hatch").
    ai_intent_helper: str = ""
    # Human label, used by the "correct my last interpretation" picker.
    intent_description: str = ""
    # Older story files only carry a free-form description.
    description: str = ""
    # Shown by look-around and when revealed.
    text_description: str = ""

    action: IntentAction | None = None
    response: str | None = None
    target: str | None = None
    item_id: str | None = None

    requires: list[str] = Field(default_factory=list)
    requires_not: list[str] = Field(default_factory=list)
    requires_state: dict[str, StateValue] = Field(default_factory=dict)
    requires_not_state: dict[str, StateValue] = Field(default_factory=dict)
    set_state: dict[str, StateValue] = Field(default_factory=dict)
    reveals: list[str] = Field(default_factory=list)
    visible: bool = True

    @field_validator("requires", "requires_not", "reveals", mode="before")
    @classmethod
    def _null_lists(cls, value: Any) -> Any:
        return _none_to_empty_list(value)

    @field_validator("requires_state", "requires_not_state", "set_state", mode="before")
    @classmethod
    def _null_maps(cls, value: Any) -> Any:
        return _none_to_empty_dict(value)

    @property
    def is_global(self) -> bool:
        return self.id.startswith("global_")

    @property
    def hint(self) -> str:
        return self.ai_intent_helper or self.description or self.intent_description


class TextConditional(BaseModel):
    if_state: dict[str, StateValue] = Field(default_factory=dict)
    text: str = ""

    @field_validator("if_state", mode="before")
    @classmethod
    def _null_if_state(cls, value: Any) -> Any:
        return _none_to_empty_dict(value)


class Node(BaseModel):
    id: str
    text: str = ""
    text_revisit: str | None = None
    text_conditionals: list[TextConditional] = Field(default_factory=list)
    intents: list[Intent] = Field(default_factory=list)

    @field_validator("text_conditionals", "intents", mode="before")
    @classmethod
    def _null_lists(cls, value: Any) -> Any:
        return _none_to_empty_list(value)


class StoryManifest(BaseModel):
    """Published story header. Authoring files use camelCase keys; both spellings are accepted."""

    model_config = ConfigDict(extra="allow")

    id: str = ""
    title: str = ""
    start_node: str = Field(validation_alias=AliasChoices("start_node", "startNode"))
    language: str = "en"
    description: str = ""
    author_id: str | None = Field(default=None, validation_alias=AliasChoices("author_id", "authorId"))
    author_name: str | None = Field(default=None, validation_alias=AliasChoices("author_name", "authorName"))
    date: str | None = None


class SessionPhase(StrEnum):
    created = "created"
    playing = "playing"
    finished = "finished"


class TurnRecord(BaseModel):
    node_id: str
    input: str
    intent_id: str
    at: datetime


# Older session records use camelCase keys.
_LEGACY_SESSION_KEYS: dict[str, str] = {
    "createdAt": "created_at",
    "currentStory": "current_story",
    "currentNodeId": "current_node_id",
    "visitedNodes": "visited_nodes",
    "revealedItems": "revealed_items",
    "failCount": "fail_count",
    "lastInput": "last_input",
    "lastInputTimestamp": "last_input_timestamp",
}


class Session(BaseModel):
    id: str
    created_at: datetime | None = None
    phase: SessionPhase = SessionPhase.created

    current_story: str | None = None
    current_node_id: str | None = None

    state: dict[str, StateValue] = Field(default_factory=dict)
    # Set semantics; stored as lists to keep JSON stable and order readable.
    inventory: list[str] = Field(default_factory=list)
    visited_nodes: list[str] = Field(default_factory=list)
    revealed_items: list[str] = Field(default_factory=list)

    fail_count: int = 0

    # Normalized form of the last input, for the correction window.
    last_input: str | None = None
    last_input_timestamp: datetime | None = None

    finished: bool = False

    history: list[TurnRecord] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _migrate_on_read(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        data = dict(data)
        for legacy, current in _LEGACY_SESSION_KEYS.items():
            if legacy in data:
                value = data.pop(legacy)
                data.setdefault(current, value)

        if not isinstance(data.get("state"), dict):
            data["state"] = {}
        for key in ("inventory", "visited_nodes", "revealed_items"):
            values = data.get(key)
            data[key] = _dedupe(list(values)) if isinstance(values, list) else []
        if data.get("fail_count") is None:
            data["fail_count"] = 0
        if data.get("finished") is None:
            data["finished"] = False

        history = data.get("history")
        data["history"] = [h for h in history if isinstance(h, dict) and "intent_id" in h] if isinstance(history, list) else []

        if not data.get("phase"):
            if data["finished"]:
                data["phase"] = SessionPhase.finished.value
            elif data.get("current_story") and data.get("current_node_id"):
                data["phase"] = SessionPhase.playing.value
            else:
                data["phase"] = SessionPhase.created.value

        return data

    def has_item(self, item_id: str | None) -> bool:
        return item_id is not None and item_id in self.inventory

    def add_item(self, item_id: str) -> bool:
        if item_id in self.inventory:
            return False
        self.inventory.append(item_id)
        return True

    def mark_visited(self, node_id: str) -> bool:
        if node_id in self.visited_nodes:
            return False
        self.visited_nodes.append(node_id)
        return True

    def reveal(self, intent_id: str) -> None:
        if intent_id not in self.revealed_items:
            self.revealed_items.append(intent_id)

    def record_turn(self, *, node_id: str, normalized_input: str, intent_id: str, at: datetime) -> None:
        self.history.append(TurnRecord(node_id=node_id, input=normalized_input, intent_id=intent_id, at=at))
        del self.history[:-HISTORY_LIMIT]


class ResponseType(StrEnum):
    intro = "intro"
    story = "story"
    info = "info"
    end = "end"
    error = "error"


class GameResponse(BaseModel):
    """What a turn hands back to the caller.

    Plugins may attach extra fields; they are kept and serialized.
    """

    model_config = ConfigDict(extra="allow")

    text: str = ""
    type: ResponseType = ResponseType.info

    # True only when this turn ran fresh classification (cache miss).
    optimized: bool | None = None
    # Drives the "challenge this interpretation" affordance.
    is_ai_generated: bool = False

    error: str | None = None

    # end_game only.
    redirect: str | None = None
    author_name: str | None = None
    author_id: str | None = None


class AvailableIntent(BaseModel):
    id: str
    intent_description: str


class SessionIdResponse(BaseModel):
    session_id: str


class StartRequest(BaseModel):
    story_id: str = Field(..., min_length=1, max_length=200)
    session_id: str | None = None


class InteractRequest(BaseModel):
    session_id: str
    input: str = Field(..., min_length=1, max_length=1000)


class CorrectIntentRequest(BaseModel):
    session_id: str
    input: str = Field(..., min_length=1, max_length=1000)
    correct_intent_id: str = Field(..., min_length=1, max_length=200)


class CorrectIntentResponse(BaseModel):
    success: bool
    message: str
    game_response: GameResponse


class StartResponse(GameResponse):
    session_id: str
