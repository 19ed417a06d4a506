"""Game engine: story start, intent resolution and session state transitions.

A turn (`handle_input`) runs:

    before-input hook -> load node -> eligible intents -> cache or classify
      -> global intent | unknown | matched intent (will-resolve hook, effects, action)
      -> persist -> after-input / on-response hooks

Every turn holds the per-session lock. Data-integrity failures (missing
manifest/node) raise `StoryDataError` before anything is persisted.
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Callable, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

import redis

from fiction_engine.api.models import (
    AvailableIntent,
    GameResponse,
    Intent,
    IntentAction,
    Node,
    ResponseType,
    Session,
    SessionPhase,
    StateValue,
)
from fiction_engine.classifiers.base import UNKNOWN_INTENT, IntentClassifier, classify_with_timeout
from fiction_engine.config import GLOBAL_INTENTS, EngineSettings
from fiction_engine.fsm import SessionFSM
from fiction_engine.hooks import HookBus, HookName
from fiction_engine.intent_cache import cache_intent, get_cached_intent, normalize_input
from fiction_engine.lock import session_lock
from fiction_engine.session_store import archive_session, get_session, is_valid_session_id, new_session, save_session
from fiction_engine.story_store import NodeNotFound, get_manifest, require_manifest, require_node

logger = logging.getLogger(__name__)

SESSION_EXPIRED = "SESSION_EXPIRED"
SESSION_NOT_STARTED = "SESSION_NOT_STARTED"

FAIL_STREAK_FOR_HINT = 3

_INTENT_ID_RE = re.compile(r"^[A-Za-z0-9_]+$")
_HINT_PREFIXES = (re.compile(r"^the user wants to "), re.compile(r"^the user "))


class CorrectionError(ValueError):
    pass


class CorrectionSessionMissing(CorrectionError):
    pass


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def _state_equals(state: dict[str, StateValue], key: str, expected: StateValue) -> bool:
    """Strict equality: True is not 1, "1" is not 1, and a missing key matches nothing."""

    if key not in state:
        return False
    actual = state[key]
    return type(actual) is type(expected) and actual == expected


def _state_matches(state: dict[str, StateValue], required: dict[str, StateValue]) -> bool:
    return all(_state_equals(state, k, v) for k, v in required.items())


def _hint_from_helper(helper: str) -> str:
    text = helper.lower()
    for prefix in _HINT_PREFIXES:
        text = prefix.sub("", text)
    return text


class GameEngine:
    def __init__(
        self,
        *,
        r: redis.Redis,
        classifier: IntentClassifier,
        hooks: HookBus | None = None,
        settings: EngineSettings | None = None,
        global_intents: Sequence[Intent] = GLOBAL_INTENTS,
        rng: random.Random | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.r = r
        self.classifier = classifier
        self.hooks = hooks or HookBus()
        self.settings = settings or EngineSettings()
        self.global_intents = tuple(global_intents)
        self._rng = rng or random.Random()
        self._clock = clock

    async def start_story(self, session_id: str, story_id: str) -> GameResponse:
        """(Re)start `story_id` for a session, creating the session if needed.

        Any previous progress on the session is discarded.
        Raises StoryNotFound / NodeNotFound on missing story data.
        """

        with session_lock(r=self.r, session_id=session_id, ttl_ms=self.settings.session_lock_ttl_ms):
            session = get_session(r=self.r, session_id=session_id)
            if session is None:
                logger.warning("Session %s not found. Creating fresh session.", session_id)
                session = new_session(session_id)
            elif session.phase == SessionPhase.finished:
                # Archive failed after a previous ending; start over from a clean lifecycle.
                session.phase = SessionPhase.created

            manifest = require_manifest(r=self.r, story_id=story_id)

            session.current_story = story_id
            session.current_node_id = manifest.start_node
            session.history = []
            session.state = {}
            session.inventory = []
            session.visited_nodes = []
            session.revealed_items = []
            session.fail_count = 0

            node = require_node(r=self.r, story_id=story_id, node_id=manifest.start_node)
            text = self.resolve_node_text(node, session)

            fsm = SessionFSM(session)
            fsm.begin()
            fsm.sync_phase_to_model()

            save_session(r=self.r, session=session)
            logger.info("Session %s started story %s at node %s", session.id, story_id, manifest.start_node)

        return GameResponse(text=text, type=ResponseType.intro, is_ai_generated=False)

    def _node_text(self, node: Node, session: Session, *, revisit: bool) -> str:
        for conditional in node.text_conditionals:
            if _state_matches(session.state, conditional.if_state):
                return conditional.text
        if revisit and node.text_revisit:
            return node.text_revisit
        return node.text

    def resolve_node_text(self, node: Node, session: Session) -> str:
        """Pick the display text for `node` and mark it visited.

        First matching conditional wins, then `text_revisit` (only if the node was
        visited before this call), then `text`.
        """

        seen_before = not session.mark_visited(node.id)
        return self._node_text(node, session, revisit=seen_before)

    def _intent_is_eligible(self, intent: Intent, session: Session) -> bool:
        if not all(session.has_item(item) for item in intent.requires):
            return False
        if any(session.has_item(item) for item in intent.requires_not):
            return False
        if not _state_matches(session.state, intent.requires_state):
            return False
        if any(_state_equals(session.state, k, v) for k, v in intent.requires_not_state.items()):
            return False
        if intent.action == IntentAction.pickup and session.has_item(intent.item_id):
            return False
        return True

    def eligible_intents(self, session: Session, node: Node) -> list[Intent]:
        """Node intents passing their gates, followed by the global intents."""

        return [i for i in node.intents if self._intent_is_eligible(i, session)] + list(self.global_intents)

    async def get_available_intents(self, session_id: str) -> list[AvailableIntent]:
        session = get_session(r=self.r, session_id=session_id)
        if session is None or not session.current_story or not session.current_node_id:
            return []

        node = require_node(r=self.r, story_id=session.current_story, node_id=session.current_node_id)
        return [
            AvailableIntent(id=i.id, intent_description=i.intent_description)
            for i in self.eligible_intents(session, node)
            if i.intent_description
        ]

    async def handle_input(self, session_id: str, raw_input: str) -> GameResponse:
        if not is_valid_session_id(session_id):
            return self._expired(session_id)

        with session_lock(r=self.r, session_id=session_id, ttl_ms=self.settings.session_lock_ttl_ms):
            return await self._handle_input_locked(session_id, raw_input)

    def _expired(self, session_id: str) -> GameResponse:
        logger.warning("Session %s not found (expired or invalid).", session_id)
        return GameResponse(error=SESSION_EXPIRED, text="Connection lost. Session expired.", type=ResponseType.error)

    async def _handle_input_locked(self, session_id: str, raw_input: str) -> GameResponse:
        logger.info("Handling input for session %s: %r", session_id, raw_input)

        session = get_session(r=self.r, session_id=session_id)
        if session is None:
            return self._expired(session_id)
        if session.phase != SessionPhase.playing or not session.current_story or not session.current_node_id:
            return GameResponse(
                error=SESSION_NOT_STARTED,
                text="No story in progress. Start a story first.",
                type=ResponseType.error,
            )

        hooked = await self.hooks.first_result(HookName.before_input, session, raw_input)
        if hooked is not None:
            save_session(r=self.r, session=session)
            return _as_response(hooked)

        story_id = session.current_story
        node = require_node(r=self.r, story_id=story_id, node_id=session.current_node_id)

        if self.settings.debug_commands and raw_input.strip() == "debug":
            return GameResponse(text=node.model_dump_json(indent=2), type=ResponseType.info)

        eligible = self.eligible_intents(session, node)
        local_intents = [i for i in eligible if not i.is_global]
        global_intents = [i for i in eligible if i.is_global]
        eligible_ids = {i.id for i in eligible}

        normalized = normalize_input(raw_input)
        session.last_input = normalized
        session.last_input_timestamp = self._clock()

        intent_id = get_cached_intent(r=self.r, story_id=story_id, node_id=node.id, normalized_input=normalized)
        if intent_id:
            logger.info("Cache hit: %r -> %s", normalized, intent_id)
            optimized = False
            if intent_id not in eligible_ids:
                # e.g. a pickup that is already done: the mapping is stale for this session.
                logger.info("Cached intent %s not available here; treating as unknown", intent_id)
                intent_id = UNKNOWN_INTENT
        else:
            logger.info("Cache miss: classifying %r", raw_input)
            intent_id = await classify_with_timeout(
                self.classifier,
                raw_input=raw_input,
                local_intents=local_intents,
                global_intents=global_intents,
                scene_text=self._node_text(node, session, revisit=node.id in session.visited_nodes),
                node=node,
                timeout_s=self.settings.classifier_timeout_s,
            )
            optimized = True
            if intent_id != UNKNOWN_INTENT and intent_id in eligible_ids:
                cache_intent(
                    r=self.r, story_id=story_id, node_id=node.id, normalized_input=normalized, intent_id=intent_id
                )

        session.record_turn(
            node_id=node.id, normalized_input=normalized, intent_id=intent_id, at=session.last_input_timestamp
        )
        flags: dict[str, Any] = {"optimized": optimized, "is_ai_generated": True}
        if intent_id != UNKNOWN_INTENT:
            session.fail_count = 0

        if intent_id == "global_look_around":
            return await self._persist_and_wrap(session, self._look_around(session, local_intents, flags))
        if intent_id == "global_inventory":
            return await self._persist_and_wrap(session, self._inventory(session, flags))
        if intent_id == "global_status":
            return await self._persist_and_wrap(session, self._status(session, flags))

        if intent_id == UNKNOWN_INTENT:
            return await self._persist_and_wrap(session, self._unknown(session, local_intents, flags))

        matched = next((i for i in eligible if i.id == intent_id), None)
        if matched is None:
            logger.error("Classifier %s returned invalid intent id %r", self.classifier.name, intent_id)
            return await self._persist_and_wrap(
                session,
                GameResponse(text="System Error: AI returned invalid intent ID.", type=ResponseType.error, **flags),
            )

        hooked = await self.hooks.first_result(HookName.will_resolve_intent, session, matched, node)
        if hooked is not None:
            return await self._persist_and_wrap(session, _as_response(hooked))

        return await self._apply_intent(session, matched, local_intents, flags)

    async def _apply_intent(
        self,
        session: Session,
        intent: Intent,
        local_intents: list[Intent],
        flags: dict[str, Any],
    ) -> GameResponse:
        session.state.update(intent.set_state)

        appended = ""
        if intent.reveals:
            for revealed_id in intent.reveals:
                session.reveal(revealed_id)
            for item in local_intents:
                if item.id in intent.reveals and item.text_description and not session.has_item(item.item_id):
                    appended += "\n" + item.text_description

        if intent.action == IntentAction.pickup:
            if intent.item_id:
                session.add_item(intent.item_id)
            text = intent.response or f"You picked up {intent.item_id}."
            return await self._persist_and_wrap(session, GameResponse(text=text, type=ResponseType.info, **flags))

        if intent.action == IntentAction.transition:
            if not intent.target:
                raise NodeNotFound(f"Intent {intent.id} has no transition target")
            assert session.current_story is not None
            next_node = require_node(r=self.r, story_id=session.current_story, node_id=intent.target)
            session.current_node_id = next_node.id
            text = self.resolve_node_text(next_node, session)
            return await self._persist_and_wrap(session, GameResponse(text=text, type=ResponseType.story, **flags))

        if intent.action == IntentAction.text:
            text = (intent.response or "") + appended
            return await self._persist_and_wrap(session, GameResponse(text=text, type=ResponseType.info, **flags))

        if intent.action == IntentAction.end_game:
            return await self._end_game(session, intent, flags)

        return await self._persist_and_wrap(
            session, GameResponse(text="System Error: Action undefined.", type=ResponseType.error, **flags)
        )

    async def _end_game(self, session: Session, intent: Intent, flags: dict[str, Any]) -> GameResponse:
        fsm = SessionFSM(session)
        fsm.finish()
        fsm.sync_phase_to_model()

        save_session(r=self.r, session=session)
        archive_session(r=self.r, session_id=session.id)

        assert session.current_story is not None
        manifest = get_manifest(r=self.r, story_id=session.current_story)
        response = GameResponse(
            text=intent.response or "",
            type=ResponseType.end,
            redirect=self.settings.end_redirect_url,
            author_name=manifest.author_name if manifest else "Unknown",
            author_id=manifest.author_id if manifest else "unknown",
            **flags,
        )
        return await self._wrap_response(response, session)

    def _look_around(self, session: Session, local_intents: list[Intent], flags: dict[str, Any]) -> GameResponse:
        visible = [
            i.text_description
            for i in local_intents
            if i.text_description and (i.visible or i.id in session.revealed_items)
        ]
        text = "\n".join(visible) or "You see nothing of interest."
        return GameResponse(text=text, type=ResponseType.info, **flags)

    def _inventory(self, session: Session, flags: dict[str, Any]) -> GameResponse:
        if session.inventory:
            text = "You are carrying: " + ", ".join(session.inventory)
        else:
            text = "You are not carrying anything."
        return GameResponse(text=text, type=ResponseType.info, **flags)

    def _status(self, session: Session, flags: dict[str, Any]) -> GameResponse:
        health = session.state.get("health") or "OK"
        text = (
            "Status Report:\n"
            f"- Health: {health}\n"
            f"- Inventory: {len(session.inventory)} items\n"
            f"- Visited Locations: {len(session.visited_nodes)}"
        )
        return GameResponse(text=text, type=ResponseType.info, **flags)

    def _unknown(self, session: Session, local_intents: list[Intent], flags: dict[str, Any]) -> GameResponse:
        session.fail_count += 1
        text = "There is no response."

        if session.fail_count >= FAIL_STREAK_FOR_HINT:
            if local_intents:
                tip = _hint_from_helper(self._rng.choice(local_intents).hint)
                text = f'Nothing happens.\n\n[TIP: Try something like "{tip}"]'
            session.fail_count = 0

        return GameResponse(text=text, type=ResponseType.info, **flags)

    async def _persist_and_wrap(self, session: Session, response: GameResponse) -> GameResponse:
        save_session(r=self.r, session=session)
        return await self._wrap_response(response, session)

    async def _wrap_response(self, response: GameResponse, session: Session) -> GameResponse:
        value = await self.hooks.waterfall(HookName.after_input, response, session)
        value = await self.hooks.waterfall(HookName.on_response, value, session)
        return _as_response(value)

    async def correct_intent(self, session_id: str, raw_input: str, intent_id: str) -> GameResponse:
        """Remap the player's most recent input to `intent_id`, then replay it.

        Only the latest input of this session can be corrected, and only within
        the correction window. Raises CorrectionError otherwise; game state is
        left untouched in that case.
        """

        session = get_session(r=self.r, session_id=session_id)
        if session is None:
            raise CorrectionSessionMissing("Session not found")

        window = timedelta(seconds=self.settings.correction_window_s)
        if session.last_input_timestamp is None or self._clock() - session.last_input_timestamp > window:
            raise CorrectionError("Correction time limit expired")

        normalized = normalize_input(raw_input)
        if session.last_input != normalized:
            raise CorrectionError("Can only correct the most recent input")

        if not _INTENT_ID_RE.match(intent_id):
            raise CorrectionError("Invalid Intent ID format")

        if not session.current_story or not session.current_node_id:
            raise CorrectionError("No story in progress")

        node = require_node(r=self.r, story_id=session.current_story, node_id=session.current_node_id)
        if intent_id not in {i.id for i in self.eligible_intents(session, node)}:
            raise CorrectionError("Intent is not available here")

        cache_intent(
            r=self.r,
            story_id=session.current_story,
            node_id=session.current_node_id,
            normalized_input=normalized,
            intent_id=intent_id,
        )
        logger.info("Correction applied for session %s: %r -> %s", session_id, normalized, intent_id)

        return await self.handle_input(session_id, raw_input)


def _as_response(value: Any) -> GameResponse:
    if isinstance(value, GameResponse):
        return value
    return GameResponse.model_validate(value)
