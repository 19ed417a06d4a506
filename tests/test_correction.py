from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from fiction_engine.api.models import ResponseType
from fiction_engine.engine import CorrectionError, CorrectionSessionMissing, GameEngine
from fiction_engine.intent_cache import get_cached_intent
from fiction_engine.session_store import create_session, get_session


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2024, 6, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(r, scripted, clock, lighthouse) -> GameEngine:
    # "head up" is misread as a look at the sea.
    return GameEngine(r=r, classifier=scripted({"head up": "look_sea"}), clock=clock)


async def _misread_turn(engine: GameEngine, r) -> str:
    sid = create_session(r=r).id
    await engine.start_story(sid, "lighthouse")
    resp = await engine.handle_input(sid, "Head up!")
    assert resp.text.startswith("Grey waves roll in.")
    assert resp.is_ai_generated is True
    return sid


@pytest.mark.asyncio
async def test_correction_remaps_cache_and_replays(r, engine, clock) -> None:
    sid = await _misread_turn(engine, r)
    clock.advance(30)

    resp = await engine.correct_intent(sid, "head up", "go_north")

    assert resp.type == ResponseType.story
    assert resp.text == "It is silent."
    assert resp.optimized is False
    assert get_cached_intent(r=r, story_id="lighthouse", node_id="shore", normalized_input="head up") == "go_north"
    s = get_session(r=r, session_id=sid)
    assert s is not None
    assert s.current_node_id == "lighthouse"


@pytest.mark.asyncio
async def test_correction_window_expires(r, engine, clock) -> None:
    sid = await _misread_turn(engine, r)
    clock.advance(61)

    with pytest.raises(CorrectionError, match="time limit expired"):
        await engine.correct_intent(sid, "head up", "go_north")
    assert get_cached_intent(r=r, story_id="lighthouse", node_id="shore", normalized_input="head up") == "look_sea"


@pytest.mark.asyncio
async def test_correction_window_is_configurable(r, scripted, clock, lighthouse) -> None:
    from fiction_engine.config import EngineSettings

    engine = GameEngine(
        r=r,
        classifier=scripted({"head up": "look_sea"}),
        clock=clock,
        settings=EngineSettings(correction_window_s=5),
    )
    sid = await _misread_turn(engine, r)
    clock.advance(6)

    with pytest.raises(CorrectionError):
        await engine.correct_intent(sid, "head up", "go_north")


@pytest.mark.asyncio
async def test_only_latest_input_can_be_corrected(r, engine) -> None:
    sid = await _misread_turn(engine, r)
    await engine.handle_input(sid, "inventory")

    with pytest.raises(CorrectionError, match="most recent input"):
        await engine.correct_intent(sid, "head up", "go_north")


@pytest.mark.asyncio
async def test_malformed_intent_id_is_rejected(r, engine) -> None:
    sid = await _misread_turn(engine, r)

    with pytest.raises(CorrectionError, match="Invalid Intent ID format"):
        await engine.correct_intent(sid, "head up", "go_north:*")
    s = get_session(r=r, session_id=sid)
    assert s is not None
    assert s.current_node_id == "shore"


@pytest.mark.asyncio
async def test_correction_without_session_or_turn(r, engine) -> None:
    with pytest.raises(CorrectionSessionMissing):
        await engine.correct_intent("0b6f8a52-4c39-4c1e-9a8e-2f1f3c5d7e90", "head up", "go_north")

    sid = create_session(r=r).id
    await engine.start_story(sid, "lighthouse")
    with pytest.raises(CorrectionError, match="time limit expired"):
        await engine.correct_intent(sid, "head up", "go_north")


@pytest.mark.asyncio
async def test_correction_to_intent_not_offered_here_is_rejected(r, engine) -> None:
    sid = await _misread_turn(engine, r)

    # climb_stairs belongs to the lighthouse node, not the shore.
    with pytest.raises(CorrectionError, match="not available"):
        await engine.correct_intent(sid, "head up", "climb_stairs")

    assert get_cached_intent(r=r, story_id="lighthouse", node_id="shore", normalized_input="head up") == "look_sea"
    s = get_session(r=r, session_id=sid)
    assert s is not None
    assert s.fail_count == 0
    assert len(s.history) == 1
