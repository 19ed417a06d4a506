from __future__ import annotations

import pytest

from fiction_engine.hooks import Dispatch, HookBus, HookName


@pytest.mark.asyncio
async def test_broadcast_runs_everyone_and_survives_errors() -> None:
    bus = HookBus()
    seen: list[str] = []

    def first(arg: str) -> None:
        seen.append(f"first:{arg}")

    def broken(arg: str) -> None:
        raise RuntimeError("plugin bug")

    async def last(arg: str) -> None:
        seen.append(f"last:{arg}")

    bus.register(HookName.server_init, first)
    bus.register(HookName.server_init, broken)
    bus.register(HookName.server_init, last)

    await bus.broadcast(HookName.server_init, "app")
    assert seen == ["first:app", "last:app"]


@pytest.mark.asyncio
async def test_first_result_short_circuits() -> None:
    bus = HookBus()
    calls: list[str] = []

    def declines(session, raw):  # type: ignore[no-untyped-def]
        calls.append("declines")
        return None

    async def answers(session, raw):  # type: ignore[no-untyped-def]
        calls.append("answers")
        return {"text": "handled"}

    def never(session, raw):  # type: ignore[no-untyped-def]
        calls.append("never")
        return {"text": "too late"}

    bus.register(HookName.before_input, declines)
    bus.register(HookName.before_input, answers)
    bus.register(HookName.before_input, never)

    assert await bus.first_result(HookName.before_input, object(), "xyzzy") == {"text": "handled"}
    assert calls == ["declines", "answers"]


@pytest.mark.asyncio
async def test_first_result_none_when_nobody_answers() -> None:
    bus = HookBus()
    bus.register(HookName.will_resolve_intent, lambda *args: None)
    assert await bus.first_result(HookName.will_resolve_intent, 1, 2, 3) is None


@pytest.mark.asyncio
async def test_waterfall_threads_value_in_priority_order() -> None:
    bus = HookBus()

    bus.register(HookName.after_input, lambda v, s: v + "-low", priority=1)
    bus.register(HookName.after_input, lambda v, s: v + "-high", priority=10)
    bus.register(HookName.after_input, lambda v, s: v + "-mid", priority=5)
    bus.register(HookName.after_input, lambda v, s: v + "-mid2", priority=5)

    assert await bus.waterfall(HookName.after_input, "x", None) == "x-high-mid-mid2-low"


@pytest.mark.asyncio
async def test_waterfall_none_keeps_value_and_errors_are_skipped() -> None:
    bus = HookBus()
    box = {"n": 1}

    def mutate(v, s):  # type: ignore[no-untyped-def]
        v["n"] += 1

    def broken(v, s):  # type: ignore[no-untyped-def]
        raise ValueError("nope")

    bus.register(HookName.on_response, mutate)
    bus.register(HookName.on_response, broken)
    bus.register(HookName.on_response, mutate)

    result = await bus.waterfall(HookName.on_response, box, None)
    assert result is box
    assert box["n"] == 3


@pytest.mark.asyncio
async def test_dispatch_by_discipline() -> None:
    bus = HookBus()
    bus.register("game:afterInput", lambda v: v * 2)
    bus.register("game:beforeInput", lambda: "short")

    assert await bus.dispatch(Dispatch.waterfall, "game:afterInput", 21) == 42
    assert await bus.dispatch("firstResult", "game:beforeInput") == "short"
    assert await bus.dispatch("broadcast", "game:beforeInput") is None

    with pytest.raises(ValueError):
        await bus.dispatch(Dispatch.waterfall, "game:afterInput")


def test_unknown_hook_is_rejected() -> None:
    bus = HookBus()
    assert bus.register("game:explode", lambda: None) is False
    assert not any(bus.has_subscribers(h) for h in HookName)


def test_scoped_registrar_binds_priority_and_owner() -> None:
    bus = HookBus()
    bus.register(HookName.after_input, lambda v, s: v, priority=0)
    bus.scoped(priority=7, owner="shout").register(HookName.after_input, lambda v, s: v)

    subs = bus.subscribers(HookName.after_input)
    assert [(s.priority, s.owner) for s in subs] == [(7, "shout"), (0, None)]
