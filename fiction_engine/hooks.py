"""Extension hook bus.

Plugins subscribe callbacks to named hook points. The engine dispatches each
hook with one of three disciplines:

- broadcast: run every callback for side effects (e.g. server startup).
- first_result: run callbacks in order; the first non-None result wins and
  replaces normal handling (before-input, will-resolve-intent).
- waterfall: thread one value through every callback (response post-processing).

Subscribers run in priority order (higher first), then registration order.
A failing callback is logged and skipped; it never aborts the turn.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

logger = logging.getLogger(__name__)

# Sync or async; async callbacks are awaited.
HookCallback = Callable[..., Any]


class HookName(StrEnum):
    server_init = "server:init"
    session_create = "session:create"
    before_input = "game:beforeInput"
    will_resolve_intent = "game:willResolveIntent"
    after_input = "game:afterInput"
    on_response = "game:onResponse"


class Dispatch(StrEnum):
    broadcast = "broadcast"
    first_result = "firstResult"
    waterfall = "waterfall"


@dataclass(frozen=True, slots=True)
class Subscriber:
    callback: HookCallback
    priority: int
    seq: int
    owner: str | None = None


class HookBus:
    def __init__(self) -> None:
        self._subscribers: dict[HookName, list[Subscriber]] = {name: [] for name in HookName}
        self._seq = 0

    def register(
        self,
        hook: HookName | str,
        callback: HookCallback,
        *,
        priority: int = 0,
        owner: str | None = None,
    ) -> bool:
        try:
            name = HookName(hook)
        except ValueError:
            logger.warning("Unknown hook %r (owner=%s); ignoring", hook, owner)
            return False

        self._seq += 1
        subs = self._subscribers[name]
        subs.append(Subscriber(callback=callback, priority=priority, seq=self._seq, owner=owner))
        subs.sort(key=lambda s: (-s.priority, s.seq))
        return True

    def scoped(self, *, priority: int = 0, owner: str | None = None) -> "ScopedRegistrar":
        return ScopedRegistrar(bus=self, priority=priority, owner=owner)

    def subscribers(self, hook: HookName | str) -> list[Subscriber]:
        return list(self._subscribers[HookName(hook)])

    def has_subscribers(self, hook: HookName | str) -> bool:
        return bool(self._subscribers[HookName(hook)])

    async def _call(self, sub: Subscriber, *args: Any) -> Any:
        result = sub.callback(*args)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def broadcast(self, hook: HookName | str, *args: Any) -> None:
        for sub in self.subscribers(hook):
            try:
                await self._call(sub, *args)
            except Exception:
                logger.exception("Error in hook %s (owner=%s)", hook, sub.owner)

    async def first_result(self, hook: HookName | str, *args: Any) -> Any | None:
        for sub in self.subscribers(hook):
            try:
                result = await self._call(sub, *args)
            except Exception:
                logger.exception("Error in hook %s (owner=%s)", hook, sub.owner)
                continue
            if result is not None:
                return result
        return None

    async def waterfall(self, hook: HookName | str, value: Any, *args: Any) -> Any:
        """Thread `value` through every subscriber.

        A callback returning None is taken to have mutated `value` in place.
        """

        for sub in self.subscribers(hook):
            try:
                result = await self._call(sub, value, *args)
            except Exception:
                logger.exception("Error in hook %s (owner=%s)", hook, sub.owner)
                continue
            if result is not None:
                value = result
        return value

    async def dispatch(self, discipline: Dispatch | str, hook: HookName | str, *args: Any) -> Any:
        kind = Dispatch(discipline)
        if kind == Dispatch.broadcast:
            await self.broadcast(hook, *args)
            return None
        if kind == Dispatch.first_result:
            return await self.first_result(hook, *args)
        if not args:
            raise ValueError("waterfall dispatch needs an initial value")
        return await self.waterfall(hook, *args)


@dataclass(frozen=True, slots=True)
class ScopedRegistrar:
    """What a plugin's `init` receives: `register` with the plugin's priority pre-bound."""

    bus: HookBus
    priority: int = 0
    owner: str | None = None

    def register(self, hook: HookName | str, callback: HookCallback) -> bool:
        return self.bus.register(hook, callback, priority=self.priority, owner=self.owner)
