from __future__ import annotations

from collections.abc import Generator

import redis
from fastapi import Depends, Request

from fiction_engine.engine import GameEngine
from fiction_engine.hooks import HookBus
from fiction_engine.infra.redis_client import create_redis


def get_redis() -> Generator[redis.Redis, None, None]:
    client = create_redis()
    try:
        yield client
    finally:
        client.close()


def get_hooks(request: Request) -> HookBus:
    return request.app.state.hooks


def get_engine(request: Request, r: redis.Redis = Depends(get_redis)) -> GameEngine:
    state = request.app.state
    return GameEngine(r=r, classifier=state.classifier, hooks=state.hooks, settings=state.settings)
