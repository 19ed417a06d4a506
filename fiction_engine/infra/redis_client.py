from __future__ import annotations

import os

import redis

DEFAULT_REDIS_URL = "redis://localhost:6379/0"


def get_redis_url() -> str:
    return os.environ.get("REDIS_URL", DEFAULT_REDIS_URL)


def create_redis(url: str | None = None) -> redis.Redis:
    """Build a client for the story/session/cache keyspace.

    Strings in/out (decode_responses=True): every value we store is JSON text or an intent id.
    """

    timeout = float(os.environ.get("REDIS_SOCKET_TIMEOUT_S", "5"))
    return redis.Redis.from_url(
        url or get_redis_url(),
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )
