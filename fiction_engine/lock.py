from __future__ import annotations

import logging
from contextlib import contextmanager

import redis
from redis.exceptions import LockNotOwnedError

logger = logging.getLogger(__name__)


class SessionBusyError(ValueError):
    pass


@contextmanager
def session_lock(*, r: redis.Redis, session_id: str, ttl_ms: int = 15_000):
    """Per-session lock: at most one turn in flight for a session id.

    Fails fast rather than queueing. The TTL bounds how long a crashed holder can block the session;
    `EngineSettings` keeps it above the classifier timeout so a live turn never outlasts its lock.
    """

    lock = r.lock(f"lock:session:{session_id}", timeout=ttl_ms / 1000, blocking=False)
    if not lock.acquire():
        raise SessionBusyError("Session is busy")
    try:
        yield
    finally:
        # Token-checked release: a lock that expired and was taken by another turn stays put.
        try:
            lock.release()
        except LockNotOwnedError:
            logger.warning("Lock for session %s expired before the turn finished", session_id)
