from __future__ import annotations

import logging
import re
from datetime import UTC, datetime
from uuid import uuid4

import redis

from fiction_engine.api.models import Session

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "session:"  # + {uuid}
ARCHIVED_SESSION_KEY_PREFIX = "disabled_session:"  # + {uuid}

_SESSION_ID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)


def _now() -> datetime:
    return datetime.now(tz=UTC)


def _session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def _archived_key(session_id: str) -> str:
    return f"{ARCHIVED_SESSION_KEY_PREFIX}{session_id}"


def is_valid_session_id(session_id: str | None) -> bool:
    return bool(session_id) and _SESSION_ID_RE.match(session_id) is not None  # type: ignore[arg-type]


def new_session(session_id: str | None = None) -> Session:
    return Session(id=session_id or str(uuid4()), created_at=_now())


def create_session(*, r: redis.Redis, session_id: str | None = None) -> Session:
    session = new_session(session_id)
    save_session(r=r, session=session)
    return session


def get_session(*, r: redis.Redis, session_id: str) -> Session | None:
    """Load an active session; `None` covers unknown, expired, archived and malformed ids alike."""

    if not is_valid_session_id(session_id):
        return None
    raw = r.get(_session_key(session_id))
    if not raw:
        return None
    return Session.model_validate_json(raw)


def save_session(*, r: redis.Redis, session: Session) -> None:
    if not is_valid_session_id(session.id):
        raise ValueError("Invalid session id")
    r.set(_session_key(session.id), session.model_dump_json())


def delete_session(*, r: redis.Redis, session_id: str) -> None:
    if not is_valid_session_id(session_id):
        return
    r.delete(_session_key(session_id))
    logger.info("Deleted session %s", session_id)


def archive_session(*, r: redis.Redis, session_id: str) -> bool:
    """Move a session out of the active namespace. The archived copy is kept for debugging."""

    if not is_valid_session_id(session_id):
        return False
    try:
        r.rename(_session_key(session_id), _archived_key(session_id))
    except redis.ResponseError as e:
        # "no such key": nothing to archive.
        logger.warning("Failed to archive session %s: %s", session_id, e)
        return False
    logger.info("Archived session %s", session_id)
    return True


def get_archived_session(*, r: redis.Redis, session_id: str) -> Session | None:
    if not is_valid_session_id(session_id):
        return None
    raw = r.get(_archived_key(session_id))
    if not raw:
        return None
    return Session.model_validate_json(raw)
