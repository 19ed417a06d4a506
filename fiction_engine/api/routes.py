from __future__ import annotations

import logging
from uuid import uuid4

import redis
from fastapi import APIRouter, Depends, HTTPException, Query, status

from fiction_engine.api.deps import get_engine, get_hooks, get_redis
from fiction_engine.api.models import (
    AvailableIntent,
    CorrectIntentRequest,
    CorrectIntentResponse,
    GameResponse,
    InteractRequest,
    SessionIdResponse,
    StartRequest,
    StartResponse,
)
from fiction_engine.engine import CorrectionError, CorrectionSessionMissing, GameEngine
from fiction_engine.hooks import HookBus, HookName
from fiction_engine.lock import SessionBusyError
from fiction_engine.session_store import create_session, is_valid_session_id
from fiction_engine.story_store import StoryDataError

logger = logging.getLogger(__name__)

router = APIRouter()


def _story_data_error(e: StoryDataError) -> HTTPException:
    logger.error("Story data error: %s", e)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


def _busy(e: SessionBusyError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/api/session", response_model=SessionIdResponse, status_code=status.HTTP_201_CREATED)
async def create_session_route(
    r: redis.Redis = Depends(get_redis),
    hooks: HookBus = Depends(get_hooks),
) -> SessionIdResponse:
    session = create_session(r=r)
    await hooks.broadcast(HookName.session_create, session)
    return SessionIdResponse(session_id=session.id)


@router.post("/api/start", response_model=StartResponse, response_model_exclude_none=True)
async def start_route(payload: StartRequest, engine: GameEngine = Depends(get_engine)) -> StartResponse:
    session_id = payload.session_id or str(uuid4())
    if not is_valid_session_id(session_id):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Invalid session id")

    try:
        response = await engine.start_story(session_id, payload.story_id)
    except StoryDataError as e:
        raise _story_data_error(e) from e
    except SessionBusyError as e:
        raise _busy(e) from e

    return StartResponse(**response.model_dump(), session_id=session_id)


@router.post("/api/interact", response_model=GameResponse, response_model_exclude_none=True)
async def interact_route(payload: InteractRequest, engine: GameEngine = Depends(get_engine)) -> GameResponse:
    try:
        return await engine.handle_input(payload.session_id, payload.input)
    except StoryDataError as e:
        raise _story_data_error(e) from e
    except SessionBusyError as e:
        raise _busy(e) from e


@router.get("/api/intents", response_model=list[AvailableIntent])
async def intents_route(
    session_id: str = Query(..., min_length=1),
    engine: GameEngine = Depends(get_engine),
) -> list[AvailableIntent]:
    try:
        return await engine.get_available_intents(session_id)
    except StoryDataError as e:
        raise _story_data_error(e) from e


@router.post("/api/correct-intent", response_model=CorrectIntentResponse, response_model_exclude_none=True)
async def correct_intent_route(
    payload: CorrectIntentRequest,
    engine: GameEngine = Depends(get_engine),
) -> CorrectIntentResponse:
    try:
        game_response = await engine.correct_intent(payload.session_id, payload.input, payload.correct_intent_id)
    except CorrectionSessionMissing as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except CorrectionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    except StoryDataError as e:
        raise _story_data_error(e) from e
    except SessionBusyError as e:
        raise _busy(e) from e

    return CorrectIntentResponse(success=True, message="Intent recalibrated.", game_response=game_response)
