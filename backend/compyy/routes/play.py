"""
Compyy Backend — Play Routes
==============================

Drive a live game from the presenter's screen. A session is started from a
Jeopardy game the caller owns or that is public, and only the user who
started it can control it.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Body, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.database import get_db_session
from compyy.dependencies import get_current_user_id, get_play_sessions
from compyy.exceptions import ValidationError
from compyy.schemas.common import ErrorResponse
from compyy.schemas.play import (
    AwardPointsRequest,
    PlayStateResponse,
    SelectQuestionRequest,
    StartPlayRequest,
)
from compyy.services.game_service import game_service
from compyy.services.play_service import PlaySession, PlaySessionStore, build_teams

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/play",
    tags=["Play"],
    responses={
        400: {"description": "Action not allowed in the current state", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        403: {"description": "Not your session", "model": ErrorResponse},
        404: {"description": "Session or question not found", "model": ErrorResponse},
    },
)


def _state(session: PlaySession) -> PlayStateResponse:
    return PlayStateResponse.model_validate(session.snapshot())


@router.post(
    "/{game_id}/start",
    response_model=PlayStateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Start playing a game",
)
async def start_session(
    game_id: uuid.UUID,
    body: Optional[StartPlayRequest] = Body(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    sessions: PlaySessionStore = Depends(get_play_sessions),
    db: AsyncSession = Depends(get_db_session),
) -> PlayStateResponse:
    game = await game_service.get_readable(db, game_id, user_id)
    if game.type != "JEOPARDY":
        raise ValidationError("Only Jeopardy games can be played here", field="type")

    body = body or StartPlayRequest()
    teams = build_teams(body.team_names, body.team_count)
    session = sessions.add(PlaySession(game.id, game.title, user_id, game.data, teams))
    if game.is_public:
        await game_service.track(db, game.id, "play")
    logger.info("Play session %s started for game %s (%d teams)", session.id, game.id, len(teams))
    return _state(session)


@router.get("/sessions/{session_id}", response_model=PlayStateResponse, summary="Current session state")
async def get_session(
    session_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    sessions: PlaySessionStore = Depends(get_play_sessions),
) -> PlayStateResponse:
    return _state(sessions.get(session_id, user_id))


@router.post("/sessions/{session_id}/select", response_model=PlayStateResponse, summary="Open a question")
async def select_question(
    session_id: uuid.UUID,
    body: SelectQuestionRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    sessions: PlaySessionStore = Depends(get_play_sessions),
) -> PlayStateResponse:
    session = sessions.get(session_id, user_id)
    session.select_question(body.category_index, body.question_index)
    return _state(session)


@router.post("/sessions/{session_id}/show-answer", response_model=PlayStateResponse, summary="Reveal the answer")
async def show_answer(
    session_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    sessions: PlaySessionStore = Depends(get_play_sessions),
) -> PlayStateResponse:
    session = sessions.get(session_id, user_id)
    session.show_answer()
    return _state(session)


@router.post("/sessions/{session_id}/award", response_model=PlayStateResponse, summary="Give the points to a team")
async def award_points(
    session_id: uuid.UUID,
    body: AwardPointsRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    sessions: PlaySessionStore = Depends(get_play_sessions),
) -> PlayStateResponse:
    session = sessions.get(session_id, user_id)
    session.award_points(body.team_id)
    return _state(session)


@router.post("/sessions/{session_id}/skip", response_model=PlayStateResponse, summary="Close the question unscored")
async def skip_question(
    session_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    sessions: PlaySessionStore = Depends(get_play_sessions),
) -> PlayStateResponse:
    session = sessions.get(session_id, user_id)
    session.skip_question()
    return _state(session)


@router.post("/sessions/{session_id}/reset", response_model=PlayStateResponse, summary="Start the board over")
async def reset_session(
    session_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    sessions: PlaySessionStore = Depends(get_play_sessions),
) -> PlayStateResponse:
    session = sessions.get(session_id, user_id)
    session.reset()
    return _state(session)


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT, summary="End the session")
async def end_session(
    session_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    sessions: PlaySessionStore = Depends(get_play_sessions),
) -> Response:
    sessions.remove(session_id, user_id)
    logger.info("Play session %s ended", session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
