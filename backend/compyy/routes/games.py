"""
Compyy Backend — Game Routes
==============================

What:  /api/games: CRUD, the public listing, saved games, sharing,
       tracking, favorites, ratings and the board editor.
How:   Thin handlers; rules live in GameService and the pure board
       functions in compyy.services.board.

Board editor endpoints each run one board operation on an owned Jeopardy
game and return the stored game:
    POST   /{id}/board/categories
    PATCH  /{id}/board/categories/{ci}
    DELETE /{id}/board/categories/{ci}
    POST   /{id}/board/categories/{ci}/questions
    PATCH  /{id}/board/categories/{ci}/questions/{qi}
    DELETE /{id}/board/categories/{ci}/questions/{qi}
    PATCH  /{id}/board/customizations
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from compyy.database import get_db_session
from compyy.dependencies import get_current_user_id, get_optional_user_id
from compyy.schemas.common import ErrorResponse, MessageResponse
from compyy.schemas.game import (
    BoardCustomizationUpdate,
    BoardStats,
    BoardValidateRequest,
    BoardValidationResponse,
    CategoryRename,
    FavoriteStatus,
    GameCreate,
    GameResponse,
    GameShareRequest,
    GameUpdate,
    PublicGameListResponse,
    QuestionUpdate,
    RatingRequest,
    RatingsResponse,
    TrackRequest,
    TrackResponse,
)
from compyy.services import board
from compyy.services.game_service import game_service

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/games",
    tags=["Games"],
    responses={
        400: {"description": "Invalid input", "model": ErrorResponse},
        401: {"description": "Not signed in", "model": ErrorResponse},
        403: {"description": "Not your game", "model": ErrorResponse},
        404: {"description": "Game not found", "model": ErrorResponse},
    },
)


def _validation_response(data, title: Optional[str] = None) -> BoardValidationResponse:
    errors, stats = board.validate_board(data, title)
    return BoardValidationResponse(valid=not errors, errors=errors, stats=BoardStats(**stats))


# ══════════════════════════════════════════════════════════════════════════
# Collection endpoints
# ══════════════════════════════════════════════════════════════════════════


@router.get("", response_model=List[GameResponse], summary="Your games, newest first")
async def list_games(
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[GameResponse]:
    return [GameResponse.model_validate(g) for g in await game_service.list_own(db, user_id)]


@router.post("", response_model=GameResponse, status_code=status.HTTP_201_CREATED, summary="Create a game")
async def create_game(
    body: GameCreate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    return GameResponse.model_validate(await game_service.create(db, user_id, body))


@router.get("/public", response_model=PublicGameListResponse, summary="Browse shared games")
async def list_public_games(
    response: Response,
    search: str = Query(default="", max_length=100, description="Title, description or tag"),
    subject: str = Query(default=""),
    grade_level: str = Query(default="", alias="gradeLevel"),
    difficulty: str = Query(default=""),
    sort_by: str = Query(default="newest", alias="sortBy", description="newest, popular, downloads or rating"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=50),
    db: AsyncSession = Depends(get_db_session),
) -> PublicGameListResponse:
    result = await game_service.list_public(
        db,
        search=search,
        subject=subject,
        grade_level=grade_level,
        difficulty=difficulty,
        sort_by=sort_by,
        page=page,
        limit=limit,
    )
    response.headers["X-Total-Count"] = str(result.pagination.total)
    return result


@router.post("/validate", response_model=BoardValidationResponse, summary="Check a board without saving it")
async def validate_board(body: BoardValidateRequest) -> BoardValidationResponse:
    return _validation_response(body.data)


# ── Saved games ───────────────────────────────────────────────────────────


@router.get("/saved", response_model=PublicGameListResponse, summary="Public games you saved")
async def list_saved(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=12, ge=1, le=50),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> PublicGameListResponse:
    return await game_service.list_saved(db, user_id, page=page, limit=limit)


@router.post(
    "/saved/{game_id}",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Already saved", "model": ErrorResponse}},
    summary="Save a public game",
)
async def save_game(
    game_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await game_service.save(db, game_id, user_id)
    return MessageResponse(message="Game saved")


@router.delete("/saved/{game_id}", response_model=MessageResponse, summary="Remove a saved game")
async def unsave_game(
    game_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MessageResponse:
    await game_service.unsave(db, game_id, user_id)
    return MessageResponse(message="Game removed from saved")


# ══════════════════════════════════════════════════════════════════════════
# Single game
# ══════════════════════════════════════════════════════════════════════════


@router.get("/{game_id}", response_model=GameResponse, summary="Get a game")
async def get_game(
    game_id: uuid.UUID,
    viewer_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    return GameResponse.model_validate(await game_service.get_readable(db, game_id, viewer_id))


@router.put("/{game_id}", response_model=GameResponse, summary="Update your game")
async def update_game(
    game_id: uuid.UUID,
    body: GameUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    return GameResponse.model_validate(await game_service.update(db, game_id, user_id, body))


@router.delete("/{game_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete your game")
async def delete_game(
    game_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Response:
    await game_service.delete(db, game_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{game_id}/share", response_model=GameResponse, summary="Publish or unpublish your game")
async def share_game(
    game_id: uuid.UUID,
    body: GameShareRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    return GameResponse.model_validate(await game_service.share(db, game_id, user_id, body))


@router.post("/{game_id}/track", response_model=TrackResponse, summary="Count a play or download")
async def track_game(
    game_id: uuid.UUID,
    body: TrackRequest,
    db: AsyncSession = Depends(get_db_session),
) -> TrackResponse:
    return await game_service.track(db, game_id, body.action)


# ── Favorites & ratings ───────────────────────────────────────────────────


@router.get("/{game_id}/favorite", response_model=FavoriteStatus, summary="Favorite status and count")
async def favorite_status(
    game_id: uuid.UUID,
    user_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteStatus:
    return await game_service.favorite_status(db, game_id, user_id)


@router.post("/{game_id}/favorite", response_model=FavoriteStatus, summary="Toggle favorite")
async def toggle_favorite(
    game_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> FavoriteStatus:
    return await game_service.toggle_favorite(db, game_id, user_id)


@router.get("/{game_id}/ratings", response_model=RatingsResponse, summary="Ratings and average")
async def list_ratings(
    game_id: uuid.UUID,
    viewer_id: Optional[uuid.UUID] = Depends(get_optional_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> RatingsResponse:
    return await game_service.list_ratings(db, game_id, viewer_id)


@router.post("/{game_id}/ratings", response_model=RatingsResponse, summary="Rate a public game (1-5)")
async def rate_game(
    game_id: uuid.UUID,
    body: RatingRequest,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> RatingsResponse:
    await game_service.rate(db, game_id, user_id, body.rating, body.review)
    return await game_service.list_ratings(db, game_id, user_id)


# ══════════════════════════════════════════════════════════════════════════
# Board editor
# ══════════════════════════════════════════════════════════════════════════


@router.get("/{game_id}/board/validation", response_model=BoardValidationResponse, summary="Validate the stored board")
async def board_validation(
    game_id: uuid.UUID,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> BoardValidationResponse:
    game = await game_service.get_owned(db, game_id, user_id)
    return _validation_response(game.data, game.title)


@router.post("/{game_id}/board/categories", response_model=GameResponse, summary="Add a category")
async def add_category(
    game_id: uuid.UUID,
    body: Optional[CategoryRename] = Body(default=None),
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    name = body.name if body else None
    game = await game_service.apply_board_operation(
        db, game_id, user_id, lambda data: board.add_category(data, name)
    )
    return GameResponse.model_validate(game)


@router.patch("/{game_id}/board/categories/{category_index}", response_model=GameResponse, summary="Rename a category")
async def rename_category(
    game_id: uuid.UUID,
    category_index: int,
    body: CategoryRename,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    game = await game_service.apply_board_operation(
        db, game_id, user_id, lambda data: board.rename_category(data, category_index, body.name)
    )
    return GameResponse.model_validate(game)


@router.delete("/{game_id}/board/categories/{category_index}", response_model=GameResponse, summary="Remove a category")
async def remove_category(
    game_id: uuid.UUID,
    category_index: int,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    game = await game_service.apply_board_operation(
        db, game_id, user_id, lambda data: board.remove_category(data, category_index)
    )
    return GameResponse.model_validate(game)


@router.post(
    "/{game_id}/board/categories/{category_index}/questions",
    response_model=GameResponse,
    summary="Add a question to a category",
)
async def add_question(
    game_id: uuid.UUID,
    category_index: int,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    game = await game_service.apply_board_operation(
        db, game_id, user_id, lambda data: board.add_question(data, category_index)
    )
    return GameResponse.model_validate(game)


@router.patch(
    "/{game_id}/board/categories/{category_index}/questions/{question_index}",
    response_model=GameResponse,
    summary="Edit a question",
)
async def update_question(
    game_id: uuid.UUID,
    category_index: int,
    question_index: int,
    body: QuestionUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    fields = body.model_dump(exclude_unset=True)
    game = await game_service.apply_board_operation(
        db, game_id, user_id,
        lambda data: board.update_question(data, category_index, question_index, fields),
    )
    return GameResponse.model_validate(game)


@router.delete(
    "/{game_id}/board/categories/{category_index}/questions/{question_index}",
    response_model=GameResponse,
    summary="Remove a question",
)
async def remove_question(
    game_id: uuid.UUID,
    category_index: int,
    question_index: int,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    game = await game_service.apply_board_operation(
        db, game_id, user_id, lambda data: board.remove_question(data, category_index, question_index)
    )
    return GameResponse.model_validate(game)


@router.patch("/{game_id}/board/customizations", response_model=GameResponse, summary="Update board styling")
async def update_customizations(
    game_id: uuid.UUID,
    body: BoardCustomizationUpdate,
    user_id: uuid.UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> GameResponse:
    updates = body.model_dump(by_alias=True, exclude_unset=True)
    game = await game_service.apply_board_operation(
        db, game_id, user_id, lambda data: board.apply_customizations(data, updates)
    )
    return GameResponse.model_validate(game)
