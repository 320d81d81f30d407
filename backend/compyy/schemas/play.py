"""
Compyy Backend — Play Session Schemas
=======================================

The answer text is only included once the session has left the `question`
state, so a board shown on a projector does not leak it.
"""

import uuid
from typing import Any, Dict, List, Optional

from pydantic import Field

from compyy.schemas.common import CamelModel


class StartPlayRequest(CamelModel):
    team_names: Optional[List[str]] = Field(default=None, max_length=6)
    team_count: Optional[int] = Field(default=None, description="1-6; ignored when teamNames is given")


class SelectQuestionRequest(CamelModel):
    category_index: int = Field(ge=0)
    question_index: int = Field(ge=0)


class AwardPointsRequest(CamelModel):
    team_id: str


class TeamState(CamelModel):
    id: str
    name: str
    score: int


class BoardTile(CamelModel):
    id: str
    value: int
    answered: bool
    playable: bool


class BoardColumn(CamelModel):
    name: str
    tiles: List[BoardTile]


class CurrentQuestion(CamelModel):
    category_index: int
    question_index: int
    category_name: str
    value: int
    question: str
    answer: Optional[str] = None
    media: Optional[Dict[str, Any]] = None
    difficulty: Optional[str] = None
    timer: Optional[int] = None
    time_remaining: Optional[int] = None


class PlayStateResponse(CamelModel):
    session_id: uuid.UUID
    game_id: uuid.UUID
    game_title: str
    state: str = Field(description="board, question, teamSelect or complete")
    teams: List[TeamState]
    board: List[BoardColumn]
    current_question: Optional[CurrentQuestion] = None
    answered_count: int
    total_questions: int
    is_complete: bool
    winners: List[TeamState] = Field(default_factory=list)
