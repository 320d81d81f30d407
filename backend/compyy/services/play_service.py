"""
Compyy Backend — Play Runtime
===============================

What:  Server-side state machine for playing a Jeopardy board with teams.
How:   A PlaySession holds a snapshot of the board taken at start, the teams
       and their scores. Sessions live in an in-memory PlaySessionStore
       attached to the application (app.state.play_sessions).

State Machine:
    board ──select_question──▶ question ──show_answer / timer──▶ teamSelect
      ▲                           │                                 │
      └──── award_points / skip ──┴─────────────────────────────────┘
    Once every playable question is answered the session is `complete`.

The question timer has no background task: the deadline is compared to the
clock whenever the session is read or changed, and an expired question
moves to teamSelect at that point.
"""

import logging
import math
import time
import uuid
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from compyy.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from compyy.services.board import is_complete_question, normalize_board

logger = logging.getLogger(__name__)

STATE_BOARD = "board"
STATE_QUESTION = "question"
STATE_TEAM_SELECT = "teamSelect"
STATE_COMPLETE = "complete"

MIN_TEAMS = 1
MAX_TEAMS = 6
DEFAULT_TEAM_COUNT = 2

Clock = Callable[[], float]


def build_teams(team_names: Optional[List[str]] = None, team_count: Optional[int] = None) -> List[Dict[str, Any]]:
    """Teams from explicit names, else `team_count` teams named "Team N"."""
    if team_names:
        names = [name.strip() for name in team_names]
    else:
        count = DEFAULT_TEAM_COUNT if team_count is None else team_count
        if not MIN_TEAMS <= count <= MAX_TEAMS:
            raise ValidationError(f"Between {MIN_TEAMS} and {MAX_TEAMS} teams can play", field="teamCount")
        names = [""] * count

    if not MIN_TEAMS <= len(names) <= MAX_TEAMS:
        raise ValidationError(f"Between {MIN_TEAMS} and {MAX_TEAMS} teams can play", field="teamNames")
    return [
        {"id": f"team-{i + 1}", "name": name or f"Team {i + 1}", "score": 0}
        for i, name in enumerate(names)
    ]


class PlaySession:
    """One run through a board. Not persisted."""

    def __init__(
        self,
        game_id: uuid.UUID,
        game_title: str,
        owner_id: uuid.UUID,
        board: Dict[str, Any],
        teams: List[Dict[str, Any]],
        clock: Clock = time.monotonic,
    ):
        self.id = uuid.uuid4()
        self.game_id = game_id
        self.game_title = game_title
        self.owner_id = owner_id
        self.board = normalize_board(board)
        self.teams = teams
        self._clock = clock

        self.playable: Set[Tuple[int, int]] = {
            (ci, qi)
            for ci, category in enumerate(self.board["categories"])
            for qi, question in enumerate(category["questions"])
            if is_complete_question(question)
        }
        if not self.playable:
            raise ValidationError("This game has no complete questions to play", field="data")

        self.answered: Set[Tuple[int, int]] = set()
        self.state = STATE_BOARD
        self.current: Optional[Tuple[int, int]] = None
        self.deadline: Optional[float] = None
        self.last_active = clock()

    # ── Helpers ───────────────────────────────────────────────────────────

    def _question(self, ci: int, qi: int) -> Dict[str, Any]:
        categories = self.board["categories"]
        if not 0 <= ci < len(categories) or not 0 <= qi < len(categories[ci]["questions"]):
            raise NotFoundError(resource="question", resource_id=f"{ci}/{qi}")
        return categories[ci]["questions"][qi]

    def _require(self, *states: str) -> None:
        self.tick()
        if self.state not in states:
            raise ValidationError(
                f"Action not allowed while the game is in '{self.state}' state",
                context={"state": self.state, "allowed": list(states)},
            )

    def _finish_question(self) -> None:
        self.answered.add(self.current)
        self.current = None
        self.deadline = None
        self.state = STATE_COMPLETE if self.is_complete else STATE_BOARD

    def touch(self) -> None:
        self.last_active = self._clock()

    def tick(self) -> None:
        """Apply an expired question timer."""
        if self.state == STATE_QUESTION and self.deadline is not None and self._clock() >= self.deadline:
            logger.debug("Play session %s: timer expired", self.id)
            self.state = STATE_TEAM_SELECT
            self.deadline = None

    @property
    def is_complete(self) -> bool:
        return len(self.answered) == len(self.playable)

    def time_remaining(self) -> Optional[int]:
        if self.deadline is None:
            return None
        return max(0, math.ceil(self.deadline - self._clock()))

    # ── Transitions ───────────────────────────────────────────────────────

    def select_question(self, ci: int, qi: int) -> None:
        self._require(STATE_BOARD)
        question = self._question(ci, qi)
        if (ci, qi) in self.answered:
            raise ValidationError("This question has already been answered")
        if (ci, qi) not in self.playable:
            raise ValidationError("This question has no question or answer text")

        self.current = (ci, qi)
        self.state = STATE_QUESTION
        timer = question.get("timer")
        self.deadline = self._clock() + timer if isinstance(timer, int) and timer > 0 else None

    def show_answer(self) -> None:
        self._require(STATE_QUESTION)
        self.state = STATE_TEAM_SELECT
        self.deadline = None

    def award_points(self, team_id: str) -> None:
        self._require(STATE_QUESTION, STATE_TEAM_SELECT)
        team = next((t for t in self.teams if t["id"] == team_id), None)
        if team is None:
            raise NotFoundError(resource="team", resource_id=team_id)
        team["score"] += self._question(*self.current)["value"]
        self._finish_question()

    def skip_question(self) -> None:
        self._require(STATE_QUESTION, STATE_TEAM_SELECT)
        self._finish_question()

    def reset(self) -> None:
        for team in self.teams:
            team["score"] = 0
        self.answered.clear()
        self.current = None
        self.deadline = None
        self.state = STATE_BOARD

    # ── Read model ────────────────────────────────────────────────────────

    def winners(self) -> List[Dict[str, Any]]:
        if not self.is_complete:
            return []
        top = max(team["score"] for team in self.teams)
        return [team for team in self.teams if team["score"] == top]

    def snapshot(self) -> Dict[str, Any]:
        """State as a PlayStateResponse-shaped dict; the answer is hidden while a question is open."""
        self.tick()
        board = [
            {
                "name": category["name"],
                "tiles": [
                    {
                        "id": question["id"],
                        "value": question["value"],
                        "answered": (ci, qi) in self.answered,
                        "playable": (ci, qi) in self.playable and (ci, qi) not in self.answered,
                    }
                    for qi, question in enumerate(category["questions"])
                ],
            }
            for ci, category in enumerate(self.board["categories"])
        ]

        current = None
        if self.current is not None:
            ci, qi = self.current
            question = self._question(ci, qi)
            current = {
                "category_index": ci,
                "question_index": qi,
                "category_name": self.board["categories"][ci]["name"],
                "value": question["value"],
                "question": question["question"],
                "answer": None if self.state == STATE_QUESTION else question["answer"],
                "media": question.get("media"),
                "difficulty": question.get("difficulty"),
                "timer": question.get("timer"),
                "time_remaining": self.time_remaining(),
            }

        return {
            "session_id": self.id,
            "game_id": self.game_id,
            "game_title": self.game_title,
            "state": self.state,
            "teams": [dict(team) for team in self.teams],
            "board": board,
            "current_question": current,
            "answered_count": len(self.answered),
            "total_questions": len(self.playable),
            "is_complete": self.is_complete,
            "winners": [dict(team) for team in self.winners()],
        }


class PlaySessionStore:
    """
    In-memory sessions keyed by id, least recently used first.

    Sessions idle for longer than `ttl` seconds are dropped on access, and
    the least recently used session is evicted beyond `max_sessions`.
    """

    def __init__(self, ttl: int, max_sessions: int, clock: Clock = time.monotonic):
        self.ttl = ttl
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: "OrderedDict[uuid.UUID, PlaySession]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def _evict_expired(self) -> None:
        cutoff = self._clock() - self.ttl
        for session_id in [sid for sid, s in self._sessions.items() if s.last_active < cutoff]:
            del self._sessions[session_id]
            logger.info("Play session %s expired", session_id)

    def add(self, session: PlaySession) -> PlaySession:
        self._evict_expired()
        self._sessions[session.id] = session
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Play session %s evicted (store full)", evicted)
        return session

    def get(self, session_id: uuid.UUID, user_id: uuid.UUID) -> PlaySession:
        self._evict_expired()
        session = self._sessions.get(session_id)
        if session is None:
            raise NotFoundError(resource="play session", resource_id=str(session_id))
        if session.owner_id != user_id:
            raise PermissionDeniedError("You can only control your own play sessions")
        session.touch()
        self._sessions.move_to_end(session_id)
        return session

    def remove(self, session_id: uuid.UUID, user_id: uuid.UUID) -> None:
        self.get(session_id, user_id)
        del self._sessions[session_id]
