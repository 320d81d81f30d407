"""
Compyy Backend — Game Board Editor
====================================

What:  Pure functions over the Jeopardy board document stored in
       `Game.data` / `Template.data`.
How:   Every operation takes a board dict and returns a new board dict;
       the input is never mutated. Unknown keys (styling, settings added by
       newer clients) are carried through untouched.

Board limits:
    - 1 to 6 categories
    - 0 to 5 questions per category
    - question values default to customValues[i], else (i + 1) * 100

validate_board() returns every problem at once rather than stopping at the
first, so an editor can show a complete checklist.
"""

import copy
import uuid
from typing import Any, Dict, List, Optional, Tuple

from compyy.exceptions import NotFoundError, ValidationError

MAX_CATEGORIES = 6
MAX_QUESTIONS_PER_CATEGORY = 5
DEFAULT_VALUES = [100, 200, 300, 400, 500]
MIN_TITLE_LENGTH = 3
MAX_QUESTION_SPREAD = 2
TIMER_MIN_SECONDS = 5
TIMER_MAX_SECONDS = 300
DIFFICULTIES = ("easy", "medium", "hard")
MEDIA_TYPES = ("image", "audio", "video")
CUSTOMIZATION_KEYS = ("boardCustomizations", "displayImage", "boardBackground", "gameSettings", "customValues")

Board = Dict[str, Any]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


# ══════════════════════════════════════════════════════════════════════════
# Construction & normalisation
# ══════════════════════════════════════════════════════════════════════════

def value_for_slot(board: Board, slot: int) -> int:
    values = board.get("customValues") or DEFAULT_VALUES
    if slot < len(values) and isinstance(values[slot], int) and values[slot] > 0:
        return values[slot]
    return (slot + 1) * 100


def new_question(value: int) -> Dict[str, Any]:
    return {"id": _new_id("question"), "value": value, "question": "", "answer": "", "isAnswered": False}


def new_board(
    title: str = "",
    category_count: int = MAX_CATEGORIES,
    question_count: int = MAX_QUESTIONS_PER_CATEGORY,
    values: Optional[List[int]] = None,
) -> Board:
    """Blank board with empty, numbered categories."""
    if not 1 <= category_count <= MAX_CATEGORIES:
        raise ValidationError(f"A board needs between 1 and {MAX_CATEGORIES} categories", field="categories")
    if not 0 <= question_count <= MAX_QUESTIONS_PER_CATEGORY:
        raise ValidationError(
            f"A category holds between 0 and {MAX_QUESTIONS_PER_CATEGORY} questions", field="questions"
        )
    board: Board = {"title": title, "customValues": list(values or DEFAULT_VALUES), "categories": []}
    for i in range(category_count):
        board["categories"].append({
            "id": _new_id("category"),
            "name": f"Category {i + 1}",
            "questions": [new_question(value_for_slot(board, q)) for q in range(question_count)],
        })
    return board


def normalize_board(data: Any) -> Board:
    """
    Deep-copy a stored board and fill in missing structural fields.

    Raises:
        ValidationError when the document is not shaped like a board.
    """
    if not isinstance(data, dict):
        raise ValidationError("Game data must be an object", field="data")
    board = copy.deepcopy(data)
    categories = board.setdefault("categories", [])
    if not isinstance(categories, list):
        raise ValidationError("Board categories must be a list", field="categories")

    for ci, category in enumerate(categories):
        if not isinstance(category, dict):
            raise ValidationError(f"Category {ci + 1} must be an object", field="categories")
        category.setdefault("id", _new_id("category"))
        if not isinstance(category.get("name"), str):
            category["name"] = ""
        questions = category.setdefault("questions", [])
        if not isinstance(questions, list):
            raise ValidationError(f"Questions of category {ci + 1} must be a list", field="questions")
        for qi, question in enumerate(questions):
            if not isinstance(question, dict):
                raise ValidationError(
                    f"Question {qi + 1} in category {ci + 1} must be an object", field="questions"
                )
            question.setdefault("id", _new_id("question"))
            if not isinstance(question.get("value"), int) or isinstance(question.get("value"), bool):
                question["value"] = value_for_slot(board, qi)
            question.setdefault("question", "")
            question.setdefault("answer", "")
            question.setdefault("isAnswered", False)
    return board


def _category(board: Board, index: int) -> Dict[str, Any]:
    categories = board["categories"]
    if not 0 <= index < len(categories):
        raise NotFoundError(resource="category", resource_id=str(index))
    return categories[index]


def _question(board: Board, category_index: int, question_index: int) -> Dict[str, Any]:
    questions = _category(board, category_index)["questions"]
    if not 0 <= question_index < len(questions):
        raise NotFoundError(resource="question", resource_id=f"{category_index}/{question_index}")
    return questions[question_index]


# ══════════════════════════════════════════════════════════════════════════
# Editor operations
# ══════════════════════════════════════════════════════════════════════════

def add_category(data: Board, name: Optional[str] = None) -> Board:
    board = normalize_board(data)
    if len(board["categories"]) >= MAX_CATEGORIES:
        raise ValidationError(f"A board can have at most {MAX_CATEGORIES} categories", field="categories")
    board["categories"].append({
        "id": _new_id("category"),
        "name": (name or "").strip() or f"Category {len(board['categories']) + 1}",
        "questions": [],
    })
    return board


def remove_category(data: Board, index: int) -> Board:
    board = normalize_board(data)
    _category(board, index)
    if len(board["categories"]) <= 1:
        raise ValidationError("A board must keep at least one category", field="categories")
    del board["categories"][index]
    return board


def rename_category(data: Board, index: int, name: str) -> Board:
    board = normalize_board(data)
    _category(board, index)["name"] = name.strip()
    return board


def add_question(data: Board, category_index: int) -> Board:
    board = normalize_board(data)
    questions = _category(board, category_index)["questions"]
    if len(questions) >= MAX_QUESTIONS_PER_CATEGORY:
        raise ValidationError(
            f"A category can have at most {MAX_QUESTIONS_PER_CATEGORY} questions", field="questions"
        )
    questions.append(new_question(value_for_slot(board, len(questions))))
    return board


def remove_question(data: Board, category_index: int, question_index: int) -> Board:
    board = normalize_board(data)
    _question(board, category_index, question_index)
    del board["categories"][category_index]["questions"][question_index]
    return board


def update_question(data: Board, category_index: int, question_index: int, fields: Dict[str, Any]) -> Board:
    """
    Apply a partial question update.

    A field explicitly set to None is removed (clearing media, timer or
    difficulty); text fields are cleared to an empty string instead.
    """
    board = normalize_board(data)
    question = _question(board, category_index, question_index)

    for key, value in fields.items():
        if key == "value":
            if value is None or value < 0:
                raise ValidationError("Question value must be zero or positive", field="value")
            question["value"] = value
        elif key in ("question", "answer"):
            question[key] = value or ""
        elif key == "timer":
            if value is not None and not TIMER_MIN_SECONDS <= value <= TIMER_MAX_SECONDS:
                raise ValidationError(
                    f"Timer must be between {TIMER_MIN_SECONDS} and {TIMER_MAX_SECONDS} seconds",
                    field="timer",
                )
            _set_or_clear(question, key, value)
        elif key == "difficulty":
            if value is not None and value not in DIFFICULTIES:
                raise ValidationError(f"Difficulty must be one of: {', '.join(DIFFICULTIES)}", field="difficulty")
            _set_or_clear(question, key, value)
        elif key == "media":
            if value is not None and value.get("type") not in MEDIA_TYPES:
                raise ValidationError(f"Media type must be one of: {', '.join(MEDIA_TYPES)}", field="media")
            _set_or_clear(question, key, value)
        else:
            raise ValidationError(f"Unknown question field '{key}'", field=key)
    return board


def _set_or_clear(target: Dict[str, Any], key: str, value: Any) -> None:
    if value is None:
        target.pop(key, None)
    else:
        target[key] = value


def apply_customizations(data: Board, updates: Dict[str, Any]) -> Board:
    """Merge styling keys; dict-valued keys are merged one level deep."""
    board = normalize_board(data)
    for key, value in updates.items():
        if key not in CUSTOMIZATION_KEYS:
            raise ValidationError(f"Unknown customization '{key}'", field=key)
        if isinstance(value, dict) and isinstance(board.get(key), dict):
            board[key] = {**board[key], **value}
        else:
            _set_or_clear(board, key, value)
    return board


def replace_content(target: Any, source: Any) -> Board:
    """
    Replace a board's categories and styling with another board's,
    keeping the target's own title.
    """
    board = normalize_board(target)
    incoming = normalize_board(source)
    title = board.get("title", "")
    for key in CUSTOMIZATION_KEYS:
        board.pop(key, None)
    board = {**board, **{k: v for k, v in incoming.items() if k != "title"}}
    board["title"] = title
    return board


# ══════════════════════════════════════════════════════════════════════════
# Validation
# ══════════════════════════════════════════════════════════════════════════

def is_complete_question(question: Dict[str, Any]) -> bool:
    return bool(_text(question.get("question")) and _text(question.get("answer")))


def completion_stats(data: Board) -> Dict[str, int]:
    board = normalize_board(data)
    categories = board["categories"]
    total = sum(len(c["questions"]) for c in categories)
    complete = sum(1 for c in categories for q in c["questions"] if is_complete_question(q))
    possible = min(len(categories) * MAX_QUESTIONS_PER_CATEGORY, MAX_CATEGORIES * MAX_QUESTIONS_PER_CATEGORY)
    return {
        "categories": len(categories),
        "total_questions": total,
        "complete_questions": complete,
        "percent": round(complete * 100 / possible) if possible else 0,
    }


def validate_board(data: Any, title: Optional[str] = None) -> Tuple[List[str], Dict[str, int]]:
    """
    Check a board against the editor rules.

    Returns:
        (errors, stats); an empty error list means the board can be saved.
    """
    board = normalize_board(data)
    errors: List[str] = []

    game_title = _text(title if title is not None else board.get("title"))
    if not game_title:
        errors.append("Game title is required")
    elif len(game_title) < MIN_TITLE_LENGTH:
        errors.append(f"Game title must be at least {MIN_TITLE_LENGTH} characters long")

    categories = board["categories"]
    if not categories:
        errors.append("At least one category is required")
    elif len(categories) > MAX_CATEGORIES:
        errors.append(f"A game can have at most {MAX_CATEGORIES} categories")

    for index, category in enumerate(categories):
        if not _text(category["name"]):
            errors.append(f"Category {index + 1} must have a name")
        if len(category["questions"]) > MAX_QUESTIONS_PER_CATEGORY:
            errors.append(
                f"Category {index + 1} has more than {MAX_QUESTIONS_PER_CATEGORY} questions"
            )

    complete_counts = [
        sum(1 for q in category["questions"] if is_complete_question(q)) for category in categories
    ]
    if sum(complete_counts) == 0:
        errors.append("At least one complete question is required")
    else:
        non_empty = [count for count in complete_counts if count > 0]
        highest, lowest = max(complete_counts), min(non_empty)
        if highest - lowest > MAX_QUESTION_SPREAD:
            errors.append(
                f"Unbalanced categories: some have {highest} questions, others have {lowest}"
            )

    return errors, completion_stats(board)


def ensure_valid_board(data: Any, title: Optional[str] = None) -> Board:
    """Normalise and validate, raising one ValidationError listing every problem."""
    errors, _ = validate_board(data, title)
    if errors:
        raise ValidationError(errors[0], field="data", context={"errors": errors})
    return normalize_board(data)
