"""
Compyy Backend — Board Rules Unit Tests
=========================================

Pure functions, no database: limits, editing, validation messages and
completion stats.
"""

import pytest

from compyy.exceptions import NotFoundError, ValidationError
from compyy.services import board
from conftest import jeopardy_board


class TestNewBoard:

    def test_default_board_has_full_grid(self):
        result = board.new_board("Capitals")
        assert len(result["categories"]) == 6
        assert [q["value"] for q in result["categories"][0]["questions"]] == [100, 200, 300, 400, 500]

    def test_custom_values_are_used(self):
        result = board.new_board("Capitals", 1, 3, values=[10, 20, 30])
        assert [q["value"] for q in result["categories"][0]["questions"]] == [10, 20, 30]

    def test_too_many_categories_rejected(self):
        with pytest.raises(ValidationError):
            board.new_board("Capitals", category_count=7)


class TestEditorOperations:

    def test_operations_do_not_mutate_input(self):
        original = jeopardy_board()
        board.rename_category(original, 0, "History")
        assert original["categories"][0]["name"] == "Category 1"

    def test_seventh_category_rejected(self):
        data = jeopardy_board(categories=6, questions=1)
        with pytest.raises(ValidationError, match="at most 6 categories"):
            board.add_category(data)

    def test_add_category_uses_given_name(self):
        result = board.add_category(jeopardy_board(), "  Geography ")
        assert result["categories"][-1]["name"] == "Geography"
        assert result["categories"][-1]["questions"] == []

    def test_last_category_cannot_be_removed(self):
        data = jeopardy_board(categories=1)
        with pytest.raises(ValidationError, match="at least one category"):
            board.remove_category(data, 0)

    def test_remove_unknown_category_is_not_found(self):
        with pytest.raises(NotFoundError):
            board.remove_category(jeopardy_board(), 9)

    def test_sixth_question_rejected(self):
        data = jeopardy_board(categories=1, questions=5)
        with pytest.raises(ValidationError, match="at most 5 questions"):
            board.add_question(data, 0)

    def test_new_question_value_follows_slot(self):
        data = jeopardy_board(categories=1, questions=2)
        data.pop("customValues", None)
        result = board.add_question(data, 0)
        added = result["categories"][0]["questions"][-1]
        assert added["value"] == 300
        assert added["question"] == "" and added["answer"] == ""

    def test_update_question_sets_and_clears_optional_fields(self):
        data = jeopardy_board()
        updated = board.update_question(
            data, 0, 1,
            {"timer": 30, "difficulty": "hard", "media": {"type": "image", "url": "/api/files/a.png"}},
        )
        question = updated["categories"][0]["questions"][1]
        assert question["timer"] == 30
        assert question["media"]["type"] == "image"

        cleared = board.update_question(updated, 0, 1, {"timer": None, "media": None})
        question = cleared["categories"][0]["questions"][1]
        assert "timer" not in question and "media" not in question
        assert question["difficulty"] == "hard"

    @pytest.mark.parametrize("fields", [
        {"value": -100},
        {"timer": 2},
        {"timer": 301},
        {"difficulty": "impossible"},
        {"media": {"type": "pdf", "url": "x"}},
        {"points": 5},
    ])
    def test_update_question_rejects_bad_fields(self, fields):
        with pytest.raises(ValidationError):
            board.update_question(jeopardy_board(), 0, 0, fields)

    def test_customizations_merge_one_level(self):
        data = jeopardy_board()
        data["boardCustomizations"] = {"primaryColor": "#000", "font": "serif"}
        result = board.apply_customizations(
            data, {"boardCustomizations": {"primaryColor": "#fff"}, "displayImage": "/api/files/x.png"},
        )
        assert result["boardCustomizations"] == {"primaryColor": "#fff", "font": "serif"}
        assert result["displayImage"] == "/api/files/x.png"

    def test_unknown_customization_rejected(self):
        with pytest.raises(ValidationError):
            board.apply_customizations(jeopardy_board(), {"title": "sneaky"})

    def test_replace_content_keeps_title(self):
        target = jeopardy_board(title="My Game")
        source = jeopardy_board(title="Template", categories=3)
        source["boardBackground"] = "#123456"
        result = board.replace_content(target, source)
        assert result["title"] == "My Game"
        assert len(result["categories"]) == 3
        assert result["boardBackground"] == "#123456"

    def test_replace_content_drops_old_styling(self):
        target = jeopardy_board(title="My Game")
        target["boardCustomizations"] = {"primaryColor": "#000"}
        target["displayImage"] = "/api/files/old.png"
        target["boardBackground"] = "#ffffff"
        result = board.replace_content(target, jeopardy_board(title="Plain Template"))
        for key in ("boardCustomizations", "displayImage", "boardBackground"):
            assert key not in result
        assert "displayImage" in target


class TestValidation:

    def test_complete_board_is_valid(self):
        errors, stats = board.validate_board(jeopardy_board())
        assert errors == []
        assert stats["complete_questions"] == 4
        assert stats["percent"] == 40

    def test_unnamed_category_fails(self):
        data = jeopardy_board()
        data["categories"][1]["name"] = "   "
        errors, _ = board.validate_board(data)
        assert "Category 2 must have a name" in errors

    def test_title_rules(self):
        assert "Game title is required" in board.validate_board(jeopardy_board(title=""))[0]
        assert "Game title must be at least 3 characters long" in board.validate_board(jeopardy_board(title="Hi"))[0]

    def test_explicit_title_overrides_document_title(self):
        errors, _ = board.validate_board(jeopardy_board(title=""), title="Provided")
        assert errors == []

    def test_no_categories(self):
        errors, _ = board.validate_board({"title": "Empty", "categories": []})
        assert "At least one category is required" in errors

    def test_no_complete_questions(self):
        data = jeopardy_board()
        for category in data["categories"]:
            for question in category["questions"]:
                question["answer"] = ""
        errors, _ = board.validate_board(data)
        assert "At least one complete question is required" in errors

    def test_unbalanced_categories(self):
        data = jeopardy_board(categories=2, questions=5)
        data["categories"][1]["questions"] = data["categories"][1]["questions"][:1]
        errors, _ = board.validate_board(data)
        assert "Unbalanced categories: some have 5 questions, others have 1" in errors

    def test_empty_categories_do_not_count_as_unbalanced(self):
        data = jeopardy_board(categories=2, questions=5)
        data["categories"][1]["questions"] = []
        errors, _ = board.validate_board(data)
        assert not any(e.startswith("Unbalanced") for e in errors)

    def test_ensure_valid_board_lists_every_error(self):
        data = jeopardy_board(title="")
        data["categories"][0]["name"] = ""
        with pytest.raises(ValidationError) as exc_info:
            board.ensure_valid_board(data)
        assert exc_info.value.message == "Game title is required"
        assert "Category 1 must have a name" in exc_info.value.context["errors"]

    def test_non_object_data_rejected(self):
        with pytest.raises(ValidationError):
            board.validate_board(["not", "a", "board"])
