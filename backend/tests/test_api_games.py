"""
Compyy Backend — Games API Tests
==================================

Game CRUD, sharing and the marketplace, the board editor endpoints,
favorites, saved games and ratings.
"""

import uuid

import pytest

from conftest import jeopardy_board


async def create_game(client, user, title="Science Review", **overrides):
    payload = {"title": title, "data": jeopardy_board(title=title), "tags": ["science"]}
    payload.update(overrides)
    response = await client.post("/api/games", json=payload, headers=user["headers"])
    assert response.status_code == 201, response.text
    return response.json()


async def publish(client, user, game_id, **fields):
    response = await client.post(
        f"/api/games/{game_id}/share", json={"isPublic": True, **fields}, headers=user["headers"],
    )
    assert response.status_code == 200, response.text
    return response.json()


# ══════════════════════════════════════════════════════════════════════════
# CRUD
# ══════════════════════════════════════════════════════════════════════════


class TestGameCrud:

    @pytest.mark.asyncio
    async def test_create_requires_authentication(self, test_client):
        response = await test_client.post("/api/games", json={"title": "Nope", "data": jeopardy_board()})
        assert response.status_code == 401
        assert response.json()["error"] == "authentication_required"

    @pytest.mark.asyncio
    async def test_created_game_is_private(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user)
        assert game["isPublic"] is False
        assert game["publishedAt"] is None
        assert game["type"] == "JEOPARDY"
        assert game["data"]["title"] == "Science Review"

        own = await test_client.get("/api/games", headers=user["headers"])
        assert [g["id"] for g in own.json()] == [game["id"]]

    @pytest.mark.asyncio
    async def test_unnamed_category_rejected(self, test_client, register_user):
        user = await register_user()
        data = jeopardy_board()
        data["categories"][1]["name"] = ""
        response = await test_client.post(
            "/api/games", json={"title": "Science Review", "data": data}, headers=user["headers"],
        )
        assert response.status_code == 400
        assert "Category 2 must have a name" in response.json()["details"]["errors"]

    @pytest.mark.asyncio
    async def test_unknown_type_rejected(self, test_client, register_user):
        user = await register_user()
        response = await test_client.post(
            "/api/games", json={"title": "Crossword", "type": "CROSSWORD", "data": {}}, headers=user["headers"],
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_private_game_hidden_from_others(self, test_client, register_user):
        owner, other = await register_user(), await register_user()
        game = await create_game(test_client, owner)

        assert (await test_client.get(f"/api/games/{game['id']}", headers=owner["headers"])).status_code == 200
        assert (await test_client.get(f"/api/games/{game['id']}", headers=other["headers"])).status_code == 403
        assert (await test_client.get(f"/api/games/{game['id']}")).status_code == 403

    @pytest.mark.asyncio
    async def test_only_owner_can_update_or_delete(self, test_client, register_user):
        owner, other = await register_user(), await register_user()
        game = await create_game(test_client, owner)

        hijack = await test_client.put(
            f"/api/games/{game['id']}", json={"title": "Mine now"}, headers=other["headers"],
        )
        assert hijack.status_code == 403
        assert (await test_client.delete(f"/api/games/{game['id']}", headers=other["headers"])).status_code == 403

        renamed = await test_client.put(
            f"/api/games/{game['id']}", json={"title": "Physics Review"}, headers=owner["headers"],
        )
        assert renamed.status_code == 200
        assert renamed.json()["title"] == "Physics Review"
        assert renamed.json()["data"]["title"] == "Physics Review"

        assert (await test_client.delete(f"/api/games/{game['id']}", headers=owner["headers"])).status_code == 204
        assert (await test_client.get(f"/api/games/{game['id']}", headers=owner["headers"])).status_code == 404

    @pytest.mark.asyncio
    async def test_unknown_game_is_not_found(self, test_client):
        response = await test_client.get(f"/api/games/{uuid.uuid4()}")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


# ══════════════════════════════════════════════════════════════════════════
# Sharing & marketplace
# ══════════════════════════════════════════════════════════════════════════


class TestMarketplace:

    @pytest.mark.asyncio
    async def test_shared_game_is_listed_with_author(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user)

        before = await test_client.get("/api/games/public")
        assert before.json()["games"] == []

        shared = await publish(test_client, user, game["id"], subject="Science")
        assert shared["isPublic"] is True
        assert shared["publishedAt"] is not None

        listing = await test_client.get("/api/games/public")
        body = listing.json()
        assert listing.headers["X-Total-Count"] == "1"
        assert body["pagination"] == {"page": 1, "limit": 12, "total": 1, "pages": 1}
        item = body["games"][0]
        assert item["id"] == game["id"]
        assert item["author"]["name"] == "Ada Lovelace"
        assert "data" not in item

        # anyone may read it now
        assert (await test_client.get(f"/api/games/{game['id']}")).status_code == 200

    @pytest.mark.asyncio
    async def test_search_and_filters(self, test_client, register_user):
        user = await register_user()
        fractions = await create_game(test_client, user, title="Fractions Fun", tags=["math"])
        volcanoes = await create_game(test_client, user, title="Volcanoes", tags=["geology"])
        await publish(test_client, user, fractions["id"], subject="Math", gradeLevel="5")
        await publish(test_client, user, volcanoes["id"], subject="Science", gradeLevel="7")

        by_title = await test_client.get("/api/games/public", params={"search": "fraction"})
        assert [g["id"] for g in by_title.json()["games"]] == [fractions["id"]]

        by_tag = await test_client.get("/api/games/public", params={"search": "geology"})
        assert [g["id"] for g in by_tag.json()["games"]] == [volcanoes["id"]]

        by_grade = await test_client.get("/api/games/public", params={"gradeLevel": "7"})
        assert [g["id"] for g in by_grade.json()["games"]] == [volcanoes["id"]]

        bad_sort = await test_client.get("/api/games/public", params={"sortBy": "alphabetical"})
        assert bad_sort.status_code == 400

    @pytest.mark.asyncio
    async def test_unshare_removes_from_listing(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user)
        await publish(test_client, user, game["id"])
        await test_client.post(f"/api/games/{game['id']}/share", json={"isPublic": False}, headers=user["headers"])

        assert (await test_client.get("/api/games/public")).json()["games"] == []

    @pytest.mark.asyncio
    async def test_sharing_counts_tags(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user, tags=["Chemistry", "atoms"])
        assert (await test_client.get("/api/tags")).json() == {"tags": []}

        await publish(test_client, user, game["id"])
        names = {t["name"] for t in (await test_client.get("/api/tags")).json()["tags"]}
        assert names == {"chemistry", "atoms"}

    @pytest.mark.asyncio
    async def test_track_play_and_download(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user)

        private = await test_client.post(f"/api/games/{game['id']}/track", json={"action": "play"})
        assert private.status_code == 404

        await publish(test_client, user, game["id"])
        await test_client.post(f"/api/games/{game['id']}/track", json={"action": "play"})
        counts = await test_client.post(f"/api/games/{game['id']}/track", json={"action": "download"})
        assert counts.json() == {"plays": 1, "downloads": 1}

        bad = await test_client.post(f"/api/games/{game['id']}/track", json={"action": "share"})
        assert bad.status_code == 400


# ══════════════════════════════════════════════════════════════════════════
# Board editor
# ══════════════════════════════════════════════════════════════════════════


class TestBoardEditor:

    @pytest.mark.asyncio
    async def test_validate_without_saving(self, test_client):
        data = jeopardy_board()
        data["categories"][0]["questions"][0]["answer"] = ""
        response = await test_client.post("/api/games/validate", json={"data": data})
        body = response.json()
        assert body["valid"] is True
        assert body["stats"]["completeQuestions"] == 3

        data["categories"][0]["name"] = " "
        body = (await test_client.post("/api/games/validate", json={"data": data})).json()
        assert body["valid"] is False
        assert "Category 1 must have a name" in body["errors"]

    @pytest.mark.asyncio
    async def test_category_and_question_editing(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user)
        base = f"/api/games/{game['id']}/board/categories"

        added = await test_client.post(base, json={"name": "Geography"}, headers=user["headers"])
        assert [c["name"] for c in added.json()["data"]["categories"]] == ["Category 1", "Category 2", "Geography"]

        renamed = await test_client.patch(f"{base}/2", json={"name": "Capitals"}, headers=user["headers"])
        assert renamed.json()["data"]["categories"][2]["name"] == "Capitals"

        question = await test_client.post(f"{base}/2/questions", headers=user["headers"])
        assert len(question.json()["data"]["categories"][2]["questions"]) == 1

        edited = await test_client.patch(
            f"{base}/2/questions/0",
            json={"question": "Capital of France?", "answer": "Paris", "timer": 30},
            headers=user["headers"],
        )
        saved = edited.json()["data"]["categories"][2]["questions"][0]
        assert saved["question"] == "Capital of France?"
        assert saved["timer"] == 30

        removed = await test_client.delete(f"{base}/0", headers=user["headers"])
        assert [c["name"] for c in removed.json()["data"]["categories"]] == ["Category 2", "Capitals"]

        stored = await test_client.get(f"/api/games/{game['id']}", headers=user["headers"])
        assert len(stored.json()["data"]["categories"]) == 2

    @pytest.mark.asyncio
    async def test_editor_limits(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user, data=jeopardy_board(categories=6, questions=1))
        response = await test_client.post(f"/api/games/{game['id']}/board/categories", headers=user["headers"])
        assert response.status_code == 400

        missing = await test_client.delete(f"/api/games/{game['id']}/board/categories/9", headers=user["headers"])
        assert missing.status_code == 404

        bad_timer = await test_client.patch(
            f"/api/games/{game['id']}/board/categories/0/questions/0",
            json={"timer": 1},
            headers=user["headers"],
        )
        assert bad_timer.status_code == 400

    @pytest.mark.asyncio
    async def test_customizations(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user)
        response = await test_client.patch(
            f"/api/games/{game['id']}/board/customizations",
            json={"boardCustomizations": {"primaryColor": "#ff0000"}, "boardBackground": "#000000"},
            headers=user["headers"],
        )
        data = response.json()["data"]
        assert data["boardCustomizations"] == {"primaryColor": "#ff0000"}
        assert data["boardBackground"] == "#000000"

    @pytest.mark.asyncio
    async def test_stored_board_validation(self, test_client, register_user):
        user = await register_user()
        game = await create_game(test_client, user)
        body = (await test_client.get(
            f"/api/games/{game['id']}/board/validation", headers=user["headers"],
        )).json()
        assert body["valid"] is True
        assert body["stats"] == {"categories": 2, "totalQuestions": 4, "completeQuestions": 4, "percent": 40}

    @pytest.mark.asyncio
    async def test_editor_is_owner_only(self, test_client, register_user):
        owner, other = await register_user(), await register_user()
        game = await create_game(test_client, owner)
        response = await test_client.post(
            f"/api/games/{game['id']}/board/categories", json={"name": "Vandal"}, headers=other["headers"],
        )
        assert response.status_code == 403


# ══════════════════════════════════════════════════════════════════════════
# Favorites, saved games & ratings
# ══════════════════════════════════════════════════════════════════════════


class TestSocial:

    @pytest.mark.asyncio
    async def test_favorite_toggle(self, test_client, register_user):
        owner, fan = await register_user(), await register_user()
        game = await create_game(test_client, owner)

        hidden = await test_client.post(f"/api/games/{game['id']}/favorite", headers=fan["headers"])
        assert hidden.status_code == 404

        await publish(test_client, owner, game["id"])
        on = await test_client.post(f"/api/games/{game['id']}/favorite", headers=fan["headers"])
        assert on.json() == {"isFavorited": True, "favoriteCount": 1}

        status = await test_client.get(f"/api/games/{game['id']}/favorite")
        assert status.json() == {"isFavorited": False, "favoriteCount": 1}

        off = await test_client.post(f"/api/games/{game['id']}/favorite", headers=fan["headers"])
        assert off.json() == {"isFavorited": False, "favoriteCount": 0}

    @pytest.mark.asyncio
    async def test_saved_games(self, test_client, register_user):
        owner, fan = await register_user(), await register_user()
        game = await create_game(test_client, owner)
        await publish(test_client, owner, game["id"])

        assert (await test_client.post(f"/api/games/saved/{game['id']}", headers=fan["headers"])).status_code == 201
        duplicate = await test_client.post(f"/api/games/saved/{game['id']}", headers=fan["headers"])
        assert duplicate.status_code == 409

        saved = await test_client.get("/api/games/saved", headers=fan["headers"])
        assert [g["id"] for g in saved.json()["games"]] == [game["id"]]

        assert (await test_client.delete(f"/api/games/saved/{game['id']}", headers=fan["headers"])).status_code == 200
        again = await test_client.delete(f"/api/games/saved/{game['id']}", headers=fan["headers"])
        assert again.status_code == 404

    @pytest.mark.asyncio
    async def test_ratings_average_and_replace(self, test_client, register_user):
        owner, first, second = await register_user(), await register_user(), await register_user()
        game = await create_game(test_client, owner)
        await publish(test_client, owner, game["id"])
        url = f"/api/games/{game['id']}/ratings"

        await test_client.post(url, json={"rating": 5, "review": "Great"}, headers=first["headers"])
        body = (await test_client.post(url, json={"rating": 2}, headers=second["headers"])).json()
        assert body["ratingCount"] == 2
        assert body["avgRating"] == 3.5
        assert body["userRating"] == 2

        # rating again replaces the earlier one
        body = (await test_client.post(url, json={"rating": 4}, headers=first["headers"])).json()
        assert body["ratingCount"] == 2
        assert body["avgRating"] == 3.0

        listing = (await test_client.get("/api/games/public")).json()["games"][0]
        assert listing["ratingCount"] == 2

    @pytest.mark.asyncio
    async def test_ratings_hidden_while_private(self, test_client, register_user):
        owner, fan = await register_user(), await register_user()
        game = await create_game(test_client, owner)
        url = f"/api/games/{game['id']}/ratings"
        assert (await test_client.get(url)).status_code == 404

        await publish(test_client, owner, game["id"])
        await test_client.post(url, json={"rating": 4}, headers=fan["headers"])
        assert (await test_client.get(url)).json()["ratingCount"] == 1

        await test_client.post(f"/api/games/{game['id']}/share", json={"isPublic": False}, headers=owner["headers"])
        assert (await test_client.get(url, headers=owner["headers"])).status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize("rating", [0, 6])
    async def test_rating_out_of_range(self, test_client, register_user, rating):
        owner = await register_user()
        game = await create_game(test_client, owner)
        await publish(test_client, owner, game["id"])
        response = await test_client.post(
            f"/api/games/{game['id']}/ratings", json={"rating": rating}, headers=owner["headers"],
        )
        assert response.status_code == 400
