"""
Compyy Backend — Play API Tests
=================================

A full round through the HTTP surface: start, open, reveal, award and
finish; plus who may start and control a session.
"""

import uuid

import pytest

from conftest import jeopardy_board


async def create_game(client, user, data=None, **fields):
    payload = {"title": "Science Review", "data": data or jeopardy_board(), **fields}
    response = await client.post("/api/games", json=payload, headers=user["headers"])
    assert response.status_code == 201, response.text
    return response.json()


async def start(client, user, game_id, **body):
    return await client.post(f"/api/play/{game_id}/start", json=body or None, headers=user["headers"])


@pytest.mark.asyncio
async def test_full_round(test_client, register_user):
    teacher = await register_user()
    game = await create_game(test_client, teacher)

    started = await start(test_client, teacher, game["id"], teamNames=["Owls", "Foxes"])
    assert started.status_code == 201
    state = started.json()
    assert state["state"] == "board"
    assert [t["name"] for t in state["teams"]] == ["Owls", "Foxes"]
    assert state["totalQuestions"] == 4
    assert [tile["value"] for tile in state["board"][0]["tiles"]] == [100, 200]
    base = f"/api/play/sessions/{state['sessionId']}"

    opened = (await test_client.post(
        f"{base}/select", json={"categoryIndex": 0, "questionIndex": 1}, headers=teacher["headers"],
    )).json()
    assert opened["state"] == "question"
    assert opened["currentQuestion"]["question"] == "Question 1.2?"
    assert opened["currentQuestion"]["answer"] is None

    revealed = (await test_client.post(f"{base}/show-answer", headers=teacher["headers"])).json()
    assert revealed["state"] == "teamSelect"
    assert revealed["currentQuestion"]["answer"] == "Answer 1.2"

    awarded = (await test_client.post(f"{base}/award", json={"teamId": "team-1"}, headers=teacher["headers"])).json()
    assert awarded["state"] == "board"
    assert awarded["teams"][0]["score"] == 200
    assert awarded["board"][0]["tiles"][1]["answered"] is True

    for ci, qi in [(0, 0), (1, 0), (1, 1)]:
        await test_client.post(
            f"{base}/select", json={"categoryIndex": ci, "questionIndex": qi}, headers=teacher["headers"],
        )
        last = await test_client.post(f"{base}/skip", headers=teacher["headers"])

    final = last.json()
    assert final["state"] == "complete"
    assert final["isComplete"] is True
    assert [t["name"] for t in final["winners"]] == ["Owls"]

    assert (await test_client.get(base, headers=teacher["headers"])).json()["answeredCount"] == 4

    reset = (await test_client.post(f"{base}/reset", headers=teacher["headers"])).json()
    assert reset["answeredCount"] == 0
    assert all(t["score"] == 0 for t in reset["teams"])

    assert (await test_client.delete(base, headers=teacher["headers"])).status_code == 204
    assert (await test_client.get(base, headers=teacher["headers"])).status_code == 404


@pytest.mark.asyncio
async def test_default_teams_without_body(test_client, register_user):
    teacher = await register_user()
    game = await create_game(test_client, teacher)
    state = (await start(test_client, teacher, game["id"])).json()
    assert [t["name"] for t in state["teams"]] == ["Team 1", "Team 2"]


@pytest.mark.asyncio
async def test_answered_question_cannot_be_reopened(test_client, register_user):
    teacher = await register_user()
    game = await create_game(test_client, teacher)
    state = (await start(test_client, teacher, game["id"])).json()
    base = f"/api/play/sessions/{state['sessionId']}"

    pick = {"categoryIndex": 0, "questionIndex": 0}
    await test_client.post(f"{base}/select", json=pick, headers=teacher["headers"])
    await test_client.post(f"{base}/skip", headers=teacher["headers"])
    again = await test_client.post(f"{base}/select", json=pick, headers=teacher["headers"])
    assert again.status_code == 400


@pytest.mark.asyncio
async def test_private_game_of_someone_else_cannot_be_played(test_client, register_user):
    owner, other = await register_user(), await register_user()
    game = await create_game(test_client, owner)
    assert (await start(test_client, other, game["id"])).status_code == 403


@pytest.mark.asyncio
async def test_playing_a_public_game_counts_a_play(test_client, register_user):
    owner, guest = await register_user(), await register_user()
    game = await create_game(test_client, owner)
    await test_client.post(f"/api/games/{game['id']}/share", json={"isPublic": True}, headers=owner["headers"])

    assert (await start(test_client, owner, game["id"])).status_code == 201
    assert (await test_client.get(f"/api/games/{game['id']}")).json()["plays"] == 1

    assert (await start(test_client, guest, game["id"])).status_code == 201
    assert (await test_client.get(f"/api/games/{game['id']}")).json()["plays"] == 2


@pytest.mark.asyncio
async def test_private_game_play_is_not_counted(test_client, register_user):
    owner = await register_user()
    game = await create_game(test_client, owner)
    assert (await start(test_client, owner, game["id"])).status_code == 201
    assert (await test_client.get(f"/api/games/{game['id']}", headers=owner["headers"])).json()["plays"] == 0


@pytest.mark.asyncio
async def test_only_the_starter_controls_a_session(test_client, register_user):
    owner, other = await register_user(), await register_user()
    game = await create_game(test_client, owner)
    state = (await start(test_client, owner, game["id"])).json()

    response = await test_client.post(
        f"/api/play/sessions/{state['sessionId']}/select",
        json={"categoryIndex": 0, "questionIndex": 0},
        headers=other["headers"],
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_non_jeopardy_game_rejected(test_client, register_user):
    teacher = await register_user()
    game = await create_game(test_client, teacher, data={"questions": []}, type="QUIZ")
    response = await start(test_client, teacher, game["id"])
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unknown_session(test_client, register_user):
    teacher = await register_user()
    response = await test_client.get(f"/api/play/sessions/{uuid.uuid4()}", headers=teacher["headers"])
    assert response.status_code == 404
