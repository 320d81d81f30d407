"""
Compyy Backend — Template Marketplace API Tests
=================================================
"""

import pytest

from conftest import jeopardy_board


async def create_template(client, user, title="Fractions Starter", **overrides):
    payload = {
        "title": title,
        "description": "Five categories on fractions",
        "data": jeopardy_board(title=title, categories=3),
        "tags": ["math"],
        "subject": "Math",
    }
    payload.update(overrides)
    response = await client.post("/api/templates", json=payload, headers=user["headers"])
    assert response.status_code == 201, response.text
    return response.json()


@pytest.mark.asyncio
async def test_new_template_is_private(test_client, register_user):
    author, other = await register_user(), await register_user()
    template = await create_template(test_client, author)
    assert template["isPublic"] is False

    listing = (await test_client.get("/api/templates")).json()
    assert listing["templates"] == []
    assert listing["total"] == 0

    hidden = await test_client.get(f"/api/templates/{template['id']}", headers=other["headers"])
    assert hidden.status_code == 403
    own = await test_client.get(f"/api/templates/{template['id']}", headers=author["headers"])
    assert own.json()["data"]["categories"][0]["name"] == "Category 1"


@pytest.mark.asyncio
async def test_share_and_unshare(test_client, register_user):
    author = await register_user()
    template = await create_template(test_client, author)

    shared = await test_client.post(f"/api/templates/{template['id']}/share", headers=author["headers"])
    assert shared.json()["isPublic"] is True

    listing = (await test_client.get("/api/templates")).json()
    assert [t["id"] for t in listing["templates"]] == [template["id"]]
    assert listing["limit"] == 20
    assert listing["templates"][0]["author"]["name"] == "Ada Lovelace"
    assert listing["templates"][0]["data"] is None

    unshared = await test_client.delete(f"/api/templates/{template['id']}/share", headers=author["headers"])
    assert unshared.json()["isPublic"] is False
    assert (await test_client.get("/api/templates")).json()["templates"] == []


@pytest.mark.asyncio
async def test_only_author_can_share_or_delete(test_client, register_user):
    author, other = await register_user(), await register_user()
    template = await create_template(test_client, author)

    assert (await test_client.post(
        f"/api/templates/{template['id']}/share", headers=other["headers"],
    )).status_code == 403
    assert (await test_client.delete(f"/api/templates/{template['id']}", headers=other["headers"])).status_code == 403
    assert (await test_client.delete(f"/api/templates/{template['id']}", headers=author["headers"])).status_code == 204


@pytest.mark.asyncio
async def test_missing_description_rejected(test_client, register_user):
    author = await register_user()
    response = await test_client.post(
        "/api/templates",
        json={"title": "No description", "description": "  ", "data": jeopardy_board()},
        headers=author["headers"],
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_marketplace_filters(test_client, register_user):
    author = await register_user()
    math = await create_template(test_client, author, title="Fractions Starter")
    history = await create_template(
        test_client, author, title="Ancient Rome", description="Emperors, roads and aqueducts",
        subject="History", tags=["rome"],
    )
    for template in (math, history):
        await test_client.post(f"/api/templates/{template['id']}/share", headers=author["headers"])

    by_subject = (await test_client.get("/api/templates", params={"subject": "History"})).json()
    assert [t["id"] for t in by_subject["templates"]] == [history["id"]]

    by_search = (await test_client.get("/api/templates", params={"search": "fraction"})).json()
    assert [t["id"] for t in by_search["templates"]] == [math["id"]]

    featured = (await test_client.get("/api/templates", params={"featured": "true"})).json()
    assert featured["total"] == 0


@pytest.mark.asyncio
async def test_download_counts_once(test_client, register_user):
    author, teacher = await register_user(), await register_user()
    template = await create_template(test_client, author)
    await test_client.post(f"/api/templates/{template['id']}/share", headers=author["headers"])

    first = (await test_client.post(f"/api/templates/{template['id']}/download", headers=teacher["headers"])).json()
    assert first["alreadyDownloaded"] is False
    assert first["template"]["downloads"] == 1

    second = (await test_client.post(f"/api/templates/{template['id']}/download", headers=teacher["headers"])).json()
    assert second["alreadyDownloaded"] is True
    assert second["template"]["downloads"] == 1

    downloaded = (await test_client.get("/api/templates/downloaded", headers=teacher["headers"])).json()
    assert [t["id"] for t in downloaded] == [template["id"]]


@pytest.mark.asyncio
async def test_my_templates_lists_owned_and_downloaded(test_client, register_user):
    author, teacher = await register_user(), await register_user()
    shared = await create_template(test_client, author, title="Shared Board")
    await test_client.post(f"/api/templates/{shared['id']}/share", headers=author["headers"])
    await test_client.post(f"/api/templates/{shared['id']}/download", headers=teacher["headers"])
    own = await create_template(test_client, teacher, title="My Own Board", tags=["planets"])

    mine = (await test_client.get("/api/templates/my", headers=teacher["headers"])).json()
    flags = {t["id"]: (t["isOwner"], t["isDownloaded"]) for t in mine["templates"]}
    assert flags == {shared["id"]: (False, True), own["id"]: (True, False)}
    assert mine["pagination"]["total"] == 2

    by_tag = (await test_client.get("/api/templates/my", params={"tags": "planets"}, headers=teacher["headers"])).json()
    assert [t["id"] for t in by_tag["templates"]] == [own["id"]]


@pytest.mark.asyncio
async def test_from_game_and_apply(test_client, register_user):
    teacher = await register_user()
    game = (await test_client.post(
        "/api/games", json={"title": "Planets", "data": jeopardy_board(title="Planets")}, headers=teacher["headers"],
    )).json()

    created = await test_client.post(
        "/api/templates/from-game", json={"gameId": game["id"]}, headers=teacher["headers"],
    )
    assert created.status_code == 201
    template = created.json()
    assert template["title"] == "Planets"
    assert template["isPublic"] is False

    fresh = await test_client.post(
        f"/api/templates/{template['id']}/apply", json={"title": "Planets Again"}, headers=teacher["headers"],
    )
    assert fresh.status_code == 200
    assert fresh.json()["title"] == "Planets Again"
    assert fresh.json()["id"] != game["id"]

    big = await create_template(test_client, teacher, title="Big Board")
    applied = await test_client.post(
        f"/api/templates/{big['id']}/apply", json={"gameId": game["id"]}, headers=teacher["headers"],
    )
    body = applied.json()
    assert body["id"] == game["id"]
    assert body["title"] == "Planets"
    assert body["data"]["title"] == "Planets"
    assert len(body["data"]["categories"]) == 3
