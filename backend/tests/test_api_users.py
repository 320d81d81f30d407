"""
Compyy Backend — User & Referral API Tests
============================================
"""

import pytest
from sqlalchemy import select

from compyy.database import async_session_factory
from compyy.models.user import User
from compyy.services.auth_service import auth_service
from conftest import jeopardy_board


async def confirm(client, email):
    async with async_session_factory() as db:
        user = (await db.execute(select(User).where(User.email == email))).scalar_one()
        token = auth_service.confirmation_token(user)
    response = await client.get("/api/auth/confirm", params={"token": token})
    assert response.status_code == 200


class TestProfiles:

    @pytest.mark.asyncio
    async def test_own_profile_is_full_others_are_public(self, test_client, register_user):
        user, other = await register_user(), await register_user()

        own = (await test_client.get(f"/api/users/{user['id']}", headers=user["headers"])).json()
        assert own["email"] == user["email"]

        public = (await test_client.get(f"/api/users/{user['id']}", headers=other["headers"])).json()
        assert "email" not in public
        assert public["firstName"] == "Ada"

    @pytest.mark.asyncio
    async def test_update_profile(self, test_client, register_user):
        user = await register_user()
        response = await test_client.put(
            f"/api/users/{user['id']}",
            json={"school": "Lincoln Elementary", "username": "ada"},
            headers=user["headers"],
        )
        assert response.status_code == 200
        assert response.json()["school"] == "Lincoln Elementary"
        assert response.json()["lastName"] == "Lovelace"

    @pytest.mark.asyncio
    async def test_username_must_be_unique(self, test_client, register_user):
        first, second = await register_user(username="grace"), await register_user()
        response = await test_client.put(
            f"/api/users/{second['id']}", json={"username": "grace"}, headers=second["headers"],
        )
        assert response.status_code == 409
        assert first["id"] != second["id"]

    @pytest.mark.asyncio
    async def test_cannot_edit_someone_else(self, test_client, register_user):
        user, other = await register_user(), await register_user()
        response = await test_client.put(
            f"/api/users/{user['id']}", json={"bio": "hijacked"}, headers=other["headers"],
        )
        assert response.status_code == 403
        assert (await test_client.delete(f"/api/users/{user['id']}", headers=other["headers"])).status_code == 403

    @pytest.mark.asyncio
    async def test_search(self, test_client, register_user):
        await register_user(firstName="Grace", lastName="Hopper")
        await register_user()
        body = (await test_client.get("/api/users", params={"q": "hopper"})).json()
        assert body["total"] == 1
        assert body["users"][0]["lastName"] == "Hopper"

    @pytest.mark.asyncio
    async def test_stats_by_type_and_visibility(self, test_client, register_user):
        user = await register_user()
        for title in ("Game One", "Game Two"):
            await test_client.post(
                "/api/games", json={"title": title, "data": jeopardy_board(title=title)}, headers=user["headers"],
            )
        await test_client.post(
            "/api/games", json={"title": "Quiz", "type": "QUIZ", "data": {"questions": []}}, headers=user["headers"],
        )
        games = (await test_client.get("/api/games", headers=user["headers"])).json()
        await test_client.post(f"/api/games/{games[0]['id']}/share", json={"isPublic": True}, headers=user["headers"])

        stats = (await test_client.get(f"/api/users/{user['id']}/stats")).json()
        assert stats == {
            "totalGames": 3,
            "publicGames": 1,
            "privateGames": 2,
            "gamesByType": {"JEOPARDY": 2, "QUIZ": 1},
        }

    @pytest.mark.asyncio
    async def test_delete_account_removes_games(self, test_client, register_user):
        user = await register_user()
        game = (await test_client.post(
            "/api/games", json={"title": "Doomed", "data": jeopardy_board(title="Doomed")}, headers=user["headers"],
        )).json()
        await test_client.post(
            f"/api/games/{game['id']}/share", json={"isPublic": True, "tags": ["space"]}, headers=user["headers"],
        )

        assert (await test_client.delete(f"/api/users/{user['id']}", headers=user["headers"])).status_code == 204
        assert (await test_client.get(f"/api/games/{game['id']}")).status_code == 404
        assert (await test_client.get("/api/tags")).json()["tags"] == []
        assert (await test_client.get("/api/auth/me", headers=user["headers"])).status_code == 404


class TestReferrals:

    @pytest.mark.asyncio
    async def test_link_is_stable(self, test_client, register_user):
        user = await register_user()
        first = (await test_client.post(f"/api/users/{user['id']}/referral-link", headers=user["headers"])).json()
        second = (await test_client.post(f"/api/users/{user['id']}/referral-link", headers=user["headers"])).json()
        assert first["code"] == second["code"]
        assert first["url"].endswith(f"/?ref={first['code']}&register=1")

    @pytest.mark.asyncio
    async def test_referral_data_is_private(self, test_client, register_user):
        user, other = await register_user(), await register_user()
        response = await test_client.get(f"/api/users/{user['id']}/referrals", headers=other["headers"])
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_confirmed_signup_rewards_referrer_chain(self, test_client, register_user):
        root = await register_user()
        root_code = (await test_client.post(
            f"/api/users/{root['id']}/referral-link", headers=root["headers"],
        )).json()["code"]

        middle = await register_user(referralCode=root_code)
        pending = (await test_client.get(f"/api/users/{root['id']}/referrals", headers=root["headers"])).json()
        assert [r["status"] for r in pending["referrals"]] == ["pending"]
        assert pending["raffleTickets"] == 0

        await confirm(test_client, middle["email"])
        middle_code = (await test_client.post(
            f"/api/users/{middle['id']}/referral-link", headers=middle["headers"],
        )).json()["code"]
        leaf = await register_user(referralCode=middle_code)
        await confirm(test_client, leaf["email"])

        root_summary = (await test_client.get(f"/api/users/{root['id']}/referrals", headers=root["headers"])).json()
        middle_summary = (await test_client.get(
            f"/api/users/{middle['id']}/referrals", headers=middle["headers"],
        )).json()
        assert root_summary["raffleTickets"] == 2
        assert middle_summary["raffleTickets"] == 1
        assert [r["status"] for r in root_summary["referrals"]] == ["approved"]

    @pytest.mark.asyncio
    async def test_unknown_code_at_signup_is_ignored(self, test_client, register_user):
        user = await register_user(referralCode="NOPE1234")
        assert user["id"]
