import pytest
from unittest.mock import AsyncMock


class TestOnlineUsers:
    """접속 사용자 조회 API 테스트"""

    @pytest.mark.asyncio
    async def test_empty(self, client):
        response = await client.get("/users/online")

        assert response.status_code == 200
        assert response.json() == {"user_ids": [], "count": 0}

    @pytest.mark.asyncio
    async def test_lists_registered_users(self, client, connect):
        await connect(2)
        await connect(1)
        await connect()  # add-user 전 익명 세션은 포함되지 않음

        response = await client.get("/users/online")

        assert response.json() == {"user_ids": [1, 2], "count": 2}


class TestUserProfile:
    """사용자 조회/수정 API 테스트"""

    @pytest.mark.asyncio
    async def test_get_user(self, client, test_user_1):
        response = await client.get(f"/users/{test_user_1.id}")

        assert response.status_code == 200
        data = response.json()
        assert data["username"] == "alice"
        assert data["is_online"] is False
        assert data["last_seen"] is None

    @pytest.mark.asyncio
    async def test_get_unknown_user(self, client):
        response = await client.get("/users/999")

        assert response.status_code == 404
        assert response.json()["error"] == "resource_not_found"

    @pytest.mark.asyncio
    async def test_going_offline_sets_last_seen(self, client, test_user_1):
        response = await client.patch(f"/users/{test_user_1.id}", json={"is_online": False})

        assert response.status_code == 200
        assert response.json()["is_online"] is False
        assert response.json()["last_seen"] is not None


class TestUserStatus:
    """접속 상태 조회 API 테스트"""

    @pytest.mark.asyncio
    async def test_status_from_mirror(self, client, test_user_1, connect, monkeypatch):
        monkeypatch.setattr(
            "snappy.services.online_status_service.get_user_status",
            AsyncMock(return_value={"user_id": test_user_1.id, "is_online": True, "last_seen": None})
        )
        await connect(test_user_1.id)

        response = await client.get(f"/users/{test_user_1.id}/status")

        assert response.status_code == 200
        assert response.json()["is_online"] is True
        assert response.json()["is_reachable"] is True

    @pytest.mark.asyncio
    async def test_status_falls_back_to_database(self, client, test_user_2, monkeypatch):
        """Redis 장애 시 MySQL 값을 사용"""
        monkeypatch.setattr(
            "snappy.services.online_status_service.get_user_status",
            AsyncMock(return_value=None)
        )

        response = await client.get(f"/users/{test_user_2.id}/status")

        assert response.json()["is_online"] is False
        assert response.json()["is_reachable"] is False


class TestGroupsAndLogout:

    @pytest.mark.asyncio
    async def test_user_groups(self, client, test_group, test_user_2, test_user_3):
        member = await client.get(f"/users/{test_user_2.id}/groups")
        outsider = await client.get(f"/users/{test_user_3.id}/groups")

        assert member.json() == [test_group.id]
        assert outsider.json() == []

    @pytest.mark.asyncio
    async def test_logout_without_connection(self, client, test_user_1, monkeypatch):
        persist = AsyncMock(return_value=True)
        monkeypatch.setattr("snappy.services.user_service.persist_presence", persist)

        response = await client.post(f"/users/{test_user_1.id}/logout")

        assert response.status_code == 200
        assert response.json()["is_online"] is False
        assert response.json()["last_seen"] is not None
        user_id, is_online, _ = persist.await_args.args
        assert (user_id, is_online) == (test_user_1.id, False)

    @pytest.mark.asyncio
    async def test_logout_with_live_connection(self, client, test_user_1, connect, fake_users):
        """실시간 연결이 있으면 Presence Registry에서 제거되고 다른 사용자에게 알림"""
        await connect(test_user_1.id)
        _, observer_ws = await connect(test_user_1.id + 100)

        response = await client.post(f"/users/{test_user_1.id}/logout")

        assert response.status_code == 200
        assert response.json()["is_reachable"] is False
        assert fake_users.calls[-1][:2] == (test_user_1.id, False)
        frames = [f for f in observer_ws.events("user-status-change") if f["data"]["userId"] == test_user_1.id]
        assert frames[-1]["data"]["isOnline"] is False

    @pytest.mark.asyncio
    async def test_logout_unknown_user(self, client):
        response = await client.post("/users/999/logout")

        assert response.status_code == 404
