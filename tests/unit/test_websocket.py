import pytest
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient

from snappy.main import app

INVALID_FRAME = {"event": "teleport", "data": None}


@pytest.fixture
def ws_client(monkeypatch, realtime):
    """외부 저장소 없이 lifespan을 실행하는 동기 테스트 클라이언트"""
    monkeypatch.setattr("snappy.main.init_databases", AsyncMock())
    monkeypatch.setattr("snappy.main.close_databases", AsyncMock())
    monkeypatch.setattr("snappy.main.create_realtime", lambda: realtime)

    with TestClient(app) as test_client:
        yield test_client

    app.state.realtime = None


def register(ws, user_id: int):
    """add-user 후 잘못된 프레임의 에러 응답을 기다려 등록 완료를 보장"""
    ws.send_json({"event": "add-user", "data": user_id})
    ws.send_json(INVALID_FRAME)
    reply = ws.receive_json()
    assert reply["event"] == "error"


class TestWebSocketEndpoint:
    """/ws 엔드포인트 테스트"""

    def test_invalid_json_keeps_session(self, ws_client):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_text("{not json")
            assert ws.receive_json()["data"]["error_code"] == "invalid_json"

            ws.send_json(INVALID_FRAME)
            assert ws.receive_json()["data"]["error_code"] == "invalid_event"

    def test_events_require_registration(self, ws_client):
        with ws_client.websocket_connect("/ws") as ws:
            ws.send_json({"event": "typing", "data": {"to": 2}})

            assert ws.receive_json()["data"]["error_code"] == "not_registered"

    def test_message_flow_between_two_users(self, ws_client, realtime, message_store):
        """온라인 알림, 메시지 전달, 상태 전이, 오프라인 알림"""
        with ws_client.websocket_connect("/ws") as alice:
            register(alice, 1)

            with ws_client.websocket_connect("/ws") as bob:
                register(bob, 2)
                online = alice.receive_json()
                assert online["event"] == "user-status-change"
                assert online["data"]["userId"] == 2
                assert online["data"]["isOnline"] is True

                bob.send_json({"event": "send-msg", "data": {"to": 1, "msg": "hey", "clientId": "tmp-1"}})
                sent = bob.receive_json()
                received = alice.receive_json()
                assert sent["event"] == "msg-sent"
                assert sent["data"]["clientId"] == "tmp-1"
                assert received["event"] == "msg-recieve"
                message_id = received["data"]["messageId"]
                assert message_id == sent["data"]["messageId"]

                alice.send_json({"event": "msg-delivered", "data": {"messageId": message_id}})
                assert bob.receive_json() == {
                    "event": "msg-status-update",
                    "data": {"messageId": message_id, "status": "delivered"}
                }

                alice.send_json({"event": "msg-read", "data": {"to": 2}})
                assert bob.receive_json() == {"event": "msg-read-recieve", "data": 1}

            offline = alice.receive_json()
            assert offline["data"] == {
                "userId": 2,
                "isOnline": False,
                "lastSeen": offline["data"]["lastSeen"]
            }
            assert offline["data"]["lastSeen"] is not None
            assert realtime.registry.online_user_ids() == [1]

        assert message_store.messages[message_id].status.value == "read"


class TestRoomStatus:
    """그룹 room 상태 조회 테스트"""

    @pytest.mark.asyncio
    async def test_room_status(self, client, realtime, connect, test_group, test_user_1, test_user_2):
        connection, _ = await connect(test_user_1.id)
        await connect(test_user_2.id)
        realtime.rooms.join(connection.session_id, test_group.id)

        response = await client.get(f"/ws/rooms/{test_group.id}/status", params={"user_id": test_user_2.id})

        assert response.status_code == 200
        assert response.json() == {
            "group_id": test_group.id,
            "online_users": [test_user_1.id],
            "online_count": 1,
            "is_active": True
        }

    @pytest.mark.asyncio
    async def test_room_status_requires_membership(self, client, test_group, test_user_3):
        response = await client.get(f"/ws/rooms/{test_group.id}/status", params={"user_id": test_user_3.id})

        assert response.status_code == 403
