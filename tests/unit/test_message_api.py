import pytest

from snappy.models.messages import MessageStatus


@pytest.fixture(autouse=True)
def patched_message_service(monkeypatch, message_store):
    """REST 라우터가 인메모리 메시지 저장소를 사용하도록 교체"""
    monkeypatch.setattr("snappy.api.message.message_service", message_store)
    return message_store


class TestSendMessage:
    """메시지 전송 API 테스트"""

    @pytest.mark.asyncio
    async def test_send_direct_message(self, client, message_store, connect):
        """1:1 메시지 저장 및 접속 중인 수신자에게 전달"""
        _, recipient_ws = await connect(2)

        response = await client.post("/messages", json={
            "sender_id": 1,
            "recipient_id": 2,
            "content": "안녕하세요"
        })

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "sent"
        assert data["from_self"] is True
        assert data["id"] in message_store.messages

        frames = recipient_ws.events("msg-recieve")
        assert len(frames) == 1
        assert frames[0]["data"]["messageId"] == data["id"]
        assert frames[0]["data"]["msg"] == "안녕하세요"

    @pytest.mark.asyncio
    async def test_send_to_offline_recipient_is_stored(self, client, message_store):
        response = await client.post("/messages", json={
            "sender_id": 1,
            "recipient_id": 2,
            "content": "later"
        })

        assert response.status_code == 201
        assert len(message_store.messages) == 1

    @pytest.mark.asyncio
    async def test_requires_exactly_one_target(self, client):
        response = await client.post("/messages", json={
            "sender_id": 1,
            "content": "nowhere"
        })

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_group_message_by_non_member(self, client, test_group, test_user_3, message_store):
        """그룹 멤버가 아니면 403"""
        response = await client.post("/messages", json={
            "sender_id": test_user_3.id,
            "group_id": test_group.id,
            "content": "let me in"
        })

        assert response.status_code == 403
        assert response.json()["error"] == "authorization_error"
        assert message_store.messages == {}

    @pytest.mark.asyncio
    async def test_group_message_by_member(self, client, test_group, test_user_1, message_store):
        response = await client.post("/messages", json={
            "sender_id": test_user_1.id,
            "group_id": test_group.id,
            "content": "hello group"
        })

        assert response.status_code == 201
        assert response.json()["group_id"] == test_group.id

    @pytest.mark.asyncio
    async def test_store_failure_returns_503(self, client, message_store):
        message_store.fail_writes = True

        response = await client.post("/messages", json={
            "sender_id": 1,
            "recipient_id": 2,
            "content": "hi"
        })

        assert response.status_code == 503


class TestConversationHistory:
    """대화 기록 조회 API 테스트"""

    @pytest.mark.asyncio
    async def test_pagination(self, client, message_store):
        for i in range(3):
            message_store.add(sender_id=1, recipient_id=2, content=f"m{i}")
        message_store.add(sender_id=1, recipient_id=3, content="other conversation")

        response = await client.post("/messages/search-by-conversation", json={
            "user_id": 2,
            "peer_id": 1,
            "limit": 2,
            "skip": 0
        })

        assert response.status_code == 200
        data = response.json()
        assert data["total_count"] == 3
        assert data["has_next"] is True
        assert [m["content"] for m in data["messages"]] == ["m0", "m1"]
        assert all(m["from_self"] is False for m in data["messages"])

    @pytest.mark.asyncio
    async def test_group_history_denied_for_non_member(self, client, test_group, test_user_3):
        response = await client.post("/messages/search-by-conversation", json={
            "user_id": test_user_3.id,
            "group_id": test_group.id
        })

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_history_read_failure_returns_503(self, client, message_store):
        message_store.add(sender_id=1, recipient_id=2, content="hi")
        message_store.fail_reads = True

        response = await client.post("/messages/search-by-conversation", json={"user_id": 2, "peer_id": 1})

        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"


class TestMessageStatus:
    """메시지 상태 전이 API 테스트"""

    @pytest.mark.asyncio
    async def test_advance_to_delivered(self, client, message_store, connect):
        _, sender_ws = await connect(1)
        message = message_store.add(sender_id=1, recipient_id=2, content="hi")

        response = await client.patch(
            f"/messages/{message.id}/status", params={"user_id": 2}, json={"status": "delivered"}
        )

        assert response.status_code == 200
        assert response.json() == {"message_id": message.id, "status": "delivered", "changed": True}
        assert sender_ws.events("msg-status-update")[0]["data"]["status"] == "delivered"

    @pytest.mark.asyncio
    async def test_regression_is_not_applied(self, client, message_store):
        """read 이후 delivered 요청은 changed=false로 현재 상태 반환"""
        message = message_store.add(sender_id=1, recipient_id=2, content="hi", status=MessageStatus.READ)

        response = await client.patch(
            f"/messages/{message.id}/status", params={"user_id": 2}, json={"status": "delivered"}
        )

        assert response.status_code == 200
        assert response.json()["status"] == "read"
        assert response.json()["changed"] is False

    @pytest.mark.asyncio
    async def test_sent_is_not_a_valid_target(self, client, message_store):
        message = message_store.add(sender_id=1, recipient_id=2, content="hi")

        response = await client.patch(
            f"/messages/{message.id}/status", params={"user_id": 2}, json={"status": "sent"}
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_message(self, client):
        response = await client.patch(
            "/messages/0123456789abcdef01234567/status", params={"user_id": 2}, json={"status": "read"}
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_lookup_failure_returns_503(self, client, message_store):
        """조회 단계의 저장소 장애도 503 (operation 포함)"""
        message = message_store.add(sender_id=1, recipient_id=2, content="hi")
        message_store.fail_reads = True

        response = await client.patch(
            f"/messages/{message.id}/status", params={"user_id": 2}, json={"status": "read"}
        )

        assert response.status_code == 503
        assert response.json()["details"] == {"operation": "find_message_by_id"}


class TestDeleteAndReactions:
    """메시지 삭제 / 반응 API 테스트"""

    @pytest.mark.asyncio
    async def test_sender_deletes_message(self, client, message_store, connect):
        _, peer_ws = await connect(2)
        message = message_store.add(sender_id=1, recipient_id=2, content="oops")

        response = await client.delete(f"/messages/{message.id}", params={"user_id": 1})

        assert response.status_code == 200
        assert response.json()["is_deleted"] is True
        assert response.json()["content"] == ""
        assert peer_ws.events("msg-delete-recieve") == [{"event": "msg-delete-recieve", "data": message.id}]

    @pytest.mark.asyncio
    async def test_only_sender_can_delete(self, client, message_store):
        message = message_store.add(sender_id=1, recipient_id=2, content="mine")

        response = await client.delete(f"/messages/{message.id}", params={"user_id": 2})

        assert response.status_code == 403
        assert message.is_deleted is False

    @pytest.mark.asyncio
    async def test_reaction_toggle(self, client, message_store, connect):
        """같은 이모지를 다시 보내면 제거"""
        _, sender_ws = await connect(1)
        message = message_store.add(sender_id=1, recipient_id=2, content="nice")

        added = await client.post(f"/messages/{message.id}/reactions", json={"user_id": 2, "emoji": "👍"})
        removed = await client.post(f"/messages/{message.id}/reactions", json={"user_id": 2, "emoji": "👍"})

        assert added.status_code == 200
        assert added.json()["reactions"] == [{"user_id": 2, "emoji": "👍"}]
        assert removed.json()["reactions"] == []

        emojis = [f["data"]["emoji"] for f in sender_ws.events("reaction-recieve")]
        assert emojis == ["👍", None]

    @pytest.mark.asyncio
    async def test_reaction_on_deleted_message(self, client, message_store):
        message = message_store.add(sender_id=1, recipient_id=2, content="gone")
        message.soft_delete()

        response = await client.post(f"/messages/{message.id}/reactions", json={"user_id": 2, "emoji": "👍"})

        assert response.status_code == 400
