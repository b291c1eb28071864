"""
message_service 저장소 테스트

mongomock-motor 위에 초기화한 Beanie로 조건부 상태 전이, 일괄 읽음 처리,
삭제/반응 업데이트가 실제 쿼리 수준에서 동작하는지 검증합니다.
"""

import asyncio
from itertools import permutations

import pytest
from unittest.mock import AsyncMock
from pymongo.errors import ServerSelectionTimeoutError

from snappy.core.errors import PersistenceError
from snappy.models.messages import Message, MessageStatus
from snappy.services import message_service

SENT, DELIVERED, READ = MessageStatus.SENT, MessageStatus.DELIVERED, MessageStatus.READ


async def _direct(sender_id: int = 1, recipient_id: int = 2, content: str = "hi") -> str:
    message = await message_service.create_message(sender_id=sender_id, recipient_id=recipient_id, content=content)
    return str(message.id)


async def _status(message_id: str) -> MessageStatus:
    message = await message_service.find_message_by_id(message_id)
    return message.status


def _advance_right_after_read(monkeypatch, target: MessageStatus):
    """메시지를 읽은 직후, 쓰기 전에 다른 요청이 상태를 올리는 순서를 재현"""
    original = message_service.find_message_by_id
    interleaved = []

    async def read_then_advance(message_id):
        message = await original(message_id)
        if not interleaved:
            interleaved.append(message_id)
            await message_service.advance_status(message_id, target)
        return message

    monkeypatch.setattr(message_service, "find_message_by_id", read_then_advance)
    return interleaved


class TestCreateAndFind:
    """메시지 생성 / 조회 테스트"""

    @pytest.mark.asyncio
    async def test_created_message_starts_as_sent(self, beanie_db):
        message_id = await _direct()

        message = await message_service.find_message_by_id(message_id)
        assert (message.sender_id, message.recipient_id, message.status) == (1, 2, SENT)

    @pytest.mark.asyncio
    async def test_reply_preview_is_truncated(self, beanie_db):
        original_id = await _direct(sender_id=2, recipient_id=1, content="x" * 150)

        reply = await message_service.create_message(
            sender_id=1, recipient_id=2, content="answer", reply_to=original_id
        )

        assert reply.reply_sender_id == 2
        assert reply.reply_content == "x" * 100 + "..."

    @pytest.mark.asyncio
    async def test_malformed_id_is_not_found(self, beanie_db):
        assert await message_service.find_message_by_id("not-an-object-id") is None

    @pytest.mark.asyncio
    async def test_read_failure_is_persistence_error(self, beanie_db, monkeypatch):
        message_id = await _direct()
        monkeypatch.setattr(Message, "get", AsyncMock(side_effect=ServerSelectionTimeoutError("no servers")))

        with pytest.raises(PersistenceError) as exc_info:
            await message_service.find_message_by_id(message_id)

        assert exc_info.value.operation == "find_message_by_id"

    @pytest.mark.asyncio
    async def test_conversation_history(self, beanie_db):
        for text in ("one", "two"):
            await _direct(sender_id=1, recipient_id=2, content=text)
        await _direct(sender_id=2, recipient_id=1, content="three")
        await _direct(sender_id=1, recipient_id=3, content="elsewhere")

        history = await message_service.get_conversation_messages(user_id=2, peer_id=1)

        assert [m.content for m in history] == ["one", "two", "three"]
        assert await message_service.get_conversation_count(user_id=2, peer_id=1) == 3


class TestAdvanceStatus:
    """조건부 상태 전이 테스트"""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("order", list(permutations([SENT, DELIVERED, READ])))
    async def test_any_ack_order_ends_at_highest_status(self, beanie_db, order):
        """어떤 순서로 도착해도 상태는 지금까지의 최고 단계이며 역행하지 않음"""
        message_id = await _direct()
        highest = SENT

        for target in order:
            changed = await message_service.advance_status(message_id, target)

            assert changed is (target.rank > highest.rank)
            highest = max(highest, target, key=lambda s: s.rank)
            assert await _status(message_id) == highest

        assert await _status(message_id) == READ

    @pytest.mark.asyncio
    async def test_concurrent_delivered_and_read(self, beanie_db):
        message_id = await _direct()

        results = await asyncio.gather(
            message_service.advance_status(message_id, READ),
            message_service.advance_status(message_id, DELIVERED),
        )

        assert True in results
        assert await _status(message_id) == READ

    @pytest.mark.asyncio
    async def test_unknown_or_malformed_id(self, beanie_db):
        assert await message_service.advance_status("0123456789abcdef01234567", READ) is False
        assert await message_service.advance_status("bogus", READ) is False


class TestMarkConversationRead:
    """대화 일괄 읽음 처리 테스트"""

    @pytest.mark.asyncio
    async def test_marks_only_messages_from_peer_to_reader(self, beanie_db):
        unread = await _direct(sender_id=1, recipient_id=2)
        delivered = await _direct(sender_id=1, recipient_id=2)
        already_read = await _direct(sender_id=1, recipient_id=2)
        await message_service.advance_status(delivered, DELIVERED)
        await message_service.advance_status(already_read, READ)
        reply = await _direct(sender_id=2, recipient_id=1)
        other = await _direct(sender_id=1, recipient_id=3)

        count = await message_service.mark_conversation_read(reader_id=2, peer_id=1)

        assert count == 2
        for message_id in (unread, delivered, already_read):
            assert await _status(message_id) == READ
        assert await _status(reply) == SENT
        assert await _status(other) == SENT

    @pytest.mark.asyncio
    async def test_nothing_to_mark(self, beanie_db):
        assert await message_service.mark_conversation_read(reader_id=2, peer_id=1) == 0


class TestDeleteAndReactions:
    """삭제 / 반응 업데이트 테스트"""

    @pytest.mark.asyncio
    async def test_soft_delete_by_sender(self, beanie_db):
        message_id = await _direct()

        deleted = await message_service.soft_delete_message(message_id, user_id=1)

        assert deleted.is_deleted is True
        assert deleted.deleted_at is not None

    @pytest.mark.asyncio
    async def test_soft_delete_by_other_user(self, beanie_db):
        message_id = await _direct()

        assert await message_service.soft_delete_message(message_id, user_id=2) is None
        assert (await message_service.find_message_by_id(message_id)).is_deleted is False

    @pytest.mark.asyncio
    async def test_reaction_add_replace_remove(self, beanie_db):
        message_id = await _direct()
        await message_service.toggle_reaction(message_id, 3, "👍")

        message, added = await message_service.toggle_reaction(message_id, 2, "👍")
        assert added is True
        assert [(r.user_id, r.emoji) for r in message.reactions] == [(3, "👍"), (2, "👍")]

        message, added = await message_service.toggle_reaction(message_id, 2, "❤️")
        assert added is True
        assert [(r.user_id, r.emoji) for r in message.reactions] == [(3, "👍"), (2, "❤️")]

        message, added = await message_service.toggle_reaction(message_id, 2, "❤️")
        assert added is False
        assert [(r.user_id, r.emoji) for r in message.reactions] == [(3, "👍")]

    @pytest.mark.asyncio
    async def test_reaction_on_deleted_message(self, beanie_db):
        message_id = await _direct()
        await message_service.soft_delete_message(message_id, user_id=1)

        assert await message_service.toggle_reaction(message_id, 2, "👍") is None

    @pytest.mark.asyncio
    async def test_read_during_reaction_is_kept(self, beanie_db, monkeypatch):
        """반응 저장 직전에 read로 전이되어도 상태가 sent로 되돌아가지 않음"""
        message_id = await _direct()
        interleaved = _advance_right_after_read(monkeypatch, READ)

        message, added = await message_service.toggle_reaction(message_id, 2, "👍")

        assert interleaved == [message_id]
        assert added is True
        assert message.status == READ
        assert await _status(message_id) == READ
        assert [(r.user_id, r.emoji) for r in message.reactions] == [(2, "👍")]

    @pytest.mark.asyncio
    async def test_read_during_delete_is_kept(self, beanie_db, monkeypatch):
        """삭제 저장 직전에 read로 전이되어도 상태가 유지됨"""
        message_id = await _direct()
        interleaved = _advance_right_after_read(monkeypatch, READ)

        deleted = await message_service.soft_delete_message(message_id, user_id=1)

        assert interleaved == [message_id]
        assert deleted.is_deleted is True
        assert deleted.status == READ
        assert await _status(message_id) == READ

    @pytest.mark.asyncio
    async def test_status_advance_after_delete(self, beanie_db):
        message_id = await _direct()
        await message_service.soft_delete_message(message_id, user_id=1)

        assert await message_service.advance_status(message_id, DELIVERED) is True
        assert await _status(message_id) == DELIVERED
