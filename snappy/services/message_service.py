"""
Message service layer for MongoDB operations.

메시지 생성/조회, 전달 상태 전이(sent -> delivered -> read), 삭제, 반응을 처리합니다.
상태 전이는 모두 조건부 업데이트로 수행되어 저장소의 상태가 역행하지 않습니다.
저장소 읽기/쓰기 실패는 PersistenceError로 변환되어 호출자에게 전달됩니다.
"""

from datetime import datetime
from typing import List, Optional, Tuple, Dict, Any
from beanie import PydanticObjectId
from beanie.operators import In, Pull, Push, Set
from bson.errors import InvalidId
from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from snappy.core.errors import PersistenceError
from snappy.core.logging import get_logger
from snappy.models.messages import Message, MessageStatus, Reaction

logger = get_logger(__name__)

REPLY_PREVIEW_LENGTH = 100


# =============================================================================
# Message CRUD Operations
# =============================================================================

async def create_message(
    sender_id: int,
    content: str = "",
    recipient_id: Optional[int] = None,
    group_id: Optional[int] = None,
    message_type: str = "text",
    file_url: Optional[str] = None,
    reply_to: Optional[str] = None,
    link_meta: Optional[Dict[str, Any]] = None
) -> Message:
    """메시지 생성. 초기 상태는 항상 sent"""

    # 답장 메시지 정보 가져오기
    reply_content = None
    reply_sender_id = None
    if reply_to:
        reply_message = await find_message_by_id(reply_to)
        if reply_message:
            text = reply_message.content
            reply_content = text[:REPLY_PREVIEW_LENGTH] + "..." if len(text) > REPLY_PREVIEW_LENGTH else text
            reply_sender_id = reply_message.sender_id

    now = datetime.utcnow()
    message = Message(
        sender_id=sender_id,
        recipient_id=recipient_id,
        group_id=group_id,
        content=content,
        message_type=message_type,
        file_url=file_url,
        reply_to=reply_to,
        reply_content=reply_content,
        reply_sender_id=reply_sender_id,
        link_meta=link_meta,
        status=MessageStatus.SENT,
        created_at=now,
        updated_at=now
    )

    try:
        await message.insert()
    except PyMongoError as e:
        raise PersistenceError("create_message", e) from e

    return message


async def find_message_by_id(message_id: str) -> Optional[Message]:
    """메시지 ID로 조회 (잘못된 ID 형식이면 None)"""
    try:
        object_id = PydanticObjectId(message_id)
    except (InvalidId, TypeError):
        return None

    try:
        return await Message.get(object_id)
    except PyMongoError as e:
        raise PersistenceError("find_message_by_id", e) from e


def _conversation_filter(user_id: int, peer_id: Optional[int], group_id: Optional[int]) -> dict:
    if group_id is not None:
        return {"group_id": group_id}
    return {
        "$or": [
            {"sender_id": user_id, "recipient_id": peer_id},
            {"sender_id": peer_id, "recipient_id": user_id},
        ]
    }


async def get_conversation_messages(
    user_id: int,
    peer_id: Optional[int] = None,
    group_id: Optional[int] = None,
    limit: int = 50,
    skip: int = 0
) -> List[Message]:
    """대화 기록 조회 (오래된 것부터). 상태는 항상 저장소에서 다시 읽습니다."""
    try:
        return await Message.find(
            _conversation_filter(user_id, peer_id, group_id)
        ).sort([("created_at", ASCENDING)]).skip(skip).limit(limit).to_list()
    except PyMongoError as e:
        raise PersistenceError("get_conversation_messages", e) from e


async def get_conversation_count(
    user_id: int,
    peer_id: Optional[int] = None,
    group_id: Optional[int] = None
) -> int:
    """대화의 전체 메시지 수"""
    try:
        return await Message.find(_conversation_filter(user_id, peer_id, group_id)).count()
    except PyMongoError as e:
        raise PersistenceError("get_conversation_count", e) from e


# =============================================================================
# Delivery Status
# =============================================================================

async def advance_status(message_id: str, target: MessageStatus) -> bool:
    """
    메시지 상태를 target으로 전이합니다.

    target보다 낮은 상태인 경우에만 매칭되는 조건부 업데이트이므로
    delivered 응답이 read 이후에 도착해도 상태는 read로 유지됩니다.

    Returns:
        bool: 이번 호출로 상태가 바뀌었으면 True
    """
    try:
        object_id = PydanticObjectId(message_id)
    except (InvalidId, TypeError):
        return False

    try:
        result = await Message.find_one(
            Message.id == object_id,
            In(Message.status, [s.value for s in target.lower_states()])
        ).update(Set({
            Message.status: target.value,
            Message.updated_at: datetime.utcnow()
        }))
    except PyMongoError as e:
        raise PersistenceError("advance_status", e) from e

    return result is not None and result.modified_count > 0


async def mark_conversation_read(reader_id: int, peer_id: int) -> int:
    """
    peer가 reader에게 보낸 1:1 메시지 중 읽지 않은 것을 일괄 read로 전이합니다.

    Returns:
        int: 상태가 바뀐 메시지 수
    """
    try:
        result = await Message.find(
            Message.sender_id == peer_id,
            Message.recipient_id == reader_id,
            Message.status != MessageStatus.READ.value
        ).update(Set({
            Message.status: MessageStatus.READ.value,
            Message.updated_at: datetime.utcnow()
        }))
    except PyMongoError as e:
        raise PersistenceError("mark_conversation_read", e) from e

    return result.modified_count if result is not None else 0


# =============================================================================
# Message Operations (Delete, Reactions)
# =============================================================================

async def soft_delete_message(message_id: str, user_id: int) -> Optional[Message]:
    """
    메시지 소프트 삭제 (발송자만 가능). 대상이 없거나 권한이 없으면 None

    is_deleted 관련 필드만 갱신하므로 동시에 진행된 상태 전이를 덮어쓰지 않습니다.
    """
    message = await find_message_by_id(message_id)
    if not message or message.sender_id != user_id:
        return None
    if message.is_deleted:
        return message

    now = datetime.utcnow()
    try:
        await Message.find_one(
            Message.id == message.id,
            Message.sender_id == user_id
        ).update(Set({
            Message.is_deleted: True,
            Message.deleted_at: now,
            Message.updated_at: now
        }))
    except PyMongoError as e:
        raise PersistenceError("soft_delete_message", e) from e

    return await find_message_by_id(message_id)


async def toggle_reaction(message_id: str, user_id: int, emoji: str) -> Optional[Tuple[Message, bool]]:
    """
    메시지 반응 토글. 사용자당 하나의 반응만 유지합니다.

    reactions 배열에 대한 $pull/$push만 수행하며 status는 건드리지 않습니다.

    Returns:
        (메시지, 추가 여부) 또는 메시지가 없으면 None
    """
    message = await find_message_by_id(message_id)
    if not message or message.is_deleted:
        return None

    existing = next((r for r in message.reactions if r.user_id == user_id), None)
    added = existing is None or existing.emoji != emoji

    try:
        await Message.find_one(Message.id == message.id).update(
            Pull({Message.reactions: {"user_id": user_id}}),
            Set({Message.updated_at: datetime.utcnow()})
        )
        if added:
            await Message.find_one(Message.id == message.id).update(
                Push({Message.reactions: Reaction(user_id=user_id, emoji=emoji).model_dump()})
            )
    except PyMongoError as e:
        raise PersistenceError("toggle_reaction", e) from e

    updated = await find_message_by_id(message_id)
    if updated is None:
        return None
    return updated, added
