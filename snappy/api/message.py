from datetime import datetime
from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.ext.asyncio import AsyncSession

from snappy.api.dependencies import get_realtime
from snappy.core.errors import (
    AuthorizationException, BusinessLogicException, PersistenceError,
    ServiceUnavailableException, message_not_found_error
)
from snappy.core.logging import get_logger
from snappy.database.mysql import get_async_session
from snappy.domain.events import MessageSent, MessageDeleted, MessageReactionChanged
from snappy.infrastructure.kafka import kafka_config, publish_event
from snappy.models.messages import MessageStatus
from snappy.schemas.message import (
    MessageCreate, MessageResponse, MessageListResponse, MessageStatusUpdate,
    MessageStatusResponse, ReactionRequest, ConversationQuery
)
from snappy.services import message_service, group_service
from snappy.websockets import Realtime

logger = get_logger(__name__)
router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message(
    message_data: MessageCreate,
    realtime: Realtime = Depends(get_realtime),
    db: AsyncSession = Depends(get_async_session)
) -> MessageResponse:
    """
    메시지 전송

    저장 후 수신자가 접속 중이면 msg-recieve로 실시간 전달합니다.

    - **sender_id**: 발송자 ID
    - **recipient_id** / **group_id**: 1:1 수신자 또는 그룹 (정확히 하나)
    - **content**: 메시지 내용 (file_url이 없으면 필수)
    """

    # 비즈니스 로직: 그룹 멤버 확인
    if message_data.group_id is not None:
        if not await group_service.is_user_in_group(db, message_data.group_id, message_data.sender_id):
            raise AuthorizationException("Sender is not a member of this group")

    try:
        message = await message_service.create_message(
            sender_id=message_data.sender_id,
            content=message_data.content,
            recipient_id=message_data.recipient_id,
            group_id=message_data.group_id,
            message_type=message_data.message_type,
            file_url=message_data.file_url,
            reply_to=message_data.reply_to,
            link_meta=message_data.link_meta
        )
    except PersistenceError as e:
        logger.error(f"Failed to create message: {e}")
        raise ServiceUnavailableException("Message could not be saved")

    await publish_event(
        kafka_config.topic_message_events,
        MessageSent(
            message_id=str(message.id),
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            group_id=message.group_id,
            message_type=message.message_type,
            timestamp=datetime.utcnow()
        )
    )
    await realtime.router.relay_message(message)

    return MessageResponse.from_message(message, viewer_id=message_data.sender_id)


@router.post("/search-by-conversation", response_model=MessageListResponse)
async def get_conversation_messages(
    query: ConversationQuery,
    db: AsyncSession = Depends(get_async_session)
) -> MessageListResponse:
    """
    대화 기록 조회 (오래된 것부터)

    - **user_id**: 조회하는 사용자 ID
    - **peer_id** / **group_id**: 1:1 상대 또는 그룹 (정확히 하나)
    - **limit**: 조회할 메시지 개수 (기본값: 50, 최대: 100)
    - **skip**: 건너뛸 메시지 개수 (페이징용)
    """

    if query.group_id is not None:
        if not await group_service.is_user_in_group(db, query.group_id, query.user_id):
            raise AuthorizationException("Access denied to this group")

    try:
        messages = await message_service.get_conversation_messages(
            user_id=query.user_id,
            peer_id=query.peer_id,
            group_id=query.group_id,
            limit=query.limit,
            skip=query.skip
        )
        total_count = await message_service.get_conversation_count(
            user_id=query.user_id,
            peer_id=query.peer_id,
            group_id=query.group_id
        )
    except PersistenceError as e:
        logger.error(f"Failed to load conversation for user {query.user_id}: {e}")
        raise ServiceUnavailableException("Messages could not be loaded")

    return MessageListResponse(
        messages=[MessageResponse.from_message(m, viewer_id=query.user_id) for m in messages],
        total_count=total_count,
        limit=query.limit,
        skip=query.skip,
        has_next=(query.skip + len(messages)) < total_count
    )


@router.patch("/{message_id}/status", response_model=MessageStatusResponse)
async def update_message_status(
    message_id: str,
    status_update: MessageStatusUpdate,
    user_id: int = Query(..., description="상태를 확인한 수신자 ID"),
    realtime: Realtime = Depends(get_realtime)
) -> MessageStatusResponse:
    """
    메시지 전달 상태 전이 (delivered / read)

    이미 같거나 앞선 상태면 changed=false로 현재 상태를 반환합니다.
    """
    message = await message_service.find_message_by_id(message_id)
    if not message:
        raise message_not_found_error(message_id)

    target = MessageStatus(status_update.status)
    try:
        applied = await realtime.delivery.advance(message_id, target, user_id)
    except PersistenceError as e:
        logger.error(f"Failed to update status of message {message_id}: {e}")
        raise ServiceUnavailableException("Message status could not be saved")

    if applied is not None:
        return MessageStatusResponse(message_id=message_id, status=applied, changed=True)

    current = await message_service.find_message_by_id(message_id)
    return MessageStatusResponse(
        message_id=message_id,
        status=current.status if current else message.status,
        changed=False
    )


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_message(
    message_id: str,
    user_id: int = Query(..., description="삭제를 요청한 사용자 ID"),
    realtime: Realtime = Depends(get_realtime)
) -> MessageResponse:
    """메시지 소프트 삭제 (발송자만 가능)"""
    message = await message_service.find_message_by_id(message_id)
    if not message:
        raise message_not_found_error(message_id)
    if message.sender_id != user_id:
        raise AuthorizationException("Only the sender can delete this message")

    try:
        deleted = await message_service.soft_delete_message(message_id, user_id)
    except PersistenceError as e:
        logger.error(f"Failed to delete message {message_id}: {e}")
        raise ServiceUnavailableException("Message could not be deleted")

    await publish_event(
        kafka_config.topic_message_events,
        MessageDeleted(message_id=message_id, deleted_by=user_id, timestamp=datetime.utcnow())
    )
    await realtime.router.relay_deleted(deleted, user_id)

    return MessageResponse.from_message(deleted, viewer_id=user_id)


@router.post("/{message_id}/reactions", response_model=MessageResponse)
async def toggle_reaction(
    message_id: str,
    reaction: ReactionRequest,
    realtime: Realtime = Depends(get_realtime)
) -> MessageResponse:
    """
    메시지 반응 토글

    같은 이모지를 다시 보내면 반응이 제거됩니다. 사용자당 하나의 반응만 유지됩니다.
    """
    message = await message_service.find_message_by_id(message_id)
    if not message:
        raise message_not_found_error(message_id)
    if message.is_deleted:
        raise BusinessLogicException("Cannot react to a deleted message")

    try:
        result = await message_service.toggle_reaction(message_id, reaction.user_id, reaction.emoji)
    except PersistenceError as e:
        logger.error(f"Failed to toggle reaction on message {message_id}: {e}")
        raise ServiceUnavailableException("Reaction could not be saved")

    if result is None:
        raise message_not_found_error(message_id)
    message, added = result
    emoji = reaction.emoji if added else None

    await publish_event(
        kafka_config.topic_message_events,
        MessageReactionChanged(
            message_id=message_id,
            user_id=reaction.user_id,
            emoji=emoji,
            timestamp=datetime.utcnow()
        )
    )
    await realtime.router.relay_reaction(message, reaction.user_id, emoji)

    return MessageResponse.from_message(message, viewer_id=reaction.user_id)
