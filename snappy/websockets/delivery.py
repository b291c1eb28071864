"""
Delivery State Machine

메시지 전달 상태: sent (생성 시) -> delivered (수신자 클라이언트 확인) -> read (대화 열람)

- 역행 전이는 없으며 read는 delivered를 포함합니다. 도착 순서와 관계없이 read가 이깁니다.
- 저장소 업데이트가 실패하면 전이는 적용되지 않고 이벤트도 전송되지 않습니다.
  PersistenceError는 호출자에게 그대로 전달되며 자동 재시도는 하지 않습니다.
- 그룹 메시지는 멤버별 상태 없이 하나의 공유 status 필드를 사용합니다.
"""

from datetime import datetime
from typing import Optional

from snappy.core.logging import get_logger, log_delivery_transition
from snappy.domain.events import MessageStatusChanged, MessagesRead
from snappy.infrastructure.kafka import kafka_config, publish_event
from snappy.models.messages import MessageStatus
from snappy.schemas.events import read_receipt, status_changed
from snappy.services import message_service

logger = get_logger(__name__)


class DeliveryStateMachine:
    def __init__(self, manager, registry, messages=message_service):
        self._manager = manager
        self._registry = registry
        self._messages = messages

    async def mark_delivered(self, message_id: str, recipient_id: int) -> Optional[MessageStatus]:
        """수신자가 실시간으로 받은 메시지를 확인했을 때 호출됩니다."""
        return await self.advance(message_id, MessageStatus.DELIVERED, recipient_id)

    async def mark_read(self, message_id: str, reader_id: int) -> Optional[MessageStatus]:
        """단일 메시지 읽음 처리"""
        return await self.advance(message_id, MessageStatus.READ, reader_id)

    async def advance(self, message_id: str, target: MessageStatus, actor_id: int) -> Optional[MessageStatus]:
        """
        메시지를 target 상태로 전이하고, 전이된 경우 발신자에게 msg-status-update를 보냅니다.

        Returns:
            이번 호출로 전이된 상태. 대상이 없거나 이미 같거나 앞선 상태면 None
        """
        message = await self._messages.find_message_by_id(message_id)
        if message is None:
            logger.warning(f"Status {target.value} for unknown message {message_id} from user {actor_id}")
            return None

        if not self._is_addressee(message, actor_id):
            logger.warning(f"User {actor_id} is not an addressee of message {message_id}; ignoring {target.value}")
            return None

        changed = await self._messages.advance_status(message_id, target)
        log_delivery_transition(logger, message_id, target.value, changed, actor_id=actor_id)
        if not changed:
            return None

        await publish_event(
            kafka_config.topic_message_events,
            MessageStatusChanged(
                message_id=message_id,
                sender_id=message.sender_id,
                status=target.value,
                timestamp=datetime.utcnow()
            )
        )
        await self._notify(message.sender_id, status_changed(message_id, target.value))
        return target

    async def mark_conversation_read(self, reader_id: int, peer_id: int) -> int:
        """
        reader가 peer와의 대화를 열었을 때 peer가 보낸 읽지 않은 메시지를 일괄 read로 전이합니다.

        peer가 접속 중이면 메시지 ID 목록이 아닌 reader ID만 담은 msg-read-recieve를 한 번 보냅니다.

        Returns:
            전이된 메시지 수
        """
        read_count = await self._messages.mark_conversation_read(reader_id, peer_id)
        logger.info(f"User {reader_id} read {read_count} messages from user {peer_id}")

        if read_count:
            await publish_event(
                kafka_config.topic_message_events,
                MessagesRead(
                    reader_id=reader_id,
                    peer_id=peer_id,
                    read_count=read_count,
                    timestamp=datetime.utcnow()
                )
            )
        # read_count가 0이어도 msg-read-recieve는 항상 전송
        await self._notify(peer_id, read_receipt(reader_id))
        return read_count

    @staticmethod
    def _is_addressee(message, user_id: int) -> bool:
        if message.group_id is not None:
            # 공유 상태 필드: 발신자 본인을 제외한 누구의 확인이든 반영
            return message.sender_id != user_id
        return message.recipient_id == user_id

    async def _notify(self, user_id: int, data: dict) -> bool:
        session_id = self._registry.lookup(user_id)
        if session_id is None:
            logger.debug(f"User {user_id} offline; '{data['event']}' not pushed")
            return False
        return await self._manager.send(session_id, data)
