"""
Event Router

모든 실시간 이벤트의 단일 처리 지점입니다.

- 수신 프레임은 schemas.events의 tagged union으로 검증된 뒤에만 처리됩니다.
- 수신자 해석: 1:1은 Presence Registry 조회, 그룹은 room 멤버 중 발신 세션 제외.
- 수신자가 오프라인이면 실시간 전송만 생략됩니다. 저장은 실시간 전송과 무관하게 먼저 수행되며
  수신자는 다음 조회에서 결과를 보게 됩니다.
"""

from datetime import datetime
from typing import Any, List, Optional

from snappy.core.errors import InvalidEventError, PersistenceError
from snappy.core.logging import get_logger, log_websocket_event, set_session_context
from snappy.domain.events import MessageSent, MessageDeleted, MessageReactionChanged
from snappy.infrastructure.kafka import kafka_config, publish_event
from snappy.schemas import events
from snappy.services import message_service, group_service
from snappy.websockets.connection_manager import Connection

logger = get_logger(__name__)


class EventRouter:
    def __init__(self, manager, registry, rooms, delivery, messages=message_service, groups=group_service):
        self._manager = manager
        self._registry = registry
        self._rooms = rooms
        self._delivery = delivery
        self._messages = messages
        self._groups = groups
        self._handlers = {
            "add-user": self._on_add_user,
            "join-group": self._on_join_group,
            "send-msg": self._on_send_message,
            "typing": self._on_typing,
            "stop-typing": self._on_stop_typing,
            "msg-read": self._on_read_ack,
            "msg-delivered": self._on_delivered_ack,
            "delete-msg": self._on_delete_message,
            "send-reaction": self._on_reaction,
        }

    # =========================================================================
    # Entry points
    # =========================================================================

    async def handle_frame(self, connection: Connection, frame: Any) -> None:
        """WebSocket에서 받은 원본 JSON 프레임을 검증하고 처리합니다."""
        try:
            event = events.parse_client_event(frame)
        except InvalidEventError as e:
            logger.warning(f"Dropping invalid frame from session {connection.session_id}: {e}")
            await self._reject(connection, "invalid_event", str(e))
            return

        await self.dispatch(connection, event)

    async def dispatch(self, connection: Connection, event: events.ClientEvent) -> None:
        set_session_context(connection.session_id, connection.user_id)

        if event.event != "add-user":
            if not connection.is_registered:
                logger.warning(f"Dropping '{event.event}' from unregistered session {connection.session_id}")
                await self._reject(connection, "not_registered", "Send add-user before other events")
                return

            if self._registry.lookup(connection.user_id) != connection.session_id:
                # 같은 사용자의 새 세션이 등록되었거나 로그아웃으로 매핑이 제거된 세션
                logger.warning(
                    f"Dropping '{event.event}' from superseded session {connection.session_id} "
                    f"(user {connection.user_id})"
                )
                await self._reject(connection, "session_superseded", "Send add-user again to resume this session")
                return

            claimed_sender = getattr(event.data, "from_", None)
            if claimed_sender is not None and claimed_sender != connection.user_id:
                logger.warning(
                    f"Dropping '{event.event}': claimed sender {claimed_sender} "
                    f"!= session user {connection.user_id}"
                )
                await self._reject(connection, "sender_mismatch", "'from' does not match the registered user")
                return

        handler = self._handlers[event.event]
        try:
            await handler(connection, event.data)
        except PersistenceError as e:
            # 저장 실패: 해당 이벤트는 종료, 다른 클라이언트에는 아무 것도 전송하지 않음
            logger.error(f"Persistence failure while handling '{event.event}' from user {connection.user_id}: {e}")

    async def on_disconnect(self, connection: Connection) -> None:
        """연결 해제: room 정리, 세션 제거, Presence Registry 정리(오프라인 브로드캐스트)"""
        left_rooms = self._rooms.leave_all(connection.session_id)
        self._manager.remove(connection.session_id)
        user_id = await self._registry.unregister(connection.session_id)
        log_websocket_event(
            logger, "disconnect", connection.session_id, user_id=user_id, rooms_left=sorted(left_rooms)
        )

    async def relay_message(self, message, exclude_session: Optional[str] = None) -> int:
        """저장된 메시지를 수신자에게 msg-recieve로 전달합니다 (REST 생성 경로에서도 사용)."""
        if exclude_session is None:
            exclude_session = self._registry.lookup(message.sender_id)
        targets = self._resolve(message.recipient_id, message.group_id, exclude_session)
        return await self._manager.send_many(targets, events.message_received(message))

    async def relay_deleted(self, message, actor_id: int) -> int:
        targets = self._resolve_for_message(message, actor_id)
        return await self._manager.send_many(targets, events.message_deleted(str(message.id)))

    async def relay_reaction(self, message, actor_id: int, emoji: Optional[str]) -> int:
        targets = self._resolve_for_message(message, actor_id)
        return await self._manager.send_many(targets, events.reaction_changed(str(message.id), actor_id, emoji))

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _on_add_user(self, connection: Connection, user_id: int):
        if connection.user_id is not None and connection.user_id != user_id:
            # 같은 소켓이 다른 사용자로 재등록: 이전 매핑과 room 구독 정리
            self._rooms.leave_all(connection.session_id)
            await self._registry.unregister(connection.session_id)

        previous = self._registry.lookup(user_id)
        if previous is not None and previous != connection.session_id:
            left_rooms = self._rooms.leave_all(previous)
            logger.info(f"Session {previous} of user {user_id} superseded; left rooms {sorted(left_rooms)}")

        connection.user_id = user_id
        set_session_context(connection.session_id, user_id)
        await self._registry.register(user_id, connection.session_id)
        log_websocket_event(logger, "add-user", connection.session_id, user_id=user_id)

    async def _on_join_group(self, connection: Connection, group_id: int):
        if not await self._groups.is_group_member(group_id, connection.user_id):
            logger.warning(f"User {connection.user_id} is not a member of group {group_id}; join refused")
            await self._reject(connection, "not_a_member", f"Not a member of group {group_id}")
            return

        self._rooms.join(connection.session_id, group_id)
        log_websocket_event(logger, "join-group", connection.session_id, user_id=connection.user_id, room_id=group_id)

    async def _on_send_message(self, connection: Connection, payload: events.SendMessagePayload):
        if payload.group_id is not None and not await self._groups.is_group_member(payload.group_id, connection.user_id):
            logger.warning(f"User {connection.user_id} sent to group {payload.group_id} without membership")
            await self._reject(connection, "not_a_member", f"Not a member of group {payload.group_id}")
            return

        try:
            message = await self._messages.create_message(
                sender_id=connection.user_id,
                content=payload.msg,
                recipient_id=payload.to,
                group_id=payload.group_id,
                message_type=payload.message_type,
                file_url=payload.file_url,
                reply_to=payload.reply_to,
                link_meta=payload.link_meta
            )
        except PersistenceError as e:
            logger.error(f"Failed to persist message from user {connection.user_id}: {e}")
            await self._reject(connection, "persist_failed", "Message could not be saved")
            return

        await self._manager.send(connection.session_id, events.message_sent(message, payload.client_id))
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

        delivered = await self.relay_message(message, exclude_session=connection.session_id)
        log_websocket_event(
            logger, "send-msg", connection.session_id,
            user_id=connection.user_id, room_id=message.group_id,
            message_id=str(message.id), live_recipients=delivered
        )

    async def _on_typing(self, connection: Connection, payload: events.TypingPayload):
        await self._relay_typing(connection, payload, events.typing_changed)

    async def _on_stop_typing(self, connection: Connection, payload: events.TypingPayload):
        await self._relay_typing(connection, payload, events.typing_stopped)

    async def _relay_typing(self, connection: Connection, payload: events.TypingPayload, build):
        if payload.group_id is not None and not self._rooms.is_member(connection.session_id, payload.group_id):
            logger.debug(f"Session {connection.session_id} not in room {payload.group_id}; typing dropped")
            return

        targets = self._resolve(payload.to, payload.group_id, connection.session_id)
        await self._manager.send_many(targets, build(connection.user_id, payload.group_id))

    async def _on_read_ack(self, connection: Connection, payload: events.ReadAckPayload):
        await self._delivery.mark_conversation_read(reader_id=connection.user_id, peer_id=payload.to)

    async def _on_delivered_ack(self, connection: Connection, payload: events.DeliveredAckPayload):
        await self._delivery.mark_delivered(payload.message_id, connection.user_id)

    async def _on_delete_message(self, connection: Connection, payload: events.DeleteMessagePayload):
        message = await self._messages.find_message_by_id(payload.message_id)
        if message is None or not self._addressing_matches(message, connection.user_id, payload):
            logger.warning(f"Delete of message {payload.message_id} by user {connection.user_id} dropped")
            return

        deleted = await self._messages.soft_delete_message(payload.message_id, connection.user_id)
        if deleted is None:
            logger.warning(f"User {connection.user_id} may not delete message {payload.message_id}")
            return

        await publish_event(
            kafka_config.topic_message_events,
            MessageDeleted(message_id=payload.message_id, deleted_by=connection.user_id, timestamp=datetime.utcnow())
        )
        await self.relay_deleted(deleted, connection.user_id)

    async def _on_reaction(self, connection: Connection, payload: events.ReactionPayload):
        message = await self._messages.find_message_by_id(payload.message_id)
        if message is None or not self._addressing_matches(message, connection.user_id, payload):
            logger.warning(f"Reaction on message {payload.message_id} by user {connection.user_id} dropped")
            return

        result = await self._messages.toggle_reaction(payload.message_id, connection.user_id, payload.emoji)
        if result is None:
            return
        message, added = result
        emoji = payload.emoji if added else None

        await publish_event(
            kafka_config.topic_message_events,
            MessageReactionChanged(
                message_id=payload.message_id,
                user_id=connection.user_id,
                emoji=emoji,
                timestamp=datetime.utcnow()
            )
        )
        await self.relay_reaction(message, connection.user_id, emoji)

    # =========================================================================
    # Recipient resolution
    # =========================================================================

    def _resolve(self, recipient_id: Optional[int], group_id: Optional[int], exclude_session: Optional[str]) -> List[str]:
        if group_id is not None:
            return [sid for sid in self._rooms.members(group_id) if sid != exclude_session]

        session_id = self._registry.lookup(recipient_id)
        if session_id is None or session_id == exclude_session:
            logger.debug(f"User {recipient_id} offline; live delivery skipped")
            return []
        return [session_id]

    def _resolve_for_message(self, message, actor_id: int) -> List[str]:
        """저장된 메시지 기준 상대방(또는 그룹 room) 세션"""
        exclude = self._registry.lookup(actor_id)
        if message.group_id is not None:
            return self._resolve(None, message.group_id, exclude)
        return self._resolve(self._peer_of(message, actor_id), None, exclude)

    @staticmethod
    def _peer_of(message, user_id: int) -> int:
        return message.recipient_id if message.sender_id == user_id else message.sender_id

    def _addressing_matches(self, message, user_id: int, payload) -> bool:
        """클라이언트가 보낸 수신 대상이 저장된 메시지와 일치하는지 확인"""
        if message.group_id is not None:
            return payload.group_id == message.group_id
        if user_id not in (message.sender_id, message.recipient_id):
            return False
        return payload.to == self._peer_of(message, user_id)

    async def _reject(self, connection: Connection, error_code: str, message: str):
        await self._manager.send(connection.session_id, events.error_frame(error_code, message))
