"""
실시간 이벤트 스키마

WebSocket 프레임은 양방향 모두 {"event": <이름>, "data": <페이로드>} 형식입니다.
클라이언트 이벤트는 event 필드를 판별자로 하는 tagged union으로 검증되며,
검증을 통과한 이벤트만 EventRouter로 전달됩니다.
"""

from datetime import datetime
from typing import Annotated, Any, Dict, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator
from pydantic import ValidationError as PydanticValidationError

from snappy.core.config import settings
from snappy.core.errors import InvalidEventError


class EventPayload(BaseModel):
    """클라이언트 페이로드 공통 설정 (camelCase 별칭 허용)"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_: Optional[int] = Field(None, alias="from", description="발신자 ID (세션 사용자와 일치해야 함)")


class AddressedEventPayload(EventPayload):
    """1:1 상대(to) 또는 그룹(groupId) 중 정확히 하나"""
    to: Optional[int] = Field(None, description="1:1 상대 ID")
    group_id: Optional[int] = Field(None, alias="groupId", description="그룹 ID")

    @model_validator(mode="after")
    def check_addressing(self):
        if (self.to is None) == (self.group_id is None):
            raise ValueError("Exactly one of 'to' or 'groupId' is required")
        return self


class SendMessagePayload(AddressedEventPayload):
    msg: str = Field(default="", max_length=settings.message_max_length)
    message_type: Literal["text", "audio", "image", "file"] = Field(default="text", alias="messageType")
    file_url: Optional[str] = Field(None, alias="fileUrl")
    reply_to: Optional[str] = Field(None, alias="replyTo")
    link_meta: Optional[Dict[str, Any]] = Field(None, alias="linkMeta")
    client_id: Optional[str] = Field(None, alias="clientId", description="클라이언트 임시 ID (msg-sent로 되돌려줌)")

    @model_validator(mode="after")
    def check_payload(self):
        if not self.msg.strip() and not self.file_url:
            raise ValueError("Message must carry text or a fileUrl")
        return self


class TypingPayload(AddressedEventPayload):
    pass


class ReadAckPayload(EventPayload):
    to: int = Field(..., description="읽은 메시지를 보낸 상대 ID")


class DeliveredAckPayload(EventPayload):
    message_id: str = Field(..., alias="messageId")


class DeleteMessagePayload(AddressedEventPayload):
    message_id: str = Field(..., alias="messageId")


class ReactionPayload(AddressedEventPayload):
    message_id: str = Field(..., alias="messageId")
    emoji: str = Field(..., min_length=1, max_length=10)


# =============================================================================
# Client -> Server 이벤트 (tagged union)
# =============================================================================

class AddUserEvent(BaseModel):
    event: Literal["add-user"]
    data: int


class JoinGroupEvent(BaseModel):
    event: Literal["join-group"]
    data: int


class SendMessageEvent(BaseModel):
    event: Literal["send-msg"]
    data: SendMessagePayload


class TypingEvent(BaseModel):
    event: Literal["typing"]
    data: TypingPayload


class StopTypingEvent(BaseModel):
    event: Literal["stop-typing"]
    data: TypingPayload


class ReadAckEvent(BaseModel):
    event: Literal["msg-read"]
    data: ReadAckPayload


class DeliveredAckEvent(BaseModel):
    event: Literal["msg-delivered"]
    data: DeliveredAckPayload


class DeleteMessageEvent(BaseModel):
    event: Literal["delete-msg"]
    data: DeleteMessagePayload


class ReactionEvent(BaseModel):
    event: Literal["send-reaction"]
    data: ReactionPayload


ClientEvent = Annotated[
    Union[
        AddUserEvent,
        JoinGroupEvent,
        SendMessageEvent,
        TypingEvent,
        StopTypingEvent,
        ReadAckEvent,
        DeliveredAckEvent,
        DeleteMessageEvent,
        ReactionEvent,
    ],
    Field(discriminator="event"),
]

_client_event_adapter = TypeAdapter(ClientEvent)


def parse_client_event(frame: Any) -> ClientEvent:
    """수신 프레임을 검증하여 타입이 지정된 이벤트로 변환합니다.

    Raises:
        InvalidEventError: 알 수 없는 이벤트 이름이거나 페이로드가 잘못된 경우
    """
    event_name = frame.get("event") if isinstance(frame, dict) else None
    try:
        return _client_event_adapter.validate_python(frame)
    except PydanticValidationError as e:
        reasons = "; ".join(
            f"{'.'.join(str(loc) for loc in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise InvalidEventError(f"Invalid '{event_name}' event: {reasons}", event=event_name) from e


# =============================================================================
# Server -> Client 이벤트
# =============================================================================

USER_STATUS_CHANGE = "user-status-change"
MSG_RECEIVE = "msg-recieve"
MSG_SENT = "msg-sent"
TYPING_RECEIVE = "typing-recieve"
STOP_TYPING_RECEIVE = "stop-typing-recieve"
MSG_READ_RECEIVE = "msg-read-recieve"
MSG_STATUS_UPDATE = "msg-status-update"
MSG_DELETE_RECEIVE = "msg-delete-recieve"
REACTION_RECEIVE = "reaction-recieve"
ERROR = "error"


def server_frame(event: str, data: Any) -> Dict[str, Any]:
    return {"event": event, "data": data}


def user_status_change(user_id: int, is_online: bool, last_seen: Optional[datetime] = None) -> Dict[str, Any]:
    return server_frame(USER_STATUS_CHANGE, {
        "userId": user_id,
        "isOnline": is_online,
        "lastSeen": last_seen.isoformat() if last_seen else None,
    })


def message_received(message) -> Dict[str, Any]:
    return server_frame(MSG_RECEIVE, {
        "messageId": str(message.id),
        "from": message.sender_id,
        "to": message.recipient_id,
        "groupId": message.group_id,
        "msg": message.content,
        "messageType": message.message_type,
        "fileUrl": message.file_url,
        "replyTo": message.reply_to,
        "replyContent": message.reply_content,
        "linkMeta": message.link_meta,
        "status": message.status.value,
        "createdAt": message.created_at.isoformat(),
    })


def message_sent(message, client_id: Optional[str] = None) -> Dict[str, Any]:
    return server_frame(MSG_SENT, {
        "messageId": str(message.id),
        "status": message.status.value,
        "clientId": client_id,
        "createdAt": message.created_at.isoformat(),
    })


def typing_changed(sender_id: int, group_id: Optional[int] = None) -> Dict[str, Any]:
    return server_frame(TYPING_RECEIVE, {"from": sender_id, "groupId": group_id})


def typing_stopped(sender_id: int, group_id: Optional[int] = None) -> Dict[str, Any]:
    return server_frame(STOP_TYPING_RECEIVE, {"from": sender_id, "groupId": group_id})


def read_receipt(reader_id: int) -> Dict[str, Any]:
    return server_frame(MSG_READ_RECEIVE, reader_id)


def status_changed(message_id: str, status: str) -> Dict[str, Any]:
    return server_frame(MSG_STATUS_UPDATE, {"messageId": message_id, "status": status})


def message_deleted(message_id: str) -> Dict[str, Any]:
    return server_frame(MSG_DELETE_RECEIVE, message_id)


def reaction_changed(message_id: str, reactor_id: int, emoji: Optional[str]) -> Dict[str, Any]:
    return server_frame(REACTION_RECEIVE, {"messageId": message_id, "from": reactor_id, "emoji": emoji})


def error_frame(error_code: str, message: str) -> Dict[str, Any]:
    return server_frame(ERROR, {"error_code": error_code, "message": message})
