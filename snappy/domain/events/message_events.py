"""
Message Context Domain Events
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from .base import DomainEvent


@dataclass
class MessageSent(DomainEvent):
    """메시지 생성 이벤트"""
    key_field = "message_id"

    message_id: str
    sender_id: int
    recipient_id: Optional[int]
    group_id: Optional[int]
    message_type: str  # "text", "audio", "image", "file"
    timestamp: datetime


@dataclass
class MessageStatusChanged(DomainEvent):
    """메시지 전달 상태 전이 이벤트 (sent -> delivered -> read)"""
    key_field = "message_id"

    message_id: str
    sender_id: int
    status: str
    timestamp: datetime


@dataclass
class MessagesRead(DomainEvent):
    """대화 일괄 읽음 이벤트"""
    key_field = "peer_id"

    reader_id: int
    peer_id: int
    read_count: int
    timestamp: datetime


@dataclass
class MessageDeleted(DomainEvent):
    """메시지 삭제 이벤트"""
    key_field = "message_id"

    message_id: str
    deleted_by: int
    timestamp: datetime


@dataclass
class MessageReactionChanged(DomainEvent):
    """메시지 반응 변경 이벤트 (emoji가 None이면 제거)"""
    key_field = "message_id"

    message_id: str
    user_id: int
    emoji: Optional[str]
    timestamp: datetime
