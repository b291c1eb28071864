from datetime import datetime
from enum import Enum
from typing import Optional, List, Dict, Any
from beanie import Document
from pydantic import BaseModel, Field, model_validator


class MessageStatus(str, Enum):
    """메시지 전달 상태: sent -> delivered -> read (역행 없음)"""
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def lower_states(self) -> List["MessageStatus"]:
        """이 상태보다 앞선 상태 목록 (조건부 업데이트 필터용)"""
        return [s for s in MessageStatus if s.rank < self.rank]


_STATUS_RANK = {
    MessageStatus.SENT: 0,
    MessageStatus.DELIVERED: 1,
    MessageStatus.READ: 2,
}


def advance_status(current: MessageStatus, target: MessageStatus) -> MessageStatus:
    """단조 전이 규칙. read는 delivered를 포함하므로 항상 이깁니다."""
    return target if target.rank > current.rank else current


class Reaction(BaseModel):
    user_id: int = Field(..., description="User ID who reacted")
    emoji: str = Field(..., min_length=1, max_length=10)


class Message(Document):
    sender_id: int = Field(..., description="User ID who sent the message")
    recipient_id: Optional[int] = Field(None, description="Direct peer ID (mutually exclusive with group_id)")
    group_id: Optional[int] = Field(None, description="Group ID (mutually exclusive with recipient_id)")
    content: str = Field(default="", description="Message text")
    message_type: str = Field(default="text", description="Type of message: text, audio, image, file")
    file_url: Optional[str] = Field(None, description="Audio/attachment URL")
    reply_to: Optional[str] = Field(None, description="Message ID this is replying to")
    reply_content: Optional[str] = Field(None, description="Preview of the replied message")
    reply_sender_id: Optional[int] = Field(None, description="Sender of the replied message")
    link_meta: Optional[Dict[str, Any]] = Field(None, description="Link preview metadata")
    status: MessageStatus = Field(default=MessageStatus.SENT)
    reactions: List[Reaction] = Field(default_factory=list)
    is_deleted: bool = Field(default=False)
    deleted_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "messages"
        use_enum_values = False
        indexes = [
            [("sender_id", 1), ("recipient_id", 1), ("created_at", 1)],  # direct conversation history
            [("recipient_id", 1), ("sender_id", 1), ("status", 1)],  # batch read updates
            [("group_id", 1), ("created_at", 1)],  # group history
        ]

    @model_validator(mode="after")
    def check_addressing(self):
        if (self.recipient_id is None) == (self.group_id is None):
            raise ValueError("Message must be addressed to exactly one of recipient_id or group_id")
        return self

    def soft_delete(self):
        self.is_deleted = True
        self.deleted_at = datetime.utcnow()
        self.updated_at = datetime.utcnow()

    def toggle_reaction(self, user_id: int, emoji: str) -> bool:
        """같은 이모지면 제거, 아니면 사용자 반응을 교체합니다. 추가되면 True"""
        existing = next((r for r in self.reactions if r.user_id == user_id), None)
        self.reactions = [r for r in self.reactions if r.user_id != user_id]
        added = existing is None or existing.emoji != emoji
        if added:
            self.reactions.append(Reaction(user_id=user_id, emoji=emoji))
        self.updated_at = datetime.utcnow()
        return added

    def __repr__(self):
        return f"<Message(id={self.id}, sender_id={self.sender_id}, status={self.status.value})>"
