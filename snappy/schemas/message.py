from datetime import datetime
from typing import Optional, List, Dict, Any, Literal
from pydantic import BaseModel, Field, ConfigDict, model_validator

from snappy.core.config import settings
from snappy.models.messages import MessageStatus


class AddressedPayload(BaseModel):
    """1:1 수신자 또는 그룹 중 정확히 하나를 지정해야 하는 스키마"""
    recipient_id: Optional[int] = Field(None, description="1:1 수신자 ID")
    group_id: Optional[int] = Field(None, description="그룹 ID")

    @model_validator(mode="after")
    def check_addressing(self):
        if (self.recipient_id is None) == (self.group_id is None):
            raise ValueError("Exactly one of recipient_id or group_id is required")
        return self


class MessageCreate(AddressedPayload):
    """메시지 생성 스키마"""
    sender_id: int = Field(..., description="발송자 ID")
    content: str = Field(default="", max_length=settings.message_max_length, description="메시지 내용")
    message_type: Literal["text", "audio", "image", "file"] = Field(default="text", description="메시지 타입")
    file_url: Optional[str] = Field(None, description="오디오/첨부파일 URL")
    reply_to: Optional[str] = Field(None, description="답글 대상 메시지 ID")
    link_meta: Optional[Dict[str, Any]] = Field(None, description="링크 미리보기 메타데이터")

    @model_validator(mode="after")
    def check_payload(self):
        if not self.content.strip() and not self.file_url:
            raise ValueError("Message must carry text content or a file_url")
        return self


class MessageStatusUpdate(BaseModel):
    """메시지 상태 전이 요청 스키마"""
    status: Literal["delivered", "read"] = Field(..., description="목표 상태")


class ReactionRequest(BaseModel):
    """메시지 반응 토글 스키마"""
    user_id: int = Field(..., description="반응한 사용자 ID")
    emoji: str = Field(..., min_length=1, max_length=10, description="반응 (이모지)")


class ConversationQuery(BaseModel):
    """대화 기록 조회 스키마"""
    user_id: int = Field(..., description="조회하는 사용자 ID")
    peer_id: Optional[int] = Field(None, description="1:1 상대 ID")
    group_id: Optional[int] = Field(None, description="그룹 ID")
    limit: int = Field(default=50, ge=1, le=100, description="메시지 개수")
    skip: int = Field(default=0, ge=0, description="건너뛸 메시지 개수")

    @model_validator(mode="after")
    def check_target(self):
        if (self.peer_id is None) == (self.group_id is None):
            raise ValueError("Exactly one of peer_id or group_id is required")
        return self


class ReactionResponse(BaseModel):
    user_id: int
    emoji: str


class MessageResponse(BaseModel):
    """메시지 응답 스키마"""
    model_config = ConfigDict(from_attributes=True)

    id: str = Field(..., description="메시지 ID")
    sender_id: int
    recipient_id: Optional[int] = None
    group_id: Optional[int] = None
    content: str
    message_type: str
    file_url: Optional[str] = None
    reply_to: Optional[str] = None
    reply_content: Optional[str] = None
    reply_sender_id: Optional[int] = None
    link_meta: Optional[Dict[str, Any]] = None
    status: MessageStatus
    reactions: List[ReactionResponse] = Field(default_factory=list)
    is_deleted: bool = False
    created_at: datetime
    updated_at: datetime
    from_self: Optional[bool] = Field(None, description="조회한 사용자가 보낸 메시지인지 여부")

    @classmethod
    def from_message(cls, message, viewer_id: Optional[int] = None) -> "MessageResponse":
        return cls(
            id=str(message.id),
            sender_id=message.sender_id,
            recipient_id=message.recipient_id,
            group_id=message.group_id,
            content="" if message.is_deleted else message.content,
            message_type=message.message_type,
            file_url=None if message.is_deleted else message.file_url,
            reply_to=message.reply_to,
            reply_content=message.reply_content,
            reply_sender_id=message.reply_sender_id,
            link_meta=message.link_meta,
            status=message.status,
            reactions=[ReactionResponse(user_id=r.user_id, emoji=r.emoji) for r in message.reactions],
            is_deleted=message.is_deleted,
            created_at=message.created_at,
            updated_at=message.updated_at,
            from_self=(message.sender_id == viewer_id) if viewer_id is not None else None,
        )


class MessageListResponse(BaseModel):
    """메시지 목록 응답 스키마"""
    messages: List[MessageResponse]
    total_count: int
    limit: int
    skip: int
    has_next: bool


class MessageStatusResponse(BaseModel):
    message_id: str
    status: MessageStatus
    changed: bool = Field(..., description="이번 요청으로 상태가 전이되었는지 여부")
