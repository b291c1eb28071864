"""
Domain Events

모든 Domain Event의 기본 클래스 및 이벤트 정의
"""

from .base import DomainEvent
from .user_events import UserOnlineStatusChanged
from .message_events import (
    MessageSent,
    MessageStatusChanged,
    MessagesRead,
    MessageDeleted,
    MessageReactionChanged
)

__all__ = [
    'DomainEvent',
    'UserOnlineStatusChanged',
    'MessageSent',
    'MessageStatusChanged',
    'MessagesRead',
    'MessageDeleted',
    'MessageReactionChanged',
]
