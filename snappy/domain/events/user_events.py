"""
User Context Domain Events
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from .base import DomainEvent


@dataclass
class UserOnlineStatusChanged(DomainEvent):
    """온라인 상태 변경 이벤트"""
    key_field = "user_id"

    user_id: int
    is_online: bool
    last_seen: Optional[str]
    timestamp: datetime
