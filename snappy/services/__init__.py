"""
Services layer for data access and external communications.

This layer handles:
- MongoDB message storage and delivery status updates
- MySQL user presence, group membership reads and per-user conversation settings
- Redis online status mirroring
"""

from . import online_status_service
from . import message_service
from . import user_service
from . import group_service
from . import conversation_service

__all__ = [
    "online_status_service",
    "message_service",
    "user_service",
    "group_service",
    "conversation_service"
]
