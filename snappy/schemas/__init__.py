# User schemas
from .user import (
    UserProfile,
    UserPresenceUpdate,
    UserStatusResponse,
    OnlineUsersResponse,
    ConversationSettingResponse
)

# Message schemas
from .message import (
    MessageCreate,
    MessageStatusUpdate,
    ReactionRequest,
    ConversationQuery,
    MessageResponse,
    MessageListResponse,
    MessageStatusResponse
)

# Realtime event schemas
from .events import (
    ClientEvent,
    parse_client_event
)

__all__ = [
    "UserProfile",
    "UserPresenceUpdate",
    "UserStatusResponse",
    "OnlineUsersResponse",
    "ConversationSettingResponse",
    "MessageCreate",
    "MessageStatusUpdate",
    "ReactionRequest",
    "ConversationQuery",
    "MessageResponse",
    "MessageListResponse",
    "MessageStatusResponse",
    "ClientEvent",
    "parse_client_event",
]
