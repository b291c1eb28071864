from .users import User
from .group_chat_rooms import GroupChatRoom
from .group_room_members import GroupRoomMember
from .conversation_settings import ConversationSetting
from .messages import Message, MessageStatus, Reaction

__all__ = [
    "User",
    "GroupChatRoom",
    "GroupRoomMember",
    "ConversationSetting",
    "Message",
    "MessageStatus",
    "Reaction",
]
