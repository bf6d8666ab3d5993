"""
Pydantic schemas
"""
from .message import DirectMessageCreate, DirectMessageResponse, ConversationHistory
from .conversation import Conversation, ConversationList
from .profile import ProfileUpdate, ProfileResponse, ProfileListItem

__all__ = [
    "DirectMessageCreate",
    "DirectMessageResponse",
    "ConversationHistory",
    "Conversation",
    "ConversationList",
    "ProfileUpdate",
    "ProfileResponse",
    "ProfileListItem",
]
