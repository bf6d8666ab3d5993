"""
Conversation Pydantic schemas
"""
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class Conversation(BaseModel):
    """
    Derived grouping of all messages between the current user and one counterpart.

    Never stored. A placeholder entry (no messages yet) carries
    last_message=None and is_placeholder=True.
    """
    other_user_id: str
    other_user_name: str
    other_user_avatar: Optional[str] = None
    last_message: Optional[str] = None
    last_message_at: Optional[datetime] = None
    is_placeholder: bool = False


class ConversationList(BaseModel):
    """Schema for the conversation list response"""
    conversations: list[Conversation]
    count: int
