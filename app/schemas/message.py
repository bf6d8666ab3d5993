"""
Direct message Pydantic schemas
"""
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class DirectMessageCreate(BaseModel):
    """Schema for sending a direct message"""
    receiver_id: str
    content: str
    sender_id: Optional[str] = None


class DirectMessageResponse(BaseModel):
    """Schema for direct message response"""
    id: int
    sender_id: str
    receiver_id: str
    content: str
    created_at: datetime

    class Config:
        from_attributes = True


class ConversationHistory(BaseModel):
    """Messages between the caller and one counterpart, oldest first"""
    counterpart_id: str
    messages: list[DirectMessageResponse]
    count: int
