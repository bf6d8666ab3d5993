"""
Profile Pydantic schemas
"""
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional

Role = Literal["student", "hod", "club_admin", "super_admin"]


class ProfileUpdate(BaseModel):
    """Schema for creating or updating the caller's profile"""
    full_name: str = Field(..., min_length=1, max_length=120)
    avatar_url: Optional[str] = Field(None, max_length=500)
    role: Role = "student"


class ProfileResponse(BaseModel):
    """Schema for profile response"""
    user_id: str
    full_name: str
    avatar_url: Optional[str] = None
    role: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProfileListItem(BaseModel):
    """Schema for profile in search results"""
    user_id: str
    full_name: str
    avatar_url: Optional[str] = None

    class Config:
        from_attributes = True
