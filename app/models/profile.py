"""
Profile model
"""
from sqlalchemy import Column, String, DateTime

from .base import Base, utcnow


class Profile(Base):
    """Profile model - display data for an identity-provider user"""
    __tablename__ = "profiles"

    user_id = Column(String(64), primary_key=True)
    full_name = Column(String(120), nullable=False, index=True)
    avatar_url = Column(String(500), nullable=True)
    role = Column(String(20), default="student", nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Profile(user_id='{self.user_id}', name='{self.full_name}', role='{self.role}')>"
