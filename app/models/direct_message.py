"""
Direct message model
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Index

from .base import Base, utcnow


class DirectMessage(Base):
    """Direct message model - stores one-to-one messages, immutable once written"""
    __tablename__ = "direct_messages"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(String(64), nullable=False, index=True)
    receiver_id = Column(String(64), nullable=False, index=True)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False, index=True)

    # Indexes for pair history and inbox scans
    __table_args__ = (
        Index('idx_conversation', 'sender_id', 'receiver_id', 'created_at'),
        Index('idx_receiver_created', 'receiver_id', 'created_at'),
    )

    def __repr__(self):
        return f"<DirectMessage(id={self.id}, from={self.sender_id}, to={self.receiver_id})>"
