"""
Database models
"""
from .base import Base, utcnow
from .profile import Profile
from .direct_message import DirectMessage

__all__ = ["Base", "utcnow", "Profile", "DirectMessage"]
