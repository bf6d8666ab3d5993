"""
API routers
"""
from . import profiles, direct_messages, websocket, health

__all__ = ["profiles", "direct_messages", "websocket", "health"]
