"""
Service layer - messaging core
"""
from .profile_service import ProfileService
from .message_store import MessageStore, validate_content
from .conversation_service import ConversationAggregator
from .live_channel import (
    LiveSubscription,
    LocalBroker,
    RedisBroker,
    SubscriptionState,
    get_broker,
    publish_message,
)
from .messaging import MessagingGateway, get_gateway
from .conversation_view import ConversationView

__all__ = [
    "ProfileService",
    "MessageStore",
    "validate_content",
    "ConversationAggregator",
    "LiveSubscription",
    "LocalBroker",
    "RedisBroker",
    "SubscriptionState",
    "get_broker",
    "publish_message",
    "MessagingGateway",
    "get_gateway",
    "ConversationView",
]
