"""
Live delivery channel - pushes newly stored messages to connected views

Every stored message is published to two channels, one per participant:

    dm:user:{sender_id}
    dm:user:{receiver_id}

A conversation view subscribes to its own user's channel only, so it hears
about messages it sent (from any device) and messages sent to it, and
nothing else.

Two brokers share one interface:

- RedisBroker: Redis Pub/Sub, works across API workers and servers
- LocalBroker: in-process asyncio queues, for a single worker
"""
import asyncio
import json
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Set

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.config import settings
from app.exceptions import TransportError

logger = logging.getLogger(__name__)

EVENT_DIRECT_MESSAGE = "direct_message"


class SubscriptionState(str, Enum):
    DISCONNECTED = "disconnected"
    SUBSCRIBING = "subscribing"
    ACTIVE = "active"


def user_channel(user_id: str) -> str:
    """
    Channel name for one user

    Pattern: "dm:user:{user_id}"
    """
    return f"dm:user:{user_id}"


def message_payload(message) -> dict:
    """JSON-safe dict for a stored message (ORM row or schema)"""
    return {
        "id": message.id,
        "sender_id": message.sender_id,
        "receiver_id": message.receiver_id,
        "content": message.content,
        "created_at": message.created_at.isoformat(),
    }


def message_event(message) -> dict:
    return {"type": EVENT_DIRECT_MESSAGE, "message": message_payload(message)}


# ============================================================================
# In-process broker
# ============================================================================

class LocalSubscription:
    """One listener on a LocalBroker channel, bound to the loop that created it"""

    def __init__(self, broker: "LocalBroker", channel: str):
        self.broker = broker
        self.channel = channel
        self.loop = asyncio.get_running_loop()
        self.queue: asyncio.Queue = asyncio.Queue()

    def deliver(self, event: dict):
        if self.loop.is_closed():
            self.broker._release(self.channel, self)
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is self.loop:
            self.queue.put_nowait(event)
        else:
            self.loop.call_soon_threadsafe(self.queue.put_nowait, event)

    async def get(self) -> dict:
        return await self.queue.get()

    async def close(self):
        self.broker._release(self.channel, self)


class LocalBroker:
    """Fan-out to subscribers living in this process (any event loop or thread)"""

    def __init__(self):
        # channel -> live subscriptions
        self.channels: Dict[str, Set[LocalSubscription]] = {}
        self.messages_published = 0

    async def connect(self):
        logger.info("Live channel using in-process broker")

    async def disconnect(self):
        self.channels.clear()

    async def ping(self) -> bool:
        return True

    async def publish(self, channel: str, event: dict) -> int:
        subscriptions = list(self.channels.get(channel, ()))
        for subscription in subscriptions:
            subscription.deliver(event)
        self.messages_published += 1
        return len(subscriptions)

    async def subscribe(self, channel: str) -> LocalSubscription:
        subscription = LocalSubscription(self, channel)
        self.channels.setdefault(channel, set()).add(subscription)
        return subscription

    def _release(self, channel: str, subscription: LocalSubscription):
        subscriptions = self.channels.get(channel)
        if subscriptions is None:
            return
        subscriptions.discard(subscription)
        if not subscriptions:
            del self.channels[channel]

    def get_stats(self) -> dict:
        return {
            "backend": "memory",
            "channels": len(self.channels),
            "subscribers": sum(len(s) for s in self.channels.values()),
            "messages_published": self.messages_published,
        }


# ============================================================================
# Redis broker
# ============================================================================

class RedisSubscription:
    """One Redis Pub/Sub connection listening on a single channel"""

    def __init__(self, pubsub, channel: str):
        self.pubsub = pubsub
        self.channel = channel

    async def get(self) -> dict:
        try:
            while True:
                message = await self.pubsub.get_message(
                    ignore_subscribe_messages=True,
                    timeout=None
                )
                if message and message["type"] == "message":
                    return json.loads(message["data"])
        except RedisError as e:
            raise TransportError("Live channel connection lost") from e

    async def close(self):
        try:
            await self.pubsub.unsubscribe(self.channel)
            await self.pubsub.aclose()
        except RedisError as e:
            logger.warning(f"Error closing Redis subscription on {self.channel}: {e}")


class RedisBroker:
    """
    Redis Pub/Sub broker

    One shared client publishes; every subscription gets its own Pub/Sub
    connection so tearing one view down never affects another.
    """

    def __init__(self, redis_url: Optional[str] = None):
        self.redis_url = redis_url or settings.redis_url
        self.redis = None
        self.messages_published = 0
        self.active_subscriptions = 0

    async def connect(self):
        logger.info("Connecting live channel to Redis")
        self.redis = redis.from_url(
            self.redis_url,
            encoding="utf-8",
            decode_responses=True
        )

    async def disconnect(self):
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None

    async def ping(self) -> bool:
        try:
            if self.redis is None:
                await self.connect()
            return bool(await self.redis.ping())
        except RedisError:
            return False

    async def publish(self, channel: str, event: dict) -> int:
        if self.redis is None:
            await self.connect()
        try:
            receivers = await self.redis.publish(channel, json.dumps(event))
        except RedisError as e:
            raise TransportError("Failed to publish live event") from e
        self.messages_published += 1
        return receivers

    async def subscribe(self, channel: str) -> RedisSubscription:
        if self.redis is None:
            await self.connect()
        pubsub = self.redis.pubsub()
        try:
            await pubsub.subscribe(channel)
        except RedisError as e:
            await pubsub.aclose()
            raise TransportError("Failed to subscribe to live channel") from e
        self.active_subscriptions += 1
        return RedisSubscription(pubsub, channel)

    def get_stats(self) -> dict:
        return {
            "backend": "redis",
            "messages_published": self.messages_published,
            "subscriptions_opened": self.active_subscriptions,
        }


# ============================================================================
# Subscription lifecycle
# ============================================================================

class LiveSubscription:
    """
    A single view's subscription to its user's channel

    States: DISCONNECTED -> SUBSCRIBING -> ACTIVE -> (error) -> DISCONNECTED.
    close() must be called when the view closes or changes counterpart.
    There is no automatic reconnect; a dropped subscription stays
    DISCONNECTED until the owner opens a new one.
    """

    def __init__(
        self,
        broker,
        user_id: str,
        on_message: Callable[[dict], Awaitable[None]],
        on_error: Optional[Callable[[Exception], Awaitable[None]]] = None
    ):
        self.broker = broker
        self.user_id = user_id
        self.channel = user_channel(user_id)
        self.on_message = on_message
        self.on_error = on_error
        self.state = SubscriptionState.DISCONNECTED
        self._subscription = None
        self._task: Optional[asyncio.Task] = None

    @property
    def is_active(self) -> bool:
        return self.state is SubscriptionState.ACTIVE

    async def open(self):
        """
        Subscribe and start delivering events

        Raises:
            TransportError: If the broker cannot be reached
        """
        if self.state is not SubscriptionState.DISCONNECTED:
            return

        self.state = SubscriptionState.SUBSCRIBING
        try:
            self._subscription = await self.broker.subscribe(self.channel)
        except TransportError:
            self.state = SubscriptionState.DISCONNECTED
            raise

        self.state = SubscriptionState.ACTIVE
        self._task = asyncio.create_task(self._pump())
        logger.info("Live subscription active", extra={'user_id': self.user_id})

    async def close(self):
        """Stop delivery and release the broker subscription; safe to call twice"""
        task, self._task = self._task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        await self._release()
        self.state = SubscriptionState.DISCONNECTED

    async def _release(self):
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.close()

    async def _pump(self):
        try:
            while True:
                event = await self._subscription.get()
                if event.get("type") != EVENT_DIRECT_MESSAGE:
                    continue

                message = event.get("message") or {}
                if self.user_id not in (message.get("sender_id"), message.get("receiver_id")):
                    continue

                await self.on_message(message)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Live subscription dropped: {e}", extra={'user_id': self.user_id})
            self.state = SubscriptionState.DISCONNECTED
            self._task = None
            await self._release()
            if self.on_error is not None:
                await self.on_error(e)


async def publish_message(broker, message) -> int:
    """
    Publish a stored message to both participants' channels

    Returns:
        Number of subscribers reached
    """
    event = message_event(message)
    receivers = 0
    for user_id in {message.sender_id, message.receiver_id}:
        receivers += await broker.publish(user_channel(user_id), event)
    return receivers


# ============================================================================
# Global instance (singleton)
# ============================================================================
_broker_instance = None


def create_broker(backend: Optional[str] = None):
    backend = backend or settings.LIVE_BACKEND
    if backend == "memory":
        return LocalBroker()
    if backend == "redis":
        return RedisBroker()
    raise ValueError(f"Unknown live backend: {backend}")


def get_broker():
    """Get global broker instance"""
    global _broker_instance

    if _broker_instance is None:
        _broker_instance = create_broker()

    return _broker_instance


def set_broker(broker):
    """Replace the global broker (startup wiring and tests)"""
    global _broker_instance
    _broker_instance = broker
