"""
Conversation view - state of one open chat screen

One instance lives per WebSocket connection and holds what the user sees:
the conversation list, the selected counterpart, that pair's ordered
history, the composition draft and transient notifications. Every change
is pushed through the emit callback as a JSON event.

Rules:
- History is ordered by (created_at, id) and never holds two copies of one id
- A history fetch is tagged with the counterpart it was issued for; a result
  that no longer matches the selection is dropped
- At most one live subscription exists; it is replaced on every selection
  and released on close
- Errors end up as "notification" events, never as exceptions
"""
import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Deque, List, Optional, Set

from app.exceptions import MessagingError, NotFoundError, TransportError, ValidationError
from app.schemas.conversation import Conversation
from app.schemas.message import DirectMessageResponse
from app.services.live_channel import LiveSubscription, SubscriptionState
from app.services.message_store import validate_content

logger = logging.getLogger(__name__)

Emitter = Callable[[dict], Awaitable[None]]

# Only the most recent notifications are kept per connection
MAX_NOTIFICATIONS = 50


def _sort_key(message: DirectMessageResponse):
    return (message.created_at, message.id)


class ConversationView:
    """Server-side model of a user's messaging screen"""

    def __init__(self, gateway, current_user_id: str, emit: Optional[Emitter] = None, broker=None):
        self.gateway = gateway
        self.current_user_id = current_user_id
        self.broker = broker if broker is not None else gateway.broker
        self._emitter = emit

        self.conversations: List[Conversation] = []
        self.selected: Optional[Conversation] = None
        self.messages: List[DirectMessageResponse] = []
        self.draft = ""
        self.notifications: Deque[dict] = deque(maxlen=MAX_NOTIFICATIONS)

        self.subscription: Optional[LiveSubscription] = None
        self.generation = 0
        self.closed = False
        self._select_lock = asyncio.Lock()
        self._pending: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    @property
    def selected_id(self) -> Optional[str]:
        return self.selected.other_user_id if self.selected else None

    @property
    def live_state(self) -> SubscriptionState:
        if self.subscription is None:
            return SubscriptionState.DISCONNECTED
        return self.subscription.state

    async def emit(self, event: dict):
        if self._emitter is None or self.closed:
            return
        try:
            await self._emitter(event)
        except Exception as e:
            logger.warning(f"Failed to push {event.get('type')} event: {e}", extra={'user_id': self.current_user_id})

    async def notify(self, level: str, message: str):
        notification = {"level": level, "message": message}
        self.notifications.append(notification)
        await self.emit({"type": "notification", **notification})

    def _belongs_to_selected(self, message: DirectMessageResponse) -> bool:
        counterpart = self.selected_id
        if counterpart is None:
            return False
        return {message.sender_id, message.receiver_id} == {self.current_user_id, counterpart}

    def _merge(self, message: DirectMessageResponse) -> bool:
        """Add one message to the history; False when that id is already shown"""
        if any(m.id == message.id for m in self.messages):
            return False
        self.messages.append(message)
        if len(self.messages) > 1 and _sort_key(self.messages[-2]) > _sort_key(message):
            self.messages.sort(key=_sort_key)
        return True

    # ------------------------------------------------------------------
    # Conversation list
    # ------------------------------------------------------------------

    async def load_conversations(self) -> bool:
        """Populate the conversation list once; no automatic retry on failure"""
        try:
            conversations = await self.gateway.list_conversations(self.current_user_id)
        except MessagingError as e:
            logger.error(f"Loading conversations failed: {e}", extra={'user_id': self.current_user_id})
            await self.notify("error", "Failed to load conversations.")
            return False

        self.conversations = conversations

        # A placeholder becomes real once its first message exists
        for conversation in conversations:
            if conversation.other_user_id == self.selected_id:
                self.selected = conversation
                break

        await self.emit({
            "type": "conversations",
            "conversations": [c.model_dump(mode="json") for c in conversations],
        })
        return True

    # ------------------------------------------------------------------
    # Selection, history and live subscription
    # ------------------------------------------------------------------

    async def select(self, counterpart_id: str) -> bool:
        """
        Open the conversation with one counterpart

        Releases the previous subscription, shows the known entry (or a
        placeholder for a brand-new counterpart), starts a tagged history
        fetch and subscribes to live delivery.
        """
        async with self._select_lock:
            await self._release_subscription()
            self.generation += 1
            generation = self.generation
            self.messages = []

            conversation = next(
                (c for c in self.conversations if c.other_user_id == counterpart_id),
                None
            )
            if conversation is None:
                try:
                    conversation = await self.gateway.open_conversation(self.current_user_id, counterpart_id)
                except NotFoundError:
                    self.selected = None
                    await self.notify("error", "User not found.")
                    return False
                except MessagingError as e:
                    logger.error(f"Opening conversation failed: {e}", extra={'user_id': self.current_user_id})
                    self.selected = None
                    await self.notify("error", "Failed to open conversation.")
                    return False

            self.selected = conversation
            await self.emit({"type": "conversation", "conversation": conversation.model_dump(mode="json")})

            self._spawn(self._fetch_history(counterpart_id, generation))
            await self._subscribe()
            return True

    async def _fetch_history(self, counterpart_id: str, generation: int):
        try:
            messages = await self.gateway.list_between(self.current_user_id, counterpart_id)
        except MessagingError as e:
            if generation == self.generation:
                logger.error(f"Loading messages failed: {e}", extra={'user_id': self.current_user_id})
                await self.notify("error", "Failed to load messages.")
            return

        if generation != self.generation or counterpart_id != self.selected_id:
            logger.debug(
                "Discarding stale history",
                extra={'user_id': self.current_user_id, 'counterpart_id': counterpart_id}
            )
            return

        # Live events may have landed before the fetch completed
        merged = {m.id: m for m in messages}
        for message in self.messages:
            merged.setdefault(message.id, message)
        self.messages = sorted(merged.values(), key=_sort_key)

        await self.emit({
            "type": "history",
            "counterpart_id": counterpart_id,
            "messages": [m.model_dump(mode="json") for m in self.messages],
        })

    async def _subscribe(self):
        subscription = LiveSubscription(
            self.broker,
            self.current_user_id,
            on_message=self._on_live_message,
            on_error=self._on_live_error,
        )
        self.subscription = subscription
        try:
            await subscription.open()
        except TransportError as e:
            logger.warning(f"Live subscription unavailable: {e}", extra={'user_id': self.current_user_id})
            await self.notify("warning", "Live updates unavailable. Refresh to see new messages.")
        await self.emit({"type": "live_state", "state": subscription.state.value})

    async def resubscribe(self) -> bool:
        """Reopen a dropped live subscription for the current selection"""
        if self.selected is None or self.live_state is SubscriptionState.ACTIVE:
            return self.live_state is SubscriptionState.ACTIVE
        await self._release_subscription()
        await self._subscribe()
        return self.live_state is SubscriptionState.ACTIVE

    async def _release_subscription(self):
        subscription, self.subscription = self.subscription, None
        if subscription is not None:
            await subscription.close()

    async def _on_live_message(self, payload: dict):
        message = DirectMessageResponse.model_validate(payload)

        if self._belongs_to_selected(message):
            if self._merge(message):
                await self.emit({"type": "message", "message": message.model_dump(mode="json")})
            return

        if message.receiver_id == self.current_user_id:
            sender = next(
                (c.other_user_name for c in self.conversations if c.other_user_id == message.sender_id),
                "another user"
            )
            await self.notify("info", f"New message from {sender}!")
            await self.load_conversations()
        elif message.sender_id == self.current_user_id:
            # Sent from another session to a conversation not open here
            await self.load_conversations()

    async def _on_live_error(self, error: Exception):
        await self.notify("warning", "Live updates disconnected.")
        await self.emit({"type": "live_state", "state": SubscriptionState.DISCONNECTED.value})

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    async def set_draft(self, content: str):
        self.draft = content

    async def send(self, content: Optional[str] = None) -> Optional[DirectMessageResponse]:
        """
        Send the draft (or the given content) to the selected counterpart

        The draft is cleared as soon as the content passes validation and
        restored if the store rejects or fails the insert.
        """
        if self.selected is None:
            await self.notify("error", "Select a conversation first.")
            return None

        text = self.draft if content is None else content
        try:
            validate_content(text)
        except ValidationError as e:
            if isinstance(text, str):
                self.draft = text
            await self.notify("error", e.message)
            return None

        counterpart_id = self.selected_id
        first_message = not self.messages

        self.draft = ""
        await self.emit({"type": "draft", "content": ""})

        try:
            message = await self.gateway.send(self.current_user_id, counterpart_id, text)
        except MessagingError as e:
            logger.error(
                f"Send failed: {e}",
                extra={'user_id': self.current_user_id, 'counterpart_id': counterpart_id}
            )
            self.draft = text
            await self.emit({"type": "draft", "content": text})
            await self.notify("error", "Failed to send message.")
            return None

        if counterpart_id == self.selected_id and self._merge(message):
            await self.emit({"type": "message", "message": message.model_dump(mode="json")})

        if first_message or self.live_state is not SubscriptionState.ACTIVE:
            await self.load_conversations()

        return message

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _spawn(self, coro):
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def wait_idle(self):
        """Wait for in-flight history fetches"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def close(self):
        """Release the subscription and cancel in-flight fetches"""
        await self._release_subscription()
        for task in list(self._pending):
            task.cancel()
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        self.closed = True
