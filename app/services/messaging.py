"""
Messaging gateway - async entry point to the messaging core

Runs the synchronous store and aggregator in the threadpool (one session
per call) and publishes every stored message on the live channel.
"""
import logging
from typing import Callable, List, Optional

from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.database import SessionLocal
from app.exceptions import TransportError
from app.schemas.conversation import Conversation
from app.schemas.message import DirectMessageResponse
from app.services.conversation_service import ConversationAggregator
from app.services.live_channel import get_broker, publish_message
from app.services.message_store import MessageStore, validate_content

logger = logging.getLogger(__name__)


class MessagingGateway:
    """Send path plus the reads a conversation view needs"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, broker=None):
        self.session_factory = session_factory
        self.broker = broker if broker is not None else get_broker()

    async def _run(self, fn: Callable[[Session], object]):
        def call():
            with self.session_factory() as db:
                return fn(db)

        return await run_in_threadpool(call)

    async def send(
        self,
        current_user_id: str,
        counterpart_id: str,
        content: str,
        sender_id: Optional[str] = None
    ) -> DirectMessageResponse:
        """
        Validate, store and publish a message

        Args:
            current_user_id: Authenticated caller
            counterpart_id: Recipient
            content: Message body
            sender_id: Stated sender, defaults to the caller

        Returns:
            The stored message

        Raises:
            ValidationError: Empty content or self-addressed message
            AuthorizationError: Stated sender is not the caller
            TransportError: Database failure
        """
        validate_content(content)
        sender_id = current_user_id if sender_id is None else sender_id

        message = await self._run(
            lambda db: DirectMessageResponse.model_validate(
                MessageStore.insert(db, current_user_id, sender_id, counterpart_id, content)
            )
        )

        # Already durable; a missed live event is recovered by the next history fetch
        try:
            await publish_message(self.broker, message)
        except TransportError as e:
            logger.warning(
                f"Live publish failed: {e}",
                extra={'user_id': sender_id, 'message_id': message.id}
            )

        return message

    async def list_between(self, current_user_id: str, counterpart_id: str) -> List[DirectMessageResponse]:
        return await self._run(
            lambda db: [
                DirectMessageResponse.model_validate(m)
                for m in MessageStore.list_between(db, current_user_id, current_user_id, counterpart_id)
            ]
        )

    async def list_conversations(self, current_user_id: str) -> List[Conversation]:
        return await self._run(
            lambda db: ConversationAggregator.list_conversations(db, current_user_id)
        )

    async def open_conversation(self, current_user_id: str, counterpart_id: str) -> Conversation:
        return await self._run(
            lambda db: ConversationAggregator.open_conversation(db, current_user_id, counterpart_id)
        )


def get_gateway() -> MessagingGateway:
    """Dependency for getting the messaging gateway"""
    return MessagingGateway()
