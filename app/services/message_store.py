"""
Message store - durable record of one-to-one messages
"""
import logging
from typing import List

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import AuthorizationError, TransportError, ValidationError
from app.models import DirectMessage

logger = logging.getLogger(__name__)


def validate_content(content: str) -> str:
    """
    Check a message body before it goes anywhere near the database

    Returns:
        The content unchanged

    Raises:
        ValidationError: If the content is not text, or is empty once trimmed, or is too long
    """
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("Message content cannot be empty")
    if len(content) > settings.MAX_MESSAGE_LENGTH:
        raise ValidationError(
            f"Message content exceeds {settings.MAX_MESSAGE_LENGTH} characters"
        )
    return content


class MessageStore:
    """Insert and read direct messages; no update or delete exists"""

    @staticmethod
    def insert(
        db: Session,
        current_user_id: str,
        sender_id: str,
        receiver_id: str,
        content: str
    ) -> DirectMessage:
        """
        Persist a direct message

        Args:
            db: Database session
            current_user_id: Authenticated caller
            sender_id: Stated sender, must be the caller
            receiver_id: Recipient user ID
            content: Message body

        Returns:
            The stored message with server-assigned id and created_at

        Raises:
            ValidationError: Empty content or self-addressed message
            AuthorizationError: Caller is not the stated sender
            TransportError: Database failure
        """
        validate_content(content)

        if current_user_id != sender_id:
            logger.warning(
                "Rejected insert for another sender",
                extra={'user_id': current_user_id}
            )
            raise AuthorizationError("Caller does not match sender")

        if sender_id == receiver_id:
            raise ValidationError("Cannot send message to yourself")

        dm = DirectMessage(
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=content
        )
        try:
            db.add(dm)
            db.commit()
            db.refresh(dm)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Message insert failed: {e}", extra={'user_id': sender_id})
            raise TransportError("Failed to store message") from e

        logger.info(
            "Message stored",
            extra={'user_id': sender_id, 'counterpart_id': receiver_id, 'message_id': dm.id}
        )
        return dm

    @staticmethod
    def list_between(
        db: Session,
        current_user_id: str,
        user_a: str,
        user_b: str
    ) -> List[DirectMessage]:
        """
        Get every message between two users, oldest first

        Args:
            db: Database session
            current_user_id: Authenticated caller, must be one of the pair
            user_a: First user ID
            user_b: Second user ID

        Returns:
            List of messages ordered by created_at, then id

        Raises:
            AuthorizationError: Caller is not part of the pair
            TransportError: Database failure
        """
        if current_user_id not in (user_a, user_b):
            raise AuthorizationError("Caller is not part of this conversation")

        try:
            return db.query(DirectMessage).filter(
                or_(
                    and_(
                        DirectMessage.sender_id == user_a,
                        DirectMessage.receiver_id == user_b
                    ),
                    and_(
                        DirectMessage.sender_id == user_b,
                        DirectMessage.receiver_id == user_a
                    )
                )
            ).order_by(DirectMessage.created_at, DirectMessage.id).all()
        except SQLAlchemyError as e:
            logger.error(f"Message history query failed: {e}", extra={'user_id': current_user_id})
            raise TransportError("Failed to load messages") from e
