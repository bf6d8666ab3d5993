"""
Conversation aggregator - "who have I talked to, and what was said last"
"""
import logging
from typing import List, Optional

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError, TransportError, ValidationError
from app.models import DirectMessage, Profile
from app.schemas.conversation import Conversation
from app.services.profile_service import ProfileService

logger = logging.getLogger(__name__)


def _conversation(
    other_user_id: str,
    profile: Optional[Profile],
    last_message: Optional[str] = None,
    last_message_at=None
) -> Conversation:
    return Conversation(
        other_user_id=other_user_id,
        other_user_name=profile.full_name if profile else other_user_id,
        other_user_avatar=profile.avatar_url if profile else None,
        last_message=last_message,
        last_message_at=last_message_at,
        is_placeholder=last_message_at is None,
    )


class ConversationAggregator:
    """Read-side queries deriving conversations from the message table"""

    @staticmethod
    def list_conversations(db: Session, current_user_id: str) -> List[Conversation]:
        """
        Get one entry per counterpart, most recent conversation first

        The latest message per counterpart is picked in SQL with a
        row_number() window partitioned on the counterpart expression.

        Args:
            db: Database session
            current_user_id: Authenticated caller

        Returns:
            List of conversations ordered by last_message_at descending

        Raises:
            TransportError: Database failure
        """
        counterpart = case(
            (DirectMessage.sender_id == current_user_id, DirectMessage.receiver_id),
            else_=DirectMessage.sender_id
        )
        rank = func.row_number().over(
            partition_by=counterpart,
            order_by=(DirectMessage.created_at.desc(), DirectMessage.id.desc())
        )
        ranked = select(
            counterpart.label("other_user_id"),
            DirectMessage.id.label("message_id"),
            DirectMessage.content.label("content"),
            DirectMessage.created_at.label("created_at"),
            rank.label("rank"),
        ).where(
            or_(
                DirectMessage.sender_id == current_user_id,
                DirectMessage.receiver_id == current_user_id
            )
        ).subquery()

        query = select(
            ranked.c.other_user_id,
            ranked.c.content,
            ranked.c.created_at,
        ).where(ranked.c.rank == 1).order_by(
            ranked.c.created_at.desc(),
            ranked.c.message_id.desc()
        )

        try:
            rows = db.execute(query).all()
            profiles = ProfileService.get_many(db, (row.other_user_id for row in rows))
        except SQLAlchemyError as e:
            logger.error(f"Conversation list query failed: {e}", extra={'user_id': current_user_id})
            raise TransportError("Failed to load conversations") from e

        return [
            _conversation(
                row.other_user_id,
                profiles.get(row.other_user_id),
                last_message=row.content,
                last_message_at=row.created_at,
            )
            for row in rows
        ]

    @staticmethod
    def latest_between(db: Session, current_user_id: str, other_user_id: str) -> Optional[DirectMessage]:
        """Most recent message of the pair, or None when they never talked"""
        try:
            return db.query(DirectMessage).filter(
                or_(
                    and_(
                        DirectMessage.sender_id == current_user_id,
                        DirectMessage.receiver_id == other_user_id
                    ),
                    and_(
                        DirectMessage.sender_id == other_user_id,
                        DirectMessage.receiver_id == current_user_id
                    )
                )
            ).order_by(DirectMessage.created_at.desc(), DirectMessage.id.desc()).first()
        except SQLAlchemyError as e:
            raise TransportError("Failed to load conversation") from e

    @staticmethod
    def open_conversation(db: Session, current_user_id: str, other_user_id: str) -> Conversation:
        """
        Get the conversation with one counterpart, or a placeholder for a new one

        Args:
            db: Database session
            current_user_id: Authenticated caller
            other_user_id: Counterpart to open

        Returns:
            Existing conversation, or a placeholder built from the profile

        Raises:
            ValidationError: Caller tried to open a conversation with themselves
            NotFoundError: Counterpart has no messages and no profile
            TransportError: Database failure
        """
        if other_user_id == current_user_id:
            raise ValidationError("Cannot open a conversation with yourself")

        latest = ConversationAggregator.latest_between(db, current_user_id, other_user_id)
        profile = ProfileService.get_by_user_id(db, other_user_id)

        if latest is None and profile is None:
            raise NotFoundError(f"User '{other_user_id}' not found")

        if latest is None:
            logger.info(
                "Opening placeholder conversation",
                extra={'user_id': current_user_id, 'counterpart_id': other_user_id}
            )
            return _conversation(other_user_id, profile)

        return _conversation(
            other_user_id,
            profile,
            last_message=latest.content,
            last_message_at=latest.created_at,
        )
