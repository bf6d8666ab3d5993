"""
Profile service - display data for identity-provider users
"""
from typing import Dict, Iterable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import TransportError
from app.models import Profile
from app.schemas.profile import ProfileUpdate


class ProfileService:
    """Service for profile operations"""

    @staticmethod
    def get_by_user_id(db: Session, user_id: str) -> Optional[Profile]:
        """Get profile by user ID"""
        try:
            return db.query(Profile).filter(Profile.user_id == user_id).first()
        except SQLAlchemyError as e:
            raise TransportError("Failed to load profile") from e

    @staticmethod
    def get_many(db: Session, user_ids: Iterable[str]) -> Dict[str, Profile]:
        """Get profiles for a set of user IDs, keyed by user ID"""
        user_ids = list(set(user_ids))
        if not user_ids:
            return {}
        try:
            rows = db.query(Profile).filter(Profile.user_id.in_(user_ids)).all()
        except SQLAlchemyError as e:
            raise TransportError("Failed to load profiles") from e
        return {p.user_id: p for p in rows}

    @staticmethod
    def upsert(db: Session, user_id: str, data: ProfileUpdate) -> Profile:
        """
        Create or update a profile

        Args:
            db: Database session
            user_id: Owner of the profile (the authenticated caller)
            data: New profile fields

        Returns:
            Stored profile
        """
        try:
            profile = db.query(Profile).filter(Profile.user_id == user_id).first()
            if profile is None:
                profile = Profile(user_id=user_id)
                db.add(profile)

            profile.full_name = data.full_name
            profile.avatar_url = data.avatar_url
            profile.role = data.role
            db.commit()
            db.refresh(profile)
        except SQLAlchemyError as e:
            db.rollback()
            raise TransportError("Failed to save profile") from e

        return profile

    @staticmethod
    def search(
        db: Session,
        search_query: str,
        exclude_user_id: Optional[str] = None,
        limit: int = 20
    ) -> List[Profile]:
        """
        Search profiles by name

        Args:
            db: Database session
            search_query: Search string
            exclude_user_id: User to leave out (usually the caller)
            limit: Maximum results

        Returns:
            List of matching profiles
        """
        query = db.query(Profile).filter(
            Profile.full_name.ilike(f"%{search_query}%")
        )

        if exclude_user_id:
            query = query.filter(Profile.user_id != exclude_user_id)

        try:
            return query.order_by(Profile.full_name).limit(limit).all()
        except SQLAlchemyError as e:
            raise TransportError("Failed to search profiles") from e
