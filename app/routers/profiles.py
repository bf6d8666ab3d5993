"""
Profile endpoints
"""
from fastapi import APIRouter, Body, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.profile import ProfileListItem, ProfileResponse, ProfileUpdate
from app.security import get_current_user_id
from app.services import ProfileService

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.put("/me", response_model=ProfileResponse)
def upsert_my_profile(
    profile: ProfileUpdate = Body(...),
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Create or update the caller's profile
    Request body:
    {
        "full_name": "Asha Rao",
        "avatar_url": "https://...",
        "role": "student"
    }
    """
    return ProfileService.upsert(db, current_user_id, profile)


@router.get("/me", response_model=ProfileResponse)
def get_my_profile(
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get the caller's profile"""
    profile = ProfileService.get_by_user_id(db, current_user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.get("/search")
def search_profiles(
    query: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Search profiles by name, excluding the caller"""
    profiles = ProfileService.search(db, search_query=query, exclude_user_id=current_user_id)

    return {
        "profiles": [ProfileListItem.model_validate(p) for p in profiles],
        "count": len(profiles)
    }


@router.get("/{user_id}", response_model=ProfileResponse)
def get_profile(
    user_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Get a specific profile"""
    profile = ProfileService.get_by_user_id(db, user_id)
    if not profile:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile
