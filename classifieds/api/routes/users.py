from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException

from classifieds.api.dependencies import get_profiles
from classifieds.api.schemas.users import UserProfileResponse
from classifieds.application.use_cases.get_user_profile import GetUserProfile

router = APIRouter(prefix="/users", tags=["users"])


@router.get("/{user_id}", response_model=UserProfileResponse)
async def get_user_profile(
    user_id: UUID,
    profiles: GetUserProfile = Depends(get_profiles),
) -> UserProfileResponse:
    """Public profile with live listing counts."""
    profile = await profiles.execute(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="User not found")
    return UserProfileResponse.model_validate(profile)
