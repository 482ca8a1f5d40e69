from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from app.config import clear_app_mode, settings
from app.dependencies import get_profile_repository, get_user_id
from app.errors import NotAuthenticated
from app.schemas import ProfileResponse, ProfileUpdateRequest
from app.services.profile_service import ProfileRepository, image_to_base64

router = APIRouter(prefix="/profile", tags=["profile"])


@router.get("", response_model=ProfileResponse)
def get_profile(
    user_id: Optional[str] = Depends(get_user_id),
    profiles: ProfileRepository = Depends(get_profile_repository),
):
    profile = profiles.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return profile


@router.put("", response_model=ProfileResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    user_id: Optional[str] = Depends(get_user_id),
    profiles: ProfileRepository = Depends(get_profile_repository),
):
    try:
        return profiles.update_profile(user_id, payload.display_name, email=payload.email)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.post("/photo", response_model=ProfileResponse)
async def upload_photo(
    file: UploadFile = File(...),
    user_id: Optional[str] = Depends(get_user_id),
    profiles: ProfileRepository = Depends(get_profile_repository),
):
    """
    Store a profile picture as compressed base64 JPEG.
    """
    if not user_id:
        raise NotAuthenticated()
    photo = image_to_base64(await file.read(), max_size_kb=settings.profile_photo_max_kb)

    current = profiles.get_profile(user_id)
    display_name = current.display_name if current and current.display_name else user_id
    return profiles.update_profile(user_id, display_name, photo_base64=photo)


@router.post("/logout", status_code=204)
def logout(user_id: Optional[str] = Depends(get_user_id)):
    """Forget the stored online/offline choice; the next session starts from the default."""
    if not user_id:
        raise NotAuthenticated()
    clear_app_mode()
