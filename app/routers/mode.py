from fastapi import APIRouter, Depends

from app.config import AppMode, save_app_mode
from app.dependencies import get_app_mode
from app.schemas import ModeRequest, ModeResponse

router = APIRouter(prefix="/mode", tags=["mode"])


@router.get("", response_model=ModeResponse)
def get_mode(mode: AppMode = Depends(get_app_mode)):
    return ModeResponse(offline=mode.offline)


@router.put("", response_model=ModeResponse)
def set_mode(payload: ModeRequest):
    """
    Persist the online/offline choice. Sessions already open keep the mode
    they started with.
    """
    mode = AppMode(offline=payload.offline)
    save_app_mode(mode)
    return ModeResponse(offline=mode.offline)
