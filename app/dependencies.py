from typing import Optional

from fastapi import Depends, Header

from app.config import AppMode, load_app_mode
from app.database import SessionLocal
from app.services.history_store import build_history_store
from app.services.profile_service import ProfileRepository
from app.services.scan_session import SessionRegistry, registry


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> Optional[str]:
    """
    Caller identity, as established by the authentication layer in front of
    this service. Missing identity is rejected by the stores themselves.
    """
    return x_user_id or None


def get_app_mode() -> AppMode:
    return load_app_mode()


def get_history_store(mode: AppMode = Depends(get_app_mode)):
    return build_history_store(mode)


def get_profile_repository() -> ProfileRepository:
    return ProfileRepository(SessionLocal)


def get_registry() -> SessionRegistry:
    return registry
