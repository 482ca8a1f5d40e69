import base64
import binascii
import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from app.errors import DecodeFailure, NotAuthenticated, StoreReadFailure, StoreWriteFailure
from app.models import UserProfile
from app.services.history_store import now_ms

logger = logging.getLogger(__name__)


@dataclass
class Profile:
    uid: str
    email: str = ""
    display_name: str = ""
    photo_base64: str = ""
    created_at_ms: int = 0
    total_scans: int = 0


def _to_profile(row: UserProfile) -> Profile:
    return Profile(
        uid=row.uid,
        email=row.email or "",
        display_name=row.display_name or "",
        photo_base64=row.photo_base64 or "",
        created_at_ms=row.created_at_ms,
        total_scans=row.total_scans or 0,
    )


class ProfileRepository:
    """
    Per-user profile rows. All methods require the caller's user id.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def get_profile(self, user_id: Optional[str]) -> Optional[Profile]:
        if not user_id:
            raise NotAuthenticated()

        db = self.session_factory()
        try:
            row = db.get(UserProfile, user_id)
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch profile for user {user_id}: {e}")
            raise StoreReadFailure(str(e)) from e
        finally:
            db.close()

        if row is None:
            logger.debug(f"No profile found for user {user_id}")
            return None
        return _to_profile(row)

    def update_profile(
        self,
        user_id: Optional[str],
        display_name: str,
        email: Optional[str] = None,
        photo_base64: Optional[str] = None,
    ) -> Profile:
        """
        Create or update the caller's profile.
        Fields passed as None keep their stored value.
        """
        if not user_id:
            raise NotAuthenticated()
        display_name = display_name.strip()
        if not display_name:
            raise ValueError("Display name cannot be empty")

        db = self.session_factory()
        try:
            row = db.get(UserProfile, user_id)
            if row is None:
                row = UserProfile(uid=user_id, created_at_ms=now_ms(), total_scans=0)
                db.add(row)
            row.display_name = display_name
            if email is not None:
                row.email = email
            if photo_base64 is not None:
                row.photo_base64 = photo_base64
            db.commit()
            db.refresh(row)
            profile = _to_profile(row)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update profile for user {user_id}: {e}")
            raise StoreWriteFailure(str(e)) from e
        finally:
            db.close()

        logger.info(f"Profile updated for user {user_id}")
        return profile

    def increment_scan_count(self, user_id: Optional[str]) -> int:
        if not user_id:
            raise NotAuthenticated()

        db = self.session_factory()
        try:
            row = db.get(UserProfile, user_id)
            if row is None:
                row = UserProfile(uid=user_id, created_at_ms=now_ms(), total_scans=0)
                db.add(row)
            row.total_scans = (row.total_scans or 0) + 1
            db.commit()
            total = row.total_scans
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to increment scan count for user {user_id}: {e}")
            raise StoreWriteFailure(str(e)) from e
        finally:
            db.close()

        logger.debug(f"Scan count for user {user_id} is now {total}")
        return total


def image_to_base64(image_bytes: bytes, max_size_kb: int = 200) -> str:
    """
    Re-encode an image as base64 JPEG, lowering quality in steps of 10
    until it fits in max_size_kb or quality reaches 10.
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img = img.convert("RGB")
    except (UnidentifiedImageError, OSError) as e:
        raise DecodeFailure(f"Unsupported profile image: {e}") from e

    quality = 100
    while True:
        buffer = io.BytesIO()
        img.save(buffer, format="JPEG", quality=quality)
        encoded = base64.b64encode(buffer.getvalue()).decode("ascii")
        size_kb = len(encoded) // 1024
        logger.debug(f"Compression quality: {quality}%, size: {size_kb} KB")
        if size_kb <= max_size_kb or quality - 10 <= 10:
            break
        quality -= 10

    return encoded


def base64_to_image(encoded: str) -> Optional[Image.Image]:
    if not encoded:
        logger.warning("Empty base64 string provided")
        return None
    try:
        data = base64.b64decode(encoded)
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return img.copy()
    except (binascii.Error, UnidentifiedImageError, OSError) as e:
        logger.error(f"Failed to decode image from base64: {e}")
        return None
