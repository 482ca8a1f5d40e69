"""
Scan history storage.

Two backends share one interface:

- SqlHistoryStore keeps history in the shared database (online mode).
- InMemoryHistoryStore keeps it in process memory (offline mode).

Every operation is scoped to a user id; calling without one raises
NotAuthenticated. Backend errors surface as StoreWriteFailure or
StoreReadFailure carrying the backend's message.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.config import AppMode, settings
from app.database import SessionLocal
from app.errors import NotAuthenticated, StoreReadFailure, StoreWriteFailure
from app.models import ScanHistory
from app.services.classifier import ScanType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HistoryEntry:
    id: str
    user_id: str
    content: str
    type: ScanType
    timestamp_ms: int
    display_text: str


def now_ms() -> int:
    return int(time.time() * 1000)


def make_display_text(content: str, limit: Optional[int] = None) -> str:
    limit = settings.display_text_limit if limit is None else limit
    if len(content) > limit:
        return f"{content[:limit]}..."
    return content


def format_relative_time(timestamp_ms: int, now: Optional[int] = None) -> str:
    """Short age label for a history row ("Just now", "5m ago", "Jan 02, 2025")."""
    now = now_ms() if now is None else now
    diff = now - timestamp_ms

    if diff < 60_000:
        return "Just now"
    if diff < 3_600_000:
        return f"{diff // 60_000}m ago"
    if diff < 86_400_000:
        return f"{diff // 3_600_000}h ago"
    if diff < 604_800_000:
        return f"{diff // 86_400_000}d ago"
    return datetime.fromtimestamp(timestamp_ms / 1000).strftime("%b %d, %Y")


def _require_user(user_id: Optional[str], action: str) -> str:
    if not user_id:
        logger.error(f"Cannot {action}: user not authenticated")
        raise NotAuthenticated()
    return user_id


def _new_entry(user_id: str, content: str, scan_type: ScanType, timestamp_ms: Optional[int]) -> HistoryEntry:
    return HistoryEntry(
        id=uuid.uuid4().hex,
        user_id=user_id,
        content=content,
        type=ScanType(scan_type),
        timestamp_ms=now_ms() if timestamp_ms is None else timestamp_ms,
        display_text=make_display_text(content),
    )


class SqlHistoryStore:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _session(self) -> Session:
        return self.session_factory()

    def save(
        self,
        user_id: Optional[str],
        content: str,
        scan_type: ScanType,
        timestamp_ms: Optional[int] = None,
    ) -> HistoryEntry:
        user_id = _require_user(user_id, "save scan")
        entry = _new_entry(user_id, content, scan_type, timestamp_ms)
        logger.debug(f"Saving scan {entry.id} for user {user_id}, type {entry.type.value}")

        db = self._session()
        try:
            db.add(
                ScanHistory(
                    id=entry.id,
                    user_id=entry.user_id,
                    content=entry.content,
                    type=entry.type.value,
                    timestamp_ms=entry.timestamp_ms,
                    display_text=entry.display_text,
                )
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to save scan for user {user_id}: {e}")
            raise StoreWriteFailure(str(e)) from e
        finally:
            db.close()

        logger.info(f"Saved scan {entry.id} for user {user_id}")
        return entry

    def list(self, user_id: Optional[str]) -> List[HistoryEntry]:
        user_id = _require_user(user_id, "list scans")

        db = self._session()
        try:
            rows = (
                db.query(ScanHistory)
                .filter(ScanHistory.user_id == user_id)
                .order_by(ScanHistory.timestamp_ms.desc())
                .all()
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch scans for user {user_id}: {e}")
            raise StoreReadFailure(str(e)) from e
        finally:
            db.close()

        logger.debug(f"Fetched {len(rows)} scans for user {user_id}")
        return [
            HistoryEntry(
                id=row.id,
                user_id=row.user_id,
                content=row.content,
                type=ScanType(row.type),
                timestamp_ms=row.timestamp_ms,
                display_text=row.display_text,
            )
            for row in rows
        ]

    def delete(self, user_id: Optional[str], entry_id: str) -> bool:
        """Delete one entry; returns False when it does not exist for this user."""
        user_id = _require_user(user_id, "delete scan")

        db = self._session()
        try:
            deleted = (
                db.query(ScanHistory)
                .filter(ScanHistory.user_id == user_id, ScanHistory.id == entry_id)
                .delete()
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete scan {entry_id}: {e}")
            raise StoreWriteFailure(str(e)) from e
        finally:
            db.close()

        logger.info(f"Deleted scan {entry_id} for user {user_id}")
        return deleted > 0

    def delete_all(self, user_id: Optional[str]) -> int:
        user_id = _require_user(user_id, "delete all scans")

        db = self._session()
        try:
            deleted = db.query(ScanHistory).filter(ScanHistory.user_id == user_id).delete()
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete all scans for user {user_id}: {e}")
            raise StoreWriteFailure(str(e)) from e
        finally:
            db.close()

        logger.info(f"Deleted {deleted} scans for user {user_id}")
        return deleted


class InMemoryHistoryStore:
    def __init__(self):
        self._entries: Dict[str, Dict[str, HistoryEntry]] = {}
        self._lock = threading.Lock()

    def save(
        self,
        user_id: Optional[str],
        content: str,
        scan_type: ScanType,
        timestamp_ms: Optional[int] = None,
    ) -> HistoryEntry:
        user_id = _require_user(user_id, "save scan")
        entry = _new_entry(user_id, content, scan_type, timestamp_ms)
        with self._lock:
            self._entries.setdefault(user_id, {})[entry.id] = entry
        logger.debug(f"Saved scan {entry.id} locally for user {user_id}")
        return entry

    def list(self, user_id: Optional[str]) -> List[HistoryEntry]:
        user_id = _require_user(user_id, "list scans")
        with self._lock:
            entries = list(self._entries.get(user_id, {}).values())
        return sorted(entries, key=lambda e: e.timestamp_ms, reverse=True)

    def delete(self, user_id: Optional[str], entry_id: str) -> bool:
        user_id = _require_user(user_id, "delete scan")
        with self._lock:
            return self._entries.get(user_id, {}).pop(entry_id, None) is not None

    def delete_all(self, user_id: Optional[str]) -> int:
        user_id = _require_user(user_id, "delete all scans")
        with self._lock:
            return len(self._entries.pop(user_id, {}))


_offline_store = InMemoryHistoryStore()


def build_history_store(mode: AppMode):
    """Pick the history backend for a session's mode."""
    if mode.offline:
        return _offline_store
    return SqlHistoryStore(SessionLocal)
