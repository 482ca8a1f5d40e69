from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException

from app.dependencies import get_history_store, get_user_id
from app.schemas import DeleteAllResponse, HistoryEntryResponse
from app.services.history_store import format_relative_time

router = APIRouter(
    prefix="/history",
    tags=["history"]
)


@router.get("", response_model=List[HistoryEntryResponse])
def get_user_history(user_id: Optional[str] = Depends(get_user_id), store=Depends(get_history_store)):
    entries = store.list(user_id)
    return [
        HistoryEntryResponse(
            id=entry.id,
            user_id=entry.user_id,
            content=entry.content,
            type=entry.type,
            timestamp_ms=entry.timestamp_ms,
            display_text=entry.display_text,
            age=format_relative_time(entry.timestamp_ms),
        )
        for entry in entries
    ]


@router.delete("/{entry_id}", status_code=204)
def delete_scan(entry_id: str, user_id: Optional[str] = Depends(get_user_id), store=Depends(get_history_store)):
    if not store.delete(user_id, entry_id):
        raise HTTPException(status_code=404, detail="Scan not found")


@router.delete("", response_model=DeleteAllResponse)
def delete_all_scans(user_id: Optional[str] = Depends(get_user_id), store=Depends(get_history_store)):
    return DeleteAllResponse(deleted=store.delete_all(user_id))
