import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from app.config import settings
from app.dependencies import get_history_store, get_user_id
from app.errors import QRScannerError
from app.schemas import GenerateRequest
from app.services.classifier import ScanType
from app.services.qr_generator import render_png

logger = logging.getLogger(__name__)

router = APIRouter(tags=["generator"])


@router.post("/generate")
def generate_qr(
    payload: GenerateRequest,
    user_id: Optional[str] = Depends(get_user_id),
    store=Depends(get_history_store),
):
    """
    Render a QR code PNG and record the text in history as GENERATED.
    A failed history write is reported in the X-History-Saved header only.
    """
    if not payload.text.strip():
        raise HTTPException(status_code=422, detail="Please enter text")

    try:
        png = render_png(
            payload.text,
            size=payload.size or settings.qr_size,
            margin=settings.qr_margin if payload.margin is None else payload.margin,
            error_correction=payload.error_correction or settings.qr_error_correction,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    headers = {"X-History-Saved": "true"}
    try:
        store.save(user_id, payload.text, ScanType.GENERATED)
    except QRScannerError as e:
        logger.warning(f"Failed to save generated QR to history: {e.message}")
        headers = {"X-History-Saved": "false", "X-History-Error": e.message}

    return Response(content=png, media_type="image/png", headers=headers)
