from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from app.config import AppMode
from app.dependencies import (
    get_app_mode,
    get_history_store,
    get_profile_repository,
    get_registry,
    get_user_id,
)
from app.errors import NotAuthenticated, SessionNotFound
from app.schemas import (
    ActionResponse,
    ClassifyRequest,
    ClassifyResponse,
    FrameRequest,
    RescanRequest,
    ScanQrResponse,
    ScanRequest,
    ScanResultResponse,
    SessionRequest,
    SessionResponse,
)
from app.services.classifier import classify, navigation_url
from app.services.debounce import Action, Persist, PromptRescan
from app.services.profile_service import ProfileRepository
from app.services.qr_decoder import decode_qr_image
from app.services.scan_session import ScanSession, SessionRegistry

router = APIRouter(tags=["scanner"])


def _action_response(action: Action) -> ActionResponse:
    if isinstance(action, Persist):
        return ActionResponse(
            action="persist",
            content=action.content,
            type=action.type,
            navigation_url=navigation_url(action.content),
        )
    if isinstance(action, PromptRescan):
        return ActionResponse(action="prompt_rescan", content=action.content, type=action.type)
    return ActionResponse(action="suppress")


def _result(session: ScanSession, actions: List[Action], extra: Optional[List[str]] = None) -> ScanResultResponse:
    notices = list(extra or []) + session.drain_notices()
    return ScanResultResponse(actions=[_action_response(a) for a in actions], notices=notices)


def _owned_session(session_id: str, user_id: Optional[str], sessions: SessionRegistry) -> ScanSession:
    session = sessions.get(session_id)
    if session.user_id != user_id:
        raise SessionNotFound(session_id)
    return session


@router.post("/classify", response_model=ClassifyResponse)
async def classify_value(payload: ClassifyRequest):
    return ClassifyResponse(
        value=payload.value,
        type=classify(payload.value),
        navigation_url=navigation_url(payload.value),
    )


@router.post("/scan/qr", response_model=ScanQrResponse)
async def scan_qr(file: UploadFile = File(...)):
    """
    Decode an uploaded image and classify its content without saving it.
    found is False when the image holds no code.
    """
    decoded = decode_qr_image(await file.read())
    if decoded is None:
        return ScanQrResponse(found=False, notices=["No QR code detected"])
    return ScanQrResponse(
        found=True,
        value=decoded,
        type=classify(decoded),
        navigation_url=navigation_url(decoded),
    )


@router.post("/sessions", response_model=SessionResponse)
async def open_session(
    payload: Optional[SessionRequest] = None,
    user_id: Optional[str] = Depends(get_user_id),
    mode: AppMode = Depends(get_app_mode),
    sessions: SessionRegistry = Depends(get_registry),
    profiles: ProfileRepository = Depends(get_profile_repository),
    store=Depends(get_history_store),
):
    if not user_id:
        raise NotAuthenticated()
    client_clock = payload.client_clock if payload is not None else None
    session = sessions.open(user_id, mode, store=store, profiles=profiles, client_clock=client_clock)
    return SessionResponse(session_id=session.id, offline=mode.offline, client_clock=client_clock)


@router.post("/sessions/{session_id}/scan", response_model=ScanResultResponse)
async def submit_scan(
    session_id: str,
    payload: ScanRequest,
    user_id: Optional[str] = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
):
    session = _owned_session(session_id, user_id, sessions)
    action = session.handle_scan(payload.value, payload.timestamp_ms)
    return _result(session, [action])


@router.post("/sessions/{session_id}/frame", response_model=ScanResultResponse)
async def submit_frame(
    session_id: str,
    payload: FrameRequest,
    user_id: Optional[str] = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
):
    session = _owned_session(session_id, user_id, sessions)
    actions = session.handle_frame(payload.values, payload.timestamp_ms)
    return _result(session, actions)


@router.post("/sessions/{session_id}/image", response_model=ScanResultResponse)
async def submit_image(
    session_id: str,
    file: UploadFile = File(...),
    timestamp_ms: Optional[int] = Form(default=None),
    user_id: Optional[str] = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
):
    """
    Decode a still image picked from the gallery and gate its content
    like a camera scan.
    """
    session = _owned_session(session_id, user_id, sessions)
    decoded = decode_qr_image(await file.read())
    if decoded is None:
        return _result(session, [], ["No QR code detected"])
    return _result(session, [session.handle_scan(decoded, timestamp_ms)])


@router.post("/sessions/{session_id}/rescan", response_model=ScanResultResponse)
async def answer_rescan(
    session_id: str,
    payload: RescanRequest,
    user_id: Optional[str] = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
):
    session = _owned_session(session_id, user_id, sessions)
    if payload.accept:
        return _result(session, [session.confirm_rescan(payload.value, payload.timestamp_ms)])
    session.decline_rescan()
    return _result(session, [])


@router.delete("/sessions/{session_id}", status_code=204)
async def close_session(
    session_id: str,
    user_id: Optional[str] = Depends(get_user_id),
    sessions: SessionRegistry = Depends(get_registry),
):
    _owned_session(session_id, user_id, sessions)
    sessions.close(session_id)
