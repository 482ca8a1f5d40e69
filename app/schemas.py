from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.services.classifier import ScanType


class ClassifyRequest(BaseModel):
    value: str


class ClassifyResponse(BaseModel):
    value: str
    type: ScanType
    navigation_url: Optional[str] = None


class SessionRequest(BaseModel):
    # True: every call carries timestamp_ms. False: the server clock is used.
    # Left unset, the first scan decides.
    client_clock: Optional[bool] = None


class SessionResponse(BaseModel):
    session_id: str
    offline: bool
    client_clock: Optional[bool] = None


class ScanQrResponse(BaseModel):
    found: bool
    value: Optional[str] = None
    type: Optional[ScanType] = None
    navigation_url: Optional[str] = None
    notices: List[str] = Field(default_factory=list)


class ScanRequest(BaseModel):
    value: str
    timestamp_ms: Optional[int] = None


class FrameRequest(BaseModel):
    values: List[str] = Field(default_factory=list)
    timestamp_ms: Optional[int] = None


class RescanRequest(BaseModel):
    value: str
    accept: bool
    timestamp_ms: Optional[int] = None


class ActionResponse(BaseModel):
    action: str  # 'persist', 'suppress', 'prompt_rescan'
    content: Optional[str] = None
    type: Optional[ScanType] = None
    navigation_url: Optional[str] = None


class ScanResultResponse(BaseModel):
    actions: List[ActionResponse]
    notices: List[str] = Field(default_factory=list)


class HistoryEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    content: str
    type: ScanType
    timestamp_ms: int
    display_text: str
    age: str


class DeleteAllResponse(BaseModel):
    deleted: int


class GenerateRequest(BaseModel):
    text: str
    size: Optional[int] = Field(default=None, ge=21, le=4096)
    margin: Optional[int] = Field(default=None, ge=0, le=16)
    error_correction: Optional[str] = Field(default=None, pattern="^[LMQHlmqh]$")


class ProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uid: str
    email: str
    display_name: str
    photo_base64: str
    created_at_ms: int
    total_scans: int


class ProfileUpdateRequest(BaseModel):
    display_name: str
    email: Optional[str] = None


class ModeRequest(BaseModel):
    offline: bool


class ModeResponse(BaseModel):
    offline: bool
