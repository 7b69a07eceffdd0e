from enum import Enum
from typing import Any, List, Optional, Union

from pydantic import BaseModel, StrictBool


class Role(str, Enum):
    ADMIN = "ADMIN"
    USER = "USER"


class UserStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


# -----------------------------
# Remote auth API
# -----------------------------
class LoginRequest(BaseModel):
    email: str
    password: str

class TokenResponse(BaseModel):
    token: str

class UserProfile(BaseModel):
    id: Union[int, str]
    username: str
    email: str
    role: Role

class VerifyFaceRequest(BaseModel):
    email: str
    image: str  # data URL: data:image/jpeg;base64,...

class VerifyFaceResponse(BaseModel):
    verified: StrictBool
    error: Optional[str] = None
    details: Optional[Any] = None

class RegisterUserRequest(BaseModel):
    username: str
    email: str
    password: str
    role: Role = Role.USER
    status: UserStatus = UserStatus.ACTIVE
    faceImage: str


# -----------------------------
# Console HTTP surface
# -----------------------------
class LoginForm(BaseModel):
    email: str
    password: str
    role: Role = Role.USER

class FaceVerifyForm(BaseModel):
    email: str

class SessionStatus(BaseModel):
    state: str
    authenticated: bool
    profile: Optional[UserProfile] = None

class CaptureStatus(BaseModel):
    state: str
    armed: bool
    detected: bool
    captured: bool
    outcome: str
    last_outcome: str = "UNVERIFIED"
    markers: List[List[int]] = []
    login_enabled: bool
    face_login_available: bool

class NoticeOut(BaseModel):
    message: str
    severity: str
    kind: Optional[str] = None
