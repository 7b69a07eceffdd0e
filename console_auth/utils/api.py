# api.py
import asyncio
import logging
from typing import Optional

import requests
from pydantic import ValidationError

from .. import settings
from ..errors import (
    AuthTransportError,
    CredentialRejected,
    FaceVerificationTransportError,
    SessionExpired,
)
from ..schemas import (
    LoginRequest,
    RegisterUserRequest,
    TokenResponse,
    UserProfile,
    VerifyFaceRequest,
    VerifyFaceResponse,
)

logger = logging.getLogger(__name__)


class ApiClient:
    """
    Thin client for the console's auth endpoints.

    Blocking ``requests`` calls run in a worker thread so callers on the
    event loop can await them. The ``Authorization`` default header is only
    ever changed through :meth:`set_auth_token`.
    """

    def __init__(
        self,
        base_url: str = settings.API_BASE_URL,
        timeout: float = settings.REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def set_auth_token(self, token: Optional[str]):
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"
        else:
            self.session.headers.pop("Authorization", None)

    @property
    def auth_header(self) -> Optional[str]:
        return self.session.headers.get("Authorization")

    def _request(self, method: str, path: str, error_cls=AuthTransportError, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise error_cls(log_message=f"{method} {path} failed: {e}") from e

    async def _call(self, method: str, path: str, **kwargs) -> requests.Response:
        return await asyncio.to_thread(self._request, method, path, **kwargs)

    # -----------------------------
    # POST /auth/login
    # -----------------------------
    async def login(self, email: str, password: str) -> str:
        body = LoginRequest(email=email, password=password).model_dump()
        r = await self._call("POST", "/auth/login", json=body)
        if 400 <= r.status_code < 500:
            raise CredentialRejected(log_message=f"login rejected with HTTP {r.status_code}")
        if r.status_code != 200:
            raise AuthTransportError(log_message=f"login failed with HTTP {r.status_code}")
        try:
            return TokenResponse.model_validate(r.json()).token
        except (ValueError, ValidationError) as e:
            raise AuthTransportError(log_message=f"malformed login response: {e}") from e

    # -----------------------------
    # GET /auth/me
    # -----------------------------
    async def me(self) -> UserProfile:
        r = await self._call("GET", "/auth/me")
        if r.status_code in (401, 403):
            raise SessionExpired(log_message=f"profile fetch rejected with HTTP {r.status_code}")
        if r.status_code != 200:
            raise AuthTransportError(log_message=f"profile fetch failed with HTTP {r.status_code}")
        try:
            return UserProfile.model_validate(r.json())
        except (ValueError, ValidationError) as e:
            raise AuthTransportError(log_message=f"malformed profile response: {e}") from e

    # -----------------------------
    # POST /auth/verify-face
    # -----------------------------
    async def verify_face(self, email: str, image: str) -> VerifyFaceResponse:
        body = VerifyFaceRequest(email=email, image=image).model_dump()
        r = await self._call("POST", "/auth/verify-face", error_cls=FaceVerificationTransportError, json=body)
        if r.status_code != 200:
            raise FaceVerificationTransportError(log_message=f"verify-face failed with HTTP {r.status_code}")
        try:
            return VerifyFaceResponse.model_validate(r.json())
        except (ValueError, ValidationError) as e:
            raise FaceVerificationTransportError(log_message=f"malformed verify-face response: {e}") from e

    # -----------------------------
    # POST /auth/register/user
    # -----------------------------
    async def register_user(self, request: RegisterUserRequest) -> dict:
        r = await self._call("POST", "/auth/register/user", json=request.model_dump(mode="json"))
        if r.status_code not in (200, 201):
            raise AuthTransportError(
                "Could not create the user.",
                log_message=f"register failed with HTTP {r.status_code}",
            )
        try:
            return r.json()
        except ValueError:
            return {}
