import logging
from typing import Callable, Optional

from .capture import CaptureState, FaceCaptureFlow
from .errors import AuthTransportError, CredentialRejected
from .schemas import Role
from .session import SessionGuard
from .utils.notifications import Notifier

logger = logging.getLogger(__name__)

FACE_REQUIRED_MESSAGE = "Verify your face before logging in."
FACE_UNAVAILABLE_MESSAGE = "Face verification is unavailable on this device. Only administrators can log in."
FACE_EMAIL_MISMATCH_MESSAGE = "The verified face belongs to a different e-mail. Verify again with this account."


def requires_face(role: Optional[Role]) -> bool:
    """Every account type except administrators must pass face verification."""
    return role is not Role.ADMIN


class LoginScreen:
    """
    Login view state: owns at most one :class:`FaceCaptureFlow` and decides
    whether the login action may run.
    """

    def __init__(self, guard: SessionGuard, flow_factory: Callable[[], FaceCaptureFlow], notifier: Notifier):
        self.guard = guard
        self.notifier = notifier
        self._flow_factory = flow_factory
        self._flow: Optional[FaceCaptureFlow] = None
        self.face_login_available = True

    @property
    def flow(self) -> Optional[FaceCaptureFlow]:
        return self._flow

    @property
    def face_verified(self) -> bool:
        return self._flow is not None and self._flow.login_enabled

    def face_verified_for(self, email: str) -> bool:
        return self._flow is not None and self._flow.verified_for(email)

    def can_submit(self, role: Role, email: Optional[str] = None) -> bool:
        if not requires_face(role):
            return True
        if not (self.face_login_available and self.face_verified):
            return False
        return email is None or self.face_verified_for(email)

    # -----------------------------
    # Face verification
    # -----------------------------
    async def start_face_verification(self) -> bool:
        if not self.face_login_available:
            self.notifier.notify(FACE_UNAVAILABLE_MESSAGE, severity="error", kind="face_unavailable")
            return False
        if self._flow is not None and self._flow.state is not CaptureState.IDLE:
            return False
        if self._flow is None:
            self._flow = self._flow_factory()
        started = await self._flow.start()
        if not started and self._flow is not None and self._flow.state is CaptureState.ERROR:
            # model or camera failure: face-gated login is off until the screen is rebuilt
            self.face_login_available = False
        return started

    def capture_face(self) -> bool:
        return self._flow is not None and self._flow.capture()

    async def verify_face(self, email: str) -> Optional[CaptureState]:
        if self._flow is None:
            return None
        return await self._flow.verify(email)

    async def retry_face(self) -> bool:
        return self._flow is not None and await self._flow.retry()

    async def cancel_face_verification(self):
        flow, self._flow = self._flow, None
        if flow is not None:
            await flow.aclose()

    # -----------------------------
    # Submit
    # -----------------------------
    async def submit(self, email: str, password: str, role: Role = Role.USER) -> bool:
        """
        Log in. ``role`` is what the form claims; the face gate is enforced
        again against the role of the profile the server returns.
        """
        if not self.can_submit(role, email):
            self._refuse(email)
            return False
        before = self.notifier.current
        try:
            ok = await self.guard.login(email, password)
        except AuthTransportError as e:
            logger.error("Login request failed: %s", e)
            self.notifier.notify(AuthTransportError.default_message, severity="error", kind="auth_transport")
            return False
        if not ok:
            # the guard already notified if the new session expired during the profile fetch
            if self.notifier.current is before:
                self.notifier.notify(CredentialRejected.default_message, severity="error", kind="credential_rejected")
            return False

        profile = self.guard.profile
        account_role = profile.role if profile is not None else None
        if requires_face(account_role) and not (self.face_login_available and self.face_verified_for(email)):
            logger.warning("Account role %s requires face verification, dropping the new session", account_role)
            self.guard.logout()
            self._refuse(email)
            return False

        await self.cancel_face_verification()
        self.notifier.notify("Logged in.", severity="success", kind="login")
        return True

    def _refuse(self, email: str):
        if not self.face_login_available:
            message = FACE_UNAVAILABLE_MESSAGE
        elif self.face_verified and not self.face_verified_for(email):
            message = FACE_EMAIL_MISMATCH_MESSAGE
        else:
            message = FACE_REQUIRED_MESSAGE
        self.notifier.notify(message, severity="warning", kind="face_required")

    async def aclose(self):
        await self.cancel_face_verification()
