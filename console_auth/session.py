"""Session guard: the single holder of the bearer token and the user profile."""
import asyncio
import logging
import time
from enum import Enum
from typing import Callable, Optional

from . import settings
from .errors import AuthTransportError, CredentialRejected, SessionExpired
from .schemas import UserProfile
from .utils.api import ApiClient
from .utils.db import TokenStore
from .utils.notifications import Notifier
from .utils.token import is_token_expired

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"
    EXPIRED = "EXPIRED"


class SessionGuard:
    """
    Owns the credential and the profile for the lifetime of the process.

    Every change of the token goes through :meth:`_set_token`, which keeps
    the in-memory copy, the durable copy and the outbound header in step.
    A token change re-runs the expiry check and refetches the profile.
    """

    def __init__(
        self,
        api: ApiClient,
        store: TokenStore,
        *,
        notifier: Optional[Notifier] = None,
        expiry_check_interval: float = settings.EXPIRY_CHECK_INTERVAL,
        clock: Callable[[], float] = time.time,
    ):
        self._api = api
        self._store = store
        self._notifier = notifier
        self._interval = expiry_check_interval
        self._clock = clock

        self._token: Optional[str] = None
        self._profile: Optional[UserProfile] = None
        self._state = SessionState.ANONYMOUS
        self._expiry_task: Optional[asyncio.Task] = None

    @property
    def token(self) -> Optional[str]:
        return self._token

    @property
    def profile(self) -> Optional[UserProfile]:
        return self._profile

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_authenticated(self) -> bool:
        return self._state is SessionState.AUTHENTICATED and not self.is_expired()

    def is_expired(self) -> bool:
        return is_token_expired(self._token, now=self._clock())

    # -----------------------------
    # Lifecycle
    # -----------------------------
    async def start(self):
        token = self._store.load()
        if token:
            logger.info("Restoring stored session")
            self._token = token
            self._api.set_auth_token(token)
            self._state = SessionState.AUTHENTICATED
            await self._on_token_changed()
        if self._expiry_task is None or self._expiry_task.done():
            self._expiry_task = asyncio.create_task(self._expiry_loop(), name="session-expiry-check")

    async def stop(self):
        task, self._expiry_task = self._expiry_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _expiry_loop(self):
        while True:
            await asyncio.sleep(self._interval)
            self.check_expiry()

    # -----------------------------
    # Operations
    # -----------------------------
    async def login(self, email: str, password: str) -> bool:
        """
        Exchange credentials for a token.

        Returns False when the endpoint rejects the credentials or when the
        new session does not survive the profile refresh. Transport failures
        raise :class:`AuthTransportError`.
        """
        previous = self._state
        self._state = SessionState.AUTHENTICATING
        try:
            token = await self._api.login(email, password)
        except CredentialRejected as e:
            logger.info("Login rejected: %s", e)
            self._state = SessionState.ANONYMOUS if self._token is None else previous
            return False
        except AuthTransportError:
            self._state = SessionState.ANONYMOUS if self._token is None else previous
            raise

        self._set_token(token)
        self._state = SessionState.AUTHENTICATED
        logger.info("Login accepted")
        await self._on_token_changed()
        return self._state is SessionState.AUTHENTICATED

    def logout(self):
        if self._token is None and self._profile is None and self._state is SessionState.ANONYMOUS:
            return
        self._set_token(None)
        self._profile = None
        self._state = SessionState.ANONYMOUS
        logger.info("Logged out")

    def check_expiry(self) -> bool:
        """Run one expiry check. Returns True when it ended the session."""
        if self._token is None:
            return False
        if not self.is_expired():
            return False
        self._expire("token expired")
        return True

    async def refresh_profile(self):
        token = self._token
        if token is None:
            return
        try:
            profile = await self._api.me()
        except (SessionExpired, AuthTransportError) as e:
            if self._token == token:
                self._expire(f"profile fetch failed: {e}")
            return
        if self._token != token:
            logger.debug("Discarding profile fetched for a replaced token")
            return
        self._profile = profile
        self._state = SessionState.AUTHENTICATED
        logger.info("Session profile loaded for %s (%s)", profile.username, profile.role.value)

    # -----------------------------
    # Internals
    # -----------------------------
    def _set_token(self, token: Optional[str]):
        self._token = token
        if token:
            self._store.save(token)
        else:
            self._store.clear()
        self._api.set_auth_token(token)

    async def _on_token_changed(self):
        self._profile = None
        if self.check_expiry():
            return
        await self.refresh_profile()

    def _expire(self, reason: str):
        logger.warning("Session expired: %s", reason)
        self._state = SessionState.EXPIRED
        self.logout()
        if self._notifier is not None:
            self._notifier.notify(SessionExpired.default_message, severity="warning", kind="session_expired")
