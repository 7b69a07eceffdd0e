import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional

from . import settings
from .schemas import Role, UserProfile
from .session import SessionGuard

logger = logging.getLogger(__name__)


class Capability(str, Enum):
    VIEW_CONSOLE = "VIEW_CONSOLE"
    MANAGE_USERS = "MANAGE_USERS"


ROLE_CAPABILITIES: Dict[Role, FrozenSet[Capability]] = {
    Role.ADMIN: frozenset({Capability.VIEW_CONSOLE, Capability.MANAGE_USERS}),
    Role.USER: frozenset({Capability.VIEW_CONSOLE}),
}

# Capability behind the "requires elevated role" flag
ELEVATED = Capability.MANAGE_USERS


def has_capability(profile: Optional[UserProfile], capability: Capability) -> bool:
    if profile is None:
        return False
    return capability in ROLE_CAPABILITIES.get(profile.role, frozenset())


class GateOutcome(str, Enum):
    RENDER = "RENDER"
    REDIRECT_LOGIN = "REDIRECT_LOGIN"
    REDIRECT_HOME = "REDIRECT_HOME"


@dataclass(frozen=True)
class GateDecision:
    outcome: GateOutcome
    location: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.outcome is GateOutcome.RENDER


class RouteGate:
    """
    Decides whether a protected view may render.

    Reads the guard on every call and never changes it: expiring the
    session is the guard's own job.
    """

    def __init__(self, guard: SessionGuard, login_path: str = settings.LOGIN_PATH, home_path: str = settings.HOME_PATH):
        self.guard = guard
        self.login_path = login_path
        self.home_path = home_path

    def decide(self, required: Optional[Capability] = None) -> GateDecision:
        if self.guard.token is None or self.guard.is_expired():
            return GateDecision(GateOutcome.REDIRECT_LOGIN, self.login_path)
        if required is not None and not has_capability(self.guard.profile, required):
            logger.info("Missing capability %s, redirecting to %s", required.value, self.home_path)
            return GateDecision(GateOutcome.REDIRECT_HOME, self.home_path)
        return GateDecision(GateOutcome.RENDER)

    def decide_flag(self, requires_elevated: bool = False) -> GateDecision:
        return self.decide(ELEVATED if requires_elevated else None)
