import asyncio
import time

import jwt
import numpy as np
import pytest
import pytest_asyncio

from console_auth.capture import FaceCaptureFlow
from console_auth.schemas import Role, UserProfile, VerifyFaceResponse
from console_auth.utils.db import TokenStore
from console_auth.utils.notifications import Notifier

FACE = (10, 8, 20, 24)


def make_token(exp_in=3600, **claims):
    payload = {"sub": "1", **claims}
    if exp_in is not None:
        payload["exp"] = int(time.time() + exp_in)
    return jwt.encode(payload, "console-auth-test-signing-secret-0123456789", algorithm="HS256")


def make_profile(role=Role.USER):
    return UserProfile(id=1, username="maria", email="maria@example.com", role=role)


class FakeApi:
    """Stands in for ApiClient; records calls and replays canned results."""

    def __init__(self, role=Role.USER):
        self.token_to_issue = make_token()
        self.login_error = None
        self.profile = make_profile(role)
        self.me_error = None
        self.verify_results = []
        self.verify_gate = None
        self.auth_header = None
        self.login_calls = []
        self.me_calls = 0
        self.verify_calls = []

    def set_auth_token(self, token):
        self.auth_header = f"Bearer {token}" if token else None

    async def login(self, email, password):
        self.login_calls.append((email, password))
        if self.login_error is not None:
            raise self.login_error
        return self.token_to_issue

    async def me(self):
        self.me_calls += 1
        if self.me_error is not None:
            raise self.me_error
        return self.profile

    async def verify_face(self, email, image):
        self.verify_calls.append((email, image))
        if self.verify_gate is not None:
            await self.verify_gate.wait()
        result = self.verify_results.pop(0) if self.verify_results else VerifyFaceResponse(verified=True)
        if isinstance(result, Exception):
            raise result
        return result


class FakeDetector:
    def __init__(self, results=None, default=None, load_error=None):
        self.results = list(results or [])
        self.default = default if default is not None else []
        self.load_error = load_error
        self.load_gate = None  # holds only the next load
        self.loaded = False
        self.calls = 0

    async def load(self):
        gate, self.load_gate = self.load_gate, None
        if gate is not None:
            await gate.wait()
        if self.load_error is not None:
            raise self.load_error
        self.loaded = True

    def detect(self, frame):
        self.calls += 1
        result = self.results.pop(0) if self.results else self.default
        if isinstance(result, Exception):
            raise result
        return result

    def close(self):
        self.loaded = False


class FakeSource:
    def __init__(self, open_error=None):
        self.open_error = open_error
        self.opened = False
        self.releases = 0
        self.reads = 0

    def open(self):
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    def read(self):
        self.reads += 1
        if not self.opened:
            return None
        return np.full((48, 64, 3), 127, dtype=np.uint8)

    def release(self):
        self.opened = False
        self.releases += 1


async def wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def store(tmp_path):
    s = TokenStore(f"sqlite:///{tmp_path / 'client.db'}")
    yield s
    s.dispose()


@pytest.fixture
def notifier():
    return Notifier(ttl=60)


@pytest.fixture
def api():
    return FakeApi()


@pytest.fixture
def detector():
    return FakeDetector()


@pytest.fixture
def source():
    return FakeSource()


@pytest_asyncio.fixture
async def flow(detector, source, api, notifier):
    f = FaceCaptureFlow(
        detector,
        source,
        api,
        notifier=notifier,
        sample_interval=3600,
        startup_delay=0,
        rearm_delay=0,
    )
    yield f
    await f.aclose()
