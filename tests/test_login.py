import pytest
import pytest_asyncio

from console_auth.capture import CaptureState, FaceCaptureFlow
from console_auth.errors import AuthTransportError, CredentialRejected, FaceModelLoadError
from console_auth.login import (
    FACE_EMAIL_MISMATCH_MESSAGE,
    FACE_REQUIRED_MESSAGE,
    LoginScreen,
    requires_face,
)
from console_auth.schemas import Role
from console_auth.session import SessionGuard

from conftest import FACE, FakeDetector, FakeSource


@pytest.fixture
def guard(api, store, notifier):
    return SessionGuard(api, store, notifier=notifier, expiry_check_interval=3600)


@pytest_asyncio.fixture
async def screen(guard, api, notifier, detector, source):
    def factory():
        return FaceCaptureFlow(
            detector, source, api, notifier=notifier, sample_interval=3600, startup_delay=0, rearm_delay=0
        )

    s = LoginScreen(guard, factory, notifier)
    yield s
    await s.aclose()


async def verify_face(screen, detector):
    assert await screen.start_face_verification()
    detector.results.append([FACE])
    await screen.flow.tick()
    assert screen.capture_face()
    assert await screen.verify_face("maria@example.com") is CaptureState.VERIFIED


def test_only_admins_skip_face_check():
    assert not requires_face(Role.ADMIN)
    assert requires_face(Role.USER)


@pytest.mark.asyncio
async def test_user_cannot_submit_before_face_verification(screen, api, notifier, guard):
    assert not screen.can_submit(Role.USER)

    assert not await screen.submit("maria@example.com", "secret", Role.USER)

    assert api.login_calls == []
    assert not guard.is_authenticated
    assert notifier.current.kind == "face_required"
    assert notifier.current.message == FACE_REQUIRED_MESSAGE


@pytest.mark.asyncio
async def test_admin_logs_in_without_face(screen, api, guard):
    api.profile = api.profile.model_copy(update={"role": Role.ADMIN})

    assert screen.can_submit(Role.ADMIN)
    assert await screen.submit("admin@example.com", "secret", Role.ADMIN)
    assert guard.is_authenticated
    assert screen.flow is None


@pytest.mark.asyncio
async def test_verified_user_logs_in(screen, detector, source, guard, notifier):
    await verify_face(screen, detector)
    assert screen.can_submit(Role.USER)

    assert await screen.submit("maria@example.com", "secret", Role.USER)

    assert guard.is_authenticated
    assert screen.flow is None
    assert not source.opened
    assert notifier.current.kind == "login"


@pytest.mark.asyncio
async def test_rejected_credentials_notice(screen, detector, api, notifier):
    await verify_face(screen, detector)
    api.login_error = CredentialRejected()

    assert not await screen.submit("maria@example.com", "wrong", Role.USER)

    assert notifier.current.kind == "credential_rejected"
    assert notifier.current.message == CredentialRejected.default_message
    assert screen.face_verified


@pytest.mark.asyncio
async def test_transport_failure_notice(screen, detector, api, notifier):
    await verify_face(screen, detector)
    api.login_error = AuthTransportError()

    assert not await screen.submit("maria@example.com", "secret", Role.USER)

    assert notifier.current.kind == "auth_transport"
    assert notifier.current.message == AuthTransportError.default_message


@pytest.mark.asyncio
async def test_profile_failure_keeps_expiry_notice(screen, api, notifier):
    api.me_error = AuthTransportError()

    assert not await screen.submit("admin@example.com", "secret", Role.ADMIN)

    assert notifier.current.kind == "session_expired"


@pytest.mark.asyncio
async def test_model_failure_disables_face_login(guard, api, notifier, source):
    detector = FakeDetector(load_error=FaceModelLoadError())

    def factory():
        return FaceCaptureFlow(detector, source, api, notifier=notifier, startup_delay=0)

    screen = LoginScreen(guard, factory, notifier)
    try:
        assert not await screen.start_face_verification()
        assert not screen.face_login_available
        assert not screen.can_submit(Role.USER)
        assert screen.can_submit(Role.ADMIN)

        assert not await screen.start_face_verification()
        assert notifier.current.kind == "face_unavailable"
    finally:
        await screen.aclose()


@pytest.mark.asyncio
async def test_cancel_drops_flow(screen, source):
    await screen.start_face_verification()

    await screen.cancel_face_verification()

    assert screen.flow is None
    assert not source.opened
    assert not screen.face_verified


@pytest.mark.asyncio
async def test_actions_without_flow_are_noops(screen):
    assert not screen.capture_face()
    assert await screen.verify_face("maria@example.com") is None
    assert not await screen.retry_face()


@pytest.mark.asyncio
async def test_user_account_claiming_admin_still_needs_face(screen, api, guard, store, notifier):
    assert screen.can_submit(Role.ADMIN)

    assert not await screen.submit("maria@example.com", "secret", Role.ADMIN)

    assert not guard.is_authenticated
    assert guard.token is None
    assert store.load() is None
    assert api.auth_header is None
    assert notifier.current.kind == "face_required"
    assert notifier.current.message == FACE_REQUIRED_MESSAGE


@pytest.mark.asyncio
async def test_verified_user_claiming_admin_logs_in_as_user(screen, detector, guard):
    await verify_face(screen, detector)

    assert await screen.submit("maria@example.com", "secret", Role.ADMIN)
    assert guard.profile.role is Role.USER


@pytest.mark.asyncio
async def test_face_verified_for_another_email_is_refused(screen, detector, api, guard, notifier):
    await verify_face(screen, detector)
    assert not screen.can_submit(Role.USER, "pedro@example.com")

    assert not await screen.submit("pedro@example.com", "secret", Role.USER)

    assert api.login_calls == []
    assert not guard.is_authenticated
    assert notifier.current.message == FACE_EMAIL_MISMATCH_MESSAGE
    assert screen.face_verified_for("maria@example.com")


@pytest.mark.asyncio
async def test_other_email_claiming_admin_is_dropped_after_login(screen, detector, api, guard, store):
    await verify_face(screen, detector)

    assert not await screen.submit("pedro@example.com", "secret", Role.ADMIN)

    assert api.login_calls == [("pedro@example.com", "secret")]
    assert guard.token is None
    assert store.load() is None
