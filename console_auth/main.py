import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse, Response

from . import settings
from .camera.video import VideoSource, encode_frame_jpeg
from .capture import FaceCaptureFlow
from .gate import Capability, RouteGate
from .login import LoginScreen
from .models.detection import MediaPipeFaceDetector
from .schemas import CaptureStatus, FaceVerifyForm, LoginForm, NoticeOut, SessionStatus
from .session import SessionGuard
from .utils.api import ApiClient
from .utils.db import TokenStore
from .utils.notifications import Notifier

logger = logging.getLogger(__name__)


class GateRedirect(Exception):
    def __init__(self, location: str):
        self.location = location


def default_flow_factory(api: ApiClient, notifier: Notifier) -> Callable[[], FaceCaptureFlow]:
    detector = MediaPipeFaceDetector()

    def factory() -> FaceCaptureFlow:
        return FaceCaptureFlow(detector, VideoSource(), api, notifier=notifier)

    return factory


def create_app(
    api: Optional[ApiClient] = None,
    store: Optional[TokenStore] = None,
    notifier: Optional[Notifier] = None,
    flow_factory: Optional[Callable[[], FaceCaptureFlow]] = None,
    expiry_check_interval: float = settings.EXPIRY_CHECK_INTERVAL,
) -> FastAPI:
    api = api or ApiClient()
    store = store or TokenStore()
    notifier = notifier or Notifier()
    guard = SessionGuard(api, store, notifier=notifier, expiry_check_interval=expiry_check_interval)
    gate = RouteGate(guard)
    screen = LoginScreen(guard, flow_factory or default_flow_factory(api, notifier), notifier)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await guard.start()
        try:
            yield
        finally:
            await screen.aclose()
            await guard.stop()

    app = FastAPI(title="Console Auth", lifespan=lifespan)
    app.state.guard = guard
    app.state.gate = gate
    app.state.screen = screen
    app.state.notifier = notifier

    if settings.CORS_ALLOW_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ALLOW_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(GateRedirect)
    async def gate_redirect(request: Request, exc: GateRedirect):
        return RedirectResponse(exc.location, status_code=303)

    def require(capability: Optional[Capability] = None):
        async def dependency():
            decision = gate.decide(capability)
            if not decision.allowed:
                raise GateRedirect(decision.location)
            return guard.profile
        return dependency

    def session_status() -> SessionStatus:
        return SessionStatus(state=guard.state.value, authenticated=guard.is_authenticated, profile=guard.profile)

    def capture_status() -> CaptureStatus:
        flow = screen.flow
        if flow is None:
            return CaptureStatus(
                state="IDLE", armed=False, detected=False, captured=False, outcome="UNVERIFIED",
                login_enabled=False, face_login_available=screen.face_login_available,
            )
        s = flow.session
        return CaptureStatus(
            state=flow.state.value,
            armed=s.armed,
            detected=s.detected,
            captured=s.captured_frame is not None,
            outcome=s.outcome.value,
            last_outcome=s.last_outcome.value,
            markers=[list(m) for m in s.markers],
            login_enabled=flow.login_enabled,
            face_login_available=screen.face_login_available,
        )

    # -----------------------------
    # 1. Root → home or login
    # -----------------------------
    @app.get("/")
    async def root():
        target = settings.HOME_PATH if gate.decide().allowed else settings.LOGIN_PATH
        return RedirectResponse(target, status_code=303)

    # -----------------------------
    # 2. Login / logout
    # -----------------------------
    @app.get(settings.LOGIN_PATH)
    async def login_view():
        return {"session": session_status(), "face": capture_status()}

    @app.post(settings.LOGIN_PATH)
    async def login(form: LoginForm):
        ok = await screen.submit(form.email, form.password, form.role)
        return {"ok": ok, "session": session_status()}

    @app.post("/logout")
    async def logout():
        guard.logout()
        return {"ok": True, "session": session_status()}

    # -----------------------------
    # 3. Face capture flow
    # -----------------------------
    @app.get("/face/status")
    async def face_status():
        return capture_status()

    @app.post("/face/start")
    async def face_start():
        if not await screen.start_face_verification():
            raise HTTPException(409, "Face verification could not start")
        return capture_status()

    @app.post("/face/capture")
    async def face_capture():
        if not screen.capture_face():
            raise HTTPException(409, "No face detected")
        return capture_status()

    @app.post("/face/verify")
    async def face_verify(form: FaceVerifyForm):
        if await screen.verify_face(form.email) is None:
            raise HTTPException(409, "Face verification not started")
        return capture_status()

    @app.post("/face/retry")
    async def face_retry():
        if not await screen.retry_face():
            raise HTTPException(409, "Nothing to retry")
        return capture_status()

    @app.post("/face/cancel")
    async def face_cancel():
        await screen.cancel_face_verification()
        return capture_status()

    @app.get("/face/overlay.jpg")
    async def face_overlay():
        flow = screen.flow
        frame = None
        if flow is not None:
            frame = flow.session.captured_frame if flow.session.captured_frame is not None else flow.session.overlay
        if frame is None:
            raise HTTPException(404, "No frame available")
        return Response(encode_frame_jpeg(frame), media_type="image/jpeg")

    # -----------------------------
    # 4. Notifications
    # -----------------------------
    @app.get("/notifications/current")
    async def current_notice():
        notice = notifier.current
        if notice is None:
            return None
        return NoticeOut(message=notice.message, severity=notice.severity, kind=notice.kind)

    @app.delete("/notifications/current")
    async def dismiss_notice():
        notifier.dismiss()
        return {"ok": True}

    # -----------------------------
    # 5. Protected views
    # -----------------------------
    @app.get(settings.HOME_PATH)
    async def home(profile=Depends(require())):
        return {"view": "home", "user": profile}

    @app.get("/user")
    async def user_profile(profile=Depends(require(Capability.VIEW_CONSOLE))):
        return {"view": "user", "user": profile}

    @app.get("/create-user")
    async def create_user(profile=Depends(require(Capability.MANAGE_USERS))):
        return {"view": "create-user", "user": profile}

    return app


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    uvicorn.run(create_app(), host="127.0.0.1", port=8000)
