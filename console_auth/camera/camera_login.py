# camera/camera_login.py
import argparse
import asyncio
import getpass
import logging

import cv2

from .. import settings
from ..capture import CaptureState, FaceCaptureFlow
from ..login import LoginScreen
from ..models.detection import MediaPipeFaceDetector
from ..schemas import Role
from ..session import SessionGuard
from ..utils.api import ApiClient
from ..utils.db import TokenStore
from ..utils.notifications import Notifier
from .video import VideoSource

logger = logging.getLogger(__name__)

WINDOW = "Console login - c: capture, v: verify, r: retry, q: cancel"

STATE_COLORS = {
    CaptureState.ARMED_SCANNING: (0, 0, 255),
    CaptureState.FACE_DETECTED: (0, 255, 0),
    CaptureState.CAPTURED: (255, 200, 0),
    CaptureState.VERIFYING: (255, 200, 0),
    CaptureState.VERIFIED: (0, 255, 0),
    CaptureState.MISMATCHED: (0, 255, 255),
    CaptureState.ERROR: (0, 0, 255),
}


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Log in to the console with face verification")
    parser.add_argument("--email", "-e", required=True, help="account e-mail")
    parser.add_argument("--admin", action="store_true", help="administrator login (no face check)")
    parser.add_argument("--api", default=settings.API_BASE_URL, help="auth API base URL")
    parser.add_argument("--camera", "-c", type=int, default=settings.CAMERA_INDEX, help="camera index")
    return parser.parse_args(argv)


def render(flow: FaceCaptureFlow, notifier: Notifier):
    s = flow.session
    frame = s.captured_frame if s.captured_frame is not None else s.overlay
    if frame is None:
        frame = flow.live_frame()
    if frame is None:
        return
    frame = frame.copy()
    color = STATE_COLORS.get(flow.state, (255, 255, 255))
    cv2.putText(frame, flow.state.value, (10, 24), cv2.FONT_HERSHEY_SIMPLEX, 0.6, color, 2)
    notice = notifier.current
    if notice is not None:
        cv2.putText(frame, notice.message, (10, frame.shape[0] - 12), cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1)
    cv2.imshow(WINDOW, frame)


async def face_loop(screen: LoginScreen, email: str) -> bool:
    """Drive the capture flow from the keyboard until VERIFIED or cancelled."""
    if not await screen.start_face_verification():
        return False
    flow = screen.flow
    try:
        while flow.state is not CaptureState.VERIFIED:
            render(flow, screen.notifier)
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                return False
            if key == ord("c"):
                screen.capture_face()
            elif key == ord("v"):
                await screen.verify_face(email)
            elif key == ord("r"):
                await screen.retry_face()
            # hand the loop to the sampler between frames
            await asyncio.sleep(0.03)
        render(flow, screen.notifier)
        cv2.waitKey(500)
        return True
    finally:
        cv2.destroyAllWindows()


async def run(args) -> int:
    notifier = Notifier()
    api = ApiClient(args.api)
    store = TokenStore()
    guard = SessionGuard(api, store, notifier=notifier)
    detector = MediaPipeFaceDetector()

    def flow_factory():
        return FaceCaptureFlow(detector, VideoSource(args.camera), api, notifier=notifier)

    screen = LoginScreen(guard, flow_factory, notifier)
    role = Role.ADMIN if args.admin else Role.USER
    await guard.start()
    try:
        if guard.is_authenticated:
            print(f"[✅] Already logged in as {guard.profile.username if guard.profile else args.email}")
            return 0

        if not args.admin and not await face_loop(screen, args.email):
            notice = notifier.current
            print(f"[❌] Face verification not completed. {notice.message if notice else ''}".rstrip())
            return 1

        password = getpass.getpass("Password: ")
        if await screen.submit(args.email, password, role):
            print(f"[✅] Logged in as {guard.profile.username}")
            return 0
        notice = notifier.current
        print(f"[❌] {notice.message if notice else 'Login failed.'}")
        return 1
    finally:
        await screen.aclose()
        await guard.stop()
        detector.close()


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    raise SystemExit(main())
