# camera/camera_enroll.py
import argparse
import asyncio
import getpass
import logging

import cv2

from .. import settings
from ..errors import AuthTransportError, ConsoleAuthError
from ..gate import Capability, has_capability
from ..models.detection import MediaPipeFaceDetector, draw_detections
from ..schemas import RegisterUserRequest, Role, UserStatus
from ..session import SessionGuard
from ..utils.api import ApiClient
from ..utils.db import TokenStore
from .video import VideoSource, encode_frame_data_url

logger = logging.getLogger(__name__)

WINDOW = "Enroll - SPACE: capture, q: quit"


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Create a console user with an enrolled face image")
    parser.add_argument("username")
    parser.add_argument("email")
    parser.add_argument("--api", default=settings.API_BASE_URL, help="auth API base URL")
    parser.add_argument("--camera", "-c", type=int, default=settings.CAMERA_INDEX, help="camera index")
    return parser.parse_args(argv)


async def capture_face_image(detector: MediaPipeFaceDetector, source: VideoSource):
    """Show the webcam until SPACE is pressed on a frame with exactly one face."""
    await detector.load()
    with source:
        while True:
            frame = source.read()
            if frame is None:
                return None
            boxes = detector.detect(frame)
            cv2.imshow(WINDOW, draw_detections(frame, boxes))
            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                return None
            if key == ord(" "):
                if len(boxes) == 1:
                    return frame
                print(f"[⚠️] {len(boxes)} faces detected, exactly one is required")
            await asyncio.sleep(0)


async def run(args) -> int:
    api = ApiClient(args.api)
    guard = SessionGuard(api, TokenStore())
    detector = MediaPipeFaceDetector()
    await guard.start()
    try:
        if not has_capability(guard.profile, Capability.MANAGE_USERS):
            print("[❌] An administrator session is required. Log in with console-login --admin first.")
            return 1

        password = getpass.getpass("Password for the new user: ")
        try:
            frame = await capture_face_image(detector, VideoSource(args.camera))
        except ConsoleAuthError as e:
            print(f"[❌] {e.user_message}")
            return 1
        finally:
            cv2.destroyAllWindows()
        if frame is None:
            print("[❌] Enrollment cancelled")
            return 1

        request = RegisterUserRequest(
            username=args.username,
            email=args.email,
            password=password,
            role=Role.USER,
            status=UserStatus.ACTIVE,
            faceImage=encode_frame_data_url(frame),
        )
        try:
            await api.register_user(request)
        except AuthTransportError as e:
            logger.error("Registration failed: %s", e)
            print(f"[❌] {e.user_message}")
            return 1
        print(f"[✅] User {args.username} created")
        return 0
    finally:
        await guard.stop()
        detector.close()


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
    return asyncio.run(run(parse_args(argv)))


if __name__ == "__main__":
    raise SystemExit(main())
