# camera/video.py
import base64
import logging
from typing import Optional

import cv2
import numpy as np

from .. import settings
from ..errors import CameraUnavailableError

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = "data:image/jpeg;base64,"


class VideoSource:
    """Webcam stream. ``read()`` returns a BGR frame or None."""

    def __init__(self, index: int = settings.CAMERA_INDEX, width: int = 640, height: int = 480):
        self.index = index
        self.width = width
        self.height = height
        self._cap: Optional[cv2.VideoCapture] = None

    def open(self):
        if self._cap is not None:
            return
        cap = cv2.VideoCapture(self.index)
        if not cap.isOpened():
            cap.release()
            raise CameraUnavailableError(log_message=f"could not open camera {self.index}")
        cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._cap = cap
        logger.info("Camera %s opened", self.index)

    def read(self) -> Optional[np.ndarray]:
        if self._cap is None:
            return None
        ret, frame = self._cap.read()
        if not ret:
            logger.warning("Could not read a frame from camera %s", self.index)
            return None
        return frame

    def release(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logger.info("Camera %s released", self.index)

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False


def encode_frame_data_url(frame: np.ndarray, quality: int = 90) -> str:
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise ValueError("could not encode frame as JPEG")
    return DATA_URL_PREFIX + base64.b64encode(buf.tobytes()).decode("ascii")


def encode_frame_jpeg(frame: np.ndarray) -> bytes:
    ok, buf = cv2.imencode(".jpg", frame)
    if not ok:
        raise ValueError("could not encode frame as JPEG")
    return buf.tobytes()


def read_image_from_data_url(image_b64: str) -> np.ndarray:
    """Decode a ``data:image/...;base64,`` URL (or bare base64) into a BGR image."""
    _, _, encoded = image_b64.rpartition(",")
    nparr = np.frombuffer(base64.b64decode(encoded), np.uint8)
    img = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    if img is None:
        raise ValueError("payload is not a decodable image")
    return img
