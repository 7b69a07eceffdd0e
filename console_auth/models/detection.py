import asyncio
import logging
from typing import List, Tuple

import cv2
import numpy as np

from .. import settings
from ..errors import FaceDetectionSampleError, FaceModelLoadError

logger = logging.getLogger(__name__)

FaceBox = Tuple[int, int, int, int]  # x, y, width, height

MARKER_COLOR = (0, 255, 0)


class MediaPipeFaceDetector:
    """
    MediaPipe short-range face detection, loaded once and reused per sample.
    """

    def __init__(self, min_detection_confidence: float = settings.MIN_DETECTION_CONFIDENCE, model_selection: int = 0):
        self.min_detection_confidence = min_detection_confidence
        self.model_selection = model_selection
        self._fd = None

    @property
    def loaded(self) -> bool:
        return self._fd is not None

    def _build(self):
        # mediapipe is heavy; only pay for the import when the model is requested
        import mediapipe as mp

        mp_face = mp.solutions.face_detection
        return mp_face.FaceDetection(
            model_selection=self.model_selection,
            min_detection_confidence=self.min_detection_confidence,
        )

    async def load(self):
        if self._fd is not None:
            return
        logger.info("Loading face detection model...")
        try:
            self._fd = await asyncio.to_thread(self._build)
        except Exception as e:
            raise FaceModelLoadError(log_message=f"face detection model failed to load: {e}") from e
        logger.info("Face detection model ready")

    def detect(self, frame: np.ndarray) -> List[FaceBox]:
        """
        Detect every face in a BGR frame and return pixel boxes.
        """
        if self._fd is None:
            raise FaceDetectionSampleError(log_message="detector used before load()")
        try:
            h, w = frame.shape[:2]
            rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
            results = self._fd.process(rgb_frame)
        except Exception as e:
            raise FaceDetectionSampleError(log_message=f"face detection failed: {e}") from e

        face_list = []
        if results.detections:
            for detection in results.detections:
                bbox = detection.location_data.relative_bounding_box
                x = max(int(bbox.xmin * w), 0)
                y = max(int(bbox.ymin * h), 0)
                width = int(bbox.width * w)
                height = int(bbox.height * h)
                face_list.append((x, y, width, height))
        return face_list

    def close(self):
        if self._fd is not None:
            self._fd.close()
            self._fd = None


def draw_detections(frame: np.ndarray, boxes: List[FaceBox], color=MARKER_COLOR) -> np.ndarray:
    """Return a copy of the frame with one rectangle per detected face."""
    annotated = frame.copy()
    for (x, y, w, h) in boxes:
        cv2.rectangle(annotated, (x, y), (x + w, y + h), color, 2)
    return annotated
