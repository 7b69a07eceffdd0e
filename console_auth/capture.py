"""
Face capture and verification flow.

One :class:`FaceCaptureFlow` covers one login attempt: load the detection
model, sample the camera on a fixed period while armed, freeze a still on
request, and send it to the remote verifier.

Every await inside the flow can be overtaken by a cancel or a new capture.
``_epoch`` is bumped on each of those, and a result is only applied when
the epoch it was requested under is still current.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

import numpy as np

from . import settings
from .camera.video import VideoSource, encode_frame_data_url
from .errors import (
    CameraUnavailableError,
    ConsoleAuthError,
    FaceDetectionSampleError,
    FaceModelLoadError,
    FaceVerificationMismatch,
    FaceVerificationTransportError,
)
from .models.detection import FaceBox, MediaPipeFaceDetector, draw_detections
from .utils.api import ApiClient
from .utils.notifications import Notifier

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "IDLE"
    MODEL_LOADING = "MODEL_LOADING"
    ARMED_SCANNING = "ARMED_SCANNING"
    FACE_DETECTED = "FACE_DETECTED"
    CAPTURED = "CAPTURED"
    VERIFYING = "VERIFYING"
    VERIFIED = "VERIFIED"
    MISMATCHED = "MISMATCHED"
    ERROR = "ERROR"


SCANNING_STATES = frozenset({CaptureState.ARMED_SCANNING, CaptureState.FACE_DETECTED})


def _same_email(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


class VerificationOutcome(str, Enum):
    UNVERIFIED = "UNVERIFIED"
    MATCHED = "MATCHED"
    MISMATCHED = "MISMATCHED"
    FAILED = "FAILED"


@dataclass
class CaptureSession:
    armed: bool = False
    detected: bool = False
    captured_frame: Optional[np.ndarray] = None
    captured_image: Optional[str] = None  # data URL sent to the verifier
    outcome: VerificationOutcome = VerificationOutcome.UNVERIFIED
    # verdict of the previous attempt, kept across re-arm for display
    last_outcome: VerificationOutcome = VerificationOutcome.UNVERIFIED
    verified_email: Optional[str] = None
    markers: List[FaceBox] = field(default_factory=list)
    overlay: Optional[np.ndarray] = None

    def discard_capture(self):
        # a verdict only exists for a still
        self.captured_frame = None
        self.captured_image = None
        self.outcome = VerificationOutcome.UNVERIFIED
        self.verified_email = None


class FaceCaptureFlow:

    def __init__(
        self,
        detector: MediaPipeFaceDetector,
        source: VideoSource,
        api: ApiClient,
        *,
        notifier: Optional[Notifier] = None,
        sample_interval: float = settings.SAMPLE_INTERVAL,
        startup_delay: float = settings.CAMERA_STARTUP_DELAY,
        rearm_delay: float = settings.REARM_DELAY,
    ):
        self._detector = detector
        self._source = source
        self._api = api
        self._notifier = notifier
        self.sample_interval = sample_interval
        self.startup_delay = startup_delay
        self.rearm_delay = rearm_delay

        self._state = CaptureState.IDLE
        self._session = CaptureSession()
        self._sampler: Optional[asyncio.Task] = None
        self._last_frame: Optional[np.ndarray] = None
        self._epoch = 0

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def session(self) -> CaptureSession:
        return self._session

    @property
    def sampling(self) -> bool:
        return self._sampler is not None and not self._sampler.done()

    @property
    def login_enabled(self) -> bool:
        return self._state is CaptureState.VERIFIED

    def verified_for(self, email: str) -> bool:
        """True when the current still was verified against this e-mail."""
        verified = self._session.verified_email
        return self.login_enabled and verified is not None and _same_email(verified, email)

    def live_frame(self) -> Optional[np.ndarray]:
        """Last frame the sampler read, for preview."""
        if self._state not in SCANNING_STATES:
            return None
        return self._last_frame

    # -----------------------------
    # Start: IDLE → MODEL_LOADING → ARMED_SCANNING
    # -----------------------------
    async def start(self) -> bool:
        if self._state is not CaptureState.IDLE:
            logger.debug("start() ignored in state %s", self._state.value)
            return False
        epoch = self._epoch
        self._session = CaptureSession()
        self._set_state(CaptureState.MODEL_LOADING)
        try:
            await self._detector.load()
            if epoch != self._epoch:
                # cancelled while the model was loading; a newer start may own the camera
                return False
            await asyncio.to_thread(self._source.open)
        except (FaceModelLoadError, CameraUnavailableError) as e:
            if epoch != self._epoch:
                return False
            self._fail(e)
            return False

        if epoch != self._epoch:
            # cancelled while the camera was opening
            if self._state is CaptureState.IDLE:
                self._source.release()
            return False

        if self.startup_delay > 0:
            await asyncio.sleep(self.startup_delay)
        if epoch != self._epoch or self._state is not CaptureState.MODEL_LOADING:
            return False
        self._arm()
        return True

    # -----------------------------
    # Sampler
    # -----------------------------
    async def _sample_loop(self):
        while self._state in SCANNING_STATES:
            await asyncio.sleep(self.sample_interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Face sampler tick failed, retrying next tick")

    async def tick(self) -> bool:
        """One sample: read a frame, detect, update markers. True if applied."""
        if self._state not in SCANNING_STATES:
            return False
        epoch = self._epoch
        frame = await asyncio.to_thread(self._source.read)
        if frame is None or epoch != self._epoch:
            return False
        try:
            boxes = await asyncio.to_thread(self._detector.detect, frame)
        except FaceDetectionSampleError as e:
            logger.warning("Face detection sample failed, retrying next tick: %s", e)
            return False
        if epoch != self._epoch or self._state not in SCANNING_STATES:
            return False

        self._last_frame = frame
        s = self._session
        if boxes:
            s.detected = True
            s.markers = list(boxes)
            s.overlay = draw_detections(frame, s.markers)
            self._set_state(CaptureState.FACE_DETECTED)
        else:
            s.detected = False
            s.markers = []
            s.overlay = None
            self._set_state(CaptureState.ARMED_SCANNING)
        return True

    # -----------------------------
    # Capture: FACE_DETECTED → CAPTURED
    # -----------------------------
    def capture(self) -> bool:
        if self._state is not CaptureState.FACE_DETECTED or self._last_frame is None:
            logger.debug("capture() ignored in state %s", self._state.value)
            return False
        self._epoch += 1
        self._stop_sampler()

        frame = self._last_frame.copy()
        s = self._session
        s.armed = False
        s.captured_frame = frame
        s.captured_image = encode_frame_data_url(frame)
        s.outcome = VerificationOutcome.UNVERIFIED
        s.overlay = None
        self._set_state(CaptureState.CAPTURED)
        return True

    # -----------------------------
    # Verify: CAPTURED → VERIFYING → VERIFIED | MISMATCHED | ERROR
    # -----------------------------
    async def verify(self, email: str) -> CaptureState:
        s = self._session
        if self._state is not CaptureState.CAPTURED or s.captured_image is None:
            logger.debug("verify() ignored in state %s", self._state.value)
            return self._state
        epoch = self._epoch
        self._set_state(CaptureState.VERIFYING)
        try:
            result = await self._api.verify_face(email, s.captured_image)
        except FaceVerificationTransportError as e:
            if self._stale(epoch):
                return self._state
            logger.error("Face verification request failed: %s", e)
            s.outcome = s.last_outcome = VerificationOutcome.FAILED
            self._set_state(CaptureState.ERROR)
            self._notify(e, "error", "face_verification_error")
            await self._rearm_after_delay(epoch)
            return self._state

        if self._stale(epoch):
            return self._state
        if result.verified:
            s.outcome = s.last_outcome = VerificationOutcome.MATCHED
            s.verified_email = email
            self._set_state(CaptureState.VERIFIED)
            if self._notifier is not None:
                self._notifier.notify("Face verified.", severity="success", kind="face_verified")
            return self._state

        s.outcome = s.last_outcome = VerificationOutcome.MISMATCHED
        self._set_state(CaptureState.MISMATCHED)
        self._notify(FaceVerificationMismatch(result.error), "warning", "face_mismatch")
        await self._rearm_after_delay(epoch)
        return self._state

    # -----------------------------
    # Retry / cancel
    # -----------------------------
    async def retry(self) -> bool:
        """Drop the current still and scan again after the re-arm delay."""
        if self._state not in (CaptureState.CAPTURED, CaptureState.MISMATCHED):
            return False
        self._epoch += 1
        await self._rearm_after_delay(self._epoch)
        return self._state in SCANNING_STATES

    def cancel(self):
        """Back to IDLE from any state. Safe to call repeatedly."""
        self._epoch += 1
        self._stop_sampler()
        self._source.release()
        self._session = CaptureSession()
        self._last_frame = None
        self._set_state(CaptureState.IDLE)

    async def aclose(self):
        task = self._sampler
        self.cancel()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    # -----------------------------
    # Internals
    # -----------------------------
    def _arm(self):
        self._epoch += 1
        s = self._session
        s.discard_capture()
        s.armed = True
        s.detected = False
        s.markers = []
        s.overlay = None
        self._last_frame = None
        self._set_state(CaptureState.ARMED_SCANNING)
        self._sampler = asyncio.create_task(self._sample_loop(), name="face-sampler")

    async def _rearm_after_delay(self, epoch: int):
        self._session.discard_capture()
        if self.rearm_delay > 0:
            await asyncio.sleep(self.rearm_delay)
        if epoch != self._epoch:
            return
        self._arm()

    def _stop_sampler(self):
        task, self._sampler = self._sampler, None
        if task is not None and not task.done():
            task.cancel()
        self._session.armed = False

    def _stale(self, epoch: int) -> bool:
        if epoch != self._epoch or self._state is not CaptureState.VERIFYING:
            logger.debug("Discarding verification result for an abandoned capture")
            return True
        return False

    def _fail(self, error: ConsoleAuthError):
        logger.error("Face capture cannot proceed: %s", error)
        self._stop_sampler()
        self._source.release()
        self._set_state(CaptureState.ERROR)
        self._notify(error, "error", type(error).__name__)

    def _notify(self, error: ConsoleAuthError, severity: str, kind: str):
        if self._notifier is not None:
            self._notifier.notify(error.user_message, severity=severity, kind=kind)

    def _set_state(self, state: CaptureState):
        if state is not self._state:
            logger.info("Face capture: %s -> %s", self._state.value, state.value)
            self._state = state
