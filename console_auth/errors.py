"""Errors raised by the session guard, the HTTP client and the face flow."""
from typing import Optional


class ConsoleAuthError(Exception):
    """Base class. ``user_message`` is what the notification shows."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, user_message: Optional[str] = None, *, log_message: Optional[str] = None):
        self.user_message = user_message or self.default_message
        super().__init__(log_message or self.user_message)


class CredentialRejected(ConsoleAuthError):
    default_message = "Login failed. Please check your email and password."


class AuthTransportError(ConsoleAuthError):
    default_message = "Authentication service unavailable. Please try again later."


class SessionExpired(ConsoleAuthError):
    default_message = "Your session has expired. Please log in again."


class FaceModelLoadError(ConsoleAuthError):
    default_message = "Face verification is unavailable: the detection model could not be loaded."


class CameraUnavailableError(ConsoleAuthError):
    default_message = "Camera unavailable. Check that it is connected and access is allowed."


class FaceDetectionSampleError(ConsoleAuthError):
    default_message = "Face detection failed for this frame."


class FaceVerificationMismatch(ConsoleAuthError):
    default_message = "Face does not match this account. Please try again."


class FaceVerificationTransportError(AuthTransportError):
    default_message = "Could not reach the face verification service. Please try again."
