"""
Error Types

Exceptions raised by the enrollment, matching and capture components.
Every user-facing error carries a message that can be shown as-is.
"""


class FaceRegistryError(Exception):
    """Base class for all face registry errors."""

    user_message = "An unexpected error occurred. Please try again."

    def __init__(self, message: str = None):
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


class ValidationError(FaceRegistryError):
    """Missing registration fields or an unusable embedding."""

    user_message = "Please fill in all details!"


class NoFaceDetected(FaceRegistryError):
    """The embedder found no face in the frame."""

    user_message = "No face detected, try again!"


class CameraUnavailable(FaceRegistryError):
    """The camera could not be acquired."""

    PERMISSION_DENIED = 'permission_denied'
    NOT_FOUND = 'not_found'
    UNAVAILABLE = 'unavailable'

    MESSAGES = {
        PERMISSION_DENIED: "Webcam access denied. Please allow camera permissions.",
        NOT_FOUND: "No webcam found. Please connect a webcam and try again.",
        UNAVAILABLE: "An unexpected error occurred. Please try again.",
    }

    def __init__(self, reason: str = UNAVAILABLE, message: str = None):
        if reason not in self.MESSAGES:
            reason = self.UNAVAILABLE
        self.reason = reason
        super().__init__(message or self.MESSAGES[reason])


class EmbedderLoadFailure(FaceRegistryError):
    """The face embedding model could not be initialized."""

    user_message = "Face recognition models could not be loaded."


class SessionStateError(FaceRegistryError):
    """A capture session action was requested in the wrong state."""
