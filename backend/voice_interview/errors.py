"""Exception types shared by the backend proxy and the interview client."""

from __future__ import annotations


class InterviewError(Exception):
    """Base class for all interview failures."""


class DeviceError(InterviewError):
    """Microphone missing or access denied."""


class CaptureError(InterviewError):
    """A recording produced no clip."""


class TranscriptionError(InterviewError):
    pass


class CompletionError(InterviewError):
    pass


class SpeechError(InterviewError):
    pass


class FeedbackError(InterviewError):
    pass


class TrackingError(InterviewError):
    """Remote session create/update/complete failed."""


class ProviderError(InterviewError):
    """Upstream AI provider returned a failure (backend side)."""

    def __init__(self, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code
