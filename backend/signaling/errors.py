"""Failure types surfaced to the peer that initiated a request or event."""


class SignalingError(Exception):
    """Base class. `message` is safe to show to the end user."""

    default_message = "Signaling failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(SignalingError):
    """Unknown or expired code, or unknown connection."""

    default_message = "File not found or OTP expired. The file owner may be offline."


class TargetOffline(SignalingError):
    """The relay target has no live connection."""

    default_message = "Target peer is offline"


class MalformedRequest(SignalingError):
    """A required field is missing or has the wrong type."""

    default_message = "Malformed request"
