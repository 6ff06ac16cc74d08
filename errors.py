class TrackerError(Exception):
    """Base class for errors raised by the tracker core."""


class Unauthenticated(TrackerError):
    """Raised when a user-scoped operation is called without a session."""

    def __init__(self, message: str = "user not authenticated") -> None:
        super().__init__(message)


class FetchError(TrackerError):
    """Raised when the document store or a remote API request fails."""


class NotFound(TrackerError):
    """Raised when a write targets a document that does not exist."""
