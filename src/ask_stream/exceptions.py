"""Custom exceptions for the ask-stream client."""


class AskStreamError(Exception):
    """Base exception for ask-stream errors."""

    pass


class TransportError(AskStreamError):
    """Raised when the event stream cannot be opened or is lost mid-read."""

    pass


class RetriesExhaustedError(AskStreamError):
    """Raised when a connection gave up after its last reconnect attempt."""

    def __init__(self, url: str, attempts: int, last_error: BaseException | None = None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Gave up on {url} after {attempts} retries: {last_error}")


class SessionStateError(AskStreamError):
    """Raised when a session API is used from a state that does not allow it."""

    pass
