"""Errors raised by the session engine. None of them leave a session half-updated."""


class SessionError(Exception):
    """Base class for every recoverable error reported back to the caller."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(SessionError):
    """Malformed or out-of-range input."""
    pass


class StateError(SessionError):
    """Request is not legal in the session's current state."""
    pass


class NotFoundError(SessionError):
    """Unknown session, player or quiz id."""

    status_code = 404
