import asyncio
from typing import Any, Dict, Optional


class RelayError(Exception):
    """Base error for the relay.

    Carries the HTTP status and the `{error, message}` body it renders to, so
    the same exception can be answered over HTTP or on a socket.
    """

    status_code: int = 400
    error: str = "Bad Request"
    default_message: str = "The request could not be processed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.error, "message": self.message}


class ValidationError(RelayError):
    """Malformed notification input."""

    status_code = 400
    error = "Validation Error"
    default_message = "Type and message are required"


class DuplicateSessionError(RelayError):
    status_code = 500
    error = "Duplicate Session"

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session id {session_id} is already registered")


class TransportPushFailure(RelayError):
    """A push to a single connection failed. Never escapes a delivery."""

    status_code = 502
    error = "Push Failed"

    def __init__(self, session_id: str, cause: BaseException):
        self.session_id = session_id
        self.cause = cause
        reason = "timed out" if isinstance(cause, (TimeoutError, asyncio.TimeoutError)) else repr(cause)
        super().__init__(f"Push to session {session_id} failed: {reason}")


class UnknownRoute(RelayError):
    status_code = 404
    error = "Not Found"
    default_message = "The requested resource was not found"


class InternalServerError(RelayError):
    status_code = 500
    error = "Internal Server Error"
    default_message = "An unexpected error occurred"
