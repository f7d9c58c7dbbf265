"""
Exception hierarchy for the interview session engine.
Every error carries a machine-readable code and details for API responses.
"""
from typing import Any, Dict, Optional


class InterviewSystemError(Exception):
    """Base class for all engine errors."""

    status_code = 500

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error into a JSON-friendly dictionary."""
        return {
            "error": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }


class ConfigurationError(InterviewSystemError):
    """Invalid session configuration (unknown type, out-of-range bounds)."""

    status_code = 422

    def __init__(self, message: str, field: Optional[str] = None, value: Any = None):
        super().__init__(message, "CONFIGURATION_ERROR")
        if field is not None:
            self.details["field"] = field
        if value is not None:
            self.details["value"] = value


class SessionNotFoundError(InterviewSystemError):
    """No session record exists for the given id (or it belongs to someone else)."""

    status_code = 404

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", "SESSION_NOT_FOUND")
        self.details["session_id"] = session_id


class InvalidTransitionError(InterviewSystemError):
    """A user action is not allowed in the current call state."""

    status_code = 409

    def __init__(self, action: str, state: str, session_id: Optional[str] = None):
        super().__init__(f"Cannot {action} while call is {state}", "INVALID_TRANSITION")
        self.details.update({
            "action": action,
            "state": state,
            "session_id": session_id,
        })


class ProviderConnectionError(InterviewSystemError):
    """The voice provider could not be reached or rejected a control request."""

    status_code = 502

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message, "PROVIDER_CONNECTION_ERROR")
        if operation:
            self.details["operation"] = operation


class GenerationDegraded(InterviewSystemError):
    """Text generation failed or produced unusable output. Absorbed by the feedback fallback."""

    status_code = 503

    def __init__(self, message: str, raw_output: Optional[str] = None):
        super().__init__(message, "GENERATION_DEGRADED")
        if raw_output:
            self.details["raw_output"] = raw_output[:200]


class PersistenceError(InterviewSystemError):
    """A session record could not be written. Retryable."""

    status_code = 503

    def __init__(self, message: str, session_id: Optional[str] = None, operation: Optional[str] = None):
        super().__init__(message, "PERSISTENCE_ERROR")
        self.details.update({
            "session_id": session_id,
            "operation": operation,
            "retryable": True,
        })
