"""Error taxonomy shared by services, routes, and the form client"""
from typing import Any, Dict, List, Optional


class WaitlistError(Exception):
    """Base class for errors that map to an HTTP response"""

    status_code = 500

    def __init__(self, message: str, details: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or []

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(WaitlistError):
    """Malformed or missing input, scoped to one or more fields"""

    status_code = 400

    @classmethod
    def from_field_errors(cls, errors: Dict[str, str], message: str = "Validation failed"):
        details = [{"field": field, "message": msg} for field, msg in errors.items()]
        return cls(message, details=details)

    @property
    def field_errors(self) -> Dict[str, str]:
        return {d["field"]: d["message"] for d in self.details}


class Conflict(WaitlistError):
    status_code = 409


class NotFound(WaitlistError):
    status_code = 404


class InvalidState(WaitlistError):
    status_code = 400


class UpstreamUnavailable(WaitlistError):
    """Data store, payment provider, or email provider could not be reached"""

    status_code = 503


class DuplicateKeyError(Exception):
    """A unique constraint rejected a write. `column` is None when it can't be determined."""

    def __init__(self, message: str, column: Optional[str] = None):
        super().__init__(message)
        self.column = column


# Lookup used by the form client to rebuild errors from HTTP responses
ERRORS_BY_STATUS = {
    400: ValidationError,
    404: NotFound,
    409: Conflict,
    503: UpstreamUnavailable,
}


def error_from_response(status_code: int, body: Dict[str, Any]) -> WaitlistError:
    """Rebuild a WaitlistError from a JSON error body"""
    message = (body or {}).get("error") or f"Request failed with status {status_code}"
    error_cls = ERRORS_BY_STATUS.get(status_code, WaitlistError)
    return error_cls(message, details=(body or {}).get("details"))
