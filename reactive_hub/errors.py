"""
Typed business-rule failures.

Services raise these before touching the store; the API layer maps each
kind to a status code through the handlers registered in ``main.py``.
"""
from typing import Optional


class ServiceError(Exception):
    status_code = 400
    kind = "ServiceError"

    def __init__(self, message: str, *, context: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict:
        return {"detail": self.message, "error": self.kind}


class ValidationFailed(ServiceError):
    status_code = 400
    kind = "ValidationError"


class InvalidLocation(ValidationFailed):
    kind = "InvalidLocation"


class NotFound(ServiceError):
    status_code = 404
    kind = "NotFound"


class Forbidden(ServiceError):
    status_code = 403
    kind = "Forbidden"


class InvalidState(ServiceError):
    status_code = 400
    kind = "InvalidState"


class Conflict(ServiceError):
    status_code = 409
    kind = "Conflict"


class DeadlineExpired(ServiceError):
    status_code = 400
    kind = "DeadlineExpired"
