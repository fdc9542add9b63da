"""
Result type returned by admin-facing service operations.

Routes and CLI commands branch on ``ErrorKind`` instead of matching
error message text.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class ErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    ALREADY_EXISTS = "already_exists"
    VALIDATION = "validation"
    DELIVERY = "delivery"
    INTERNAL = "internal"


HTTP_STATUS = {
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.DELIVERY: 502,
    ErrorKind.INTERNAL: 500,
}


@dataclass
class ServiceResult:
    ok: bool
    message: str = ""
    value: Any = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def success(cls, message="", value=None):
        return cls(ok=True, message=message, value=value)

    @classmethod
    def failure(cls, kind, message):
        return cls(ok=False, message=message, error_kind=kind)

    @property
    def http_status(self):
        if self.ok:
            return 200
        return HTTP_STATUS.get(self.error_kind, 500)

    def __iter__(self):
        # Allows `success, message = result` like the older tuple returns
        yield self.ok
        yield self.message

    def to_dict(self):
        if self.ok:
            payload = {"message": self.message}
            if self.value is not None:
                payload["result"] = self.value
            return payload
        return {"error": self.message, "kind": self.error_kind.value}


class ServiceError(Exception):
    """Raised inside a service transaction to abort with a typed failure"""

    def __init__(self, kind, message):
        super().__init__(message)
        self.kind = kind
        self.message = message

    def to_result(self):
        return ServiceResult.failure(self.kind, self.message)
