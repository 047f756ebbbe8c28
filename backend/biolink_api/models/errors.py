"""Error models"""

from enum import Enum
from typing import Optional
import uuid


class ErrorCode(str, Enum):
    """Error codes"""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"
    UNAUTHORIZED = "UNAUTHORIZED"
    PROVIDER_DISPATCH_ERROR = "PROVIDER_DISPATCH_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ApplicationError(Exception):
    """Application error surfaced to API callers as JSON"""
    def __init__(self, code: ErrorCode, message: str, retryable: bool = False, hint: Optional[str] = None):
        self.error_id = str(uuid.uuid4())
        self.code = code
        self.message = message
        self.retryable = retryable
        self.hint = hint
        super().__init__(self.message)

    def model_dump(self):
        """Return dict representation for API responses"""
        return {
            "ok": False,
            "error": self.message,
            "error_id": self.error_id,
            "code": self.code.value,
            "hint": self.hint,
            "retryable": self.retryable,
        }

    @property
    def http_status(self) -> int:
        """Map error code to HTTP status"""
        mapping = {
            ErrorCode.VALIDATION_ERROR: 400,
            ErrorCode.UNAUTHORIZED: 403,
            ErrorCode.NOT_FOUND: 404,
            ErrorCode.PROVIDER_DISPATCH_ERROR: 502,
            ErrorCode.CONFIGURATION_ERROR: 500,
            ErrorCode.INTERNAL_ERROR: 500,
        }
        return mapping.get(self.code, 500)


class ValidationError(ApplicationError):
    """Inbound payload could not be parsed"""
    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(ErrorCode.VALIDATION_ERROR, message, retryable=False, hint=hint)


class NotFoundError(ApplicationError):
    def __init__(self, message: str):
        super().__init__(ErrorCode.NOT_FOUND, message)


class ProviderDispatchError(ApplicationError):
    """A single third-party call failed. Captured per call, never raised to clients."""
    def __init__(self, provider: str, owner: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.owner = owner
        self.status_code = status_code
        super().__init__(ErrorCode.PROVIDER_DISPATCH_ERROR, message, retryable=False)
