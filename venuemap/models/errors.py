"""Error types raised by the discovery subsystem."""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Machine-readable error codes."""
    INVALID_INPUT = "INVALID_INPUT"
    NOT_FOUND = "NOT_FOUND"
    RATE_LIMITED = "RATE_LIMITED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"


class DiscoveryError(Exception):
    """Base class for every error surfaced to callers of the discovery services."""

    code: ErrorCode = ErrorCode.PROVIDER_UNAVAILABLE
    http_status: int = 500
    retryable: bool = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def model_dump(self) -> Dict[str, Any]:
        """Return dict representation for API responses."""
        return {
            "code": self.code.value,
            "message": self.message,
            "retryable": self.retryable,
        }


class InvalidInputError(DiscoveryError):
    """Bad coordinates, category, radius, limit or query. Raised before any I/O."""

    code = ErrorCode.INVALID_INPUT
    http_status = 400


class NotFoundError(DiscoveryError):
    """No record exists for the requested id in any tier."""

    code = ErrorCode.NOT_FOUND
    http_status = 404


class ProviderUnavailableError(DiscoveryError):
    """Network failure, 5xx or denied request from the place-data provider."""

    code = ErrorCode.PROVIDER_UNAVAILABLE
    http_status = 502
    retryable = True


class RateLimitedError(DiscoveryError):
    """The provider (or the local gate) refused the call; retry after `retry_after` seconds."""

    code = ErrorCode.RATE_LIMITED
    http_status = 429
    retryable = True

    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after

    def model_dump(self) -> Dict[str, Any]:
        data = super().model_dump()
        data["retry_after"] = self.retry_after
        return data
