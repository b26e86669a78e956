"""Client error taxonomy"""
from typing import Any, Dict, Optional

import httpx


AUTH_REQUIRED = "AUTH_REQUIRED"
FORBIDDEN = "FORBIDDEN"
NOT_FOUND = "NOT_FOUND"
VALIDATION_ERROR = "VALIDATION_ERROR"
SERVER_ERROR = "SERVER_ERROR"
NETWORK_ERROR = "NETWORK_ERROR"
UNKNOWN_ERROR = "UNKNOWN_ERROR"

_STATUS_CODES = {
    400: VALIDATION_ERROR,
    401: AUTH_REQUIRED,
    403: FORBIDDEN,
    404: NOT_FOUND,
    409: VALIDATION_ERROR,
    413: VALIDATION_ERROR,
    415: VALIDATION_ERROR,
    422: VALIDATION_ERROR,
}


def code_for_status(status_code: int) -> str:
    if status_code >= 500:
        return SERVER_ERROR
    return _STATUS_CODES.get(status_code, UNKNOWN_ERROR)


class ApiError(Exception):
    """A failed API call, classified for callers"""

    def __init__(
        self,
        message: str,
        code: str = UNKNOWN_ERROR,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        is_timeout: bool = False,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        self.is_timeout = is_timeout

    @property
    def retryable(self) -> bool:
        return self.code in (NETWORK_ERROR, SERVER_ERROR) or self.is_timeout

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        """Build from an error response, reading the server's {error, message, details} body"""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        # FastAPI request validation errors arrive as {"detail": [...]}
        detail = body.get("detail")
        message = body.get("message") or (detail if isinstance(detail, str) else None)
        details = body.get("details") or {}
        if isinstance(detail, list):
            details = {"errors": detail}
        if body.get("error"):
            details = {**details, "server_code": body["error"]}

        return cls(
            message or f"Request failed with status {response.status_code}",
            code=code_for_status(response.status_code),
            status_code=response.status_code,
            details=details,
        )

    @classmethod
    def from_transport(cls, exc: httpx.RequestError) -> "ApiError":
        """Build from a request that never produced a response"""
        if isinstance(exc, httpx.TimeoutException):
            return cls("Request timed out", code=NETWORK_ERROR, is_timeout=True)
        return cls(f"Network error: {exc}", code=NETWORK_ERROR)

    def __repr__(self) -> str:
        return f"ApiError(code={self.code!r}, status_code={self.status_code!r}, message={self.message!r})"
