from fastapi import HTTPException
from typing import Dict, Any, Optional
from enum import Enum


class StoreErrorKind(str, Enum):
    """Failure classes decided at the data-store boundary"""
    NOT_FOUND = "not_found"
    AUTH_EXPIRED = "auth_expired"
    CONFLICT = "conflict"
    TRANSIENT = "transient"


class StoreError(Exception):
    """Raised by store adapters; carries a structured kind instead of a message to sniff"""

    def __init__(self, kind: StoreErrorKind, message: str = "", code: Optional[str] = None):
        self.kind = kind
        self.message = message
        self.code = code
        super().__init__(f"{kind.value}: {message}" if message else kind.value)

    @property
    def is_auth_expired(self) -> bool:
        return self.kind == StoreErrorKind.AUTH_EXPIRED


class AuthenticationFailedError(Exception):
    """The auth provider rejected a sign-in or sign-up"""

    def __init__(self, message: str, status: Optional[int] = None):
        self.message = message
        self.status = status
        super().__init__(message)


class NoActiveSessionError(Exception):
    """An operation that needs a signed-in viewer was called without one"""


class APIException(HTTPException):
    def __init__(self, status_code: int, detail: Any, headers: Dict[str, Any] = None):
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationException(APIException):
    def __init__(self, detail: str):
        super().__init__(status_code=422, detail=f"Validation Error: {detail}")


class NotFoundException(APIException):
    def __init__(self, detail: str = "Not found"):
        super().__init__(status_code=404, detail=detail)


class SignInRequiredException(APIException):
    def __init__(self, detail: str = "Please sign in to continue."):
        super().__init__(
            status_code=401,
            detail={"error": "sign_in_required", "message": detail},
            headers={"WWW-Authenticate": "Bearer"},
        )


class SessionExpiredException(APIException):
    def __init__(self, detail: str = "Your session has expired. Please sign in again."):
        super().__init__(
            status_code=401,
            detail={"error": "session_expired", "message": detail, "requires_reauth": True},
            headers={"WWW-Authenticate": "Bearer"},
        )


class ServiceUnavailableException(APIException):
    def __init__(self, detail: str = "Service temporarily unavailable"):
        super().__init__(status_code=503, detail=detail)


class ConfigurationException(APIException):
    def __init__(self, detail: str):
        super().__init__(status_code=500, detail=f"Configuration Error: {detail}")


def to_http_exception(error: Exception) -> APIException:
    """Translate a domain error raised below the API layer into its HTTP form"""
    if isinstance(error, APIException):
        return error
    if isinstance(error, AuthenticationFailedError):
        return APIException(
            status_code=401,
            detail={"error": "authentication_failed", "message": error.message},
            headers={"WWW-Authenticate": "Bearer"},
        )
    if isinstance(error, NoActiveSessionError):
        return SignInRequiredException()
    if isinstance(error, StoreError):
        if error.kind == StoreErrorKind.AUTH_EXPIRED:
            return SessionExpiredException()
        if error.kind == StoreErrorKind.NOT_FOUND:
            return NotFoundException(error.message or "Not found")
        return ServiceUnavailableException("Data store request failed. Please try again.")
    return APIException(status_code=500, detail="Internal server error")
