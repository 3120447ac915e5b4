"""
API error types.

Every error leaves the API as `{"error": "<message>", "code": "<CODE>"}`;
the handlers that render them live in main.py. Each subclass pins its
status and code so call sites only pass the message.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """An HTTPException carrying a machine-readable error code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: Optional[str] = None

    def __init__(
        self,
        detail: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            status_code=status_code or type(self).status_code,
            detail=detail,
            headers=headers,
        )
        if error_code:
            self.error_code = error_code


class BadRequestError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "BAD_REQUEST"


class ValidationError(BadRequestError):
    """Bad input for one field; the field name is folded into the code."""

    error_code = "VALIDATION_ERROR"

    def __init__(self, detail: str, field: Optional[str] = None):
        super().__init__(detail, error_code=f"VALIDATION_ERROR_{field.upper()}" if field else None)


class UnauthorizedError(APIException):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "UNAUTHORIZED"

    def __init__(self, detail: str = "Unauthorized"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenError(APIException):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "FORBIDDEN"

    def __init__(self, detail: str = "Access denied"):
        super().__init__(detail)


class NotFoundError(APIException):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "NOT_FOUND"


class ConflictError(APIException):
    """Duplicate assignment or a row that already exists."""

    status_code = status.HTTP_409_CONFLICT
    error_code = "CONFLICT"


class PayloadTooLargeError(APIException):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    error_code = "FILE_TOO_LARGE"


class UpstreamError(APIException):
    """Stripe, Resend or Supabase Storage answered with an error."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_code = "UPSTREAM_ERROR"


class ServiceUnavailableError(APIException):
    """An integration the endpoint needs has no credentials configured."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "SERVICE_UNAVAILABLE"
