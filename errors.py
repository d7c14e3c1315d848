"""Domain errors raised by the auth service and rendered by the API.

Every error carries the HTTP status it maps to and a client-safe detail
message. Storage failures are translated into ``StorageError`` before they
reach a handler, so no driver or constraint details are ever returned.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AuthServiceError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Request could not be processed"
    headers = None

    def __init__(self, detail: str = None):
        if detail is not None:
            self.detail = detail
        super().__init__(self.detail)


class ConflictError(AuthServiceError):
    status_code = status.HTTP_409_CONFLICT
    detail = "Email already registered"


class AuthenticationError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Invalid email or password"
    headers = {"WWW-Authenticate": "Bearer"}


class InvalidCodeError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Invalid verification code"


class ExpiredCodeError(AuthServiceError):
    status_code = status.HTTP_400_BAD_REQUEST
    detail = "Verification code has expired"


class InvalidTokenError(AuthServiceError):
    status_code = status.HTTP_401_UNAUTHORIZED
    detail = "Could not validate credentials"
    headers = {"WWW-Authenticate": "Bearer"}


class AuthorizationError(AuthServiceError):
    status_code = status.HTTP_403_FORBIDDEN
    detail = "Two-factor authentication required"


class StorageError(AuthServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    detail = "Service temporarily unavailable"


async def auth_error_handler(request: Request, exc: AuthServiceError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=exc.headers,
    )
