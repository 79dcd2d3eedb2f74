from fastapi import HTTPException, status


class AppError(HTTPException):
    """HTTPException carrying a machine-readable error code."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "INTERNAL_ERROR"

    def __init__(self, detail: str, code: str | None = None):
        super().__init__(status_code=self.status_code, detail=detail)
        if code:
            self.code = code


class AuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH"


class ForbiddenError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "CONFLICT"


class TamperDetectedError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "TAMPER_DETECTED"


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION"


class UpstreamError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "UPSTREAM_FAILURE"


class ConfigError(AppError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "CONFIG_ERROR"
