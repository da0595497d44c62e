# API error type shared by services, dependencies and routes.

from fastapi import HTTPException


class ApiError(HTTPException):
    """HTTPException carrying a machine-readable error code.

    Rendered by the handler in main.py as
    {"success": false, "error": <message>, "code": <code>, ...extra}.
    """

    def __init__(self, status_code: int, message: str, code: str, headers: dict | None = None, **extra):
        super().__init__(status_code=status_code, detail=message, headers=headers)
        self.code = code
        self.extra = extra


def bad_request(message: str, code: str = "VALIDATION_ERROR") -> ApiError:
    return ApiError(400, message, code)


def unauthorized(message: str = "Not logged in or session expired", code: str = "UNAUTHORIZED", **extra) -> ApiError:
    return ApiError(401, message, code, **extra)


def forbidden(message: str, code: str) -> ApiError:
    return ApiError(403, message, code)


def not_found(message: str = "Record not found") -> ApiError:
    return ApiError(404, message, "NOT_FOUND")
