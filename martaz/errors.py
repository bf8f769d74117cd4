from __future__ import annotations


class ApiError(Exception):
    """Base for errors the services raise and the API renders as JSON."""

    status_code = 500
    code = "InternalServerError"

    def __init__(self, message: str | None = None, *, code: str | None = None, details: dict | None = None):
        self.message = (message or self.default_message()).strip()
        if code:
            self.code = code
        self.details = details or {}
        super().__init__(self.message)

    @classmethod
    def default_message(cls) -> str:
        return "Internal server error"

    def to_payload(self) -> dict:
        payload = {
            "success": False,
            "ok": False,
            "error": self.code,
            "message": self.message,
            "status": int(self.status_code),
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(ApiError):
    status_code = 400
    code = "ValidationError"

    @classmethod
    def default_message(cls) -> str:
        return "Invalid request"


class AuthenticationError(ApiError):
    status_code = 401
    code = "AuthenticationError"

    @classmethod
    def default_message(cls) -> str:
        return "Authentication required"


class ForbiddenError(ApiError):
    status_code = 403
    code = "ForbiddenError"

    @classmethod
    def default_message(cls) -> str:
        return "You are not allowed to perform this action"


AuthorizationError = ForbiddenError


class NotFoundError(ApiError):
    status_code = 404
    code = "NotFoundError"

    @classmethod
    def default_message(cls) -> str:
        return "Not found"


class ConflictError(ApiError):
    status_code = 409
    code = "ConflictError"

    @classmethod
    def default_message(cls) -> str:
        return "Conflict"
