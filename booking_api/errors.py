class AppError(Exception):
    """Base error rendered as ``{"success": false, "error": message}``."""

    status_code = 500

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidInputError(AppError):
    status_code = 400


class AuthenticationError(AppError):
    status_code = 401


class NotFoundError(AppError):
    status_code = 404


class OTPRateLimitError(AppError):
    status_code = 429


class UpstreamError(AppError):
    """Messaging provider failure; status depends on the dispatch error kind."""

    def __init__(self, message: str, status_code: int = 500, kind=None):
        super().__init__(message, status_code)
        self.kind = kind


class InternalError(AppError):
    status_code = 500
