"""
Typed errors raised by the service layer.

Services never return ``None`` for a failed lookup or a rejected write;
they raise one of these and the handlers registered in ``app.main`` render
``{"success": false, "error": message}`` with ``status_code``.
"""


class ContentError(Exception):
    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(ContentError):
    status_code = 404


class ValidationError(ContentError):
    status_code = 400


class Conflict(ContentError):
    status_code = 400


class Forbidden(ContentError):
    status_code = 403


class AuthenticationRequired(ContentError):
    status_code = 401
