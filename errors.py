"""Error taxonomy shared by the services, the auth gate and the HTTP layer.

Every error carries the HTTP status it maps to and a message that is safe to
return to the client. Internal detail belongs in the log, not in ``message``.
"""

from typing import Optional


class FinanceError(ValueError):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(FinanceError):
    status_code = 400
    default_message = "Invalid request"


class AuthenticationError(FinanceError):
    status_code = 401
    default_message = "Authentication required"


class TokenInvalid(AuthenticationError):
    default_message = "Invalid token"


class TokenExpired(AuthenticationError):
    default_message = "Token expired"


class AuthorizationError(FinanceError):
    status_code = 403
    default_message = "Unauthorized access"


class NotFoundError(FinanceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(FinanceError):
    status_code = 400
    default_message = "Conflict"


class StoreError(FinanceError):
    status_code = 500


class StoreTimeout(StoreError):
    status_code = 503
    default_message = "Service temporarily unavailable"
