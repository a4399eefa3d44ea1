"""
Ledger error taxonomy.

Services raise these directly; FastAPI renders them like any other
HTTPException, with a structured detail:

    {"error": "...", "code": "INSUFFICIENT_POINTS", "context": {...}}

`context` carries what is needed to reconstruct the failed precondition
(entity id, attempted value, limit).
"""
from fastapi import HTTPException, status


class LedgerError(HTTPException):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "INTERNAL"

    def __init__(self, message: str, error_code: str | None = None, **context):
        self.message = message
        self.error_code = error_code or self.default_code
        self.context = context
        super().__init__(
            status_code=self.http_status,
            detail={"error": message, "code": self.error_code, "context": context},
        )

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


class NotFoundError(LedgerError):
    http_status = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class ForbiddenError(LedgerError):
    http_status = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class LedgerValidationError(LedgerError):
    http_status = status.HTTP_400_BAD_REQUEST
    default_code = "VALIDATION_ERROR"


class ConflictError(LedgerError):
    http_status = status.HTTP_409_CONFLICT
    default_code = "CONFLICT"


class UnauthorizedError(LedgerError):
    http_status = status.HTTP_401_UNAUTHORIZED
    default_code = "UNAUTHORIZED"


class GoneError(LedgerError):
    http_status = status.HTTP_410_GONE
    default_code = "GONE"


class TooManyRequestsError(LedgerError):
    http_status = status.HTTP_429_TOO_MANY_REQUESTS
    default_code = "TOO_MANY_REQUESTS"
