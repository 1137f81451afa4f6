"""
Typed failures raised by the service layer.

Services raise these and never return ``None`` for a missing record; the
single handler registered in ``app.main`` turns each one into a JSON error
body carrying the machine-checkable ``code`` and the human-readable
``message``.
"""


class DomainError(Exception):
    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class BadRequestError(DomainError):
    """Cross-entity relationship violated or illegal state transition."""

    code = "BAD_REQUEST"
    status_code = 400


class UnauthorizedError(DomainError):
    code = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(DomainError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(DomainError):
    code = "NOT_FOUND"
    status_code = 404


class ConflictError(DomainError):
    code = "CONFLICT"
    status_code = 409


class PreconditionFailedError(DomainError):
    """A structural invariant blocks the operation."""

    code = "PRECONDITION_FAILED"
    status_code = 412
