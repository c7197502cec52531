"""Application error taxonomy.

Every rejection a core operation can produce is an ``AppError`` subclass with
an HTTP status, a machine-readable code and optional structured details. The
FastAPI exception handler in ``app.main`` turns them into JSON responses.
"""

from typing import Any, Optional


class ErrorCode:
    VALIDATION_ERROR = "VALIDATION_ERROR"
    BAD_REQUEST = "BAD_REQUEST"
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    CONFLICT = "CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    SLOT_LOCKED = "SLOT_LOCKED"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    BOOKING_LIMIT_REACHED = "BOOKING_LIMIT_REACHED"
    MAX_REVISIONS_REACHED = "MAX_REVISIONS_REACHED"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    PLAN_IMMUTABLE = "PLAN_IMMUTABLE"
    NO_ROUTE_FOUND = "NO_ROUTE_FOUND"


class AppError(Exception):
    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class BadRequestError(AppError):
    status_code = 400
    default_code = ErrorCode.BAD_REQUEST


class ValidationFailedError(AppError):
    status_code = 400
    default_code = ErrorCode.VALIDATION_ERROR


class ForbiddenError(AppError):
    status_code = 403
    default_code = ErrorCode.FORBIDDEN


class NotFoundError(AppError):
    status_code = 404
    default_code = ErrorCode.NOT_FOUND


class ConflictError(AppError):
    status_code = 409
    default_code = ErrorCode.CONFLICT


class DuplicateEntryError(ConflictError):
    default_code = ErrorCode.DUPLICATE_ENTRY


class SlotLockedError(ConflictError):
    default_code = ErrorCode.SLOT_LOCKED

    def __init__(self, message: str = "This slot is no longer available", **kwargs):
        super().__init__(message, **kwargs)


class LimitReachedError(ConflictError):
    """Reschedule or revision cap hit; ``code`` tells which."""


class PlanImmutableError(ConflictError):
    default_code = ErrorCode.PLAN_IMMUTABLE

    def __init__(
        self,
        message: str = "Payment plan cannot be modified after a payment has been verified",
        **kwargs,
    ):
        super().__init__(message, **kwargs)


class InvalidTransitionError(AppError):
    status_code = 400
    default_code = ErrorCode.INVALID_TRANSITION

    def __init__(self, entity: str, from_state: str, to_state: str, allowed: list[str]):
        super().__init__(
            f"Invalid {entity} status transition: {from_state} → {to_state}",
            details={"from": from_state, "to": to_state, "allowed": allowed},
        )
        self.entity = entity
        self.from_state = from_state
        self.to_state = to_state
        self.allowed = allowed
