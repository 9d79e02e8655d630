"""Engine error taxonomy.

Every error carries a stable machine-readable ``code`` (what clients switch
on), a human readable message and an optional ``details`` dict. The HTTP
status each class maps to lives on the class so the exception handlers in
``tippool.main`` stay a one-liner.

Only ``InternalError`` is ``retryable``: everything else is a business
rejection that will fail again with the same input.
"""

from typing import Any, Dict, Optional


class TipEngineError(Exception):
    """Base class for all errors raised by the tip pool engine."""

    status_code = 500
    default_code = "INTERNAL_SERVER_ERROR"
    retryable = False

    def __init__(
        self,
        code: Optional[str] = None,
        message: str = "",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message or self.code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "detail": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }


class ValidationError(TipEngineError):
    """Malformed or missing input."""

    status_code = 400
    default_code = "FIELDS_REQUIRED"


class AuthorizationError(TipEngineError):
    """Caller's role does not allow the operation."""

    status_code = 403
    default_code = "UNAUTHORIZED"


class NotFoundError(TipEngineError):
    """Referenced entity does not exist in the caller's company."""

    status_code = 404
    default_code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            message=f"{entity} {entity_id} not found",
            details={"entity": entity, "id": entity_id},
        )


class ConflictError(TipEngineError):
    """Operation conflicts with the current persisted state."""

    status_code = 409
    default_code = "CONFLICT"


class InternalError(TipEngineError):
    """Storage failure or unexpected state. Never exposes internals."""

    status_code = 500
    default_code = "INTERNAL_SERVER_ERROR"
    retryable = True

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message=message)


# Stable error codes
FIELDS_REQUIRED = "FIELDS_REQUIRED"
DATE_RANGE_REQUIRED = "DATE_RANGE_REQUIRED"
INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
INVALID_DATE = "INVALID_DATE"
DISTRIBUTION_MUST_EQUAL_100 = "DISTRIBUTION_MUST_EQUAL_100"
DEPARTMENT_NAME_AND_TYPE_REQUIRED = "DEPARTMENT_NAME_AND_TYPE_REQUIRED"
INVALID_PERCENTAGE = "INVALID_PERCENTAGE"
INVALID_AMOUNT = "INVALID_AMOUNT"
UNKNOWN_CATEGORY = "UNKNOWN_CATEGORY"
INVALID_DEPARTMENT = "INVALID_DEPARTMENT"
UNAUTHORIZED = "UNAUTHORIZED"
ALREADY_ALLOCATED = "ALREADY_ALLOCATED"
POOL_ALREADY_FINALIZED = "POOL_ALREADY_FINALIZED"
NO_RECEIVER_CONFIGURED = "NO_RECEIVER_CONFIGURED"
DEPARTMENT_HAS_CATEGORIES = "DEPARTMENT_HAS_CATEGORIES"
CATEGORY_IN_DISTRIBUTION = "CATEGORY_IN_DISTRIBUTION"
