"""
Typed errors for the progression engine.

Every failure that aborts an operation is a ProgressionError carrying one of
the ErrorCode values. Generator validation issues are not raised; they are
returned as warnings alongside a successful result.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Error taxonomy shared by all engines and stores."""

    NOT_FOUND = "not_found"
    INVALID_STATE = "invalid_state"
    VALIDATION = "validation"
    STORE_FAILURE = "store_failure"


class ProgressionError(Exception):
    """Base class for engine errors."""

    code: ErrorCode = ErrorCode.INVALID_STATE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code.value, "message": self.message, "details": self.details}


class NotFoundError(ProgressionError):
    """A skill, week plan or milestone id could not be resolved."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id: Any):
        super().__init__(
            f"{entity} {entity_id} not found",
            {"entity": entity, "entity_id": str(entity_id)},
        )
        self.entity = entity
        self.entity_id = entity_id


class InvalidStateError(ProgressionError):
    """Operation not allowed from the current state, or degenerate input."""

    code = ErrorCode.INVALID_STATE


class StoreFailureError(ProgressionError):
    """The backing store failed; the operation did not complete."""

    code = ErrorCode.STORE_FAILURE


class StaleWriteError(StoreFailureError):
    """Conditional write rejected because the record changed underneath."""

    def __init__(self, entity: str, entity_id: Any, expected: Any = None):
        super().__init__(
            f"Stale write to {entity} {entity_id}",
            {"entity": entity, "entity_id": str(entity_id), "expected": str(expected)},
        )
        self.entity = entity
        self.entity_id = entity_id
