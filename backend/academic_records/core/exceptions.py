"""
Error taxonomy for the grade/attendance consistency engine.

ValidationError, NotFoundError, InvariantViolation and ConflictError are raised
before any mutation. TransactionError is raised after a rollback.
"""

from datetime import datetime
from typing import Any, Dict, Optional


class AcademicRecordsError(Exception):
    """Base exception carrying a stable, client-safe message."""

    status_code: int = 400
    error_type: str = "error"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for logging and responses."""
        return {
            "error": self.error_type,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
        }


class ValidationError(AcademicRecordsError):
    """Malformed or out-of-range input."""

    status_code = 422
    error_type = "validation_error"


class NotFoundError(AcademicRecordsError):
    """A referenced class, evaluation, session or enrollment does not exist."""

    status_code = 404
    error_type = "not_found"

    def __init__(self, entity: str, identifiers, **kwargs):
        if isinstance(identifiers, (list, tuple, set)):
            missing = sorted(identifiers, key=str)
        else:
            missing = [identifiers]
        label = ", ".join(str(i) for i in missing)
        super().__init__(
            f"{entity} not found: {label}",
            details={"entity": entity, "missing": missing, **kwargs},
        )
        self.entity = entity
        self.missing = missing


class InvariantViolation(AcademicRecordsError):
    """Evaluation weights of a class do not sum to 100."""

    status_code = 409
    error_type = "invariant_violation"

    def __init__(self, message: str, total: int, difference: int, **kwargs):
        super().__init__(
            message,
            details={"total": total, "difference": difference, **kwargs},
        )
        self.total = total
        self.difference = difference


class ConflictError(AcademicRecordsError):
    """A class session already exists for the same (class, date) pair."""

    status_code = 409
    error_type = "conflict"


class TransactionError(AcademicRecordsError):
    """Unexpected persistence failure; the whole transaction was rolled back."""

    status_code = 500
    error_type = "transaction_error"

    def __init__(self, operation: str):
        super().__init__(
            f"Could not complete {operation}; no changes were saved",
            details={"operation": operation},
        )
        self.operation = operation
