"""
Exception hierarchy for Expense Engine

DESIGN DECISION: Errors are grouped by the component that raises them.
- Storage errors are synchronous and reach the direct caller.
- Sync errors never leave the sync queue; they show up in logs and events.
- Inference errors are delivered through the future the caller awaits.
"""

from typing import Optional


class ExpenseEngineError(Exception):
    """Base exception for everything raised by this package."""
    pass


# =============================================================================
# STORAGE
# =============================================================================

class StorageError(ExpenseEngineError):
    """Base exception for storage operations."""
    pass


class StorageUnavailable(StorageError):
    """The key/value backend could not complete a read or write."""
    pass


class DecodeError(StorageError):
    """A stored value could not be decoded."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class ValidationError(StorageError):
    """Record failed normalization (e.g. amount is not a non-negative number)."""

    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(message)


# =============================================================================
# JOURNAL SYNC
# =============================================================================

class SyncError(ExpenseEngineError):
    """Base exception for journal sync attempts."""
    pass


class SyncTimeout(SyncError):
    """A delivery attempt did not finish within the attempt timeout."""
    pass


class SyncDeliveryFailure(SyncError):
    """The journal transport rejected or failed a delivery."""
    pass


class SyncExhausted(SyncError):
    """A job used up its retry budget and was moved to the dead-letter list."""

    def __init__(self, expense_id: Optional[str], retries: int):
        self.expense_id = expense_id
        self.retries = retries
        super().__init__(
            f"Giving up on syncing expense {expense_id} after {retries} attempts"
        )


# =============================================================================
# INFERENCE
# =============================================================================

class InferenceError(ExpenseEngineError):
    """Base exception for inference requests."""
    pass


class RequestTimeout(InferenceError):
    """No response arrived before the request deadline."""

    def __init__(self, request_type: str, correlation_id: str):
        self.request_type = request_type
        self.correlation_id = correlation_id
        super().__init__(f"Inference request timeout: {request_type}")


class TransportUnavailable(InferenceError):
    """The inference channel is not present."""
    pass


class ResponseValidationError(InferenceError):
    """The response payload is malformed or incomplete."""
    pass


class RequestCleared(InferenceError):
    """The request was rejected because pending requests were cleared."""
    pass
