"""
Store Exceptions

Error taxonomy for entity repository and document store operations.
Errors keep their original context; transient store faults are the only
retryable kind.
"""

from typing import Any, Dict, List, Optional, Sequence

# Store error codes that indicate a transient fault worth retrying
TRANSIENT_ERROR_CODES = frozenset(
    {
        "ProvisionedThroughputExceededException",
        "ThrottlingException",
        "RequestLimitExceeded",
        "LimitExceededException",
        "ServiceUnavailable",
        "InternalServerError",
        "STORE_CONNECTION_ERROR",
        "STORE_TIMEOUT",
        "STORE_BUSY",
        "STORE_WRITE_CONFLICT",
    }
)


class StoreException(Exception):
    """Base exception for entity store errors.

    All repository and store client failures raise this or its subclasses.
    """

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(StoreException):
    """Raised when an entity or update fails validation.

    Local failure: never retried, no store I/O has happened.
    """

    def __init__(self, errors: Sequence[str], message: Optional[str] = None):
        self.errors: List[str] = list(errors)
        super().__init__(
            message=message or f"Validation failed: {', '.join(self.errors)}",
            error_code="VALIDATION_FAILED",
            details={"errors": self.errors},
        )


class ConditionalCheckFailedException(StoreException):
    """Raised when a conditional write finds its precondition violated."""

    def __init__(
        self,
        table: str,
        key: Optional[Dict[str, Any]] = None,
        message: Optional[str] = None,
    ):
        details: Dict[str, Any] = {"table": table}
        if key is not None:
            details["key"] = key

        super().__init__(
            message=message or f"Conditional check failed on table '{table}'",
            error_code="ConditionalCheckFailedException",
            details=details,
        )


class TransientStoreException(StoreException):
    """Raised for throughput, throttling and transient network faults."""

    def __init__(
        self,
        message: str,
        error_code: str = "ThrottlingException",
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        details = dict(details or {})
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code=error_code, details=details)
        if original_error:
            self.__cause__ = original_error


class PermanentStoreException(StoreException):
    """Raised for non-retryable store faults (malformed request, auth, limits)."""

    def __init__(
        self,
        message: str,
        error_code: str = "ValidationException",
        details: Optional[Dict[str, Any]] = None,
        original_error: Optional[Exception] = None,
    ):
        details = dict(details or {})
        if original_error:
            details["original_error"] = str(original_error)
            details["original_error_type"] = type(original_error).__name__

        super().__init__(message=message, error_code=error_code, details=details)
        if original_error:
            self.__cause__ = original_error


class BatchLimitExceededException(PermanentStoreException):
    """Raised by store clients when a batch call exceeds the per-call limit."""

    def __init__(self, operation: str, size: int, limit: int):
        super().__init__(
            message=f"{operation} request has {size} items, limit is {limit}",
            error_code="BatchLimitExceeded",
            details={"operation": operation, "size": size, "limit": limit},
        )


def is_retryable_error(error: BaseException) -> bool:
    """
    Classify an error raised by a store call.

    Retryable: TransientStoreException, any error whose ``error_code`` is a
    transient store code, builtin ConnectionError and TimeoutError.
    Everything else, including validation and conditional failures, is not.
    """
    if isinstance(error, TransientStoreException):
        return True
    if isinstance(
        error,
        (ValidationException, ConditionalCheckFailedException, PermanentStoreException),
    ):
        return False
    if getattr(error, "error_code", None) in TRANSIENT_ERROR_CODES:
        return True
    # Driver-level network faults that escaped a store client's error mapping
    return isinstance(error, (ConnectionError, TimeoutError))
