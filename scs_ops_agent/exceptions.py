"""Custom exception classes for SCS Ops Agent."""

from typing import Optional, Dict, Any
from enum import Enum


class ErrorCode(str, Enum):
    """Error codes for different types of failures."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Remote control-plane errors
    TRANSIENT_REMOTE_ERROR = "TRANSIENT_REMOTE_ERROR"
    CONFLICT_STATE = "CONFLICT_STATE"
    INSTANCE_NOT_FOUND = "INSTANCE_NOT_FOUND"
    REMOTE_OPERATION_FAILED = "REMOTE_OPERATION_FAILED"

    # Reconciliation errors
    UNEXPECTED_STATE = "UNEXPECTED_STATE"
    OPERATION_TIMEOUT = "OPERATION_TIMEOUT"
    OPERATION_IN_PROGRESS = "OPERATION_IN_PROGRESS"


class ScsOpsError(Exception):
    """Base exception class for SCS Ops Agent."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None
    ):
        """Initialize the exception.

        Args:
            message: Human-readable error message
            error_code: Specific error code for the failure
            details: Additional context about the error
            cause: The underlying exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for CLI and API responses."""
        result = {
            'error': self.error_code.value,
            'message': self.message,
            'details': self.details
        }

        if self.cause:
            result['cause'] = str(self.cause)

        return result

    def __str__(self) -> str:
        """String representation of the exception."""
        base_str = f"{self.error_code.value}: {self.message}"

        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            base_str += f" ({details_str})"

        if self.cause:
            base_str += f" [caused by: {self.cause}]"

        return base_str


def _operation_details(operation: Optional[str], instance_id: Optional[str]) -> Dict[str, Any]:
    details = {}
    if operation:
        details['operation'] = operation
    if instance_id:
        details['instance_id'] = instance_id
    return details


class ValidationError(ScsOpsError):
    """Exception for caller-input problems, raised before any remote call."""

    def __init__(self, message: str, field: Optional[str] = None, value: Optional[Any] = None):
        details = {}
        if field:
            details['field'] = field
        if value is not None:
            details['value'] = str(value)

        super().__init__(
            message=message,
            error_code=ErrorCode.VALIDATION_ERROR,
            details=details
        )


class ConfigurationError(ScsOpsError):
    """Exception for configuration-related errors."""

    def __init__(self, message: str, config_key: Optional[str] = None):
        details = {}
        if config_key:
            details['config_key'] = config_key

        super().__init__(
            message=message,
            error_code=ErrorCode.CONFIGURATION_ERROR,
            details=details
        )


class TransientRemoteError(ScsOpsError):
    """Remote failure expected to resolve on its own if retried."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        instance_id: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.TRANSIENT_REMOTE_ERROR,
            details=_operation_details(operation, instance_id),
            cause=cause
        )


class ConflictStateError(ScsOpsError):
    """The instance is in a status that does not accept the operation."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        instance_id: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.CONFLICT_STATE,
            details=_operation_details(operation, instance_id),
            cause=cause
        )


class InstanceNotFoundError(ScsOpsError):
    """Exception for when an instance does not exist on the remote side."""

    def __init__(
        self,
        instance_id: Optional[str],
        operation: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=f"SCS instance '{instance_id}' not found",
            error_code=ErrorCode.INSTANCE_NOT_FOUND,
            details=_operation_details(operation, instance_id),
            cause=cause
        )


class RemoteOperationError(ScsOpsError):
    """Non-retryable remote failure with no more specific classification."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        instance_id: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        super().__init__(
            message=message,
            error_code=ErrorCode.REMOTE_OPERATION_FAILED,
            details=_operation_details(operation, instance_id),
            cause=cause
        )


class UnexpectedStateError(ScsOpsError):
    """The instance reached a status from which the wait cannot succeed."""

    def __init__(
        self,
        status: str,
        operation: Optional[str] = None,
        instance_id: Optional[str] = None
    ):
        details = _operation_details(operation, instance_id)
        details['status'] = status

        super().__init__(
            message=f"SCS instance '{instance_id}' reached unexpected status '{status}'",
            error_code=ErrorCode.UNEXPECTED_STATE,
            details=details
        )
        self.status = status


class OperationTimeoutError(ScsOpsError):
    """The timeout budget ran out before the operation converged.

    The remote side is not told to stop, so the true state of the instance
    is unknown until the next read.
    """

    def __init__(
        self,
        message: str,
        elapsed_seconds: float,
        operation: Optional[str] = None,
        instance_id: Optional[str] = None,
        last_status: Optional[str] = None,
        cause: Optional[Exception] = None
    ):
        details = _operation_details(operation, instance_id)
        details['elapsed_seconds'] = round(elapsed_seconds, 3)
        if last_status:
            details['last_status'] = last_status

        super().__init__(
            message=message,
            error_code=ErrorCode.OPERATION_TIMEOUT,
            details=details,
            cause=cause
        )
        self.elapsed_seconds = elapsed_seconds


class OperationInProgressError(ScsOpsError):
    """Another operation is already in flight for the same instance."""

    def __init__(self, instance_id: str, pending_operation: Optional[str] = None):
        details = {'instance_id': instance_id}
        if pending_operation:
            details['pending_operation'] = pending_operation

        super().__init__(
            message=f"An operation is already in progress for SCS instance '{instance_id}'",
            error_code=ErrorCode.OPERATION_IN_PROGRESS,
            details=details
        )


def format_error_response(error: Exception, include_traceback: bool = False) -> Dict[str, Any]:
    """Format an exception into a standardized error response."""
    if isinstance(error, ScsOpsError):
        response = error.to_dict()
    else:
        # Handle non-custom exceptions
        response = {
            'error': ErrorCode.INTERNAL_ERROR.value,
            'message': str(error),
            'details': {}
        }

    if include_traceback:
        import traceback
        response['traceback'] = traceback.format_exc()

    return response
