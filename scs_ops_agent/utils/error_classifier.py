"""Classification of remote failures into retry dispositions."""

import asyncio
import logging
from enum import Enum
from typing import Optional

from scs_ops_agent.clients.base import (
    RemoteServiceError, INTERNAL_ERROR, INVALID_INSTANCE_STATUS,
    INSTANCE_NOT_EXIST, RESOURCE_NOT_FOUND, RELEASE_INSTANCE_FAILED
)
from scs_ops_agent.exceptions import (
    ScsOpsError, ErrorCode, TransientRemoteError, ConflictStateError,
    InstanceNotFoundError, RemoteOperationError
)
from scs_ops_agent.models.instance import OperationKind

logger = logging.getLogger(__name__)


class ErrorDisposition(str, Enum):
    """What a remote failure means for the operation that hit it."""
    TRANSIENT = "transient"
    CONFLICT_STATE = "conflict_state"
    NOT_FOUND = "not_found"
    FATAL = "fatal"


class Resolution(str, Enum):
    """How the invoker must react to a classified failure."""
    SUCCESS = "success"
    RETRY = "retry"
    FAIL = "fail"


NOT_FOUND_CODES = frozenset({INSTANCE_NOT_EXIST, RESOURCE_NOT_FOUND})

_DISPOSITION_BY_ERROR_CODE = {
    ErrorCode.TRANSIENT_REMOTE_ERROR: ErrorDisposition.TRANSIENT,
    ErrorCode.CONFLICT_STATE: ErrorDisposition.CONFLICT_STATE,
    ErrorCode.INSTANCE_NOT_FOUND: ErrorDisposition.NOT_FOUND,
}


def classify(error: Exception, operation_kind: OperationKind) -> ErrorDisposition:
    """Map a raw failure of ``operation_kind`` to a disposition."""
    if isinstance(error, ScsOpsError):
        return _DISPOSITION_BY_ERROR_CODE.get(error.error_code, ErrorDisposition.FATAL)

    if isinstance(error, RemoteServiceError):
        status_code = error.status_code or 0

        if error.code == INTERNAL_ERROR or status_code >= 500:
            return ErrorDisposition.TRANSIENT

        # Release is asynchronous on the remote side and may be refused while
        # a previous release attempt is still settling.
        if operation_kind == OperationKind.DELETE and error.code == RELEASE_INSTANCE_FAILED:
            return ErrorDisposition.TRANSIENT

        if error.code == INVALID_INSTANCE_STATUS:
            return ErrorDisposition.CONFLICT_STATE

        if error.code in NOT_FOUND_CODES or status_code == 404:
            return ErrorDisposition.NOT_FOUND

        return ErrorDisposition.FATAL

    if isinstance(error, (ConnectionError, TimeoutError, asyncio.TimeoutError)):
        return ErrorDisposition.TRANSIENT

    return ErrorDisposition.FATAL


def resolve(disposition: ErrorDisposition, operation_kind: OperationKind) -> Resolution:
    """Apply the per-operation policy to a disposition.

    Delete treats an instance that is already gone or already being released
    as done. Read treats a missing instance as an answer, not a failure.
    """
    if disposition == ErrorDisposition.TRANSIENT:
        return Resolution.RETRY

    if operation_kind == OperationKind.DELETE and disposition in (
        ErrorDisposition.CONFLICT_STATE, ErrorDisposition.NOT_FOUND
    ):
        return Resolution.SUCCESS

    if operation_kind == OperationKind.READ and disposition == ErrorDisposition.NOT_FOUND:
        return Resolution.SUCCESS

    return Resolution.FAIL


def to_scs_error(
    error: Exception,
    disposition: ErrorDisposition,
    operation_kind: OperationKind,
    instance_id: Optional[str] = None
) -> ScsOpsError:
    """Translate a raw failure into the package error taxonomy."""
    operation = operation_kind.value

    if isinstance(error, ScsOpsError):
        error.details.setdefault('operation', operation)
        if instance_id:
            error.details.setdefault('instance_id', instance_id)
        return error

    if disposition == ErrorDisposition.TRANSIENT:
        return TransientRemoteError(
            f"Transient failure during {operation}: {error}",
            operation=operation, instance_id=instance_id, cause=error
        )
    if disposition == ErrorDisposition.CONFLICT_STATE:
        return ConflictStateError(
            f"Instance status does not allow {operation}: {error}",
            operation=operation, instance_id=instance_id, cause=error
        )
    if disposition == ErrorDisposition.NOT_FOUND:
        return InstanceNotFoundError(instance_id, operation=operation, cause=error)

    return RemoteOperationError(
        f"Remote {operation} failed: {error}",
        operation=operation, instance_id=instance_id, cause=error
    )
