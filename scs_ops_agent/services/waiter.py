"""Polling of instance status until it converges."""

import asyncio
import logging
import time
from typing import Callable, Any, Dict, Optional, Awaitable, AbstractSet

from scs_ops_agent.clients.base import ScsClient
from scs_ops_agent.exceptions import UnexpectedStateError, OperationTimeoutError
from scs_ops_agent.models.instance import InstanceStatus, OperationKind, parse_status
from scs_ops_agent.utils.error_classifier import classify, to_scs_error, ErrorDisposition
from scs_ops_agent.utils.retry import RetryPolicy, call_remote

logger = logging.getLogger(__name__)


class StateWaiter:
    """Repeatedly queries instance status until it reaches a target or bad status."""

    def __init__(
        self,
        client: ScsClient,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.client = client
        self.clock = clock
        self.sleep = sleep

    async def wait_for(
        self,
        instance_id: str,
        bad_statuses: AbstractSet[InstanceStatus],
        target_statuses: AbstractSet[InstanceStatus],
        policy: RetryPolicy,
        operation_kind: OperationKind = OperationKind.READ,
        not_found_is_target: Optional[bool] = None,
        converged: Optional[Callable[[Dict[str, Any]], bool]] = None,
        timeout: Optional[float] = None
    ) -> InstanceStatus:
        """Poll every ``policy.poll_interval`` until the status is in ``target_statuses``.

        A status in ``bad_statuses`` fails on the poll that observes it, and
        the timeout is checked only after the observed status was judged. When
        ``not_found_is_target`` is set (the default for delete), an instance
        that no longer exists counts as having reached the target and
        ``InstanceStatus.DELETED`` is returned.

        ``converged`` is checked against the detail of a target status; while
        it returns False the detail is stale and polling goes on. ``timeout``
        overrides ``policy.timeout`` when only part of the budget is left.

        Raises:
            UnexpectedStateError: a bad or unknown status was observed
            OperationTimeoutError: the timeout elapsed first
        """
        if not_found_is_target is None:
            not_found_is_target = operation_kind == OperationKind.DELETE
        if timeout is None:
            timeout = policy.timeout

        operation = operation_kind.value
        log_extra = {'instance_id': instance_id, 'operation': operation}
        start = self.clock()
        last_status: Optional[InstanceStatus] = None
        polls = 0

        while True:
            polls += 1
            try:
                detail = await call_remote(self.client.get_instance_detail, instance_id)
            except Exception as e:
                disposition = classify(e, operation_kind)
                if disposition == ErrorDisposition.NOT_FOUND and not_found_is_target:
                    logger.info(f"Instance {instance_id} is gone after {polls} polls", extra=log_extra)
                    return InstanceStatus.DELETED
                if disposition != ErrorDisposition.TRANSIENT:
                    raise to_scs_error(e, disposition, operation_kind, instance_id) from e
                logger.warning(f"Transient failure polling instance {instance_id}: {e}", extra=log_extra)
            else:
                status = parse_status(detail.get('instanceStatus'), instance_id=instance_id, operation=operation)
                if status != last_status:
                    logger.debug(f"Instance {instance_id} is {status.value} (poll {polls})", extra=log_extra)
                last_status = status

                if status in target_statuses:
                    if converged is None or converged(detail):
                        logger.info(
                            f"Instance {instance_id} reached {status.value} after {polls} polls", extra=log_extra
                        )
                        return status
                    logger.debug(
                        f"Instance {instance_id} reports {status.value} but the change is not applied yet",
                        extra=log_extra
                    )
                elif status in bad_statuses:
                    raise UnexpectedStateError(status.value, operation=operation, instance_id=instance_id)

            elapsed = self.clock() - start
            if elapsed >= timeout:
                raise OperationTimeoutError(
                    f"Instance {instance_id} did not reach "
                    f"{sorted(s.value for s in target_statuses)} within {timeout:.0f} seconds",
                    elapsed_seconds=elapsed,
                    operation=operation,
                    instance_id=instance_id,
                    last_status=last_status.value if last_status else None
                )

            await self.sleep(policy.poll_interval)
