"""Reconciliation service for SCS instances."""

import asyncio
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Callable, Any, Dict, List, Optional, Awaitable

from scs_ops_agent.clients.base import ScsClient
from scs_ops_agent.config import config, TimeoutConfig
from scs_ops_agent.exceptions import (
    ScsOpsError, InstanceNotFoundError, OperationInProgressError, RemoteOperationError
)
from scs_ops_agent.logging_config import audit_logger
from scs_ops_agent.models.instance import (
    DesiredSpec, InstanceHandle, InstanceStatus, OperationKind, PendingOperation, ReconcileStep,
    CREATE_BAD_STATUSES, UPDATE_BAD_STATUSES, DELETE_TARGET_STATUSES
)
from scs_ops_agent.services.planner import plan_steps
from scs_ops_agent.services.waiter import StateWaiter
from scs_ops_agent.utils.retry import ActionInvoker, RetryPolicy

logger = logging.getLogger(__name__)

RUNNING_ONLY = frozenset({InstanceStatus.RUNNING})

# Step kind -> (detail key, step param) that shows the change was applied.
STEP_DETAIL_KEYS = {
    OperationKind.RENAME: ('instanceName', 'instance_name'),
    OperationKind.RESIZE_NODE_TYPE: ('nodeType', 'node_type'),
    OperationKind.RESIZE_SHARD_NUM: ('shardNum', 'shard_num'),
}


def build_client_token() -> str:
    """Generate an idempotency token for one mutation."""
    return str(uuid.uuid4())


def step_applied(step: ReconcileStep) -> Callable[[Dict[str, Any]], bool]:
    """Return a check that an instance detail reflects ``step``."""
    detail_key, param = STEP_DETAIL_KEYS[step.kind]
    expected = step.params[param]

    def check(detail: Dict[str, Any]) -> bool:
        return detail.get(detail_key) == expected

    return check


class ReconciliationService:
    """Drives SCS instances from their observed state to a desired state.

    Every operation is a single awaitable that returns only on success,
    timeout or a fatal error. Nothing is rolled back: when a step fails, the
    steps before it stay applied and the error names the failed step.
    """

    def __init__(
        self,
        client: ScsClient,
        timeouts: Optional[TimeoutConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """Initialize reconciliation service."""
        self.client = client
        self.timeouts = timeouts or config.timeouts
        self.clock = clock
        self.invoker = ActionInvoker(clock=clock, sleep=sleep)
        self.waiter = StateWaiter(client, clock=clock, sleep=sleep)
        # instance_id -> operation currently in flight (None between steps)
        self._in_flight: Dict[str, Optional[PendingOperation]] = {}

    def get_pending_operation(self, instance_id: str) -> Optional[PendingOperation]:
        """Return the operation currently in flight for an instance, if any."""
        return self._in_flight.get(instance_id)

    @contextmanager
    def _claim(self, instance_id: str):
        if instance_id in self._in_flight:
            pending = self._in_flight[instance_id]
            raise OperationInProgressError(instance_id, pending.kind.value if pending else None)

        self._in_flight[instance_id] = None
        try:
            yield
        finally:
            self._in_flight.pop(instance_id, None)

    def _policy(self, operation_kind: OperationKind, timeout: Optional[float] = None) -> RetryPolicy:
        """Configured policy for ``operation_kind``, with ``timeout`` replacing its budget when given."""
        if timeout is None:
            return RetryPolicy.for_operation(operation_kind, self.timeouts)
        return RetryPolicy(timeout=timeout, poll_interval=self.timeouts.poll_interval)

    def _remaining(self, start: float, policy: RetryPolicy) -> float:
        return policy.remaining(self.clock() - start)

    async def create_instance(self, desired: DesiredSpec, timeout: Optional[float] = None) -> InstanceHandle:
        """Create an instance and wait until it is Running."""
        policy = self._policy(OperationKind.CREATE, timeout)
        client_token = build_client_token()
        create_args = desired.to_create_args()

        logger.info(f"Starting creation of SCS instance '{desired.instance_name}'")
        audit_logger.log_operation(None, "create_start", {
            "instance_name": desired.instance_name,
            "cluster_type": desired.cluster_type.value,
            "client_token": client_token
        })

        start = self.clock()
        try:
            instance_id = await self.invoker.invoke(
                self.client.create_instance, create_args, client_token,
                operation_kind=OperationKind.CREATE,
                policy=policy,
                client_token=client_token
            )
            if not instance_id:
                raise RemoteOperationError(
                    "Create returned no instance id", operation=OperationKind.CREATE.value
                )

            with self._claim(instance_id):
                self._in_flight[instance_id] = PendingOperation(
                    kind=OperationKind.CREATE,
                    instance_id=instance_id,
                    client_token=client_token,
                    timeout=policy.timeout
                )
                await self.waiter.wait_for(
                    instance_id,
                    bad_statuses=CREATE_BAD_STATUSES,
                    target_statuses=RUNNING_ONLY,
                    policy=policy,
                    operation_kind=OperationKind.CREATE,
                    timeout=self._remaining(start, policy)
                )

            handle = await self._read_existing(instance_id, OperationKind.CREATE)

        except ScsOpsError as e:
            audit_logger.log_operation(e.details.get('instance_id'), "create_failed", {"error": str(e)}, failed=True)
            raise

        audit_logger.log_operation(instance_id, "create_success", {"status": handle.status.value})
        logger.info(f"Successfully created SCS instance {instance_id}")
        return handle

    async def read_instance(self, instance_id: str) -> Optional[InstanceHandle]:
        """Read the observed state of an instance; None when it no longer exists."""
        detail = await self.invoker.invoke(
            self.client.get_instance_detail, instance_id,
            operation_kind=OperationKind.READ,
            policy=self._policy(OperationKind.READ),
            instance_id=instance_id
        )

        if detail is None:
            logger.info(f"SCS instance {instance_id} no longer exists")
            return None

        return InstanceHandle.from_detail(instance_id, detail)

    async def import_instance(self, instance_id: str) -> InstanceHandle:
        """Reconstruct the observed state of an existing instance. Never mutates."""
        return await self._read_existing(instance_id, OperationKind.READ)

    async def _read_existing(self, instance_id: str, operation_kind: OperationKind) -> InstanceHandle:
        handle = await self.read_instance(instance_id)
        if handle is None:
            raise InstanceNotFoundError(instance_id, operation=operation_kind.value)
        return handle

    async def reconcile(
        self,
        handle: InstanceHandle,
        desired: DesiredSpec,
        timeout_budget: Optional[float] = None
    ) -> InstanceHandle:
        """Apply the steps needed to bring ``handle`` to ``desired``.

        Each step gets its own ``timeout_budget`` (default: the update
        timeout) shared between its mutation and its wait. A step is done
        once the instance is Running again and its detail shows the change.

        Raises:
            ValidationError: desired spec changes a field fixed at creation
            ConfigurationError: ``timeout_budget`` is not positive
            ScsOpsError: a step failed; ``details`` carries ``step``,
                ``completed_steps`` and ``rolled_back``
        """
        instance_id = handle.instance_id
        steps = plan_steps(handle, desired)

        if not steps:
            logger.info(f"SCS instance {instance_id} already matches the desired spec")
            return handle

        policies = {step.kind: self._policy(step.kind, timeout_budget) for step in steps}
        audit_logger.log_operation(instance_id, "reconcile_start", {
            "steps": [step.describe() for step in steps]
        })

        completed: List[ReconcileStep] = []
        with self._claim(instance_id):
            for step in steps:
                try:
                    await self._run_step(step, policies[step.kind])
                except ScsOpsError as e:
                    e.details.update({
                        'step': step.kind.value,
                        'completed_steps': [done.kind.value for done in completed],
                        'rolled_back': False
                    })
                    audit_logger.log_operation(instance_id, "reconcile_step_failed", {
                        "step": step.describe(),
                        "error": str(e)
                    }, failed=True)
                    raise

                completed.append(step)
                audit_logger.log_operation(instance_id, "reconcile_step_success", {"step": step.describe()})

        updated = await self._read_existing(instance_id, OperationKind.READ)
        audit_logger.log_operation(instance_id, "reconcile_success", {"status": updated.status.value})
        return updated

    async def _run_step(self, step: ReconcileStep, policy: RetryPolicy) -> InstanceStatus:
        instance_id = step.instance_id
        client_token = build_client_token()
        kwargs: Dict[str, Any] = {}

        if step.kind == OperationKind.RENAME:
            func = self.client.update_instance_name
            args = (instance_id, step.params['instance_name'], client_token)
        elif step.kind == OperationKind.RESIZE_NODE_TYPE:
            func = self.client.resize_instance
            args = (instance_id,)
            kwargs['node_type'] = step.params['node_type']
        elif step.kind == OperationKind.RESIZE_SHARD_NUM:
            func = self.client.resize_instance
            args = (instance_id,)
            kwargs['shard_num'] = step.params['shard_num']
        else:
            raise ValueError(f"Unsupported reconcile step: {step.kind.value}")

        self._in_flight[instance_id] = PendingOperation(
            kind=step.kind,
            instance_id=instance_id,
            client_token=client_token,
            timeout=policy.timeout
        )
        logger.info(
            f"Running step {step.describe()} on instance {instance_id}",
            extra={'instance_id': instance_id, 'step': step.kind.value, 'client_token': client_token}
        )

        try:
            start = self.clock()
            await self.invoker.invoke(
                func, *args,
                operation_kind=step.kind,
                policy=policy,
                instance_id=instance_id,
                client_token=client_token,
                **kwargs
            )
            # Right after the call the instance may still report Running with
            # the old values; only a detail showing the change ends the wait.
            return await self.waiter.wait_for(
                instance_id,
                bad_statuses=UPDATE_BAD_STATUSES,
                target_statuses=RUNNING_ONLY,
                policy=policy,
                operation_kind=step.kind,
                converged=step_applied(step),
                timeout=self._remaining(start, policy)
            )
        finally:
            self._in_flight[instance_id] = None

    async def delete_instance(self, instance_id: str, timeout: Optional[float] = None) -> InstanceStatus:
        """Release an instance and wait until it is gone.

        Deleting an instance that is already gone or already being released
        succeeds. Paused, Deleted and Isolated are all accepted as gone.
        """
        policy = self._policy(OperationKind.DELETE, timeout)
        client_token = build_client_token()

        audit_logger.log_operation(instance_id, "delete_start", {"client_token": client_token})

        try:
            with self._claim(instance_id):
                self._in_flight[instance_id] = PendingOperation(
                    kind=OperationKind.DELETE,
                    instance_id=instance_id,
                    client_token=client_token,
                    timeout=policy.timeout
                )
                start = self.clock()
                await self.invoker.invoke(
                    self.client.delete_instance, instance_id, client_token,
                    operation_kind=OperationKind.DELETE,
                    policy=policy,
                    instance_id=instance_id,
                    client_token=client_token
                )
                status = await self.waiter.wait_for(
                    instance_id,
                    bad_statuses=frozenset(),
                    target_statuses=DELETE_TARGET_STATUSES,
                    policy=policy,
                    operation_kind=OperationKind.DELETE,
                    not_found_is_target=True,
                    timeout=self._remaining(start, policy)
                )
        except ScsOpsError as e:
            audit_logger.log_operation(instance_id, "delete_failed", {"error": str(e)}, failed=True)
            raise

        audit_logger.log_operation(instance_id, "delete_success", {"status": status.value})
        logger.info(f"SCS instance {instance_id} released with final status {status.value}")
        return status
