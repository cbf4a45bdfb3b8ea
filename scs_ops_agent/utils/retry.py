"""Bounded retry of control-plane mutations."""

import asyncio
import functools
import inspect
import logging
import math
import time
from typing import Callable, Any, Optional, Awaitable
from dataclasses import dataclass
from enum import Enum

from scs_ops_agent.config import config, TimeoutConfig
from scs_ops_agent.exceptions import ConfigurationError, OperationTimeoutError
from scs_ops_agent.models.instance import OperationKind
from scs_ops_agent.utils.error_classifier import classify, resolve, to_scs_error, Resolution

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Timeout bound and fixed polling interval for one operation."""
    timeout: float
    poll_interval: float = 10.0

    def __post_init__(self):
        if self.timeout <= 0:
            raise ConfigurationError(f"timeout must be positive, got {self.timeout}", config_key='timeout')
        if self.poll_interval <= 0:
            raise ConfigurationError(
                f"poll_interval must be positive, got {self.poll_interval}", config_key='poll_interval'
            )

    @property
    def max_attempts(self) -> int:
        """Upper bound on attempts made within the timeout."""
        return max(1, math.ceil(self.timeout / self.poll_interval))

    @classmethod
    def for_operation(cls, kind: OperationKind, timeouts: Optional[TimeoutConfig] = None) -> 'RetryPolicy':
        """Build the default policy for an operation kind from configuration."""
        timeouts = timeouts or config.timeouts
        budget = {
            OperationKind.CREATE: timeouts.create_timeout,
            OperationKind.READ: timeouts.read_timeout,
            OperationKind.DELETE: timeouts.delete_timeout,
        }.get(kind, timeouts.update_timeout)
        return cls(timeout=budget, poll_interval=timeouts.poll_interval)

    def remaining(self, elapsed: float) -> float:
        """Seconds of the budget left after ``elapsed`` seconds."""
        return max(self.timeout - elapsed, 0.0)


class OutcomeKind(str, Enum):
    """Outcome of a single remote attempt."""
    SUCCESS = "success"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass
class AttemptOutcome:
    """Success, Retryable(error) or Fatal(error) for one attempt."""
    kind: OutcomeKind
    result: Any = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, result: Any = None) -> 'AttemptOutcome':
        return cls(OutcomeKind.SUCCESS, result=result)

    @classmethod
    def retryable(cls, error: Exception) -> 'AttemptOutcome':
        return cls(OutcomeKind.RETRYABLE, error=error)

    @classmethod
    def fatal(cls, error: Exception) -> 'AttemptOutcome':
        return cls(OutcomeKind.FATAL, error=error)


async def call_remote(func: Callable[..., Any], *args, **kwargs) -> Any:
    """Await a coroutine function, or run a blocking one in the default executor."""
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)

    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args, **kwargs))


class ActionInvoker:
    """Executes one remote call under a bounded retry loop."""

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        """Initialize the invoker.

        Args:
            clock: Monotonic clock used to measure elapsed time
            sleep: Coroutine used to wait between attempts
        """
        self.clock = clock
        self.sleep = sleep

    async def attempt(
        self,
        func: Callable[..., Any],
        operation_kind: OperationKind,
        instance_id: Optional[str],
        *args,
        **kwargs
    ) -> AttemptOutcome:
        """Run the call once and classify the result."""
        try:
            return AttemptOutcome.success(await call_remote(func, *args, **kwargs))
        except Exception as e:
            disposition = classify(e, operation_kind)
            resolution = resolve(disposition, operation_kind)

            if resolution == Resolution.SUCCESS:
                logger.info(
                    f"{operation_kind.value} of instance {instance_id} treated as done: {e}",
                    extra={'instance_id': instance_id, 'operation': operation_kind.value}
                )
                return AttemptOutcome.success()

            error = to_scs_error(e, disposition, operation_kind, instance_id)
            if resolution == Resolution.RETRY:
                return AttemptOutcome.retryable(error)
            return AttemptOutcome.fatal(error)

    async def invoke(
        self,
        func: Callable[..., Any],
        *args,
        operation_kind: OperationKind,
        policy: RetryPolicy,
        instance_id: Optional[str] = None,
        client_token: Optional[str] = None,
        **kwargs
    ) -> Any:
        """Call ``func`` until it succeeds, fails for good, or ``policy`` runs out.

        Only transient failures are retried, ``policy.poll_interval`` apart and
        never more than ``policy.max_attempts`` times. The caller binds the
        idempotency token into the call arguments so every attempt carries the
        same one; ``client_token`` here is used for logging only.
        """
        start = self.clock()
        attempt = 0
        log_extra = {
            'instance_id': instance_id,
            'operation': operation_kind.value,
            'client_token': client_token
        }

        while True:
            attempt += 1
            outcome = await self.attempt(func, operation_kind, instance_id, *args, **kwargs)

            if outcome.kind == OutcomeKind.SUCCESS:
                if attempt > 1:
                    logger.info(f"{operation_kind.value} succeeded after {attempt} attempts", extra=log_extra)
                return outcome.result

            if outcome.kind == OutcomeKind.FATAL:
                logger.error(f"{operation_kind.value} failed on attempt {attempt}: {outcome.error}", extra=log_extra)
                raise outcome.error

            # The next attempt must start while elapsed time is still under the budget.
            elapsed = self.clock() - start
            if attempt >= policy.max_attempts or elapsed + policy.poll_interval >= policy.timeout:
                logger.error(
                    f"All {attempt} attempts of {operation_kind.value} failed within {policy.timeout:.0f} seconds",
                    extra=log_extra
                )
                raise OperationTimeoutError(
                    f"{operation_kind.value} did not succeed within {policy.timeout:.0f} seconds",
                    elapsed_seconds=elapsed,
                    operation=operation_kind.value,
                    instance_id=instance_id,
                    cause=outcome.error
                )

            logger.warning(
                f"Attempt {attempt} of {operation_kind.value} failed: {outcome.error}. "
                f"Retrying in {policy.poll_interval:.2f} seconds...",
                extra=log_extra
            )
            await self.sleep(policy.poll_interval)
