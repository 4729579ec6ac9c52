"""Waiting on long-running operations."""

import threading
import time
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Callable, Optional, Tuple, Union

import structlog

from .exceptions import CancelledError, ServiceError, WaitTimeoutError
from .options import CallOptions, WaitPolicy
from .retry_policy import RetryPolicy
from .types import Operation, OperationError, OperationStatus, OperationWarning, ResourceId

if TYPE_CHECKING:
    from .client import ResourceClient

logger = structlog.get_logger(__name__)

OperationHandle = Union[Operation, ResourceId]

STATUS_FIELDS = "name,status"


@dataclass(frozen=True)
class Success:
    """A finished operation that reported no errors."""
    operation: Operation


@dataclass(frozen=True)
class Failure:
    """A finished operation that reported errors."""
    errors: Tuple[OperationError, ...]
    warnings: Optional[Tuple[OperationWarning, ...]] = None


Completion = Union[Success, Failure]


class OperationPoller:
    """Observes long-running operations until they are done.

    The poller holds no state about the operations it watches, so any
    number of pollers may observe the same operation. Waiting only stops
    client-side observation; it never cancels the operation on the service.

    Example:
        >>> poller = OperationPoller(service.resource("projects/demo/zones/z1/operations"))
        >>> completion = poller.wait_for_completion(operation, WaitPolicy(check_every=1, timeout=120))
        >>> if isinstance(completion, Failure):
        ...     print(completion.errors)
    """

    def __init__(
        self,
        operations: "ResourceClient",
        policy: Optional[WaitPolicy] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.operations = operations
        self.policy = policy or WaitPolicy()
        self._clock = clock

    @staticmethod
    def _id(handle: OperationHandle) -> ResourceId:
        if isinstance(handle, Operation):
            return handle.operation_id
        return handle

    def reload(self, handle: OperationHandle, fields: Optional[str] = None) -> Optional[Operation]:
        """Fetch a fresh snapshot, None if the operation no longer exists."""
        return self._fetch(self._id(handle), fields)

    def _fetch(
        self,
        operation_id: ResourceId,
        fields: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Operation]:
        options = CallOptions(fields=fields) if fields else None
        payload = self.operations.get_payload(operation_id, options, retry_policy, cancel_event)
        if payload is None:
            return None
        return Operation.from_payload(operation_id.collection, payload)

    def exists(self, handle: OperationHandle) -> bool:
        return self.reload(handle, fields="name") is not None

    def is_done(self, handle: OperationHandle) -> bool:
        """Check whether the operation is done.

        Only the status is fetched. An operation that no longer exists is
        considered done.
        """
        return self._check_done(self._id(handle))

    def _check_done(
        self,
        operation_id: ResourceId,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        snapshot = self._fetch(operation_id, STATUS_FIELDS, retry_policy, cancel_event)
        return snapshot is None or snapshot.status == OperationStatus.DONE

    def wait_until_done(
        self,
        handle: OperationHandle,
        policy: Optional[WaitPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Operation]:
        """Block until the operation is done.

        Status checks run under the client's retry policy, cut short by the
        wait timeout and by ``cancel_event``. With a timeout, a status check
        that still fails with a retryable error does not end the wait.

        Args:
            handle: Operation snapshot or identity
            policy: Check interval and timeout (default: the poller's policy)
            cancel_event: Set it to stop waiting at the next check or backoff

        Returns:
            The final full snapshot, or None if the operation no longer exists

        Raises:
            WaitTimeoutError: If the policy timeout elapsed first
            CancelledError: If ``cancel_event`` was set
            ServiceError: If a status check failed
        """
        policy = policy or self.policy
        sleeper = cancel_event or threading.Event()
        operation_id = self._id(handle)
        start = self._clock()
        checks = 0
        last_error = None

        def remaining_time() -> Optional[float]:
            if not policy.timeout:
                return None
            remaining = policy.timeout - (self._clock() - start)
            if remaining <= 0:
                logger.warning(
                    "operation_wait_timeout",
                    operation=operation_id.path,
                    checks=checks,
                    timeout=policy.timeout,
                )
                raise WaitTimeoutError(
                    f"{operation_id} not done after {policy.timeout}s"
                ) from last_error
            return remaining

        while True:
            if sleeper.is_set():
                raise CancelledError(f"Stopped waiting for {operation_id}")

            retry_policy = self.operations.retry_policy
            remaining = remaining_time()
            if remaining is not None:
                retry_policy = replace(retry_policy, total_timeout=remaining)

            checks += 1
            try:
                if self._check_done(operation_id, retry_policy, sleeper):
                    break
            except ServiceError as e:
                if remaining is None or not e.retryable:
                    raise
                last_error = e
                logger.debug(
                    "operation_check_failed",
                    operation=operation_id.path,
                    checks=checks,
                    code=e.code,
                )

            delay = policy.check_every
            remaining = remaining_time()
            if remaining is not None:
                delay = min(delay, remaining)

            if sleeper.wait(delay):
                raise CancelledError(f"Stopped waiting for {operation_id}")

        logger.debug("operation_done", operation=operation_id.path, checks=checks)
        return self._fetch(operation_id, cancel_event=sleeper)

    def wait_for_completion(
        self,
        handle: OperationHandle,
        policy: Optional[WaitPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[Completion]:
        """Wait for the operation and report how it finished.

        Returns:
            Success or Failure, or None if the operation no longer exists
        """
        operation = self.wait_until_done(handle, policy, cancel_event)
        if operation is None:
            return None
        if operation.errors:
            return Failure(operation.errors, operation.warnings)
        return Success(operation)

    def on_done(
        self,
        handle: OperationHandle,
        on_success: Callable[[Operation], None],
        on_error: Callable[[Tuple[OperationError, ...], Optional[Tuple[OperationWarning, ...]]], None],
        policy: Optional[WaitPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        """Wait for the operation, then call exactly one of the continuations.

        Neither is called if the operation no longer exists.
        """
        completion = self.wait_for_completion(handle, policy, cancel_event)
        if isinstance(completion, Success):
            on_success(completion.operation)
        elif isinstance(completion, Failure):
            on_error(completion.errors, completion.warnings)

    def delete(self, handle: OperationHandle) -> bool:
        """Delete the operation record.

        Returns:
            True if deleted, False if it did not exist

        Raises:
            ServiceError: If the service refused, e.g. the operation is still running
        """
        return self.operations.delete(self._id(handle))
