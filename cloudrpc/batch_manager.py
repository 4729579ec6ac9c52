"""Batched get, update and delete requests with per-item results."""

import time
from concurrent.futures import ThreadPoolExecutor, as_completed as cf_as_completed
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Generic, List, Optional, Tuple, TypeVar

import structlog

from .exceptions import ServiceError, classify
from .options import CallOptions
from .types import Resource, ResourceId

if TYPE_CHECKING:
    from .client import ResourceClient

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Documented maximum number of calls per batch request
MAX_BATCH_SIZE = 100

_MISSING = object()


class BatchKind(Enum):
    """Kind of a batched sub-request."""
    GET = "get"
    UPDATE = "update"
    DELETE = "delete"


class BatchStatus(Enum):
    """Status of a batch operation."""
    COMPLETED = "completed"
    FAILED = "failed"
    PARTIAL = "partial"


class Result(Generic[T]):
    """Outcome of one sub-request: a value or a ServiceError, never both.

    ``value`` is None for a failed result; ``get`` raises the error instead.
    """

    __slots__ = ("_value", "_error")

    def __init__(self, value: Any = _MISSING, error: Optional[ServiceError] = None):
        if error is not None and value is not _MISSING:
            raise ValueError("Result cannot carry both a value and an error")
        if error is None and value is _MISSING:
            raise ValueError("Result needs a value or an error")
        object.__setattr__(self, "_value", value)
        object.__setattr__(self, "_error", error)

    def __setattr__(self, name, value):
        raise AttributeError("Result is immutable")

    @property
    def value(self) -> Optional[T]:
        return None if self._error is not None else self._value

    @property
    def error(self) -> Optional[ServiceError]:
        return self._error

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: ServiceError) -> "Result[T]":
        return cls(error=error)

    @property
    def failed(self) -> bool:
        return self.error is not None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def get(self) -> T:
        """Return the value, or raise the stored error."""
        if self._error is not None:
            raise self._error
        return self._value

    def __eq__(self, other):
        if not isinstance(other, Result):
            return NotImplemented
        return (self._value, self._error) == (other._value, other._error)

    def __hash__(self):
        return hash((self._value, self._error))

    def __repr__(self):
        if self.error is not None:
            return f"Result(error={self.error!r})"
        return f"Result(value={self.value!r})"


@dataclass(frozen=True)
class BatchUnit:
    """One sub-request of a batch."""
    kind: BatchKind
    resource_id: ResourceId
    resource: Optional[Resource] = None
    options: CallOptions = field(default_factory=CallOptions)


@dataclass(frozen=True)
class BatchRequest:
    """Ordered, immutable group of sub-requests.

    Example:
        >>> request = (BatchRequest.builder()
        ...     .update(dataset.with_data(description="new"))
        ...     .delete(ResourceId("projects/demo/datasets", "old"))
        ...     .get(dataset.resource_id)
        ...     .build())
    """
    units: Tuple[BatchUnit, ...] = ()

    @staticmethod
    def builder() -> "BatchRequestBuilder":
        return BatchRequestBuilder()

    def of_kind(self, kind: BatchKind) -> List[BatchUnit]:
        return [unit for unit in self.units if unit.kind == kind]

    def __len__(self):
        return len(self.units)


class BatchRequestBuilder:
    """Collects sub-requests in submission order."""

    def __init__(self):
        self._units: List[BatchUnit] = []

    def get(self, resource_id: ResourceId, options: Optional[CallOptions] = None) -> "BatchRequestBuilder":
        self._units.append(BatchUnit(BatchKind.GET, resource_id, options=options or CallOptions()))
        return self

    def update(self, resource: Resource, options: Optional[CallOptions] = None) -> "BatchRequestBuilder":
        self._units.append(
            BatchUnit(BatchKind.UPDATE, resource.resource_id, resource, options or CallOptions())
        )
        return self

    def delete(self, resource_id: ResourceId, options: Optional[CallOptions] = None) -> "BatchRequestBuilder":
        self._units.append(BatchUnit(BatchKind.DELETE, resource_id, options=options or CallOptions()))
        return self

    def build(self) -> BatchRequest:
        return BatchRequest(tuple(self._units))


@dataclass
class BatchProgress:
    """Progress information for a batch operation.

    Attributes:
        total: Total number of sub-requests
        completed: Number of successful sub-requests
        failed: Number of failed sub-requests
        elapsed_time: Elapsed time in seconds
    """
    total: int
    completed: int = 0
    failed: int = 0
    elapsed_time: float = 0.0

    @property
    def pending(self) -> int:
        return self.total - self.completed - self.failed

    @property
    def percent_complete(self) -> float:
        """Get completion percentage."""
        if self.total == 0:
            return 100.0
        return ((self.completed + self.failed) / self.total) * 100.0

    @property
    def is_complete(self) -> bool:
        return (self.completed + self.failed) >= self.total


@dataclass(frozen=True)
class BatchResponse:
    """Results of a batch, aligned by index with the sub-requests of each kind.

    Attributes:
        gets: Results of the get sub-requests (None value for a missing resource)
        updates: Results of the update sub-requests
        deletes: Results of the delete sub-requests (False value for a missing resource)
        progress: Final progress information
        total_time: Total execution time in seconds
    """
    gets: Tuple[Result, ...] = ()
    updates: Tuple[Result, ...] = ()
    deletes: Tuple[Result, ...] = ()
    progress: Optional[BatchProgress] = None
    total_time: float = 0.0

    @property
    def failure_count(self) -> int:
        return sum(1 for r in self.gets + self.updates + self.deletes if r.failed)

    @property
    def total_count(self) -> int:
        return len(self.gets) + len(self.updates) + len(self.deletes)

    @property
    def status(self) -> BatchStatus:
        failures = self.failure_count
        if failures == 0:
            return BatchStatus.COMPLETED
        if failures == self.total_count:
            return BatchStatus.FAILED
        return BatchStatus.PARTIAL


class BatchExecutor:
    """Runs the sub-requests of a batch concurrently.

    Each sub-request goes through the resource client, retries included, and
    produces its own Result; one failure never stops the others.

    Example:
        >>> with BatchExecutor(service.resource("b/demo/o"), max_workers=10) as executor:
        ...     response = executor.apply(request)
        >>> response.deletes[0].get()
    """

    def __init__(
        self,
        client: "ResourceClient",
        max_workers: int = 10,
        max_batch_size: int = MAX_BATCH_SIZE,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be >= 1")
        self.client = client
        self.max_workers = max_workers
        self.max_batch_size = max_batch_size
        self._executor: Optional[ThreadPoolExecutor] = None

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self.max_workers)
        return self._executor

    def _run(self, unit: BatchUnit):
        if unit.kind == BatchKind.GET:
            return self.client.get(unit.resource_id, unit.options)
        if unit.kind == BatchKind.UPDATE:
            return self.client.update(unit.resource, unit.options)
        return self.client.delete(unit.resource_id, unit.options)

    def _run_one(self, unit: BatchUnit) -> Result:
        try:
            return Result.success(self._run(unit))
        except Exception as e:
            # Unexpected failures, e.g. an unreadable payload, stay confined to their unit
            return Result.failure(classify(e))

    def apply(
        self,
        request: BatchRequest,
        progress_callback: Optional[Callable[[BatchProgress], None]] = None,
    ) -> BatchResponse:
        """Execute every sub-request of the batch.

        Args:
            request: Sub-requests to run
            progress_callback: Called after every finished sub-request

        Returns:
            BatchResponse with one Result per sub-request
        """
        start_time = time.monotonic()
        progress = BatchProgress(total=len(request))

        if not request.units:
            return BatchResponse(progress=progress)

        results: List[Optional[Result]] = [None] * len(request)

        for offset in range(0, len(request), self.max_batch_size):
            chunk = request.units[offset:offset + self.max_batch_size]
            futures = {
                self._pool().submit(self._run_one, unit): offset + i
                for i, unit in enumerate(chunk)
            }
            for future in cf_as_completed(futures):
                result = future.result()
                results[futures[future]] = result
                if result.failed:
                    progress.failed += 1
                else:
                    progress.completed += 1
                progress.elapsed_time = time.monotonic() - start_time
                if progress_callback:
                    progress_callback(progress)

        grouped = {kind: [] for kind in BatchKind}
        for unit, result in zip(request.units, results):
            grouped[unit.kind].append(result)

        response = BatchResponse(
            gets=tuple(grouped[BatchKind.GET]),
            updates=tuple(grouped[BatchKind.UPDATE]),
            deletes=tuple(grouped[BatchKind.DELETE]),
            progress=progress,
            total_time=time.monotonic() - start_time,
        )
        logger.info(
            "batch_applied",
            collection=self.client.collection,
            total=response.total_count,
            failed=response.failure_count,
            status=response.status.value,
        )
        return response

    def close(self):
        """Shutdown the worker threads."""
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
