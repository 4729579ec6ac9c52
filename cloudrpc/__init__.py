"""cloudrpc client core.

This package provides the machinery shared by every resource family of a
JSON/HTTP resource-management service:

- Error classification into typed ServiceError values
- Retry execution with backoff
- Lazy page-token listing
- Waiting on long-running operations
- Batched get/update/delete with per-item results
"""

from .client import ResourceClient, ServiceClient
from .config import ClientSettings
from .log import configure_logging
from .retry_policy import RetryPolicy, RetryStrategy, RetryExecutor, execute, with_retry
from .options import CallOptions, CallOptionsBuilder, WaitPolicy
from .paging import Page, PageIterator, list_pages
from .operation_poller import Completion, Failure, OperationPoller, Success
from .batch_manager import (
    BatchExecutor,
    BatchKind,
    BatchProgress,
    BatchRequest,
    BatchResponse,
    BatchStatus,
    BatchUnit,
    Result,
)
from .transport import HttpTransport, Transport
from .types import (
    IdentityKey,
    Operation,
    OperationError,
    OperationStatus,
    OperationWarning,
    Resource,
    ResourceId,
)
from .exceptions import (
    RETRYABLE_CODES,
    UNKNOWN_CODE,
    CancelledError,
    CloudRpcError,
    HttpError,
    ServiceError,
    TransportError,
    WaitTimeoutError,
    classify,
    translate_and_raise,
)

__version__ = "0.3.0"
__all__ = [
    "ResourceClient",
    "ServiceClient",
    "ClientSettings",
    "configure_logging",
    "RetryPolicy",
    "RetryStrategy",
    "RetryExecutor",
    "execute",
    "with_retry",
    "CallOptions",
    "CallOptionsBuilder",
    "WaitPolicy",
    "Page",
    "PageIterator",
    "list_pages",
    "Completion",
    "Failure",
    "OperationPoller",
    "Success",
    "BatchExecutor",
    "BatchKind",
    "BatchProgress",
    "BatchRequest",
    "BatchResponse",
    "BatchStatus",
    "BatchUnit",
    "Result",
    "HttpTransport",
    "Transport",
    "IdentityKey",
    "Operation",
    "OperationError",
    "OperationStatus",
    "OperationWarning",
    "Resource",
    "ResourceId",
    "RETRYABLE_CODES",
    "UNKNOWN_CODE",
    "CancelledError",
    "CloudRpcError",
    "HttpError",
    "ServiceError",
    "TransportError",
    "WaitTimeoutError",
    "classify",
    "translate_and_raise",
]
