"""Exception types and failure classification for the cloudrpc client."""

from typing import Any, FrozenSet, Mapping, Optional

import grpc
import requests

UNKNOWN_CODE = 0
NOT_FOUND = 404
PRECONDITION_FAILED = 412

# see: https://cloud.google.com/bigquery/troubleshooting-errors
RETRYABLE_CODES: FrozenSet[int] = frozenset({500, 502, 503, 504})

# HTTP equivalents of gRPC status codes
_GRPC_TO_HTTP = {
    grpc.StatusCode.OK: 200,
    grpc.StatusCode.CANCELLED: 499,
    grpc.StatusCode.UNKNOWN: 500,
    grpc.StatusCode.INVALID_ARGUMENT: 400,
    grpc.StatusCode.DEADLINE_EXCEEDED: 504,
    grpc.StatusCode.NOT_FOUND: 404,
    grpc.StatusCode.ALREADY_EXISTS: 409,
    grpc.StatusCode.PERMISSION_DENIED: 403,
    grpc.StatusCode.RESOURCE_EXHAUSTED: 429,
    grpc.StatusCode.FAILED_PRECONDITION: 412,
    grpc.StatusCode.ABORTED: 409,
    grpc.StatusCode.OUT_OF_RANGE: 400,
    grpc.StatusCode.UNIMPLEMENTED: 501,
    grpc.StatusCode.INTERNAL: 500,
    grpc.StatusCode.UNAVAILABLE: 503,
    grpc.StatusCode.DATA_LOSS: 500,
    grpc.StatusCode.UNAUTHENTICATED: 401,
}


class CloudRpcError(Exception):
    """Base exception for all cloudrpc errors."""
    pass


class TransportError(CloudRpcError):
    """Raised by a transport when a call fails without a response.

    Connection resets, socket timeouts and similar failures end up here. The
    outcome of the attempted call is unknown.
    """
    pass


class HttpError(CloudRpcError):
    """Raised by a transport when the service answers with a non-2xx status.

    Attributes:
        status_code: HTTP status of the response
        error: Decoded error body, if the service sent one
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        error: Optional[Mapping[str, Any]] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.error = error


class ServiceError(CloudRpcError):
    """Classified failure of a remote call.

    Instances are immutable and compare equal when their code, message,
    reason and retry flags match.
    """

    __slots__ = ("_code", "_message", "_retryable", "_idempotent", "_reason")

    def __init__(
        self,
        code: int,
        message: str,
        retryable: bool = False,
        idempotent: bool = False,
        reason: Optional[str] = None,
    ):
        super().__init__(message)
        object.__setattr__(self, "_code", code)
        object.__setattr__(self, "_message", message)
        object.__setattr__(self, "_retryable", retryable)
        object.__setattr__(self, "_idempotent", idempotent)
        object.__setattr__(self, "_reason", reason)

    def __setattr__(self, name, value):
        # Allow the interpreter to manage traceback and chaining attributes
        if name.startswith("__"):
            object.__setattr__(self, name, value)
            return
        raise AttributeError(f"{type(self).__name__} is immutable")

    @property
    def code(self) -> int:
        return self._code

    @property
    def message(self) -> str:
        return self._message

    @property
    def retryable(self) -> bool:
        return self._retryable

    @property
    def idempotent(self) -> bool:
        return self._idempotent

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    @property
    def not_found(self) -> bool:
        return self._code == NOT_FOUND

    @property
    def precondition_failed(self) -> bool:
        return self._code == PRECONDITION_FAILED

    def _key(self):
        return (self._code, self._message, self._retryable, self._idempotent, self._reason)

    def __eq__(self, other):
        if not isinstance(other, ServiceError):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __reduce__(self):
        return (
            type(self),
            (self._code, self._message, self._retryable, self._idempotent, self._reason),
        )

    def __repr__(self):
        return (
            f"{type(self).__name__}(code={self._code!r}, message={self._message!r}, "
            f"retryable={self._retryable!r}, idempotent={self._idempotent!r}, "
            f"reason={self._reason!r})"
        )


class WaitTimeoutError(CloudRpcError, TimeoutError):
    """Raised when waiting for an operation exceeds its timeout."""
    pass


class CancelledError(CloudRpcError):
    """Raised when a wait or retry loop is cancelled by its caller."""
    pass


def _is_ambiguous(failure: BaseException) -> bool:
    """Whether the failure leaves the outcome of the call unknown."""
    return isinstance(failure, (TransportError, OSError, requests.RequestException))


def _retryable(code: int, retryable_codes: FrozenSet[int]) -> bool:
    return code in retryable_codes and code != PRECONDITION_FAILED


def _reason_of(payload: Mapping[str, Any]) -> Optional[str]:
    errors = payload.get("errors")
    if errors:
        first = errors[0]
        if isinstance(first, Mapping) and first.get("reason"):
            return first["reason"]
    return payload.get("reason")


def _from_payload(
    payload: Mapping[str, Any],
    idempotent: bool,
    retryable_codes: FrozenSet[int],
) -> ServiceError:
    # Google JSON errors nest the details under "error"
    if isinstance(payload.get("error"), Mapping):
        payload = payload["error"]
    code = int(payload.get("code", UNKNOWN_CODE))
    return ServiceError(
        code,
        payload.get("message", ""),
        retryable=_retryable(code, retryable_codes),
        idempotent=idempotent,
        reason=_reason_of(payload),
    )


def classify(
    failure: Any,
    idempotent: bool = False,
    retryable_codes: FrozenSet[int] = RETRYABLE_CODES,
) -> ServiceError:
    """Translate a raw failure into a ServiceError.

    Args:
        failure: A transport exception, a gRPC error, or a decoded
            service error payload
        idempotent: Whether the attempted call may safely be repeated
        retryable_codes: Status codes that mark a structured error retryable

    Returns:
        ServiceError with the original failure chained as its cause
    """
    if isinstance(failure, ServiceError):
        return failure

    if isinstance(failure, Mapping):
        return _from_payload(failure, idempotent, retryable_codes)

    if isinstance(failure, HttpError):
        if failure.error:
            classified = _from_payload(failure.error, idempotent, retryable_codes)
            if classified.code == UNKNOWN_CODE:
                classified = ServiceError(
                    failure.status_code,
                    classified.message or failure.message,
                    retryable=_retryable(failure.status_code, retryable_codes),
                    idempotent=idempotent,
                    reason=classified.reason,
                )
        else:
            code = failure.status_code
            classified = ServiceError(
                code,
                failure.message,
                retryable=_retryable(code, retryable_codes),
                idempotent=idempotent,
            )
    elif isinstance(failure, grpc.RpcError) and callable(getattr(failure, "code", None)):
        code = _GRPC_TO_HTTP.get(failure.code(), UNKNOWN_CODE)
        details = failure.details() if callable(getattr(failure, "details", None)) else None
        classified = ServiceError(
            code,
            details or str(failure),
            retryable=_retryable(code, retryable_codes),
            idempotent=idempotent,
        )
    elif _is_ambiguous(failure):
        classified = ServiceError(
            UNKNOWN_CODE, str(failure), retryable=idempotent, idempotent=idempotent
        )
    else:
        classified = ServiceError(
            UNKNOWN_CODE, str(failure), retryable=False, idempotent=idempotent
        )

    classified.__cause__ = failure
    return classified


def translate_and_raise(
    failure: BaseException,
    idempotent: bool = False,
    retryable_codes: FrozenSet[int] = RETRYABLE_CODES,
):
    """Classify a failure and raise the result.

    A ServiceError already chained as the failure's cause is raised as is.
    """
    if isinstance(failure, ServiceError):
        raise failure
    cause = failure.__cause__
    if isinstance(cause, ServiceError):
        raise cause
    raise classify(failure, idempotent, retryable_codes)
