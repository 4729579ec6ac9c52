"""Transport seam between cloudrpc and the remote service."""

from typing import Any, Mapping, Optional, Protocol

import requests
import structlog

from .exceptions import HttpError

logger = structlog.get_logger(__name__)


class Transport(Protocol):
    """Performs one synchronous request/response exchange.

    Implementations return the decoded JSON body (None for an empty body),
    raise HttpError for non-2xx answers and let connection-level failures
    propagate.
    """

    def call(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, str]] = None,
        body: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Optional[dict]:
        ...


class HttpTransport:
    """JSON over HTTP transport backed by a requests Session.

    Example:
        >>> transport = HttpTransport("https://service.example.com/v1", timeout=30)
        >>> transport.call("GET", "projects/demo/datasets/sales")
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else ""

        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(
                f"HttpTransport base_url must start with http:// or https://, got: {base_url!r}"
            )

        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        if headers:
            self._session.headers.update(headers)

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def call(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, str]] = None,
        body: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Optional[dict]:
        url = self.url_for(path)
        response = self._session.request(
            method,
            url,
            params=dict(params) if params else None,
            json=dict(body) if body is not None else None,
            headers=dict(headers) if headers else None,
            timeout=self.timeout,
        )

        if not response.ok:
            raise self._error_from(response, method, url)

        if response.status_code == 204 or not response.content:
            return None
        return response.json()

    @staticmethod
    def _error_from(response: requests.Response, method: str, url: str) -> HttpError:
        try:
            error = response.json()
        except ValueError:
            error = None
        if not isinstance(error, Mapping):
            error = None

        message = response.reason or f"HTTP {response.status_code}"
        if error and isinstance(error.get("error"), Mapping):
            message = error["error"].get("message", message)

        logger.debug(
            "http_error_response",
            method=method,
            url=url,
            status=response.status_code,
        )
        return HttpError(response.status_code, message, error)

    def close(self):
        self._session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
