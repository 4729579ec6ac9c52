"""Shared fixtures: an in-memory transport standing in for the service."""

import copy
import threading

import pytest

from cloudrpc.exceptions import HttpError
from cloudrpc.retry_policy import RetryPolicy


def http_error(code, message, reason=None):
    body = {"error": {"code": code, "message": message}}
    if reason:
        body["error"]["errors"] = [{"reason": reason, "message": message}]
    return HttpError(code, message, body)


class FakeTransport:
    """Dict-backed transport recording every call.

    Resources live under their full path. Listing a collection returns its
    resources in name order, ``page_size`` at a time. Failures queued with
    ``fail`` are raised, one per call, before the store is consulted.
    """

    def __init__(self):
        self.resources = {}
        self.calls = []
        self._failures = {}
        self._lock = threading.Lock()

    def add(self, collection, name, **fields):
        payload = {"name": name, "generation": "1", **fields}
        self.resources[f"{collection}/{name}"] = payload
        return payload

    def fail(self, method, path, *errors):
        self._failures.setdefault((method, path), []).extend(errors)

    def calls_to(self, method, path=None):
        return [c for c in self.calls if c[0] == method and (path is None or c[1] == path)]

    def call(self, method, path, params=None, body=None, headers=None):
        params = dict(params or {})
        with self._lock:
            self.calls.append((method, path, params, body, headers))
            queued = self._failures.get((method, path))
            if queued:
                raise queued.pop(0)
            return self._handle(method, path, params, body, headers or {})

    def _check_preconditions(self, stored, params, headers):
        expected = params.get("ifGenerationMatch")
        if expected is not None and expected != stored.get("generation"):
            raise http_error(412, "Precondition Failed", "conditionNotMet")
        etag = headers.get("If-Match")
        if etag is not None and etag != stored.get("etag"):
            raise http_error(412, "Precondition Failed", "conditionNotMet")

    def _handle(self, method, path, params, body, headers):
        if method == "GET":
            if path in self.resources:
                return copy.deepcopy(self.resources[path])
            prefix = path + "/"
            children = sorted(
                (p for p in self.resources if p.startswith(prefix) and "/" not in p[len(prefix):])
            )
            if children:
                start = int(params.get("pageToken", 0))
                size = int(params.get("maxResults", len(children)))
                chunk = children[start:start + size]
                payload = {"items": [copy.deepcopy(self.resources[p]) for p in chunk]}
                if start + size < len(children):
                    payload["nextPageToken"] = str(start + size)
                return payload
            raise http_error(404, f"{path} not found", "notFound")

        if method == "POST":
            resource_path = f"{path}/{body['name']}"
            if resource_path in self.resources:
                raise http_error(409, "Already exists", "duplicate")
            self.resources[resource_path] = {**body, "generation": "1"}
            return copy.deepcopy(self.resources[resource_path])

        stored = self.resources.get(path)
        if stored is None:
            raise http_error(404, f"{path} not found", "notFound")
        self._check_preconditions(stored, params, headers)

        if method in ("PUT", "PATCH"):
            base = {"name": stored["name"]} if method == "PUT" else dict(stored)
            updated = {**base, **body}
            updated["generation"] = str(int(stored.get("generation", "1")) + 1)
            self.resources[path] = updated
            return copy.deepcopy(updated)

        if method == "DELETE":
            del self.resources[path]
            return None

        raise AssertionError(f"unexpected method {method}")


@pytest.fixture
def transport():
    """Empty in-memory transport."""
    return FakeTransport()


@pytest.fixture
def fast_policy():
    """Retry policy without real waiting."""
    return RetryPolicy(max_attempts=3, initial_backoff=0.0, jitter=False, total_timeout=0)
