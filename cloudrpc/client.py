"""Resource clients built on the cloudrpc core."""

import threading
from typing import Any, Mapping, Optional

import structlog

from .batch_manager import BatchExecutor
from .config import ClientSettings
from .exceptions import ServiceError
from .operation_poller import OperationPoller
from .options import CallOptions
from .paging import Page, PageIterator
from .retry_policy import RetryExecutor, RetryPolicy
from .transport import HttpTransport, Transport
from .types import IdentityKey, Resource, ResourceId

logger = structlog.get_logger(__name__)


class ResourceClient:
    """Get, list and mutate the resources of one collection.

    Every call goes through a RetryExecutor. A missing resource is reported
    as None by ``get`` and False by ``delete``; every other call raises the
    ServiceError for a 404.

    Services that identify resources by something other than a top-level
    "name" field take an ``identity``: another key, or a callable reading the
    name from a payload.

    Example:
        >>> instances = ResourceClient(transport, "projects/demo/zones/z1/instances")
        >>> instances.get("vm-1")
        >>> for instance in instances.list(CallOptions(page_size=50)):
        ...     print(instance.name)
        >>> datasets = ResourceClient(
        ...     transport,
        ...     "projects/demo/datasets",
        ...     items_key="datasets",
        ...     identity=lambda payload: payload["datasetReference"]["datasetId"],
        ... )
    """

    def __init__(
        self,
        transport: Transport,
        collection: str,
        retry_policy: Optional[RetryPolicy] = None,
        items_key: str = "items",
        identity: IdentityKey = "name",
    ):
        self.transport = transport
        self.collection = collection.strip("/")
        self.items_key = items_key
        self.identity = identity
        self._executor = RetryExecutor(retry_policy)

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._executor.policy

    def resource_id(self, name: str) -> ResourceId:
        return ResourceId(self.collection, name)

    def _id(self, target) -> ResourceId:
        if isinstance(target, ResourceId):
            return target
        if isinstance(target, Resource):
            return target.resource_id
        return self.resource_id(target)

    def _call(
        self,
        method: str,
        path: str,
        options: CallOptions,
        idempotent: bool,
        body: Optional[Mapping[str, Any]] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        params = options.to_params()
        headers = options.to_headers()
        return self._executor.execute(
            lambda: self.transport.call(
                method,
                path,
                params=params or None,
                body=body,
                headers=headers or None,
            ),
            idempotent=idempotent,
            policy=retry_policy,
            cancel_event=cancel_event,
        )

    def _resource(self, collection: str, payload: Mapping[str, Any]) -> Resource:
        return Resource.from_payload(collection, payload, self.identity)

    def get_payload(
        self,
        target,
        options: Optional[CallOptions] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Optional[dict]:
        """Fetch the raw payload of a resource, None if it does not exist.

        Args:
            target: Name, ResourceId or Resource to fetch
            options: Call options, e.g. a field mask
            retry_policy: Overrides the client's retry policy for this call
            cancel_event: Set it to abandon the call during a retry backoff
        """
        resource_id = self._id(target)
        try:
            return self._call(
                "GET",
                resource_id.path,
                options or CallOptions(),
                idempotent=True,
                retry_policy=retry_policy,
                cancel_event=cancel_event,
            )
        except ServiceError as e:
            if e.not_found:
                return None
            raise

    def get(self, target, options: Optional[CallOptions] = None) -> Optional[Resource]:
        """Fetch a resource, None if it does not exist."""
        resource_id = self._id(target)
        payload = self.get_payload(resource_id, options)
        if payload is None:
            return None
        return self._resource(resource_id.collection, payload)

    def exists(self, target) -> bool:
        return self.get_payload(target, CallOptions(fields="name")) is not None

    def list_page(self, options: Optional[CallOptions] = None) -> Page[Resource]:
        """Fetch one page of the collection."""
        payload = self._call("GET", self.collection, options or CallOptions(), idempotent=True)
        payload = payload or {}
        items = [
            self._resource(self.collection, item)
            for item in payload.get(self.items_key) or ()
        ]
        return Page(items, payload.get("nextPageToken"))

    def list(self, options: Optional[CallOptions] = None) -> PageIterator[Resource]:
        """Lazily iterate over every resource of the collection."""
        return PageIterator(self.list_page, options)

    def insert(self, resource: Resource, options: Optional[CallOptions] = None) -> Resource:
        """Create a resource.

        Not retried after an unknown outcome: the first attempt may have
        created the resource already. If the service answers without a body
        the submitted record is returned.
        """
        payload = self._call(
            "POST",
            self.collection,
            options or CallOptions(),
            idempotent=False,
            body=resource.to_payload(self.identity),
        )
        logger.debug("resource_inserted", collection=self.collection, name=resource.name)
        if not payload:
            return resource
        return self._resource(self.collection, payload)

    def update(self, resource: Resource, options: Optional[CallOptions] = None) -> Resource:
        """Replace a resource. Raises ServiceError if it does not exist.

        If the service answers without a body the submitted record is returned.
        """
        payload = self._call(
            "PUT",
            resource.resource_id.path,
            options or CallOptions(),
            idempotent=True,
            body=resource.to_payload(self.identity),
        )
        if not payload:
            return resource
        return self._resource(resource.resource_id.collection, payload)

    def patch(
        self,
        target,
        changes: Mapping[str, Any],
        options: Optional[CallOptions] = None,
    ) -> Optional[Resource]:
        """Update some fields of a resource. Raises ServiceError if it does not exist.

        A patch is only considered idempotent when guarded by a precondition.
        If the service answers without a body the resource is fetched again.
        """
        options = options or CallOptions()
        resource_id = self._id(target)
        payload = self._call(
            "PATCH",
            resource_id.path,
            options,
            idempotent=options.has_precondition,
            body=dict(changes),
        )
        if not payload:
            return self.get(resource_id)
        return self._resource(resource_id.collection, payload)

    def delete(self, target, options: Optional[CallOptions] = None) -> bool:
        """Delete a resource.

        Returns:
            True if deleted, False if it did not exist
        """
        resource_id = self._id(target)
        try:
            self._call("DELETE", resource_id.path, options or CallOptions(), idempotent=True)
        except ServiceError as e:
            if e.not_found:
                return False
            raise
        logger.debug("resource_deleted", collection=self.collection, name=resource_id.name)
        return True


class ServiceClient:
    """Entry point tying a transport and settings to resource clients.

    Example:
        >>> with ServiceClient.from_settings(ClientSettings()) as service:
        ...     datasets = service.resource("projects/demo/datasets")
        ...     poller = service.operations("projects/demo/zones/z1/operations")
    """

    def __init__(self, transport: Transport, settings: Optional[ClientSettings] = None):
        self.transport = transport
        self.settings = settings or ClientSettings()
        self._retry_policy = self.settings.retry_policy()

    @classmethod
    def from_settings(cls, settings: Optional[ClientSettings] = None) -> "ServiceClient":
        settings = settings or ClientSettings()
        transport = HttpTransport(settings.base_url, timeout=settings.request_timeout)
        return cls(transport, settings)

    def resource(
        self,
        collection: str,
        items_key: str = "items",
        identity: IdentityKey = "name",
    ) -> ResourceClient:
        return ResourceClient(self.transport, collection, self._retry_policy, items_key, identity)

    def operations(self, collection: str) -> OperationPoller:
        return OperationPoller(self.resource(collection), self.settings.wait_policy())

    def batch(self, collection: str) -> BatchExecutor:
        return BatchExecutor(
            self.resource(collection),
            max_workers=self.settings.batch_workers,
            max_batch_size=self.settings.max_batch_size,
        )

    def close(self):
        if hasattr(self.transport, "close"):
            self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
