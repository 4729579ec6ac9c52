"""Value types for resources and long-running operations."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Tuple, Union


# Payload key holding the resource name, or a callable extracting it
IdentityKey = Union[str, Callable[[Mapping[str, Any]], str]]


class OperationStatus(Enum):
    """Server-assigned state of a long-running operation."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"


@dataclass(frozen=True)
class ResourceId:
    """Identity of a resource inside a collection.

    Attributes:
        collection: Collection path, e.g. "projects/demo/datasets"
        name: Resource name inside the collection
    """
    collection: str
    name: str

    def __post_init__(self):
        if not self.name:
            raise ValueError("name must not be empty")
        object.__setattr__(self, "collection", self.collection.strip("/"))

    @property
    def path(self) -> str:
        return f"{self.collection}/{self.name}" if self.collection else self.name

    @classmethod
    def from_path(cls, path: str) -> "ResourceId":
        collection, _, name = path.strip("/").rpartition("/")
        return cls(collection, name)

    def __str__(self):
        return self.path


def _identity_of(payload: Mapping[str, Any], identity: IdentityKey) -> str:
    if callable(identity):
        return identity(payload)
    name = payload.get(identity)
    if not name:
        raise ValueError(f"Resource payload has no {identity!r} field")
    return name


def _frozen_mapping(data: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class Resource:
    """Snapshot of a remote resource.

    Records are never changed in place; ``with_data`` returns a new one.

    Attributes:
        resource_id: Identity used to re-fetch the resource
        data: Resource fields as returned by the service
        etag: Entity tag, if the service sent one
        generation: Generation number, if the service sent one
    """
    resource_id: ResourceId
    data: Mapping[str, Any] = field(default_factory=dict)
    etag: Optional[str] = None
    generation: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "data", _frozen_mapping(self.data))

    @classmethod
    def from_payload(
        cls,
        collection: str,
        payload: Mapping[str, Any],
        identity: IdentityKey = "name",
    ) -> "Resource":
        """Build a record from a decoded resource.

        Raises:
            ValueError: If the payload carries no name under ``identity``
        """
        generation = payload.get("generation")
        return cls(
            resource_id=ResourceId(collection, _identity_of(payload, identity)),
            data=payload,
            etag=payload.get("etag"),
            generation=int(generation) if generation is not None else None,
        )

    @property
    def name(self) -> str:
        return self.resource_id.name

    def get(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def with_data(self, **changes) -> "Resource":
        return replace(self, data={**self.data, **changes})

    def to_payload(self, identity: IdentityKey = "name") -> dict:
        payload = dict(self.data)
        # A callable identity reads the name from fields already in data
        if not callable(identity):
            payload[identity] = self.resource_id.name
        if self.etag is not None:
            payload["etag"] = self.etag
        if self.generation is not None:
            payload["generation"] = str(self.generation)
        return payload


@dataclass(frozen=True)
class OperationError:
    """One error reported by a finished operation."""
    code: Optional[str] = None
    location: Optional[str] = None
    message: Optional[str] = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "OperationError":
        return cls(payload.get("code"), payload.get("location"), payload.get("message"))


@dataclass(frozen=True)
class OperationWarning:
    """One warning reported by an operation."""
    code: Optional[str] = None
    message: Optional[str] = None
    metadata: Optional[Mapping[str, str]] = None

    def __post_init__(self):
        if self.metadata is not None:
            object.__setattr__(self, "metadata", _frozen_mapping(self.metadata))

    def __hash__(self):
        items = tuple(sorted(self.metadata.items())) if self.metadata is not None else None
        return hash((self.code, self.message, items))

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "OperationWarning":
        metadata = None
        if payload.get("data") is not None:
            metadata = {entry["key"]: entry["value"] for entry in payload["data"]}
        return cls(payload.get("code"), payload.get("message"), metadata)


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass(frozen=True)
class Operation:
    """Immutable snapshot of a long-running operation.

    Each re-fetch produces a new snapshot. Fields the service left out of a
    partial response are None.
    """
    operation_id: ResourceId
    generated_id: Optional[str] = None
    status: Optional[OperationStatus] = None
    status_message: Optional[str] = None
    operation_type: Optional[str] = None
    target_link: Optional[str] = None
    user: Optional[str] = None
    progress: Optional[int] = None
    insert_time: Optional[datetime] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    errors: Optional[Tuple[OperationError, ...]] = None
    warnings: Optional[Tuple[OperationWarning, ...]] = None
    http_error_status_code: Optional[int] = None
    http_error_message: Optional[str] = None
    description: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.status == OperationStatus.DONE

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    @classmethod
    def from_payload(cls, collection: str, payload: Mapping[str, Any]) -> "Operation":
        """Build a snapshot from a decoded operation resource."""
        if payload.get("name"):
            operation_id = ResourceId(collection, payload["name"])
        else:
            operation_id = ResourceId.from_path(payload["selfLink"])

        errors = None
        error_block = payload.get("error")
        if error_block and error_block.get("errors"):
            errors = tuple(OperationError.from_payload(e) for e in error_block["errors"])

        warnings = None
        if payload.get("warnings"):
            warnings = tuple(OperationWarning.from_payload(w) for w in payload["warnings"])

        status = payload.get("status")
        generated_id = payload.get("id")
        return cls(
            operation_id=operation_id,
            generated_id=str(generated_id) if generated_id is not None else None,
            status=OperationStatus(status) if status else None,
            status_message=payload.get("statusMessage"),
            operation_type=payload.get("operationType"),
            target_link=payload.get("targetLink"),
            user=payload.get("user"),
            progress=payload.get("progress"),
            insert_time=_parse_timestamp(payload.get("insertTime")),
            start_time=_parse_timestamp(payload.get("startTime")),
            end_time=_parse_timestamp(payload.get("endTime")),
            errors=errors,
            warnings=warnings,
            http_error_status_code=payload.get("httpErrorStatusCode"),
            http_error_message=payload.get("httpErrorMessage"),
            description=payload.get("description"),
        )
