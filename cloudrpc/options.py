"""Per-call options and wait policies."""

from dataclasses import dataclass, replace
from typing import Dict, Optional


@dataclass(frozen=True)
class WaitPolicy:
    """How often to check a long-running operation and how long to wait.

    Attributes:
        check_every: Seconds between status checks (default: 0.5)
        timeout: Seconds before giving up, 0 for no timeout (default: 0)
    """
    check_every: float = 0.5
    timeout: float = 0.0

    def __post_init__(self):
        if self.check_every < 0:
            raise ValueError("check_every must be >= 0")
        if self.timeout < 0:
            raise ValueError("timeout must be >= 0")


@dataclass(frozen=True)
class CallOptions:
    """Options recognised by resource calls.

    Every field is optional; unset fields are left out of the request.
    Preconditions (generation, metageneration and etag match) are sent as
    given and are never relaxed on retry.

    Attributes:
        page_size: Maximum number of items per listed page
        page_token: Token of the page to fetch
        fields: Partial response field mask
        filter: Server-side listing filter expression
        delete_contents: Delete contained resources along with the target
        if_generation_match: Only act if the generation matches
        if_metageneration_match: Only act if the metageneration matches
        if_etag_match: Only act if the etag matches
        timeout: Server-side timeout in seconds
    """
    page_size: Optional[int] = None
    page_token: Optional[str] = None
    fields: Optional[str] = None
    filter: Optional[str] = None
    delete_contents: Optional[bool] = None
    if_generation_match: Optional[int] = None
    if_metageneration_match: Optional[int] = None
    if_etag_match: Optional[str] = None
    timeout: Optional[float] = None

    def __post_init__(self):
        if self.page_size is not None and self.page_size <= 0:
            raise ValueError("page_size must be > 0")
        if self.timeout is not None and self.timeout < 0:
            raise ValueError("timeout must be >= 0")

    @staticmethod
    def builder() -> "CallOptionsBuilder":
        return CallOptionsBuilder()

    @property
    def has_precondition(self) -> bool:
        return (
            self.if_generation_match is not None
            or self.if_metageneration_match is not None
            or self.if_etag_match is not None
        )

    def with_page_token(self, page_token: Optional[str]) -> "CallOptions":
        return replace(self, page_token=page_token)

    def to_params(self) -> Dict[str, str]:
        """Render the options as query parameters."""
        params = {}
        if self.page_size is not None:
            params["maxResults"] = str(self.page_size)
        if self.page_token:
            params["pageToken"] = self.page_token
        if self.fields is not None:
            params["fields"] = self.fields
        if self.filter is not None:
            params["filter"] = self.filter
        if self.delete_contents is not None:
            params["deleteContents"] = "true" if self.delete_contents else "false"
        if self.if_generation_match is not None:
            params["ifGenerationMatch"] = str(self.if_generation_match)
        if self.if_metageneration_match is not None:
            params["ifMetagenerationMatch"] = str(self.if_metageneration_match)
        if self.timeout is not None:
            params["timeoutMs"] = str(int(self.timeout * 1000))
        return params

    def to_headers(self) -> Dict[str, str]:
        if self.if_etag_match is not None:
            return {"If-Match": self.if_etag_match}
        return {}


class CallOptionsBuilder:
    """Fluent builder for CallOptions.

    Each option may be set once per builder.

    Example:
        >>> options = CallOptions.builder().page_size(50).fields("items/name").build()
    """

    def __init__(self):
        self._values = {}

    def _set(self, name: str, value) -> "CallOptionsBuilder":
        if name in self._values:
            raise ValueError(f"Duplicate option {name}")
        self._values[name] = value
        return self

    def page_size(self, value: int) -> "CallOptionsBuilder":
        return self._set("page_size", value)

    def page_token(self, value: str) -> "CallOptionsBuilder":
        return self._set("page_token", value)

    def fields(self, *names: str) -> "CallOptionsBuilder":
        return self._set("fields", ",".join(names))

    def filter(self, value: str) -> "CallOptionsBuilder":
        return self._set("filter", value)

    def delete_contents(self, value: bool = True) -> "CallOptionsBuilder":
        return self._set("delete_contents", value)

    def if_generation_match(self, value: int) -> "CallOptionsBuilder":
        return self._set("if_generation_match", value)

    def if_metageneration_match(self, value: int) -> "CallOptionsBuilder":
        return self._set("if_metageneration_match", value)

    def if_etag_match(self, value: str) -> "CallOptionsBuilder":
        return self._set("if_etag_match", value)

    def timeout(self, value: float) -> "CallOptionsBuilder":
        return self._set("timeout", value)

    def build(self) -> CallOptions:
        return CallOptions(**self._values)
