"""Page-token driven listing."""

from dataclasses import dataclass
from typing import Callable, Generic, Iterator, Optional, Sequence, TypeVar

import structlog

from .options import CallOptions

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Page(Generic[T]):
    """One page of a listing.

    Attributes:
        items: Items in server order
        next_page_token: Token of the following page, None or empty on the last page
    """
    items: Sequence[T] = ()
    next_page_token: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))

    @property
    def has_next_page(self) -> bool:
        return bool(self.next_page_token)


class PageIterator(Generic[T]):
    """Lazy, forward-only iterator over every item of a listing.

    Nothing is fetched until the first item is requested. Each page boundary
    costs exactly one call to ``fetch_page``. Once exhausted the iterator stays
    exhausted; start a new listing to read the items again.

    Example:
        >>> for dataset in client.resource("projects/demo/datasets").list():
        ...     print(dataset.name)
    """

    def __init__(
        self,
        fetch_page: Callable[[CallOptions], Page[T]],
        options: Optional[CallOptions] = None,
    ):
        self._fetch_page = fetch_page
        self._options = options or CallOptions()
        self._next_page_token = self._options.page_token
        self._buffer: Iterator[T] = iter(())
        self._page_count = 0
        self._exhausted = False

    @property
    def page_count(self) -> int:
        """Number of pages fetched so far."""
        return self._page_count

    @property
    def next_page_token(self) -> Optional[str]:
        return self._next_page_token

    def __iter__(self) -> "PageIterator[T]":
        return self

    def __next__(self) -> T:
        while True:
            for item in self._buffer:
                return item
            if self._exhausted:
                raise StopIteration
            self._advance()

    def _advance(self):
        page = self._fetch_page(self._options.with_page_token(self._next_page_token))
        self._page_count += 1
        self._buffer = iter(page.items)
        self._next_page_token = page.next_page_token
        if not page.has_next_page:
            self._exhausted = True
        elif not page.items:
            logger.debug("empty_page", page=self._page_count)


def list_pages(
    fetch_page: Callable[[CallOptions], Page[T]],
    options: Optional[CallOptions] = None,
) -> Iterator[Page[T]]:
    """Yield whole pages of a listing, fetching each one on demand."""
    options = options or CallOptions()
    token = options.page_token
    while True:
        page = fetch_page(options.with_page_token(token))
        yield page
        if not page.has_next_page:
            return
        token = page.next_page_token
