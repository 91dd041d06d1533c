# servicenow/pager.py
"""
Aggregates every record matching a query by fetching fixed-size pages.

OffsetPager is the only strategy today. The Table API exposes no cursor, so it
pages with sysparm_offset over a filter that always carries an ORDERBY clause.
Rows inserted, or whose ordering key changes, between two page fetches can still
be skipped or returned twice; no de-duplication is attempted.
"""

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Generic, List, Optional, Sequence, TypeVar

from servicenow.errors import CountMismatchError
from servicenow.query_builder import ensure_ordering
from utils import raise_if_cancelled

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 1000


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T] = field(default_factory=list)
    total_count: Optional[int] = None


@dataclass(frozen=True)
class AggregatedResult(Generic[T]):
    items: List[T] = field(default_factory=list)
    total_count: Optional[int] = None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)


@dataclass(frozen=True)
class PagingOptions:
    page_size: int = DEFAULT_PAGE_SIZE
    validate_count: bool = False

    def __post_init__(self) -> None:
        if int(self.page_size) < 1:
            raise ValueError(f"page_size must be >= 1, got {self.page_size}")


# fetch_page(offset, limit, query, fields, extra, cancel) -> Page
FetchPage = Callable[
    [int, int, Optional[str], Optional[Sequence[str]], Optional[str], Optional[threading.Event]],
    Page,
]


class PagingStrategy(ABC):
    """Turns a single-page fetcher into a full result set."""

    @abstractmethod
    def fetch_all(
        self,
        fetch_page: FetchPage,
        query: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        extra: Optional[str] = None,
        *,
        options: PagingOptions = PagingOptions(),
        cancel: Optional[threading.Event] = None,
        label: Optional[str] = None,
    ) -> AggregatedResult:
        raise NotImplementedError


class OffsetPager(PagingStrategy):
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = logger or logging.getLogger(__name__)

    def fetch_all(
        self,
        fetch_page: FetchPage,
        query: Optional[str] = None,
        fields: Optional[Sequence[str]] = None,
        extra: Optional[str] = None,
        *,
        options: PagingOptions = PagingOptions(),
        cancel: Optional[threading.Event] = None,
        label: Optional[str] = None,
    ) -> AggregatedResult:
        """
        Fetch pages until one comes back short.

        A result set that is an exact multiple of page_size costs one extra,
        empty page. The total count is taken from that last page. With
        options.validate_count a known total that disagrees with the number of
        rows collected raises CountMismatchError.
        """
        page_size = int(options.page_size)
        ordered_query = ensure_ordering(query)
        self.logger.debug(f"Paging {label or 'records'} with query={ordered_query!r}, page_size={page_size}")

        items: List = []
        offset = 0
        pages = 0
        while True:
            raise_if_cancelled(cancel, f"page at offset {offset}")
            page = fetch_page(offset, page_size, ordered_query, fields, extra, cancel)
            pages += 1
            items.extend(page.items)
            self.logger.debug(f"Fetched page #{pages} (offset={offset}, rows={len(page.items)})")
            offset += page_size

            if len(page.items) < page_size:
                total_count = page.total_count
                break

        self.logger.info(
            f"Paging complete for {label or 'records'}. Pages={pages}, Rows={len(items)}, TotalCount={total_count}"
        )

        if options.validate_count and total_count is not None and total_count != len(items):
            raise CountMismatchError(total_count, len(items), label)

        return AggregatedResult(items=items, total_count=total_count)
