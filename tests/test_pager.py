import logging
import math
import threading

import pytest

from conftest import FakeBackend, make_records
from servicenow.errors import CountMismatchError, OperationCancelled, TransportError
from servicenow.pager import OffsetPager, Page, PagingOptions


@pytest.mark.parametrize(
    "total,page_size",
    [(0, 1), (0, 5), (1, 1), (4, 2), (5, 2), (9, 3), (10, 3), (7, 10), (10, 10), (1000, 1000)],
)
def test_request_count_and_item_count(total: int, page_size: int) -> None:
    backend = FakeBackend(make_records(total))
    result = OffsetPager().fetch_all(backend, options=PagingOptions(page_size=page_size))

    if total % page_size == 0:
        expected_calls = math.ceil((total + 1) / page_size)
    else:
        expected_calls = math.ceil(total / page_size)
    assert len(backend.calls) == expected_calls
    assert len(result.items) == total
    assert result.total_count == total


def test_items_keep_page_order() -> None:
    records = make_records(7)
    result = OffsetPager().fetch_all(FakeBackend(records), options=PagingOptions(page_size=3))
    assert result.items == records


def test_offsets_advance_by_page_size() -> None:
    backend = FakeBackend(make_records(7))
    OffsetPager().fetch_all(backend, options=PagingOptions(page_size=3))
    assert [c["offset"] for c in backend.calls] == [0, 3, 6]
    assert all(c["limit"] == 3 for c in backend.calls)


def test_filter_normalized_once_and_reused() -> None:
    backend = FakeBackend(make_records(5))
    OffsetPager().fetch_all(backend, "active=true", ["number"], "sysparm_display_value=true",
                            options=PagingOptions(page_size=2))
    assert {c["query"] for c in backend.calls} == {"active=true^ORDERBYsys_created_on"}
    assert all(c["fields"] == ["number"] for c in backend.calls)
    assert all(c["extra"] == "sysparm_display_value=true" for c in backend.calls)


def test_total_count_comes_from_last_page() -> None:
    pages = iter([Page(items=[1, 2], total_count=None), Page(items=[3], total_count=3)])

    def fetch_page(offset, limit, query, fields, extra, cancel):
        return next(pages)

    result = OffsetPager().fetch_all(fetch_page, options=PagingOptions(page_size=2))
    assert result.items == [1, 2, 3]
    assert result.total_count == 3


def test_strict_mode_raises_on_mismatch() -> None:
    backend = FakeBackend(make_records(9), total_count=10)
    with pytest.raises(CountMismatchError) as exc:
        OffsetPager().fetch_all(backend, options=PagingOptions(page_size=5, validate_count=True), label="incident")
    assert exc.value.expected == 10
    assert exc.value.actual == 9
    assert "incident" in str(exc.value)


def test_lenient_mode_returns_partial_count() -> None:
    backend = FakeBackend(make_records(9), total_count=10)
    result = OffsetPager().fetch_all(backend, options=PagingOptions(page_size=5))
    assert len(result.items) == 9
    assert result.total_count == 10


def test_strict_mode_tolerates_unknown_total() -> None:
    backend = FakeBackend(make_records(3), total_count=None)
    result = OffsetPager().fetch_all(backend, options=PagingOptions(page_size=2, validate_count=True))
    assert len(result) == 3
    assert result.total_count is None


def test_cancel_before_second_page() -> None:
    cancel = threading.Event()
    backend = FakeBackend(make_records(5))

    def fetch_page(offset, limit, query, fields, extra, c):
        page = backend(offset, limit, query, fields, extra, c)
        cancel.set()
        return page

    with pytest.raises(OperationCancelled):
        OffsetPager().fetch_all(fetch_page, options=PagingOptions(page_size=2), cancel=cancel)
    assert [c["offset"] for c in backend.calls] == [0]


def test_cancelled_up_front_fetches_nothing() -> None:
    cancel = threading.Event()
    cancel.set()
    backend = FakeBackend(make_records(5))
    with pytest.raises(OperationCancelled):
        OffsetPager().fetch_all(backend, cancel=cancel)
    assert backend.calls == []


def test_page_failure_propagates_untouched() -> None:
    error = TransportError("Server error 500", status_code=500, body="boom")
    calls = []

    def fetch_page(offset, limit, query, fields, extra, cancel):
        calls.append(offset)
        if offset > 0:
            raise error
        return Page(items=[1, 2], total_count=5)

    with pytest.raises(TransportError) as exc:
        OffsetPager().fetch_all(fetch_page, options=PagingOptions(page_size=2))
    assert exc.value is error
    assert calls == [0, 2]


def test_page_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        PagingOptions(page_size=0)


def test_logs_to_supplied_logger(caplog) -> None:
    logger = logging.getLogger("pager-test")
    with caplog.at_level(logging.INFO, logger="pager-test"):
        OffsetPager(logger).fetch_all(FakeBackend(make_records(3)), options=PagingOptions(page_size=2), label="incident")
    assert any("Paging complete for incident" in r.message for r in caplog.records)
