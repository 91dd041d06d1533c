import json
from urllib.parse import parse_qs, urlparse

import pytest

from servicenow.pager import Page
from servicenow.servicenow_client import ServiceNowClient

INSTANCE = "dev123"
BASE_URL = f"https://{INSTANCE}.service-now.com"


def query_params(url: str) -> dict:
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


def make_records(n: int, start: int = 0) -> list:
    return [{"sys_id": f"id{i:04d}", "number": f"INC{i:07d}"} for i in range(start, start + n)]


def table_page_callback(records: list, total_count=None):
    """responses callback that serves records sliced by sysparm_offset/limit."""
    def _callback(request):
        params = query_params(request.url)
        offset = int(params["sysparm_offset"])
        limit = int(params["sysparm_limit"])
        headers = {}
        count = len(records) if total_count is None else total_count
        if count is not False:
            headers["X-Total-Count"] = str(count)
        return 200, headers, json.dumps({"result": records[offset:offset + limit]})
    return _callback


class FakeBackend:
    """In-memory single-page fetcher that records the offsets it was asked for."""

    def __init__(self, records, total_count="auto"):
        self.records = list(records)
        self.total_count = len(self.records) if total_count == "auto" else total_count
        self.calls = []

    def __call__(self, offset, limit, query, fields, extra, cancel):
        self.calls.append({"offset": offset, "limit": limit, "query": query, "fields": fields, "extra": extra})
        return Page(items=self.records[offset:offset + limit], total_count=self.total_count)


@pytest.fixture
def client():
    sn = ServiceNowClient(INSTANCE, "admin", "secret", max_retries=0, timeout=5)
    yield sn
    sn.close()
