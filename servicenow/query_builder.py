# servicenow/query_builder.py
"""
Encodes Table API query strings.

Offset paging is only stable when every page is fetched with the same explicit
ordering, so ensure_ordering() always leaves an ORDERBY clause in the filter.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple
from urllib.parse import quote_plus

CLAUSE_SEPARATOR = "^"
ORDER_DIRECTIVE = "ORDERBY"  # also matches ORDERBYDESC
DEFAULT_ORDER_CLAUSE = "ORDERBYsys_created_on"


def ensure_ordering(query: Optional[str]) -> str:
    if not query:
        return DEFAULT_ORDER_CLAUSE
    if ORDER_DIRECTIVE in query:
        return query
    return f"{query}{CLAUSE_SEPARATOR}{DEFAULT_ORDER_CLAUSE}"


def build_fields_param(fields: Optional[Iterable[str]]) -> Optional[str]:
    if isinstance(fields, str):
        fields = [fields]
    names = [f for f in (fields or []) if f]
    if not names:
        return None
    return f"sysparm_fields={quote_plus(','.join(names))}"


def build(query: Optional[str], fields: Optional[Iterable[str]] = None, extra: Optional[str] = None) -> str:
    """
    Build "sysparm_query=...[&sysparm_fields=...][&extra]".

    The extra fragment is appended verbatim; callers must encode it themselves.
    """
    parts = [f"sysparm_query={quote_plus(ensure_ordering(query))}"]
    fields_param = build_fields_param(fields)
    if fields_param:
        parts.append(fields_param)
    if extra and extra.strip():
        parts.append(extra)
    return "&".join(parts)


@dataclass(frozen=True)
class PageRequest:
    offset: int
    limit: int
    query: Optional[str] = None
    fields: Tuple[str, ...] = ()
    extra: Optional[str] = None

    def __post_init__(self) -> None:
        if self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset}")
        if self.limit < 1:
            raise ValueError(f"limit must be >= 1, got {self.limit}")

    def to_query_string(self) -> str:
        return (
            f"sysparm_offset={self.offset}"
            f"&sysparm_limit={self.limit}"
            f"&{build(self.query, self.fields, self.extra)}"
        )
