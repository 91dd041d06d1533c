# servicenow/envelope.py
"""
Response envelope normalizer.

The Table API wraps every payload as {"result": ...}. Single-record endpoints put
an object there, list endpoints an array; list responses usually carry the full
match count in the X-Total-Count header. Which shape to expect is decided by the
calling operation, never sniffed from the body.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, Mapping, Optional, TypeVar, Union

from servicenow.errors import DecodeError

RESULT_KEY = "result"
TOTAL_COUNT_HEADER = "X-Total-Count"

T = TypeVar("T")
ItemFactory = Callable[[Dict[str, Any]], T]

logger = logging.getLogger(__name__)

# errors an item factory may raise on a malformed object
_FACTORY_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


@dataclass(frozen=True)
class SingleEnvelope(Generic[T]):
    item: T


@dataclass(frozen=True)
class ListEnvelope(Generic[T]):
    items: List[T] = field(default_factory=list)
    total_count: Optional[int] = None


Envelope = Union[SingleEnvelope, ListEnvelope]


def _identity(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj


def _body_text(raw_body: Union[bytes, str, None]) -> str:
    if raw_body is None:
        return ""
    if isinstance(raw_body, bytes):
        return raw_body.decode("utf-8", errors="replace")
    return raw_body


def parse_total_count(headers: Optional[Mapping[str, str]]) -> Optional[int]:
    """Integer value of X-Total-Count, or None when missing or not numeric."""
    if not headers:
        return None
    value = headers.get(TOTAL_COUNT_HEADER)
    if value is None:
        # plain dicts are not case-insensitive
        lowered = TOTAL_COUNT_HEADER.lower()
        value = next((v for k, v in headers.items() if k.lower() == lowered), None)
    if value is None:
        return None
    try:
        count = int(str(value).strip())
    except ValueError:
        return None
    return count if count >= 0 else None


def _payload(text: str) -> Any:
    try:
        doc = json.loads(text)
    except ValueError as e:
        raise DecodeError(f"Response body is not valid JSON ({e})", text) from e
    if not isinstance(doc, dict) or RESULT_KEY not in doc:
        raise DecodeError(f"Response body has no '{RESULT_KEY}' member", text)
    return doc[RESULT_KEY]


def normalize_single(
    raw_body: Union[bytes, str, None],
    headers: Optional[Mapping[str, str]] = None,
    item_factory: Optional[ItemFactory] = None,
) -> SingleEnvelope:
    text = _body_text(raw_body)
    payload = _payload(text)
    if not isinstance(payload, dict):
        raise DecodeError(f"Expected an object under '{RESULT_KEY}', got {type(payload).__name__}", text)
    make = item_factory or _identity
    try:
        return SingleEnvelope(make(payload))
    except _FACTORY_ERRORS as e:
        raise DecodeError(f"Could not build item from response ({e})", text) from e


def normalize_list(
    raw_body: Union[bytes, str, None],
    headers: Optional[Mapping[str, str]] = None,
    item_factory: Optional[ItemFactory] = None,
) -> ListEnvelope:
    text = _body_text(raw_body)
    payload = _payload(text)
    if not isinstance(payload, list):
        raise DecodeError(f"Expected an array under '{RESULT_KEY}', got {type(payload).__name__}", text)
    if not all(isinstance(obj, dict) for obj in payload):
        raise DecodeError(f"Expected only objects in the '{RESULT_KEY}' array", text)
    make = item_factory or _identity
    try:
        items = [make(obj) for obj in payload]
    except _FACTORY_ERRORS as e:
        raise DecodeError(f"Could not build items from response ({e})", text) from e

    total = parse_total_count(headers)
    logger.debug(f"Decoded list of {len(items)} items, total_count={total}")
    return ListEnvelope(items=items, total_count=total)


def normalize(
    raw_body: Union[bytes, str, None],
    headers: Optional[Mapping[str, str]] = None,
    *,
    many: bool,
    item_factory: Optional[ItemFactory] = None,
) -> Envelope:
    if many:
        return normalize_list(raw_body, headers, item_factory)
    return normalize_single(raw_body, headers, item_factory)
