import threading
from typing import Optional

from servicenow.errors import OperationCancelled

# Everything from "/api/" onward, e.g. https://x.service-now.com/api/now/table/sys_user/abc
_API_MARKER = "/api/"


def raise_if_cancelled(cancel: Optional[threading.Event], where: str = "") -> None:
    """Raise OperationCancelled when the caller has set the cancel event."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"Cancelled{' before ' + where if where else ''}")


def relative_api_path(link: str) -> str:
    """Turn an absolute reference link into a path relative to the instance base URL."""
    idx = link.find(_API_MARKER)
    if idx < 0:
        raise ValueError(f"No '{_API_MARKER}' segment in link: {link}")
    return link[idx + 1:]
