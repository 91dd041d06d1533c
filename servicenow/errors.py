# servicenow/errors.py
"""
Error taxonomy for the ServiceNow client.

Every failure carries enough context (status, raw body, counts) to diagnose
without re-querying. Cancellation is kept outside ServiceNowError since it is
not a failure of the remote call.
"""

from typing import Optional


class ServiceNowError(Exception):
    """Base class for failures raised by the client."""


class TransportError(ServiceNowError):
    """The exchange did not complete or returned a non-success status."""

    retriable = False

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Optional[str] = None,
        url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body
        self.url = url

    def __str__(self) -> str:
        msg = super().__str__()
        if self.body:
            msg = f"{msg} - {self.body}"
        return msg


class TransportTimeout(TransportError):
    """The exchange timed out. Safe for a caller to retry."""

    retriable = True


class DecodeError(ServiceNowError):
    """The body could not be interpreted as the expected envelope shape."""

    def __init__(self, message: str, raw_body: str) -> None:
        super().__init__(f"{message}. Content:\n{raw_body}")
        self.raw_body = raw_body


class CountMismatchError(ServiceNowError):
    """Aggregated item count disagrees with the server-reported total."""

    def __init__(self, expected: int, actual: int, table: Optional[str] = None) -> None:
        what = f"{table} records" if table else "records"
        super().__init__(f"Expected {expected} {what} but only retrieved {actual}")
        self.expected = expected
        self.actual = actual
        self.table = table


class OperationCancelled(Exception):
    """The operation was aborted through its cancellation signal."""
