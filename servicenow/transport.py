# servicenow/transport.py
import json
import logging
import os
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Tuple

from requests import RequestException, Session, Timeout
from requests.adapters import HTTPAdapter, Retry
from requests.structures import CaseInsensitiveDict

from servicenow.errors import TransportError, TransportTimeout
from utils import raise_if_cancelled


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    headers: CaseInsensitiveDict
    body: bytes


class Transport:
    """
    One request/response exchange against a ServiceNow instance.

    The underlying requests.Session is shared by every call, so independent
    operations may run concurrently on one Transport. Non-2xx responses raise
    TransportError with the raw error body attached.
    """

    def __init__(
        self,
        instance: str,
        auth: Tuple[str, str],
        *,
        session: Optional[Session] = None,
        timeout: float = 120,
        max_retries: int = 3,
    ):
        self.instance = instance
        self.base_url = f"https://{instance}.service-now.com"
        self.timeout = timeout
        self.logger = logging.getLogger(__name__)

        self.session = session or Session()
        self.session.auth = auth
        # GET only: writes are never replayed
        retry = Retry(
            total=max_retries,
            backoff_factor=0.6,
            status_forcelist=(429, 502, 503, 504),
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        self.session.mount("https://", HTTPAdapter(max_retries=retry))

        self.headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def url_for(self, relative_path: str) -> str:
        if relative_path.startswith(("http://", "https://")):
            return relative_path
        return f"{self.base_url}/{relative_path.lstrip('/')}"

    def send(
        self,
        method: str,
        relative_path: str,
        body: Optional[Mapping[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TransportResponse:
        raise_if_cancelled(cancel, f"{method} {relative_path}")

        request_id = uuid.uuid4().hex[:8]
        url = self.url_for(relative_path)
        data = json.dumps(body) if body is not None else None
        self.logger.debug(f"Request {request_id}: {method} {url}")

        started = time.monotonic()
        try:
            resp = self.session.request(method, url, headers=self.headers, data=data, timeout=self.timeout)
        except Timeout as e:
            raise TransportTimeout(f"Timed out after {self.timeout}s: {method} {url}", url=url) from e
        except RequestException as e:
            raise TransportError(f"Request failed: {method} {url} ({e})", url=url) from e

        elapsed = time.monotonic() - started
        self.logger.debug(
            f"Request {request_id}: {resp.status_code} in {elapsed:.3f}s, {len(resp.content) / 1024:,.0f} KB"
        )

        if not resp.ok:
            raise TransportError(
                f"Server error {resp.status_code}: {resp.reason}",
                status_code=resp.status_code,
                body=resp.text,
                url=url,
            )
        return TransportResponse(resp.status_code, resp.headers, resp.content)

    def download(
        self,
        url: str,
        destination: str,
        cancel: Optional[threading.Event] = None,
        chunk_size: int = 64 * 1024,
    ) -> int:
        """Stream the body at url into destination. Returns bytes written."""
        raise_if_cancelled(cancel, f"download {url}")
        try:
            with self.session.get(self.url_for(url), stream=True, timeout=self.timeout) as resp:
                if not resp.ok:
                    raise TransportError(
                        f"Server error {resp.status_code}: {resp.reason}",
                        status_code=resp.status_code,
                        body=resp.text,
                        url=url,
                    )
                written = 0
                try:
                    with open(destination, "wb") as out:
                        for chunk in resp.iter_content(chunk_size=chunk_size):
                            raise_if_cancelled(cancel, f"next chunk of {url}")
                            out.write(chunk)
                            written += len(chunk)
                except Exception:
                    # never leave a truncated file behind
                    if os.path.exists(destination):
                        os.remove(destination)
                    raise
        except Timeout as e:
            raise TransportTimeout(f"Timed out after {self.timeout}s downloading {url}", url=url) from e
        except RequestException as e:
            raise TransportError(f"Download failed: {url} ({e})", url=url) from e

        self.logger.debug(f"Downloaded {written} bytes from {url} to {destination}")
        return written

    def close(self) -> None:
        self.session.close()
