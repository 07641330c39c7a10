# omni_core/transport/transport_http.py
from typing import Optional
import requests
from omni_core.constants import CONTENT_TYPE
from omni_core.logger import get_logger
from omni_core.transport.transport_base import (
    BaseTransport, Headers, TransportPermanentError, TransportTransientError,
)

log = get_logger("omni.transport.http")


class HTTPTransport(BaseTransport):
    """
    HTTP transport that POSTs envelope bytes to an OMNI node and returns the
    response envelope bytes.

    - 5xx responses and connection failures are transient
    - 4xx responses are permanent
    """
    name = "http"

    def __init__(self, base_url: str, timeout: float = 5.0, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

    def send(self, data: bytes, headers: Optional[Headers] = None) -> bytes:
        url = f"{self.base_url}/"
        all_headers = {"Content-Type": CONTENT_TYPE}
        all_headers.update(headers or {})
        data = self.to_bytes(data)

        log.debug(f"[HTTP SEND] → {url} | bytes={len(data)}")
        try:
            res = self._session.post(url, data=data, headers=all_headers, timeout=self.timeout)
        except (requests.ConnectionError, requests.Timeout) as e:
            log.warning(f"[HTTP SEND] {url} unreachable: {e}")
            raise TransportTransientError(str(e)) from e
        except requests.RequestException as e:
            raise TransportPermanentError(str(e)) from e

        if res.status_code >= 500:
            log.error(f"[HTTP SEND] {res.status_code}: {res.reason}")
            raise TransportTransientError(f"{res.status_code} {res.reason}")
        if not res.ok:
            log.error(f"[HTTP SEND] {res.status_code}: {res.reason}")
            raise TransportPermanentError(f"{res.status_code} {res.reason}")
        log.debug(f"[HTTP SEND] {res.status_code} bytes={len(res.content)}")
        return res.content

    def healthz(self) -> dict:
        try:
            res = self._session.get(f"{self.base_url}/healthz", timeout=self.timeout)
            return {"status": "ok" if res.ok else "degraded", "transport": self.name}
        except requests.RequestException as e:
            return {"status": "down", "transport": self.name, "error": str(e)}

    def close(self) -> None:
        self._session.close()
