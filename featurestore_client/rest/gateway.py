"""
Remote gateway - authenticated HTTP calls against the feature store REST API.
"""
import json
import http.client
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional

import structlog

from ..config import GATEWAY_CONFIG
from ..errors import TransportError
from ..monitoring.metrics import OrchestratorMetrics

logger = structlog.get_logger()

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE")


@dataclass(frozen=True)
class GatewayResponse:
    """Status code and raw body of one remote call."""
    status_code: int
    body: bytes = b""

    def json(self) -> Any:
        """Decode the body as JSON (None for an empty body)."""
        if not self.body:
            return None
        return json.loads(self.body.decode("utf-8"))


class RemoteGateway(ABC):
    """Base interface for remote gateways."""

    @abstractmethod
    def call(
        self,
        path: str,
        method: str,
        json_body: Optional[Dict[str, Any]] = None,
        query_params: Optional[Dict[str, Any]] = None,
    ) -> GatewayResponse:
        """
        Perform one call against a store-relative path.

        Raises:
            TransportError: The call could not be completed.
        """
        pass


def encode_query(query_params: Optional[Dict[str, Any]]) -> str:
    """Encode query flags the way the backend expects them (lowercase booleans)."""
    if not query_params:
        return ""
    encoded = {
        key: str(value).lower() if isinstance(value, bool) else value
        for key, value in query_params.items()
    }
    return "?" + urllib.parse.urlencode(encoded)


class HttpGateway(RemoteGateway):
    """
    HTTP gateway using an API key.

    GET calls are retried on transport failures up to `get_retries` times;
    POST, PUT and DELETE are issued exactly once.
    """

    def __init__(
        self,
        endpoint: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        get_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        verify: Optional[bool] = None,
        metrics: Optional[OrchestratorMetrics] = None,
    ):
        self.endpoint = (endpoint or GATEWAY_CONFIG["endpoint"]).rstrip("/")
        self.api_key = api_key if api_key is not None else GATEWAY_CONFIG["api_key"]
        self.timeout = timeout if timeout is not None else GATEWAY_CONFIG["timeout"]
        self.get_retries = get_retries if get_retries is not None else GATEWAY_CONFIG["get_retries"]
        self.retry_backoff = retry_backoff if retry_backoff is not None else GATEWAY_CONFIG["retry_backoff"]
        verify = verify if verify is not None else GATEWAY_CONFIG["verify"]
        self.metrics = metrics

        self._ssl_context = ssl.create_default_context()
        if not verify:
            self._ssl_context.check_hostname = False
            self._ssl_context.verify_mode = ssl.CERT_NONE

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"ApiKey {self.api_key}"
        return headers

    def _send(self, url: str, method: str, data: Optional[bytes]) -> GatewayResponse:
        req = urllib.request.Request(url, data=data, headers=self._headers(), method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout, context=self._ssl_context) as response:
                return GatewayResponse(status_code=response.status, body=response.read())
        except urllib.error.HTTPError as e:
            # Non-2xx responses are still answers; status checks belong to the caller
            return GatewayResponse(status_code=e.code, body=e.read() or b"")
        except (urllib.error.URLError, http.client.HTTPException, OSError) as e:
            raise TransportError(f"Could not reach {url}: {e}") from e

    def call(
        self,
        path: str,
        method: str,
        json_body: Optional[Dict[str, Any]] = None,
        query_params: Optional[Dict[str, Any]] = None,
    ) -> GatewayResponse:
        method = method.upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {method}")

        url = self.endpoint + path + encode_query(query_params)
        data = json.dumps(json_body).encode("utf-8") if json_body is not None else None
        attempts = 1 + (self.get_retries if method == "GET" else 0)

        for attempt in range(1, attempts + 1):
            start = time.perf_counter()
            try:
                response = self._send(url, method, data)
            except TransportError as e:
                if self.metrics:
                    self.metrics.record_remote_call(method, path, None, time.perf_counter() - start)
                if attempt >= attempts:
                    logger.error("remote_call_failed", method=method, path=path, attempts=attempt, error=str(e))
                    raise
                logger.warning("remote_call_retry", method=method, path=path, attempt=attempt, error=str(e))
                time.sleep(self.retry_backoff)
                continue

            if self.metrics:
                self.metrics.record_remote_call(method, path, response.status_code, time.perf_counter() - start)
            logger.debug("remote_call", method=method, path=path, status=response.status_code)
            return response
