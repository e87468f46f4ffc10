"""
Thin authenticated wrapper around the Jenkins REST API.

Every request either returns a ``Reply`` (parsed JSON or raw text plus the
response headers) or raises a butler exception, so the core components never
see ``requests`` exceptions directly.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests
from requests.structures import CaseInsensitiveDict

from .config import JenkinsConfig
from .errors import NotFoundError, ProtocolViolation, TransportError

logger = logging.getLogger(__name__)

_RETRYABLE_STATUSES = {429, 502, 503, 504}
_MAX_RETRIES = 2
_RETRY_DELAYS = (1, 3)  # seconds between retry 0->1 and 1->2


@dataclass(frozen=True)
class Reply:
    data: Any
    headers: Mapping[str, str] = field(default_factory=CaseInsensitiveDict)
    status_code: int = 200


class JenkinsClient:
    """Synchronous Jenkins client.  Stateless per request, safe to share."""

    def __init__(self, config: JenkinsConfig | None = None) -> None:
        self.config = config or JenkinsConfig.from_env()
        self.config.validate()
        if not self.config.verify_ssl:
            import urllib3
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _url(self, path: str) -> str:
        # Jenkins hands back absolute URLs in "url" fields; accept those as-is.
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.config.url}{path}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        """HTTP request with bounded retry for transient failures (429/502/503/504)."""
        url = self._url(path)
        send = requests.get if method == "GET" else requests.post
        for attempt in range(_MAX_RETRIES + 1):
            try:
                response = send(
                    url,
                    auth=self.config.auth,
                    timeout=self.config.timeout,
                    verify=self.config.verify_ssl,
                    **kwargs,
                )
                if response.status_code in _RETRYABLE_STATUSES and attempt < _MAX_RETRIES:
                    logger.debug("Jenkins HTTP %s for %s, retrying", response.status_code, url)
                    time.sleep(_RETRY_DELAYS[attempt])
                    continue
                response.raise_for_status()
                return response
            except requests.HTTPError as exc:
                status = exc.response.status_code if exc.response is not None else None
                logger.debug("Jenkins HTTP %s for %s", status, url)
                if status == 404:
                    raise NotFoundError(path) from exc
                raise TransportError(
                    f"Jenkins API error {status} for {method} {path}", status_code=status, path=path,
                ) from exc
            except requests.ConnectionError as exc:
                if attempt < _MAX_RETRIES:
                    time.sleep(_RETRY_DELAYS[attempt])
                    continue
                raise TransportError(
                    f"Cannot reach Jenkins at {self.config.url}. "
                    "Verify the server is running and JENKINS_URL is correct.",
                    path=path,
                ) from exc
            except requests.Timeout as exc:
                if attempt < _MAX_RETRIES:
                    time.sleep(_RETRY_DELAYS[attempt])
                    continue
                raise TransportError(
                    f"Jenkins did not respond within {self.config.timeout} seconds ({url}).",
                    path=path,
                ) from exc
            except requests.RequestException as exc:
                # Any other requests failure (redirect loop, broken body) is not retried.
                logger.debug("Jenkins request %s %s failed: %r", method, url, exc)
                raise TransportError(f"Request to Jenkins failed for {method} {path}: {exc}", path=path) from exc
        raise TransportError(f"Exhausted retries for {url}", path=path)

    def get(self, path: str, params: dict | None = None, *, text: bool = False) -> Reply:
        """GET *path*; returns parsed JSON, or the body as text when *text* is set."""
        kwargs: dict[str, Any] = {"params": params}
        if text:
            kwargs["headers"] = {"Accept": "text/plain"}
        response = self._request("GET", path, **kwargs)
        if text:
            response.encoding = response.encoding or "utf-8"
            data = response.text
        else:
            try:
                data = response.json()
            except ValueError as exc:
                raise ProtocolViolation(f"Malformed JSON from {path}") from exc
        return Reply(data, CaseInsensitiveDict(response.headers), response.status_code)

    def post(self, path: str, data: Any = None, headers: dict | None = None) -> Reply:
        """POST *path*.  Only the headers matter to callers (e.g. queue ``Location``)."""
        response = self._request("POST", path, data=data, headers=headers or {})
        return Reply(None, CaseInsensitiveDict(response.headers), response.status_code)
