"""
Thin JSON-over-HTTP helper shared by the scene and item API clients.

Every transport problem (connection error, timeout, non-2xx status,
undecodable body) is raised as FetchError so callers handle one type.
"""
from __future__ import annotations

import logging
from typing import Any, Optional

import requests

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """The backend or the mixer behind it could not be reached or refused the call."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class JsonHttpClient:
    def __init__(
        self,
        base_url: str,
        timeout_s: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.session = session or requests.Session()

    def request(
        self,
        method: str,
        path: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send one request and return the decoded JSON body (None when empty)."""
        url = f"{self.base_url}{path}"
        logger.debug("%s %s params=%s", method, url, params)
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise FetchError(f"{method} {path} failed: {exc}") from exc

        if not response.ok:
            raise FetchError(
                f"{method} {path} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"{method} {path} returned invalid JSON: {exc}") from exc

    def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, body: dict[str, Any]) -> Any:
        return self.request("POST", path, json=body)

    def patch(self, path: str, body: dict[str, Any]) -> Any:
        return self.request("PATCH", path, json=body)
