"""HTTP client that talks to the recruitment site API."""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

import httpx

from applywatch.collectors.progress import ApplicationProgress, ProgressParseError
from applywatch.config import JoinApiConfig

APPLY_PROCESS_ENDPOINT = "/api/v1/apply/getApplyProcess"
TOKEN_COOKIE = "UserInfo"


class JoinError(RuntimeError):
    """Generic recruitment site communication error."""


class TokenExpiredError(JoinError):
    """Raised when the site rejects the session token."""

    def __init__(self, message: str = "token expired") -> None:
        super().__init__(message)


class JoinParseError(JoinError):
    """Raised when a successful response cannot be understood."""


class JoinClient:
    """Session bound to a single account's ``UserInfo`` cookie.

    The site answers ``getApplyProcess`` with ``{"message": str, "status":
    int, "data": {...}}``.  Any 4xx answer means the cookie is no longer
    accepted, which is reported as :class:`TokenExpiredError` so callers can
    tell it apart from transient failures.
    """

    def __init__(
        self,
        token: str,
        config: Optional[JoinApiConfig] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        config = config or JoinApiConfig()
        self._client = httpx.Client(
            base_url=config.base_url.rstrip("/"),
            timeout=config.request_timeout,
            follow_redirects=True,
            headers={"Accept": "application/json"},
            transport=transport,
        )
        self.update_token(token)

    # ------------------------------------------------------------------
    # Public API
    def update_token(self, token: str) -> None:
        self._client.cookies.set(TOKEN_COOKIE, token)

    def get_application_progress(self) -> ApplicationProgress:
        """Fetch and parse the current application progress."""

        params = {"timestamp": int(time.time() * 1000)}
        try:
            response = self._client.get(APPLY_PROCESS_ENDPOINT, params=params)
        except httpx.HTTPError as exc:
            raise JoinError(f"http: {exc}") from exc

        if response.is_client_error:
            raise TokenExpiredError()
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise JoinError(f"http: {exc}") from exc

        payload = self._decode(response)
        data = payload.get("data")
        if not isinstance(data, dict):
            raise JoinParseError("parser: response carries no progress data")
        try:
            return ApplicationProgress.from_dict(data)
        except ProgressParseError as exc:
            raise JoinParseError(f"parser: {exc}") from exc

    def close(self) -> None:
        """Close the underlying :class:`httpx.Client`."""

        self._client.close()

    def __enter__(self) -> "JoinClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    # ------------------------------------------------------------------
    # Internal helpers
    @staticmethod
    def _decode(response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise JoinParseError(f"parser: {exc}") from exc
        if not isinstance(payload, dict):
            raise JoinParseError("parser: unexpected payload type")
        return payload


__all__ = [
    "JoinClient",
    "JoinError",
    "JoinParseError",
    "TokenExpiredError",
]
