from __future__ import annotations

import logging
from typing import Any, Callable

import httpx

from vocalflow.core import settings
from vocalflow.core.errors import AuthenticationError, RemoteRejectionError, TransportError

logger = logging.getLogger(__name__)

# Returns the caller's bearer token, or None when nobody is signed in.
CredentialProvider = Callable[[], str | None]


def static_credentials(token: str | None) -> CredentialProvider:
    return lambda: token


class FunctionsClient:
    """
    Request/response channel to the hosted functions.

    Every call is a POST of a JSON payload to {base_url}/functions/v1/{name}
    carrying the caller's bearer token; the response body is JSON.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.FUNCTIONS_BASE_URL).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.FUNCTIONS_API_KEY
        self.timeout_s = float(timeout_s if timeout_s is not None else settings.HTTP_TIMEOUT_S)
        self._transport = transport

    def function_url(self, function_name: str) -> str:
        return f"{self.base_url}/functions/v1/{function_name}"

    async def invoke(self, function_name: str, payload: dict[str, Any], token: str | None) -> dict[str, Any]:
        if not token:
            raise AuthenticationError()

        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            async with httpx.AsyncClient(timeout=self.timeout_s, transport=self._transport) as client:
                resp = await client.post(self.function_url(function_name), json=payload, headers=headers)
        except httpx.RequestError as exc:
            logger.warning("Function %s unreachable: %s", function_name, exc)
            raise TransportError() from exc

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.warning("Function %s rejected request (%s): %s", function_name, resp.status_code, message)
            raise RemoteRejectionError(message, status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError as exc:
            logger.warning("Function %s returned invalid JSON: %s", function_name, exc)
            raise TransportError() from exc

        if not isinstance(body, dict):
            raise TransportError()
        return body


class MediaFetcher:
    """Plain byte fetch of a media URL."""

    def __init__(
        self,
        *,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_s = float(timeout_s if timeout_s is not None else settings.HTTP_TIMEOUT_S)
        self._transport = transport

    async def fetch(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_s,
                transport=self._transport,
                follow_redirects=True,
            ) as client:
                resp = await client.get(url)
        except httpx.RequestError as exc:
            logger.warning("Media fetch failed for %s: %s", url, exc)
            raise TransportError() from exc

        if resp.status_code >= 400:
            raise RemoteRejectionError(f"Download failed: {resp.status_code}", status_code=resp.status_code)
        return resp.content


def _error_message(resp: httpx.Response) -> str | None:
    try:
        body = resp.json()
    except ValueError:
        return None
    if isinstance(body, dict):
        err = body.get("error")
        if isinstance(err, str) and err.strip():
            return err
    return None
