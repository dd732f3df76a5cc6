from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx

from dblifecycle.core.errors import (
    DeadlineExceededError,
    InternalError,
    UnavailableError,
    error_for_status,
)
from dblifecycle.domain.models import AuthResponse, LoginRequest
from dblifecycle.providers.transport.base import Transport, TransportRequest


logger = logging.getLogger(__name__)


class HttpTransport:
    def __init__(
        self,
        base_url: str,
        *,
        api_version: str = "v1",
        token: str | None = None,
        timeout_s: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_version = api_version
        self._token = token
        self._timeout_s = timeout_s
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is not None:
            return self._client
        # Reuse a single client per transport for connection pooling.
        self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout_s)
        return self._client

    def with_token(self, token: str) -> HttpTransport:
        # Share the pooled client; only the bearer token differs.
        return HttpTransport(
            self._base_url,
            api_version=self._api_version,
            token=token,
            timeout_s=self._timeout_s,
            client=self._get_client(),
        )

    async def invoke(self, request: TransportRequest) -> dict[str, Any]:
        client = self._get_client()
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        url = f"/{self._api_version}/{request.path}"
        start = time.monotonic()
        try:
            response = await client.request(
                request.method,
                url,
                json=request.body,
                params=request.query_params() or None,
                headers=headers,
            )
        except httpx.TimeoutException as exc:
            logger.warning("transport_timeout method=%s path=%s", request.method, url)
            raise DeadlineExceededError(f"{request.method} {url} timed out") from exc
        except httpx.HTTPError as exc:
            logger.warning("transport_error method=%s path=%s error=%s", request.method, url, type(exc).__name__)
            raise UnavailableError(f"{request.method} {url} failed: {exc}") from exc
        elapsed_ms = (time.monotonic() - start) * 1000.0
        logger.debug(
            "transport_call method=%s path=%s status=%s ms=%.1f",
            request.method,
            url,
            response.status_code,
            elapsed_ms,
        )
        payload = _decode(response)
        if response.status_code >= 400:
            raise error_for_status(response.status_code, payload)
        return _unwrap(payload)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def _decode(response: httpx.Response) -> Any:
    if not response.content:
        return {}
    try:
        return response.json()
    except json.JSONDecodeError as exc:
        if response.status_code >= 400:
            return None
        raise InternalError(f"Malformed response body (status {response.status_code})") from exc


def _unwrap(payload: Any) -> dict[str, Any]:
    # Success bodies may arrive wrapped as {"data": ..., "meta": ...}.
    if isinstance(payload, dict) and "data" in payload and "meta" in payload:
        payload = payload["data"]
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise InternalError(f"Unexpected response body type: {type(payload).__name__}")
    return payload


async def login(transport: Transport, email: str, password: str) -> AuthResponse:
    request = LoginRequest(email=email, password=password)
    payload = await transport.invoke(TransportRequest("POST", "auth/login", body=request.to_wire()))
    return AuthResponse.from_wire(payload)
