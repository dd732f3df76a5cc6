from __future__ import annotations

import httpx

from dblifecycle.core.config import Settings, get_settings
from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.providers.transport.http import HttpTransport


SANDBOX_BASE_URL = "http://sandbox"


def get_transport(settings: Settings | None = None) -> HttpTransport:
    settings = settings or get_settings()
    kind = (settings.transport or "http").lower()

    if kind == "http":
        return HttpTransport(
            settings.base_url,
            api_version=settings.api_version,
            timeout_s=settings.http_timeout_s,
        )
    if kind == "sandbox":
        from dblifecycle.apps.sandbox.main import create_app

        # Serve requests in-process against a fresh in-memory reference server.
        # Unhandled server errors come back as INTERNAL envelopes.
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=create_app(settings), raise_app_exceptions=False),
            base_url=SANDBOX_BASE_URL,
        )
        return HttpTransport(SANDBOX_BASE_URL, api_version=settings.api_version, client=client)

    raise InvalidArgumentError(f"Unsupported transport: {kind}")
