from __future__ import annotations

from typing import Any

import httpx

from dblifecycle.apps.sandbox.main import create_app
from dblifecycle.apps.sandbox.state import SandboxState
from dblifecycle.client import LifecycleClient
from dblifecycle.core.config import Settings
from dblifecycle.domain import names
from dblifecycle.domain.enums import DataSourceType, Engine
from dblifecycle.domain.models import Caller, DataSource, Environment, Instance
from dblifecycle.providers.transport.base import TransportRequest
from dblifecycle.providers.transport.factory import SANDBOX_BASE_URL
from dblifecycle.providers.transport.http import HttpTransport, login


def sandbox_settings(**overrides: Any) -> Settings:
    # Explicit values keep tests independent of any local .env file.
    values: dict[str, Any] = {
        "transport": "sandbox",
        "api_version": "v1",
        "log_level": "WARNING",
        "service_email": None,
        "service_password": None,
        "sandbox_admin_email": "admin@example.com",
        "sandbox_admin_password": "admin",
    }
    values.update(overrides)
    return Settings(**values)


async def open_sandbox(settings: Settings | None = None) -> tuple[LifecycleClient, SandboxState]:
    # Build a client against a fresh app and hand back the app's state for seeding.
    settings = settings or sandbox_settings()
    app = create_app(settings)
    http_client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app, raise_app_exceptions=False),
        base_url=SANDBOX_BASE_URL,
    )
    transport = HttpTransport(SANDBOX_BASE_URL, api_version=settings.api_version, client=http_client)
    auth = await login(transport, settings.sandbox_admin_email, settings.sandbox_admin_password)
    client = LifecycleClient(
        transport.with_token(auth.token),
        Caller.from_auth(auth),
        list_page_size=settings.list_page_size,
    )
    return client, app.state.sandbox


async def seed_instance(
    client: LifecycleClient,
    ctx,
    state: SandboxState,
    *,
    instance_id: str = "i1",
    environment_id: str = "prod",
    engine: Engine = Engine.MYSQL,
    databases: list[str] | None = None,
) -> Instance:
    # Environment + instance + synced databases, all landing in the default project.
    environment = names.environment_name(environment_id)
    if not await client.check_resource_exist(ctx, environment):
        await client.create_environment(ctx, Environment(name=environment, title=environment_id.title()))
    instance = await client.create_instance(
        ctx,
        Instance(
            name=names.instance_name(instance_id),
            title=f"Instance {instance_id}",
            engine=engine,
            environment=environment,
            data_sources=[
                DataSource(id="admin", type=DataSourceType.ADMIN, username="root", password="s3cret", host="db.local")
            ],
        ),
    )
    if databases:
        state.register_databases(instance.name, databases)
        await client.sync_instance_schema(ctx, instance.name)
    return instance


class CountingTransport:
    """Transport double that records every request it receives."""

    def __init__(self, responses: dict[str, dict[str, Any]] | None = None) -> None:
        self.requests: list[TransportRequest] = []
        self._responses = responses or {}

    async def invoke(self, request: TransportRequest) -> dict[str, Any]:
        self.requests.append(request)
        return self._responses.get(request.path, {})

    async def aclose(self) -> None:
        return None
