from __future__ import annotations

import logging

from dblifecycle.client.context import CallContext
from dblifecycle.client.inventory import InventoryMixin
from dblifecycle.client.policies import PolicyMixin
from dblifecycle.client.projects import ProjectMixin
from dblifecycle.client.workspace import WorkspaceMixin
from dblifecycle.core.config import Settings, get_settings
from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain.models import Caller
from dblifecycle.providers.transport.factory import get_transport
from dblifecycle.providers.transport.http import login


logger = logging.getLogger(__name__)


class LifecycleClient(WorkspaceMixin, InventoryMixin, ProjectMixin, PolicyMixin):
    """Every resource family bound to one transport and one caller identity.

    Safe to share across tasks: operations hold no client-side state beyond
    the transport. The caller is fixed for the client's lifetime; rotating
    credentials means building a new client.
    """


async def connect(settings: Settings | None = None, ctx: CallContext | None = None) -> LifecycleClient:
    settings = settings or get_settings()
    ctx = ctx or CallContext.background()
    transport = get_transport(settings)
    email = settings.service_email
    password = settings.service_password
    if settings.transport == "sandbox" and not email:
        email, password = settings.sandbox_admin_email, settings.sandbox_admin_password
    if not email or not password:
        raise InvalidArgumentError("service_email and service_password are required to connect")
    auth = await ctx.run(lambda: login(transport, email, password))
    logger.info("client_connected caller=users/%s transport=%s", auth.user_id, settings.transport)
    return LifecycleClient(
        transport.with_token(auth.token),
        Caller.from_auth(auth),
        list_page_size=settings.list_page_size,
    )


__all__ = ["CallContext", "LifecycleClient", "connect"]
