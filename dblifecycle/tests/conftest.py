from __future__ import annotations

import pytest

from dblifecycle.client import CallContext
from dblifecycle.core.config import get_settings
from dblifecycle.tests.utils.sandbox import open_sandbox


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Settings are cached process-wide; keep env overrides from leaking across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def ctx() -> CallContext:
    return CallContext.background()


@pytest.fixture
async def sandbox():
    # (client, server state) pair over a fresh in-memory app per test.
    client, state = await open_sandbox()
    yield client, state
    await client.aclose()
