from __future__ import annotations

import pytest

from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain.enums import Engine, State
from dblifecycle.domain.models import Environment, Project
from dblifecycle.services.filters import InstanceFilter, ProjectFilter
from dblifecycle.tests.utils.sandbox import seed_instance


@pytest.mark.asyncio
async def test_walk_visits_every_active_item_once(sandbox, ctx) -> None:
    client, _ = sandbox
    for i in range(11):
        await client.create_project(ctx, Project(name=f"projects/p{i:02d}", title=f"Project {i}"))
    await client.delete_project(ctx, "projects/p03")

    seen = [project.name async for project in client.iterate(ctx, client.list_projects, page_size=3)]
    expected = sorted({f"projects/p{i:02d}" for i in range(11)} - {"projects/p03"} | {"projects/default"})
    assert seen == expected


@pytest.mark.asyncio
async def test_tokens_are_passed_back_verbatim(sandbox, ctx) -> None:
    client, _ = sandbox
    for i in range(4):
        await client.create_project(ctx, Project(name=f"projects/q{i}", title=f"Q{i}"))
    first = await client.list_projects(ctx, ProjectFilter(query="q"), page_size=2)
    assert len(first.items) == 2
    assert first.next_page_token
    second = await client.list_projects(ctx, ProjectFilter(query="q"), page_size=2, page_token=first.next_page_token)
    assert [p.name for p in first.items + second.items] == [f"projects/q{i}" for i in range(4)]
    assert second.next_page_token == ""

    # A token minted for one listing is rejected by another.
    with pytest.raises(InvalidArgumentError):
        await client.list_projects(ctx, ProjectFilter(query="other"), page_token=first.next_page_token)
    with pytest.raises(InvalidArgumentError):
        await client.list_projects(ctx, page_token=first.next_page_token[:-2] + "!!")


@pytest.mark.asyncio
async def test_environments_are_ordered(sandbox, ctx) -> None:
    client, _ = sandbox
    for env_id, order in (("prod", 2), ("dev", 0), ("staging", 1), ("qa", 1)):
        await client.create_environment(ctx, Environment(name=f"environments/{env_id}", title=env_id, order=order))
    page = await client.list_environments(ctx)
    assert [env.name for env in page.items] == [
        "environments/dev",
        "environments/qa",
        "environments/staging",
        "environments/prod",
    ]
    await client.delete_environment(ctx, "environments/qa")
    assert len((await client.list_environments(ctx)).items) == 3
    with_deleted = await client.list_environments(ctx, show_deleted=True)
    assert [env.state for env in with_deleted.items].count(State.DELETED) == 1


@pytest.mark.asyncio
async def test_instance_filters_are_conjunctive(sandbox, ctx) -> None:
    client, state = sandbox
    await seed_instance(client, ctx, state, instance_id="orders-mysql", environment_id="prod")
    await seed_instance(client, ctx, state, instance_id="orders-pg", environment_id="prod", engine=Engine.POSTGRES)
    await seed_instance(client, ctx, state, instance_id="billing", environment_id="test")

    page = await client.list_instances(ctx, InstanceFilter(query="orders", environment="environments/prod"))
    assert [item.name for item in page.items] == ["instances/orders-mysql", "instances/orders-pg"]
    page = await client.list_instances(
        ctx, InstanceFilter(query="orders", engines=[Engine.POSTGRES], host="db.local")
    )
    assert [item.name for item in page.items] == ["instances/orders-pg"]
    assert (await client.list_instances(ctx)).items
    assert not (await client.list_instances(ctx, InstanceFilter(project="projects/nobody"))).items


@pytest.mark.asyncio
async def test_negative_page_size_fails_before_transport(sandbox, ctx) -> None:
    client, _ = sandbox
    with pytest.raises(InvalidArgumentError):
        await client.list_projects(ctx, page_size=-1)
