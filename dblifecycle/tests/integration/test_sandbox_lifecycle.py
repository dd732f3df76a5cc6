from __future__ import annotations

import asyncio

import pytest

from dblifecycle.core.errors import (
    AlreadyExistsError,
    FailedPreconditionError,
    InvalidArgumentError,
    InvalidExpressionError,
    MalformedNameError,
    NotFoundError,
)
from dblifecycle.domain.enums import RiskLevel, RiskSource, State, UserType
from dblifecycle.domain.models import (
    DatabaseGroup,
    DatabasePatch,
    DatabaseRole,
    DatabaseRoleAttribute,
    Environment,
    EnvironmentPatch,
    Expression,
    InstancePatch,
    Project,
    Risk,
    RiskPatch,
    Role,
    User,
    UserPatch,
)
from dblifecycle.tests.utils.sandbox import seed_instance


@pytest.mark.asyncio
async def test_soft_delete_state_machine(sandbox, ctx) -> None:
    client, _ = sandbox
    env = await client.create_environment(ctx, Environment(name="environments/test", title="Test"))
    assert env.state is State.ACTIVE
    with pytest.raises(FailedPreconditionError):
        await client.undelete_environment(ctx, env.name)
    await client.delete_environment(ctx, env.name)
    with pytest.raises(FailedPreconditionError):
        await client.delete_environment(ctx, env.name)
    # Deleted resources still resolve but no longer accept updates.
    assert await client.check_resource_exist(ctx, env.name)
    with pytest.raises(NotFoundError):
        await client.update_environment(ctx, EnvironmentPatch(name=env.name, title="Nope"))
    assert (await client.undelete_environment(ctx, env.name)).state is State.ACTIVE


@pytest.mark.asyncio
async def test_missing_resources(sandbox, ctx) -> None:
    client, _ = sandbox
    with pytest.raises(NotFoundError):
        await client.get_project(ctx, "projects/ghost")
    assert not await client.check_resource_exist(ctx, "projects/ghost")
    with pytest.raises(NotFoundError):
        await client.create_database_group(
            ctx,
            DatabaseGroup(
                name="projects/ghost/databaseGroups/g1",
                title="G1",
                database_expr=Expression(expression="true"),
            ),
        )
    with pytest.raises(MalformedNameError):
        await client.get_project(ctx, "instances/i1")


@pytest.mark.asyncio
async def test_dependents_block_deletion(sandbox, ctx) -> None:
    client, state = sandbox
    await seed_instance(client, ctx, state, instance_id="i1", environment_id="prod", databases=["shop"])
    with pytest.raises(FailedPreconditionError):
        await client.delete_environment(ctx, "environments/prod")
    with pytest.raises(FailedPreconditionError):
        await client.delete_project(ctx, "projects/default")

    await client.create_project(ctx, Project(name="projects/shop", title="Shop"))
    await client.update_database(ctx, DatabasePatch(name="instances/i1/databases/shop", project="projects/shop"))
    with pytest.raises(FailedPreconditionError):
        await client.delete_project(ctx, "projects/shop")
    with pytest.raises(FailedPreconditionError):
        await client.delete_instance(ctx, "instances/i1")

    await client.update_database(ctx, DatabasePatch(name="instances/i1/databases/shop", project="projects/default"))
    await client.delete_project(ctx, "projects/shop")
    await client.delete_instance(ctx, "instances/i1")
    await client.delete_environment(ctx, "environments/prod")


@pytest.mark.asyncio
async def test_database_reference_checks(sandbox, ctx) -> None:
    client, state = sandbox
    await seed_instance(client, ctx, state, instance_id="i1", databases=["shop"])
    with pytest.raises(NotFoundError):
        await client.update_database(ctx, DatabasePatch(name="instances/i1/databases/shop", project="projects/nope"))
    with pytest.raises(InvalidArgumentError):
        await client.update_database(ctx, DatabasePatch(name="instances/i1/databases/shop", project=None))


@pytest.mark.asyncio
async def test_effective_environment_follows_instance(sandbox, ctx) -> None:
    client, state = sandbox
    await seed_instance(client, ctx, state, instance_id="i1", environment_id="prod", databases=["shop"])
    await client.create_environment(ctx, Environment(name="environments/test", title="Test"))
    db = await client.get_database(ctx, "instances/i1/databases/shop")
    assert db.effective_environment == "environments/prod"

    await client.update_instance(ctx, InstancePatch(name="instances/i1", environment="environments/test"))
    db = await client.get_database(ctx, "instances/i1/databases/shop")
    assert db.effective_environment == "environments/test"

    await client.update_database(ctx, DatabasePatch(name=db.name, environment="environments/prod"))
    db = await client.get_database(ctx, db.name)
    assert db.environment == "environments/prod"
    assert db.effective_environment == "environments/prod"


@pytest.mark.asyncio
async def test_sync_discovers_and_retires_databases(sandbox, ctx) -> None:
    client, state = sandbox
    await seed_instance(client, ctx, state, instance_id="i1", databases=["shop", "blog"])
    db = await client.get_database(ctx, "instances/i1/databases/blog")
    assert db.project == "projects/default"
    assert db.successful_sync_time is not None

    state.register_databases("instances/i1", ["shop"])
    await client.sync_instance_schema(ctx, "instances/i1")
    assert (await client.get_database(ctx, "instances/i1/databases/blog")).state is State.DELETED
    listed = await client.list_databases(ctx, "instances/i1")
    assert [item.name for item in listed.items] == ["instances/i1/databases/shop"]


@pytest.mark.asyncio
async def test_users_lifecycle(sandbox, ctx) -> None:
    client, _ = sandbox
    bot = await client.create_user(
        ctx,
        User(name="users/ci-bot", email="CI@example.com", title="CI", user_type=UserType.SERVICE_ACCOUNT, password="pw"),
    )
    assert bot.email == "ci@example.com"
    assert bot.service_key
    assert bot.password is None
    assert bot.create_time is not None
    with pytest.raises(AlreadyExistsError):
        await client.create_user(ctx, User(name="users/ci-bot-2", email="ci@example.com"))

    updated = await client.update_user(ctx, UserPatch(name=bot.name, title="CI bot", phone="+100"))
    assert (updated.title, updated.phone) == ("CI bot", "+100")
    cleared = await client.update_user(ctx, UserPatch(name=bot.name, phone=None), ["phone"])
    assert cleared.phone is None
    with pytest.raises(InvalidArgumentError):
        await client.update_user(ctx, UserPatch(name=bot.name, title="x"), ["service_key"])

    await client.delete_user(ctx, bot.name)
    assert (await client.undelete_user(ctx, bot.name)).state is State.ACTIVE


@pytest.mark.asyncio
async def test_roles(sandbox, ctx) -> None:
    client, _ = sandbox
    built_in = await client.get_role(ctx, "roles/project-owner")
    assert built_in.type.value == "BUILT_IN"
    with pytest.raises(FailedPreconditionError):
        await client.delete_role(ctx, built_in.name)
    custom = await client.create_role(
        ctx, Role(name="roles/auditor", title="Auditor", permissions=["bb.projects.get"], type="BUILT_IN")
    )
    assert custom.type.value == "CUSTOM"
    await client.delete_role(ctx, custom.name)
    with pytest.raises(NotFoundError):
        await client.get_role(ctx, custom.name)


@pytest.mark.asyncio
async def test_risks(sandbox, ctx) -> None:
    client, _ = sandbox
    risk = await client.create_risk(
        ctx,
        Risk(
            name="risks/ddl-prod",
            title="DDL on prod",
            source=RiskSource.DDL,
            level=RiskLevel.HIGH,
            condition=Expression(expression='environment_id == "prod"'),
        ),
    )
    assert risk.level is RiskLevel.HIGH
    lowered = await client.update_risk(ctx, RiskPatch(name=risk.name, level=RiskLevel.LOW))
    assert lowered.level is RiskLevel.LOW
    with pytest.raises(InvalidExpressionError):
        await client.create_risk(
            ctx,
            Risk(
                name="risks/broken",
                title="Broken",
                source=RiskSource.DML,
                condition=Expression(expression="environment_id =="),
            ),
        )


@pytest.mark.asyncio
async def test_database_roles_hide_passwords(sandbox, ctx) -> None:
    client, state = sandbox
    await seed_instance(client, ctx, state, instance_id="pg1")
    role = await client.create_database_role(
        ctx,
        DatabaseRole(
            name="instances/pg1/databaseRoles/app_rw",
            role_name="app_rw",
            password="secret",
            attribute=DatabaseRoleAttribute(can_login=True),
        ),
    )
    assert role.password is None
    listed = await client.list_database_roles(ctx, "instances/pg1")
    assert [item.name for item in listed.items] == [role.name]
    await client.delete_database_role(ctx, role.name)
    assert not await client.check_resource_exist(ctx, role.name)


@pytest.mark.asyncio
async def test_concurrent_operations_share_one_client(sandbox, ctx) -> None:
    client, _ = sandbox
    await asyncio.gather(
        *(client.create_project(ctx, Project(name=f"projects/p{i}", title=f"P{i}")) for i in range(8))
    )
    projects = await client.list_all(ctx, client.list_projects)
    assert {f"projects/p{i}" for i in range(8)} <= {project.name for project in projects}
