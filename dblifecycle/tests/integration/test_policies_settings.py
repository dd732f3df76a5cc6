from __future__ import annotations

import pytest

from dblifecycle.core.errors import FailedPreconditionError, InvalidArgumentError, NotFoundError
from dblifecycle.domain import names
from dblifecycle.domain.enums import ApprovalStrategy, MaskingLevel, PolicyType, SettingName, SQLReviewRuleLevel
from dblifecycle.domain.models import Project, ReviewConfig, SQLReviewRule
from dblifecycle.domain.payloads import (
    AccessControlPolicy,
    AccessControlRule,
    DeploymentApprovalPolicy,
    Policy,
    SensitiveData,
    SensitiveDataPolicy,
    Setting,
    WorkspaceProfileSetting,
)
from dblifecycle.tests.utils.sandbox import seed_instance


def _masking_policy(parent: str) -> Policy:
    return Policy(
        name=names.policy_name("masking", parent),
        type=PolicyType.SENSITIVE_DATA,
        payload=SensitiveDataPolicy(
            sensitive_data=[SensitiveData(schema_name="public", table="users", column="email")]
        ),
    )


@pytest.mark.asyncio
async def test_sensitive_data_only_attaches_to_databases(sandbox, ctx) -> None:
    client, state = sandbox
    await seed_instance(client, ctx, state, instance_id="i1", databases=["shop"])
    await client.create_project(ctx, Project(name="projects/shop", title="Shop"))

    with pytest.raises(FailedPreconditionError):
        await client.upsert_policy(ctx, _masking_policy("projects/shop"))

    stored = await client.upsert_policy(ctx, _masking_policy("instances/i1/databases/shop"))
    assert stored.payload.sensitive_data[0].masking_level is MaskingLevel.FULL
    assert stored.to_wire()["sensitiveDataPolicy"]["sensitiveData"][0]["schema"] == "public"


@pytest.mark.asyncio
async def test_workspace_access_control_and_deleted_parents(sandbox, ctx) -> None:
    client, _ = sandbox
    workspace_policy = Policy(
        name=names.policy_name("access"),
        type=PolicyType.ACCESS_CONTROL,
        payload=AccessControlPolicy(disallow_rules=[AccessControlRule(full_database=True)]),
    )
    assert (await client.upsert_policy(ctx, workspace_policy)).type is PolicyType.ACCESS_CONTROL

    await client.create_project(ctx, Project(name="projects/old", title="Old"))
    await client.delete_project(ctx, "projects/old")
    with pytest.raises(FailedPreconditionError):
        await client.upsert_policy(
            ctx,
            Policy(
                name="projects/old/policies/approval",
                type=PolicyType.DEPLOYMENT_APPROVAL,
                payload=DeploymentApprovalPolicy(),
            ),
        )


@pytest.mark.asyncio
async def test_upsert_mask_guards_metadata(sandbox, ctx) -> None:
    client, _ = sandbox
    await client.create_project(ctx, Project(name="projects/shop", title="Shop"))
    name = "projects/shop/policies/approval"
    await client.upsert_policy(
        ctx,
        Policy(name=name, type=PolicyType.DEPLOYMENT_APPROVAL, payload=DeploymentApprovalPolicy()),
    )

    relaxed = Policy(
        name=name,
        type=PolicyType.DEPLOYMENT_APPROVAL,
        enforce=False,
        payload=DeploymentApprovalPolicy(default_strategy=ApprovalStrategy.AUTOMATIC),
    )
    # Payload always follows the request; enforce only when masked.
    stored = await client.upsert_policy(ctx, relaxed)
    assert stored.payload.default_strategy is ApprovalStrategy.AUTOMATIC
    assert stored.enforce is True
    stored = await client.upsert_policy(ctx, relaxed, ["enforce"])
    assert stored.enforce is False

    with pytest.raises(InvalidArgumentError):
        await client.upsert_policy(ctx, relaxed, ["name"])

    page = await client.list_policies(ctx, "projects/shop", policy_type=PolicyType.DEPLOYMENT_APPROVAL)
    assert [policy.name for policy in page.items] == [name]
    assert not (await client.list_policies(ctx, "projects/shop", policy_type=PolicyType.BACKUP_PLAN)).items

    await client.delete_policy(ctx, name)
    with pytest.raises(NotFoundError):
        await client.get_policy(ctx, name)


@pytest.mark.asyncio
async def test_settings_round_trip(sandbox, ctx) -> None:
    client, _ = sandbox
    with pytest.raises(NotFoundError):
        await client.get_setting(ctx, SettingName.WORKSPACE_PROFILE)

    setting = Setting(
        name=names.setting_name(SettingName.WORKSPACE_PROFILE),
        value=WorkspaceProfileSetting(external_url="https://db.example.com", domains=["example.com"]),
    )
    await client.upsert_setting(ctx, setting)
    stored = await client.get_setting(ctx, SettingName.WORKSPACE_PROFILE)
    assert stored.setting_name is SettingName.WORKSPACE_PROFILE
    assert stored.value.external_url == "https://db.example.com"
    assert [item.name for item in (await client.list_settings(ctx)).items] == [setting.name]


@pytest.mark.asyncio
async def test_review_config_upsert(sandbox, ctx) -> None:
    client, _ = sandbox
    config = ReviewConfig(
        name=names.review_config_name("baseline"),
        title="Baseline",
        rules=[SQLReviewRule(type="naming.table", level=SQLReviewRuleLevel.ERROR)],
    )
    created = await client.upsert_review_config(ctx, config)
    assert created.enabled is True

    disabled = config.model_copy(update={"enabled": False, "rules": []})
    stored = await client.upsert_review_config(ctx, disabled)
    assert stored.rules == []
    assert stored.enabled is True
    stored = await client.upsert_review_config(ctx, disabled, ["enabled"])
    assert stored.enabled is False
