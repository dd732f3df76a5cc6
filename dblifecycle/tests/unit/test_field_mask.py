from __future__ import annotations

import pytest

from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain.enums import Engine, EnvironmentTier, PolicyType
from dblifecycle.domain.models import (
    DatabaseRole,
    DatabaseRoleAttribute,
    DatabaseRolePatch,
    Environment,
    EnvironmentPatch,
    Instance,
    InstancePatch,
    ProjectPatch,
)
from dblifecycle.domain.payloads import BackupPlanPolicy, Policy
from dblifecycle.services.field_mask import (
    FieldMask,
    apply_patch,
    apply_upsert,
    coerce_mask,
    patch_body,
    validate_mask,
    validate_upsert_mask,
)


def _instance() -> Instance:
    return Instance(
        name="instances/i1",
        title="old",
        engine=Engine.MYSQL,
        engine_version="8.0",
        external_link="https://console/i1",
        environment="environments/prod",
    )


def test_mask_rejects_wildcards_and_blank_paths() -> None:
    with pytest.raises(InvalidArgumentError):
        FieldMask.of("*")
    with pytest.raises(InvalidArgumentError):
        FieldMask.of("")
    with pytest.raises(InvalidArgumentError):
        FieldMask.of("attribute.")


def test_mask_dedupes_in_order_and_serializes() -> None:
    mask = FieldMask.of("title", "order", "title")
    assert mask.paths == ("title", "order")
    assert mask.to_param() == "title,order"
    assert FieldMask.from_param("title,order") == mask
    assert coerce_mask(["title", "order"]) == mask
    assert coerce_mask(None) == FieldMask()


def test_mask_from_patch_uses_explicit_fields() -> None:
    patch = EnvironmentPatch(name="environments/prod", order=3, title="Prod")
    assert FieldMask.from_patch(patch).paths == ("title", "order")
    assert not FieldMask.from_patch(EnvironmentPatch(name="environments/prod"))


def test_validate_rejects_immutable_and_unknown_paths() -> None:
    with pytest.raises(InvalidArgumentError, match="immutable"):
        validate_mask(InstancePatch, FieldMask.of("engine"))
    with pytest.raises(InvalidArgumentError, match="immutable"):
        validate_mask(InstancePatch, FieldMask.of("name"))
    with pytest.raises(InvalidArgumentError, match="Unknown field mask path"):
        validate_mask(InstancePatch, FieldMask.of("colour"))
    with pytest.raises(InvalidArgumentError, match="Unknown field mask path"):
        validate_mask(DatabaseRolePatch, FieldMask.of("attribute.flying"))
    validate_mask(DatabaseRolePatch, FieldMask.of("attribute.super_user"))


def test_validate_rejects_clearing_required_fields() -> None:
    patch = InstancePatch(name="instances/i1", title=None, external_link=None)
    validate_mask(InstancePatch, FieldMask.of("external_link"), patch)
    with pytest.raises(InvalidArgumentError, match="cannot be cleared"):
        validate_mask(InstancePatch, FieldMask.of("title"), patch)


def test_unmasked_patch_fields_do_not_travel_or_apply() -> None:
    patch = InstancePatch(name="instances/i1", title="new", external_link="https://elsewhere")
    mask = FieldMask.of("title")
    assert patch_body(patch, mask) == {"name": "instances/i1", "title": "new"}
    updated = apply_patch(_instance(), patch, mask)
    assert updated.title == "new"
    assert updated.external_link == "https://console/i1"
    assert updated.engine_version == "8.0"


def test_masked_unset_field_clears_to_default() -> None:
    patch = InstancePatch(name="instances/i1")
    updated = apply_patch(_instance(), patch, FieldMask.of("environment", "external_link"))
    assert updated.environment is None
    assert updated.external_link is None
    assert updated.title == "old"


def test_nested_path_updates_only_the_leaf() -> None:
    role = DatabaseRole(
        name="instances/i1/databaseRoles/app_rw",
        role_name="app_rw",
        attribute=DatabaseRoleAttribute(can_login=True),
    )
    patch = DatabaseRolePatch(
        name=role.name,
        attribute=DatabaseRoleAttribute(super_user=True, can_login=False),
    )
    updated = apply_patch(role, patch, FieldMask.of("attribute.super_user"))
    assert updated.attribute.super_user is True
    assert updated.attribute.can_login is True
    assert patch_body(patch, FieldMask.of("attribute.super_user")) == {
        "name": role.name,
        "attribute": {"superUser": True},
    }


def test_enum_fields_apply() -> None:
    env = Environment(name="environments/prod", title="Prod")
    patch = EnvironmentPatch(name=env.name, tier=EnvironmentTier.PROTECTED)
    assert apply_patch(env, patch, FieldMask.of("tier")).tier is EnvironmentTier.PROTECTED


def test_project_schema_version_is_immutable() -> None:
    with pytest.raises(InvalidArgumentError):
        validate_mask(ProjectPatch, FieldMask.of("schema_version"))


def _policy(schedule: str, *, enforce: bool) -> Policy:
    return Policy(
        name="projects/p1/policies/backup",
        type=PolicyType.BACKUP_PLAN,
        enforce=enforce,
        payload=BackupPlanPolicy(schedule=schedule, retention_duration="168h"),
    )


def test_upsert_replaces_payload_and_honors_metadata_mask() -> None:
    existing = _policy("DAILY", enforce=True)
    incoming = _policy("WEEKLY", enforce=False)
    merged = apply_upsert(existing, incoming, FieldMask())
    assert merged.payload.schedule == "WEEKLY"
    assert merged.enforce is True
    merged = apply_upsert(existing, incoming, FieldMask.of("enforce"))
    assert merged.enforce is False


def test_upsert_creates_when_missing() -> None:
    incoming = _policy("WEEKLY", enforce=False)
    assert apply_upsert(None, incoming, FieldMask()) is incoming


def test_upsert_mask_paths_are_checked() -> None:
    with pytest.raises(InvalidArgumentError):
        validate_upsert_mask(Policy, FieldMask.of("name"))
    with pytest.raises(InvalidArgumentError):
        validate_upsert_mask(Policy, FieldMask.of("priority"))
    validate_upsert_mask(Policy, FieldMask.of("inherit_from_parent", "payload"))
