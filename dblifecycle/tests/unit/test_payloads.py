from __future__ import annotations

import pytest
from pydantic import ValidationError

from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain.enums import PolicyType, SettingName
from dblifecycle.domain.payloads import (
    AccessControlPolicy,
    BackupPlanPolicy,
    Policy,
    SensitiveData,
    SensitiveDataPolicy,
    Setting,
    WorkspaceApprovalSetting,
    WorkspaceProfileSetting,
    ensure_policy_payload,
    ensure_setting_value,
    setting_name_of,
)


def test_policy_wire_form_has_one_slot() -> None:
    policy = Policy(
        name="projects/p1/policies/backup",
        type=PolicyType.BACKUP_PLAN,
        payload=BackupPlanPolicy(schedule="WEEKLY", retention_duration="168h"),
    )
    wire = policy.to_wire()
    assert wire["backupPlanPolicy"] == {"schedule": "WEEKLY", "retentionDuration": "168h"}
    assert "payload" not in wire
    for other in ("deploymentApprovalPolicy", "sensitiveDataPolicy", "accessControlPolicy"):
        assert other not in wire
    assert Policy.from_wire(wire) == policy


def test_policy_type_payload_mismatch_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Policy(name="policies/p", type=PolicyType.BACKUP_PLAN, payload=AccessControlPolicy())
    with pytest.raises(ValidationError):
        Policy.from_wire(
            {
                "name": "policies/p",
                "type": "BACKUP_PLAN",
                "backupPlanPolicy": {"schedule": "DAILY"},
                "accessControlPolicy": {},
            }
        )
    with pytest.raises(ValidationError):
        Policy.from_wire({"name": "policies/p", "type": "BACKUP_PLAN"})


def test_bare_payload_mapping_resolves_by_type() -> None:
    policy = Policy.model_validate(
        {
            "name": "instances/i1/databases/db/policies/mask",
            "type": "SENSITIVE_DATA",
            "payload": {"sensitiveData": [{"schema": "public", "table": "users", "column": "ssn"}]},
        }
    )
    assert isinstance(policy.payload, SensitiveDataPolicy)
    assert policy.payload.sensitive_data == [SensitiveData(schema="public", table="users", column="ssn")]


def test_ensure_policy_payload_catches_bypassed_validation() -> None:
    policy = Policy.model_construct(name="policies/p", type=PolicyType.BACKUP_PLAN, payload=AccessControlPolicy())
    with pytest.raises(InvalidArgumentError):
        ensure_policy_payload(policy)


def test_backup_plan_fields_are_validated() -> None:
    with pytest.raises(ValidationError):
        BackupPlanPolicy(schedule="HOURLY")
    with pytest.raises(ValidationError):
        BackupPlanPolicy(retention_duration="one week")


def test_setting_value_slot_round_trip() -> None:
    setting = Setting(
        name="settings/bb.workspace.profile",
        value=WorkspaceProfileSetting(external_url="https://db.example.com", disallow_signup=True),
    )
    wire = setting.to_wire()
    assert list(wire["value"]) == ["workspaceProfileSettingValue"]
    assert Setting.from_wire(wire) == setting
    assert setting.setting_name is SettingName.WORKSPACE_PROFILE


def test_setting_value_must_match_name() -> None:
    with pytest.raises(ValidationError):
        Setting(name="settings/bb.workspace.profile", value=WorkspaceApprovalSetting())
    with pytest.raises(ValidationError):
        Setting(name="settings/bb.workspace.nope", value=WorkspaceProfileSetting())
    setting = Setting.model_construct(name="settings/bb.workspace.profile", value=WorkspaceApprovalSetting())
    with pytest.raises(InvalidArgumentError):
        ensure_setting_value(setting)


def test_unknown_setting_names_are_rejected() -> None:
    with pytest.raises(InvalidArgumentError):
        setting_name_of("settings/bb.unknown")
    with pytest.raises(InvalidArgumentError):
        setting_name_of("bb.workspace.profile")
