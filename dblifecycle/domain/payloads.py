"""Polymorphic policy and setting payloads.

On the wire a policy carries four payload slots of which exactly one is
populated, and a setting value carries one slot per well-known setting. Here
both are modeled as a single ``payload``/``value`` attribute whose concrete
class is tied to the policy ``type`` or setting name; the slot layout only
exists at serialization time.
"""

from __future__ import annotations

import re
from typing import Any, ClassVar, Union

from pydantic import Field, SerializationInfo, field_validator, model_serializer, model_validator
from pydantic.alias_generators import to_camel

from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain.enums import ApprovalStrategy, MaskingLevel, PolicyType, SettingName, State
from dblifecycle.domain.models import ApiModel, Expression


_DURATION_PATTERN = re.compile(r"^\d+(\.\d+)?(s|m|h)$")
_BACKUP_SCHEDULES = {"UNSET", "DAILY", "WEEKLY"}


class _SlotPayload(ApiModel):
    # Snake-case slot name; the camelCase wire key is derived from it.
    slot: ClassVar[str]

    @classmethod
    def wire_key(cls) -> str:
        return to_camel(cls.slot)


class AssigneeGroup(ApiModel):
    issue_type: str
    value: str


class DeploymentApprovalPolicy(_SlotPayload):
    slot: ClassVar[str] = "deployment_approval_policy"
    policy_type: ClassVar[PolicyType] = PolicyType.DEPLOYMENT_APPROVAL

    default_strategy: ApprovalStrategy = ApprovalStrategy.MANUAL
    assignee_groups: list[AssigneeGroup] = Field(default_factory=list)


class BackupPlanPolicy(_SlotPayload):
    slot: ClassVar[str] = "backup_plan_policy"
    policy_type: ClassVar[PolicyType] = PolicyType.BACKUP_PLAN

    schedule: str = "UNSET"
    # Minimum time backups are kept, as a duration string such as "168h".
    retention_duration: str = "0s"

    @field_validator("schedule")
    @classmethod
    def _known_schedule(cls, value: str) -> str:
        if value not in _BACKUP_SCHEDULES:
            raise ValueError(f"unsupported backup schedule: {value}")
        return value

    @field_validator("retention_duration")
    @classmethod
    def _duration_format(cls, value: str) -> str:
        if not _DURATION_PATTERN.match(value):
            raise ValueError(f"invalid duration: {value}")
        return value


class SensitiveData(ApiModel):
    schema_name: str = Field(default="", alias="schema")
    table: str
    column: str
    masking_level: MaskingLevel = MaskingLevel.FULL


class SensitiveDataPolicy(_SlotPayload):
    slot: ClassVar[str] = "sensitive_data_policy"
    policy_type: ClassVar[PolicyType] = PolicyType.SENSITIVE_DATA

    sensitive_data: list[SensitiveData] = Field(default_factory=list)


class AccessControlRule(ApiModel):
    full_database: bool = True


class AccessControlPolicy(_SlotPayload):
    slot: ClassVar[str] = "access_control_policy"
    policy_type: ClassVar[PolicyType] = PolicyType.ACCESS_CONTROL

    disallow_rules: list[AccessControlRule] = Field(default_factory=list)


PolicyPayload = Union[DeploymentApprovalPolicy, BackupPlanPolicy, SensitiveDataPolicy, AccessControlPolicy]

PAYLOAD_BY_POLICY_TYPE: dict[PolicyType, type[_SlotPayload]] = {
    PolicyType.DEPLOYMENT_APPROVAL: DeploymentApprovalPolicy,
    PolicyType.BACKUP_PLAN: BackupPlanPolicy,
    PolicyType.SENSITIVE_DATA: SensitiveDataPolicy,
    PolicyType.ACCESS_CONTROL: AccessControlPolicy,
}


def _pick_slot(data: dict[str, Any], classes: list[type[_SlotPayload]], label: str) -> _SlotPayload | None:
    # Pull the single populated slot out of a wire or python-shaped mapping.
    found: list[tuple[type[_SlotPayload], Any]] = []
    for payload_cls in classes:
        for key in (payload_cls.wire_key(), payload_cls.slot):
            if key in data:
                value = data.pop(key)
                if value is not None:
                    found.append((payload_cls, value))
    if len(found) > 1:
        raise ValueError(f"{label} must populate exactly one payload slot, got {len(found)}")
    if not found:
        return None
    payload_cls, value = found[0]
    if isinstance(value, payload_cls):
        return value
    return payload_cls.model_validate(value)


class Policy(ApiModel):
    name: str
    type: PolicyType
    inherit_from_parent: bool = False
    enforce: bool = True
    payload: PolicyPayload
    # Upserted and hard-deleted; always ACTIVE.
    state: State = State.ACTIVE

    # Always replaced on upsert; the other fields honor the mask.
    payload_paths: ClassVar[frozenset[str]] = frozenset({"payload", "type"})
    metadata_paths: ClassVar[frozenset[str]] = frozenset({"inherit_from_parent", "enforce"})

    @model_validator(mode="before")
    @classmethod
    def _unpack_payload_slots(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        picked = _pick_slot(data, list(PAYLOAD_BY_POLICY_TYPE.values()), "policy")
        payload = data.get("payload")
        if picked is not None and payload is not None:
            raise ValueError("policy must populate exactly one payload slot")
        if picked is not None:
            data["payload"] = picked
        elif isinstance(payload, dict):
            # Resolve a bare mapping against the class selected by type.
            try:
                payload_cls = PAYLOAD_BY_POLICY_TYPE[PolicyType(data.get("type"))]
            except ValueError as exc:
                raise ValueError(f"unknown policy type: {data.get('type')}") from exc
            data["payload"] = payload_cls.model_validate(payload)
        elif payload is None:
            raise ValueError("policy must populate exactly one payload slot")
        return data

    @model_validator(mode="after")
    def _payload_matches_type(self) -> Policy:
        expected = PAYLOAD_BY_POLICY_TYPE[self.type]
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"policy type {self.type.value} requires {expected.__name__}, got {type(self.payload).__name__}"
            )
        return self

    @model_serializer(mode="wrap")
    def _pack_payload_slot(self, handler: Any, info: SerializationInfo) -> dict[str, Any]:
        data = handler(self)
        payload_value = data.pop("payload", None)
        key = type(self.payload).wire_key() if info.by_alias else type(self.payload).slot
        data[key] = payload_value
        return data


def ensure_policy_payload(policy: Policy) -> Policy:
    # Re-check records that bypassed validation (model_construct, attribute assignment).
    expected = PAYLOAD_BY_POLICY_TYPE.get(policy.type)
    if expected is None or not isinstance(policy.payload, expected):
        raise InvalidArgumentError(
            f"policy type {getattr(policy.type, 'value', policy.type)} does not match payload "
            f"{type(policy.payload).__name__}"
        )
    return policy


class WorkspaceProfileSetting(_SlotPayload):
    slot: ClassVar[str] = "workspace_profile_setting_value"
    setting_name: ClassVar[SettingName] = SettingName.WORKSPACE_PROFILE

    external_url: str = ""
    disallow_signup: bool = False
    require_two_factor: bool = False
    token_duration: str | None = None
    domains: list[str] = Field(default_factory=list)
    enforce_identity_domain: bool = False


class ApprovalRule(ApiModel):
    title: str
    description: str = ""
    condition: Expression
    # Roles that approve in order, e.g. ["roles/projectOwner", "roles/dba"].
    approval_flow: list[str] = Field(default_factory=list)


class WorkspaceApprovalSetting(_SlotPayload):
    slot: ClassVar[str] = "workspace_approval_setting_value"
    setting_name: ClassVar[SettingName] = SettingName.WORKSPACE_APPROVAL

    rules: list[ApprovalRule] = Field(default_factory=list)


class ExternalApprovalNode(ApiModel):
    id: str
    title: str
    endpoint: str


class ExternalApprovalSetting(_SlotPayload):
    slot: ClassVar[str] = "external_approval_setting_value"
    setting_name: ClassVar[SettingName] = SettingName.WORKSPACE_EXTERNAL_APPROVAL

    nodes: list[ExternalApprovalNode] = Field(default_factory=list)


class ClassificationLevel(ApiModel):
    id: str
    title: str
    description: str = ""


class DataClassification(ApiModel):
    id: str
    title: str
    description: str = ""
    level_id: str | None = None


class ClassificationConfig(ApiModel):
    id: str
    title: str
    levels: list[ClassificationLevel] = Field(default_factory=list)
    classification: dict[str, DataClassification] = Field(default_factory=dict)


class DataClassificationSetting(_SlotPayload):
    slot: ClassVar[str] = "data_classification_setting_value"
    setting_name: ClassVar[SettingName] = SettingName.DATA_CLASSIFICATION

    configs: list[ClassificationConfig] = Field(default_factory=list)


SettingPayload = Union[
    WorkspaceProfileSetting,
    WorkspaceApprovalSetting,
    ExternalApprovalSetting,
    DataClassificationSetting,
]

PAYLOAD_BY_SETTING_NAME: dict[SettingName, type[_SlotPayload]] = {
    SettingName.WORKSPACE_PROFILE: WorkspaceProfileSetting,
    SettingName.WORKSPACE_APPROVAL: WorkspaceApprovalSetting,
    SettingName.WORKSPACE_EXTERNAL_APPROVAL: ExternalApprovalSetting,
    SettingName.DATA_CLASSIFICATION: DataClassificationSetting,
}


def setting_name_of(name: str) -> SettingName:
    # settings/<well-known-name>; anything else is rejected at the boundary.
    prefix = "settings/"
    if not name.startswith(prefix):
        raise InvalidArgumentError(f"Malformed setting name: {name!r}")
    try:
        return SettingName(name[len(prefix):])
    except ValueError as exc:
        raise InvalidArgumentError(f"Unknown setting name: {name!r}") from exc


class Setting(ApiModel):
    """Workspace setting; also the upsert record."""

    name: str
    value: SettingPayload
    state: State = State.ACTIVE

    payload_paths: ClassVar[frozenset[str]] = frozenset({"value"})
    metadata_paths: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="before")
    @classmethod
    def _unpack_value_slot(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        value = data.get("value")
        if isinstance(value, dict):
            raw = dict(value)
            picked = _pick_slot(raw, list(PAYLOAD_BY_SETTING_NAME.values()), "setting value")
            if picked is None:
                raise ValueError("setting value must populate exactly one slot")
            data["value"] = picked
        return data

    @model_validator(mode="after")
    def _value_matches_name(self) -> Setting:
        try:
            setting = setting_name_of(self.name)
        except InvalidArgumentError as exc:
            raise ValueError(exc.message) from exc
        expected = PAYLOAD_BY_SETTING_NAME[setting]
        if not isinstance(self.value, expected):
            raise ValueError(f"setting {setting.value} requires {expected.__name__}, got {type(self.value).__name__}")
        return self

    @model_serializer(mode="wrap")
    def _pack_value_slot(self, handler: Any, info: SerializationInfo) -> dict[str, Any]:
        data = handler(self)
        value = data.pop("value", None)
        key = type(self.value).wire_key() if info.by_alias else type(self.value).slot
        data["value"] = {key: value}
        return data

    @property
    def setting_name(self) -> SettingName:
        return setting_name_of(self.name)


def ensure_setting_value(setting: Setting) -> Setting:
    expected = PAYLOAD_BY_SETTING_NAME[setting_name_of(setting.name)]
    if not isinstance(setting.value, expected):
        raise InvalidArgumentError(
            f"setting {setting.name} requires {expected.__name__}, got {type(setting.value).__name__}"
        )
    return setting
