from __future__ import annotations

from datetime import datetime
import re
from typing import Any, ClassVar, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator
from pydantic.alias_generators import to_camel

from dblifecycle.domain.enums import (
    DataSourceType,
    Engine,
    EnvironmentTier,
    GroupMemberRole,
    RiskLevel,
    RiskSource,
    RoleType,
    SQLReviewRuleLevel,
    State,
    UserType,
)


T = TypeVar("T", bound="ApiModel")

_MEMBER_PATTERN = re.compile(r"^(user|group|serviceAccount):[^@\s]+@[^@\s]+$|^allUsers$")


class ApiModel(BaseModel):
    # Wire names are lowerCamelCase; unknown response properties are dropped.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def from_wire(cls: type[T], payload: dict[str, Any]) -> T:
        return cls.model_validate(payload)


class PatchModel(ApiModel):
    """Partial update record paired with a field mask.

    Every field except ``name`` is optional. Pydantic's ``model_fields_set``
    keeps "unset" apart from "explicitly set to None", which is how a mask path
    that should clear a field is told apart from one that was never touched.
    """

    name: str

    # Paths that may be cleared by masking them with a None value.
    clearable_paths: ClassVar[frozenset[str]] = frozenset()
    # Paths that may never appear in a mask.
    immutable_paths: ClassVar[frozenset[str]] = frozenset(
        {"name", "state", "create_time", "update_time", "uid"}
    )


class Expression(ApiModel):
    # Condition text in the policy expression language.
    expression: str
    title: str = ""
    description: str = ""


class Environment(ApiModel):
    name: str
    title: str
    order: int = 0
    tier: EnvironmentTier = EnvironmentTier.UNPROTECTED
    state: State = State.ACTIVE


class EnvironmentPatch(PatchModel):
    title: str | None = None
    order: int | None = None
    tier: EnvironmentTier | None = None


class DataSource(ApiModel):
    id: str
    type: DataSourceType
    username: str = ""
    # Credentials and TLS material are write-only; servers never echo them.
    password: str | None = None
    ssl_ca: str | None = None
    ssl_cert: str | None = None
    ssl_key: str | None = None
    host: str = ""
    port: str = ""
    database: str = ""
    # Overrides point read-only sources at a read replica.
    host_override: str | None = None
    port_override: str | None = None

    @model_validator(mode="after")
    def _overrides_only_for_read_only(self) -> DataSource:
        if self.type is not DataSourceType.RO and (self.host_override or self.port_override):
            raise ValueError("host_override and port_override are only valid for RO data sources")
        return self


class Instance(ApiModel):
    name: str
    title: str
    engine: Engine
    engine_version: str = ""
    external_link: str | None = None
    environment: str | None = None
    data_sources: list[DataSource] = Field(default_factory=list)
    activation: bool = False
    state: State = State.ACTIVE

    @field_validator("data_sources")
    @classmethod
    def _unique_data_source_ids(cls, value: list[DataSource]) -> list[DataSource]:
        ids = [source.id for source in value]
        if len(ids) != len(set(ids)):
            raise ValueError("data source ids must be unique within an instance")
        return value


class InstancePatch(PatchModel):
    title: str | None = None
    external_link: str | None = None
    environment: str | None = None
    data_sources: list[DataSource] | None = None
    activation: bool | None = None

    clearable_paths: ClassVar[frozenset[str]] = frozenset({"external_link", "environment"})
    immutable_paths: ClassVar[frozenset[str]] = PatchModel.immutable_paths | {"engine", "engine_version"}


class Database(ApiModel):
    name: str
    project: str
    environment: str | None = None
    effective_environment: str | None = None
    engine: Engine | None = None
    schema_version: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    successful_sync_time: datetime | None = None
    state: State = State.ACTIVE


class DatabasePatch(PatchModel):
    project: str | None = None
    environment: str | None = None
    labels: dict[str, str] | None = None

    clearable_paths: ClassVar[frozenset[str]] = frozenset({"environment", "labels"})
    immutable_paths: ClassVar[frozenset[str]] = PatchModel.immutable_paths | {
        "engine",
        "effective_environment",
        "schema_version",
        "successful_sync_time",
    }


class DatabaseRoleAttribute(ApiModel):
    super_user: bool = False
    no_inherit: bool = False
    create_role: bool = False
    create_db: bool = Field(default=False, alias="createDB")
    can_login: bool = False
    replication: bool = False
    by_pass_rls: bool = Field(default=False, alias="byPassRLS")


class DatabaseRole(ApiModel):
    name: str
    role_name: str
    connection_limit: int = -1
    valid_until: str | None = None
    attribute: DatabaseRoleAttribute = Field(default_factory=DatabaseRoleAttribute)
    password: str | None = None


class DatabaseRolePatch(PatchModel):
    password: str | None = None
    connection_limit: int | None = None
    valid_until: str | None = None
    attribute: DatabaseRoleAttribute | None = None

    clearable_paths: ClassVar[frozenset[str]] = frozenset({"valid_until"})
    immutable_paths: ClassVar[frozenset[str]] = PatchModel.immutable_paths | {"role_name"}


class Project(ApiModel):
    name: str
    title: str
    key: str = ""
    workflow: str = "UI"
    visibility: str = "PRIVATE"
    tenant_mode: str = "DISABLED"
    db_name_template: str | None = None
    schema_version: str = "TIMESTAMP"
    schema_change: str = "DDL"
    lgtm_check: str = "DISABLED"
    state: State = State.ACTIVE


class ProjectPatch(PatchModel):
    title: str | None = None
    key: str | None = None
    workflow: str | None = None
    visibility: str | None = None
    tenant_mode: str | None = None
    db_name_template: str | None = None
    schema_change: str | None = None
    lgtm_check: str | None = None

    clearable_paths: ClassVar[frozenset[str]] = frozenset({"db_name_template"})
    immutable_paths: ClassVar[frozenset[str]] = PatchModel.immutable_paths | {"schema_version"}


class MatchedDatabase(ApiModel):
    name: str


class DatabaseGroup(ApiModel):
    name: str
    title: str
    database_expr: Expression
    # Materialized only when fetched with the FULL view.
    matched_databases: list[MatchedDatabase] | None = None
    unmatched_databases: list[MatchedDatabase] | None = None
    # Hard-deleted families carry no DELETED state.
    state: State = State.ACTIVE


class DatabaseGroupPatch(PatchModel):
    title: str | None = None
    database_expr: Expression | None = None

    immutable_paths: ClassVar[frozenset[str]] = PatchModel.immutable_paths | {
        "matched_databases",
        "unmatched_databases",
    }


class Binding(ApiModel):
    role: str
    members: list[str] = Field(default_factory=list)
    condition: Expression | None = None

    @field_validator("role")
    @classmethod
    def _role_is_resource_name(cls, value: str) -> str:
        if not value.startswith("roles/") or len(value) <= len("roles/"):
            raise ValueError(f"binding role must be a roles/ name: {value}")
        return value

    @field_validator("members")
    @classmethod
    def _members_are_principals(cls, value: list[str]) -> list[str]:
        for member in value:
            if not _MEMBER_PATTERN.match(member):
                raise ValueError(f"invalid binding member: {member}")
        return value


class IamPolicy(ApiModel):
    bindings: list[Binding] = Field(default_factory=list)


class User(ApiModel):
    name: str
    email: str
    title: str = ""
    user_type: UserType = UserType.USER
    phone: str | None = None
    mfa_enabled: bool = False
    # Issued by the server for service accounts only.
    service_key: str | None = None
    # Write-only.
    password: str | None = None
    create_time: datetime | None = None
    state: State = State.ACTIVE

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError(f"invalid email: {value}")
        return value.lower()


class UserPatch(PatchModel):
    email: str | None = None
    title: str | None = None
    phone: str | None = None
    password: str | None = None

    clearable_paths: ClassVar[frozenset[str]] = frozenset({"phone"})
    immutable_paths: ClassVar[frozenset[str]] = PatchModel.immutable_paths | {
        "user_type",
        "service_key",
        "mfa_enabled",
    }


class GroupMember(ApiModel):
    member: str
    role: GroupMemberRole = GroupMemberRole.MEMBER

    @field_validator("member")
    @classmethod
    def _member_is_user(cls, value: str) -> str:
        if not value.startswith("users/"):
            raise ValueError(f"group member must be a users/ name: {value}")
        return value


class Group(ApiModel):
    name: str
    title: str
    description: str = ""
    members: list[GroupMember] = Field(default_factory=list)
    source: str = ""
    state: State = State.ACTIVE


class GroupPatch(PatchModel):
    title: str | None = None
    description: str | None = None
    members: list[GroupMember] | None = None

    clearable_paths: ClassVar[frozenset[str]] = frozenset({"description", "members"})
    immutable_paths: ClassVar[frozenset[str]] = PatchModel.immutable_paths | {"source"}


class Role(ApiModel):
    name: str
    title: str
    description: str = ""
    permissions: list[str] = Field(default_factory=list)
    type: RoleType = RoleType.CUSTOM
    state: State = State.ACTIVE


class RolePatch(PatchModel):
    title: str | None = None
    description: str | None = None
    permissions: list[str] | None = None

    clearable_paths: ClassVar[frozenset[str]] = frozenset({"description", "permissions"})
    immutable_paths: ClassVar[frozenset[str]] = PatchModel.immutable_paths | {"type"}


def _coerce_risk_level(value: Any) -> Any:
    # Accept both the numeric wire form and the enum name.
    if isinstance(value, int) and not isinstance(value, bool):
        return RiskLevel.from_int(value)
    return value


class Risk(ApiModel):
    name: str
    title: str
    source: RiskSource
    level: RiskLevel = RiskLevel.DEFAULT
    active: bool = True
    condition: Expression
    state: State = State.ACTIVE

    @field_validator("level", mode="before")
    @classmethod
    def _level_in(cls, value: Any) -> Any:
        return _coerce_risk_level(value)

    @field_serializer("level")
    def _level_out(self, value: RiskLevel) -> int:
        return value.to_int()


class RiskPatch(PatchModel):
    title: str | None = None
    source: RiskSource | None = None
    level: RiskLevel | None = None
    active: bool | None = None
    condition: Expression | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _level_in(cls, value: Any) -> Any:
        return _coerce_risk_level(value)

    @field_serializer("level")
    def _level_out(self, value: RiskLevel | None) -> int | None:
        return value.to_int() if value is not None else None


class SQLReviewRule(ApiModel):
    type: str
    level: SQLReviewRuleLevel = SQLReviewRuleLevel.WARNING
    engine: Engine | None = None
    payload: str = ""
    comment: str = ""


class ReviewConfig(ApiModel):
    """Review config record; also the upsert record (identity plus full payload)."""

    name: str
    title: str = ""
    enabled: bool = True
    rules: list[SQLReviewRule] = Field(default_factory=list)
    # Environments or projects the config is attached to.
    resources: list[str] = Field(default_factory=list)
    state: State = State.ACTIVE

    # Always replaced on upsert; the other fields honor the mask.
    payload_paths: ClassVar[frozenset[str]] = frozenset({"rules"})
    metadata_paths: ClassVar[frozenset[str]] = frozenset({"title", "enabled", "resources"})


class LoginRequest(ApiModel):
    email: str
    password: str


class AuthResponse(ApiModel):
    user_id: str
    username: str
    email: str
    token: str


class Caller(ApiModel):
    """Authenticated principal snapshotted at client construction."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)

    name: str
    email: str
    title: str = ""

    @classmethod
    def from_auth(cls, response: AuthResponse) -> Caller:
        return cls(name=f"users/{response.user_id}", email=response.email, title=response.username)


class Page(BaseModel, Generic[T]):
    items: list[T]
    # Empty token terminates iteration; tokens are opaque and passed back verbatim.
    next_page_token: str = ""

    @classmethod
    def from_wire(cls, payload: dict[str, Any], *, key: str, item_type: type[T]) -> Page[T]:
        raw_items = payload.get(key) or []
        return cls[item_type](
            items=[item_type.from_wire(item) for item in raw_items],
            next_page_token=str(payload.get("nextPageToken") or ""),
        )


class ErrorStatus(ApiModel):
    code: str
    message: str


class BatchUpdateResult(ApiModel):
    # Per-entry outcome; exactly one of database/error is populated.
    name: str
    database: Database | None = None
    error: ErrorStatus | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchUpdateDatabasesResponse(ApiModel):
    results: list[BatchUpdateResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> list[Database]:
        return [result.database for result in self.results if result.database is not None]

    @property
    def failed(self) -> list[BatchUpdateResult]:
        return [result for result in self.results if result.error is not None]
