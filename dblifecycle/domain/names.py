"""Hierarchical resource names.

A resource name is a path of alternating collection and id segments, for
example ``projects/proj-a/databaseGroups/orders``. Names are immutable: the
trailing id is chosen by the client at create time and echoed back by the
server.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from dblifecycle.core.errors import InvalidArgumentError, MalformedNameError
from dblifecycle.domain.enums import SettingName


ENVIRONMENTS = "environments"
INSTANCES = "instances"
DATABASES = "databases"
DATABASE_ROLES = "databaseRoles"
PROJECTS = "projects"
DATABASE_GROUPS = "databaseGroups"
USERS = "users"
GROUPS = "groups"
ROLES = "roles"
POLICIES = "policies"
SETTINGS = "settings"
REVIEW_CONFIGS = "reviewConfigs"
RISKS = "risks"

# Pseudo-name used for workspace-scoped IAM verbs.
WORKSPACE = "workspaces/-"
# Wildcard parent id accepted by list and batch verbs, e.g. instances/-/databases.
ANY_ID = "-"

ID_PATTERN = re.compile(r"^[a-z][a-z0-9-]*$")
_DATABASE_NAME_PATTERN = re.compile(r"^[^/\s:]+$")
_DATABASE_ROLE_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_$]*$")
_EMAIL_PATTERN = re.compile(r"^[^@/\s:]+@[^@/\s:]+\.[^@/\s:]+$")

# Allowed parent collections; None means the collection lives at the root.
_PARENTS: dict[str, frozenset[str | None]] = {
    ENVIRONMENTS: frozenset({None}),
    INSTANCES: frozenset({None}),
    DATABASES: frozenset({INSTANCES}),
    DATABASE_ROLES: frozenset({INSTANCES}),
    PROJECTS: frozenset({None}),
    DATABASE_GROUPS: frozenset({PROJECTS}),
    USERS: frozenset({None}),
    GROUPS: frozenset({None}),
    ROLES: frozenset({None}),
    POLICIES: frozenset({None, ENVIRONMENTS, INSTANCES, DATABASES, PROJECTS}),
    SETTINGS: frozenset({None}),
    REVIEW_CONFIGS: frozenset({None}),
    RISKS: frozenset({None}),
}

COLLECTIONS = frozenset(_PARENTS)

# Query parameter carrying the client-chosen id on create.
CREATE_ID_PARAMS: dict[str, str] = {
    ENVIRONMENTS: "environmentId",
    INSTANCES: "instanceId",
    DATABASE_ROLES: "databaseRoleId",
    PROJECTS: "projectId",
    DATABASE_GROUPS: "databaseGroupId",
    USERS: "userId",
    GROUPS: "groupId",
    ROLES: "roleId",
    RISKS: "riskId",
}


def is_root_collection(collection: str) -> bool:
    return None in _PARENTS.get(collection, frozenset())


def validate_id(collection: str, resource_id: str) -> str:
    # Each collection has its own id grammar; most follow the lowercase slug rule.
    if collection not in _PARENTS:
        raise InvalidArgumentError(f"Unknown collection: {collection}")
    if not resource_id:
        raise InvalidArgumentError(f"Empty id for collection {collection}")
    if collection == DATABASES:
        ok = bool(_DATABASE_NAME_PATTERN.match(resource_id))
    elif collection == DATABASE_ROLES:
        ok = bool(_DATABASE_ROLE_PATTERN.match(resource_id))
    elif collection == GROUPS:
        ok = bool(_EMAIL_PATTERN.match(resource_id))
    elif collection == SETTINGS:
        ok = resource_id in {name.value for name in SettingName}
    else:
        ok = bool(ID_PATTERN.match(resource_id))
    if not ok:
        raise InvalidArgumentError(f"Invalid id {resource_id!r} for collection {collection}")
    return resource_id


@dataclass(frozen=True)
class ResourceName:
    collection: str
    id: str
    parent: ResourceName | None = None

    def __post_init__(self) -> None:
        allowed = _PARENTS.get(self.collection)
        if allowed is None:
            raise InvalidArgumentError(f"Unknown collection: {self.collection}")
        parent_collection = self.parent.collection if self.parent else None
        if parent_collection not in allowed:
            raise InvalidArgumentError(
                f"Collection {self.collection} cannot be nested under {parent_collection or 'the root'}"
            )
        validate_id(self.collection, self.id)

    def __str__(self) -> str:
        segment = f"{self.collection}/{self.id}"
        if self.parent is None:
            return segment
        return f"{self.parent}/{segment}"

    def child(self, collection: str, resource_id: str) -> ResourceName:
        return ResourceName(collection=collection, id=resource_id, parent=self)


def build_name(collection: str, resource_id: str, parent: ResourceName | str | None = None) -> str:
    # Produce the canonical string form; ids are validated on the way in.
    parent_name = parse_name(parent) if isinstance(parent, str) else parent
    return str(ResourceName(collection=collection, id=resource_id, parent=parent_name))


def parse_name(name: str) -> ResourceName:
    if not name or not isinstance(name, str):
        raise MalformedNameError(f"Malformed resource name: {name!r}")
    segments = name.split("/")
    if len(segments) % 2 != 0 or any(segment == "" for segment in segments):
        raise MalformedNameError(f"Malformed resource name: {name!r}")
    current: ResourceName | None = None
    for index in range(0, len(segments), 2):
        collection, resource_id = segments[index], segments[index + 1]
        if collection not in _PARENTS:
            raise MalformedNameError(f"Unknown collection {collection!r} in {name!r}")
        try:
            current = ResourceName(collection=collection, id=resource_id, parent=current)
        except InvalidArgumentError as exc:
            raise MalformedNameError(f"Malformed resource name {name!r}: {exc.message}") from exc
    assert current is not None
    return current


def require_collection(name: str, collection: str) -> ResourceName:
    # Parse and confirm the trailing collection matches the verb's family.
    parsed = parse_name(name)
    if parsed.collection != collection:
        raise MalformedNameError(f"Expected a {collection} name, got {name!r}")
    return parsed


def parent_of(name: str) -> str | None:
    parsed = parse_name(name)
    return str(parsed.parent) if parsed.parent else None


def environment_name(environment_id: str) -> str:
    return build_name(ENVIRONMENTS, environment_id)


def instance_name(instance_id: str) -> str:
    return build_name(INSTANCES, instance_id)


def database_name(instance_id: str, database: str) -> str:
    return build_name(DATABASES, database, ResourceName(INSTANCES, instance_id))


def database_role_name(instance_id: str, role: str) -> str:
    return build_name(DATABASE_ROLES, role, ResourceName(INSTANCES, instance_id))


def project_name(project_id: str) -> str:
    return build_name(PROJECTS, project_id)


def database_group_name(project_id: str, group_id: str) -> str:
    return build_name(DATABASE_GROUPS, group_id, ResourceName(PROJECTS, project_id))


def user_name(user_id: str) -> str:
    return build_name(USERS, user_id)


def group_name(email: str) -> str:
    return build_name(GROUPS, email)


def role_name(role_id: str) -> str:
    return build_name(ROLES, role_id)


def policy_name(policy_id: str, parent: ResourceName | str | None = None) -> str:
    return build_name(POLICIES, policy_id, parent)


def setting_name(name: SettingName | str) -> str:
    value = name.value if isinstance(name, SettingName) else name
    return build_name(SETTINGS, value)


def review_config_name(config_id: str) -> str:
    return build_name(REVIEW_CONFIGS, config_id)


def risk_name(risk_id: str) -> str:
    return build_name(RISKS, risk_id)


def validate_collection_parent(parent: str, collection: str) -> str:
    # Validate list/create parents, accepting the "-" wildcard id where permitted.
    allowed = _PARENTS.get(collection)
    if allowed is None:
        raise InvalidArgumentError(f"Unknown collection: {collection}")
    segments = parent.split("/")
    if len(segments) == 2 and segments[1] == ANY_ID and segments[0] in allowed:
        return parent
    parsed = parse_name(parent)
    if parsed.collection not in allowed:
        raise InvalidArgumentError(f"{collection} cannot be nested under {parent}")
    return parent
