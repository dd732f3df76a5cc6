"""In-memory server semantics for the sandbox API.

Implements what a real management server guarantees to clients: unique
client-chosen ids, soft-delete state transitions, dependent checks, field
mask application, filtered and paginated listing, policy placement rules,
IAM full replacement and per-entry batch outcomes. State lives for the life
of the app object only.
"""

from __future__ import annotations

from datetime import datetime, timezone
import logging
import secrets
from typing import Any, Mapping

from pydantic import ValidationError

from dblifecycle.core.config import Settings
from dblifecycle.core.errors import (
    AlreadyExistsError,
    ErrorCode,
    FailedPreconditionError,
    InvalidArgumentError,
    LifecycleError,
    NotFoundError,
    PermissionDeniedError,
)
from dblifecycle.domain import names
from dblifecycle.domain.enums import DatabaseGroupView, PolicyType, RoleType, State, UserType
from dblifecycle.domain.models import (
    ApiModel,
    AuthResponse,
    Binding,
    Database,
    DatabaseGroup,
    DatabaseGroupPatch,
    DatabasePatch,
    DatabaseRole,
    DatabaseRolePatch,
    Environment,
    EnvironmentPatch,
    Group,
    GroupPatch,
    IamPolicy,
    Instance,
    InstancePatch,
    LoginRequest,
    MatchedDatabase,
    PatchModel,
    Project,
    ProjectPatch,
    ReviewConfig,
    Risk,
    RiskPatch,
    Role,
    RolePatch,
    User,
    UserPatch,
)
from dblifecycle.domain.payloads import Policy, Setting
from dblifecycle.services import cel
from dblifecycle.services.field_mask import FieldMask, apply_patch, apply_upsert
from dblifecycle.services.filters import DatabaseFilter, InstanceFilter, ProjectFilter, UserFilter
from dblifecycle.services.pagination import paginate, request_fingerprint


logger = logging.getLogger(__name__)

ADMIN_USER_ID = "admin"

BUILT_IN_ROLES: dict[str, str] = {
    "workspace-admin": "Workspace admin",
    "workspace-dba": "Workspace DBA",
    "workspace-member": "Workspace member",
    "project-owner": "Project owner",
    "project-developer": "Project developer",
    "project-releaser": "Project releaser",
    "project-querier": "Project querier",
    "project-exporter": "Project exporter",
    "project-viewer": "Project viewer",
}

# Parent collections each policy type may attach to; None is the workspace.
POLICY_PLACEMENT: dict[PolicyType, frozenset[str | None]] = {
    PolicyType.DEPLOYMENT_APPROVAL: frozenset({None, names.ENVIRONMENTS, names.PROJECTS}),
    PolicyType.BACKUP_PLAN: frozenset({None, names.ENVIRONMENTS, names.PROJECTS}),
    PolicyType.SENSITIVE_DATA: frozenset({names.DATABASES}),
    PolicyType.ACCESS_CONTROL: frozenset({None, names.ENVIRONMENTS, names.PROJECTS, names.DATABASES}),
}

_ENTITY_TYPES: dict[str, type[ApiModel]] = {
    names.ENVIRONMENTS: Environment,
    names.INSTANCES: Instance,
    names.DATABASES: Database,
    names.DATABASE_ROLES: DatabaseRole,
    names.PROJECTS: Project,
    names.DATABASE_GROUPS: DatabaseGroup,
    names.USERS: User,
    names.GROUPS: Group,
    names.ROLES: Role,
    names.POLICIES: Policy,
    names.SETTINGS: Setting,
    names.REVIEW_CONFIGS: ReviewConfig,
    names.RISKS: Risk,
}

_PATCH_TYPES: dict[str, type[PatchModel]] = {
    names.ENVIRONMENTS: EnvironmentPatch,
    names.INSTANCES: InstancePatch,
    names.DATABASES: DatabasePatch,
    names.DATABASE_ROLES: DatabaseRolePatch,
    names.PROJECTS: ProjectPatch,
    names.DATABASE_GROUPS: DatabaseGroupPatch,
    names.USERS: UserPatch,
    names.GROUPS: GroupPatch,
    names.ROLES: RolePatch,
    names.RISKS: RiskPatch,
}

# Databases are discovered by instance sync, never created directly.
_CREATABLE = frozenset(names.CREATE_ID_PARAMS)
_UPSERTABLE = frozenset({names.POLICIES, names.SETTINGS, names.REVIEW_CONFIGS})
_SOFT_DELETE = frozenset({names.ENVIRONMENTS, names.INSTANCES, names.PROJECTS, names.USERS})
_HARD_DELETE = frozenset(
    {names.ROLES, names.GROUPS, names.DATABASE_GROUPS, names.RISKS, names.POLICIES, names.DATABASE_ROLES}
)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _state_of(entity: Any) -> State:
    return getattr(entity, "state", State.ACTIVE)


def _trailing_id(name: str | None) -> str:
    return name.rsplit("/", 1)[-1] if name else ""


def _int_param(params: Mapping[str, str], key: str) -> int | None:
    raw = params.get(key)
    if raw in (None, ""):
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidArgumentError(f"{key} must be an integer") from exc


class SandboxState:
    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._stores: dict[str, dict[str, Any]] = {collection: {} for collection in names.COLLECTIONS}
        self.default_project = names.project_name(settings.sandbox_default_project_id)
        # Databases each instance reports on sync, keyed by instance name.
        self.catalog: dict[str, list[str]] = {}
        self._project_iam: dict[str, IamPolicy] = {}
        self._workspace_iam = IamPolicy()
        self._passwords: dict[str, str] = {}
        self._tokens: dict[str, str] = {}
        self._bootstrap()

    def _bootstrap(self) -> None:
        self._stores[names.PROJECTS][self.default_project] = Project(
            name=self.default_project, title="Default project", key="DEFAULT"
        )
        for role_id, title in BUILT_IN_ROLES.items():
            role = Role(name=names.role_name(role_id), title=title, type=RoleType.BUILT_IN)
            self._stores[names.ROLES][role.name] = role
        admin = User(
            name=names.user_name(ADMIN_USER_ID),
            email=self._settings.sandbox_admin_email,
            title="Admin",
            create_time=_utc_now(),
        )
        self._stores[names.USERS][admin.name] = admin
        self._passwords[admin.name] = self._settings.sandbox_admin_password
        self._workspace_iam = IamPolicy(
            bindings=[Binding(role=names.role_name("workspace-admin"), members=[f"user:{admin.email}"])]
        )

    # Authentication

    def login(self, request: LoginRequest) -> AuthResponse:
        email = request.email.lower()
        user = next(
            (u for u in self._stores[names.USERS].values() if u.email == email and u.state is State.ACTIVE),
            None,
        )
        if user is None or self._passwords.get(user.name) != request.password:
            raise PermissionDeniedError("Invalid email or password")
        token = secrets.token_urlsafe(24)
        self._tokens[token] = user.name
        logger.info("sandbox_login user=%s", user.name)
        return AuthResponse(user_id=_trailing_id(user.name), username=user.title, email=user.email, token=token)

    def authenticate(self, token: str | None) -> str:
        user_name = self._tokens.get(token or "")
        if user_name is None:
            raise PermissionDeniedError("Missing or invalid bearer token")
        user = self._stores[names.USERS].get(user_name)
        if user is None or user.state is State.DELETED:
            raise PermissionDeniedError("Caller is no longer active")
        return user_name

    # Catalog hooks

    def register_databases(self, instance: str, databases: list[str]) -> None:
        # Databases the next sync of ``instance`` will report.
        names.require_collection(instance, names.INSTANCES)
        for database in databases:
            names.validate_id(names.DATABASES, database)
        self.catalog[instance] = list(databases)

    # Lookups

    def _find(self, name: str) -> tuple[names.ResourceName, Any]:
        parsed = names.parse_name(name)
        entity = self._stores[parsed.collection].get(name)
        if entity is None:
            raise NotFoundError(f"{name} not found")
        return parsed, entity

    def _require_active(self, name: str) -> Any:
        _, entity = self._find(name)
        if _state_of(entity) is State.DELETED:
            raise NotFoundError(f"{name} is deleted")
        return entity

    def _check_reference(self, name: str | None, collection: str) -> None:
        if name is None:
            return
        names.require_collection(name, collection)
        self._require_active(name)

    def _public(self, entity: Any) -> ApiModel:
        # Write-only credentials never leave the server.
        if isinstance(entity, (User, DatabaseRole)):
            return entity.model_copy(update={"password": None})
        if isinstance(entity, Instance):
            sources = [
                source.model_copy(update={"password": None, "ssl_ca": None, "ssl_cert": None, "ssl_key": None})
                for source in entity.data_sources
            ]
            return entity.model_copy(update={"data_sources": sources})
        return entity

    def _databases_of(self, instance: str) -> list[Database]:
        return [db for db in self._stores[names.DATABASES].values() if names.parent_of(db.name) == instance]

    # Verbs

    def get(self, name: str, params: Mapping[str, str]) -> dict[str, Any]:
        parsed, entity = self._find(name)
        if parsed.collection == names.DATABASE_GROUPS:
            try:
                view = DatabaseGroupView(params.get("view") or DatabaseGroupView.BASIC.value)
            except ValueError as exc:
                raise InvalidArgumentError(f"Unknown view: {params.get('view')}") from exc
            if view is DatabaseGroupView.FULL:
                entity = self._materialize(entity)
        return self._public(entity).to_wire()

    def create(self, parent: str | None, collection: str, params: Mapping[str, str], body: dict[str, Any]) -> dict[str, Any]:
        if collection not in _CREATABLE:
            raise InvalidArgumentError(f"{collection} cannot be created directly")
        id_param = names.CREATE_ID_PARAMS[collection]
        resource_id = params.get(id_param)
        if not resource_id:
            raise InvalidArgumentError(f"{id_param} is required")
        name = names.build_name(collection, resource_id, parent)
        if parent:
            self._require_active(parent)
        store = self._stores[collection]
        if name in store:
            raise AlreadyExistsError(f"{name} already exists")
        entity_cls = _ENTITY_TYPES[collection]
        data = {**body, "name": name}
        if "state" in entity_cls.model_fields:
            data["state"] = State.ACTIVE.value
        entity = self._prepare(collection, None, entity_cls.model_validate(data))
        store[name] = entity
        logger.info("sandbox_create name=%s", name)
        return self._public(entity).to_wire()

    def update(self, name: str, params: Mapping[str, str], body: dict[str, Any]) -> dict[str, Any]:
        parsed, entity = self._find(name)
        patch_cls = _PATCH_TYPES.get(parsed.collection)
        if patch_cls is None:
            raise InvalidArgumentError(f"{parsed.collection} does not support update")
        if _state_of(entity) is State.DELETED:
            raise NotFoundError(f"{name} is deleted")
        mask = FieldMask.from_param(params.get("update_mask"))
        if not mask:
            raise InvalidArgumentError("update_mask is required")
        patch = patch_cls.model_validate({**body, "name": name})
        updated = self._prepare(parsed.collection, entity, apply_patch(entity, patch, mask))
        self._stores[parsed.collection][name] = updated
        logger.info("sandbox_update name=%s mask=%s", name, mask.to_param())
        return self._public(updated).to_wire()

    def upsert(self, name: str, params: Mapping[str, str], body: dict[str, Any]) -> dict[str, Any]:
        parsed = names.parse_name(name)
        if parsed.collection not in _UPSERTABLE:
            raise InvalidArgumentError(f"{parsed.collection} does not support upsert")
        store = self._stores[parsed.collection]
        existing = store.get(name)
        if existing is None and params.get("allow_missing") != "true":
            raise NotFoundError(f"{name} not found")
        record = _ENTITY_TYPES[parsed.collection].model_validate({**body, "name": name})
        if isinstance(record, Policy):
            self._check_policy_placement(parsed, record)
        merged = apply_upsert(existing, record, FieldMask.from_param(params.get("update_mask")))
        store[name] = merged
        logger.info("sandbox_upsert name=%s created=%s", name, existing is None)
        return merged.to_wire()

    def delete(self, name: str) -> dict[str, Any]:
        parsed, entity = self._find(name)
        collection = parsed.collection
        store = self._stores[collection]
        if collection in _SOFT_DELETE:
            if entity.state is State.DELETED:
                raise FailedPreconditionError(f"{name} is already deleted")
            self._check_dependents(collection, name, entity)
            store[name] = entity.model_copy(update={"state": State.DELETED})
        elif collection in _HARD_DELETE:
            self._check_dependents(collection, name, entity)
            del store[name]
        else:
            raise InvalidArgumentError(f"{collection} does not support delete")
        logger.info("sandbox_delete name=%s", name)
        return {}

    def undelete(self, name: str) -> dict[str, Any]:
        parsed, entity = self._find(name)
        if parsed.collection not in _SOFT_DELETE:
            raise InvalidArgumentError(f"{parsed.collection} does not support undelete")
        if entity.state is State.ACTIVE:
            raise FailedPreconditionError(f"{name} is not deleted")
        restored = entity.model_copy(update={"state": State.ACTIVE})
        self._stores[parsed.collection][name] = restored
        logger.info("sandbox_undelete name=%s", name)
        return self._public(restored).to_wire()

    def list_collection(self, parent: str | None, collection: str, params: Mapping[str, str]) -> dict[str, Any]:
        if collection not in names.COLLECTIONS:
            raise NotFoundError(f"Unknown collection: {collection}")
        if parent:
            names.validate_collection_parent(parent, collection)
            if not parent.endswith(f"/{names.ANY_ID}"):
                self._find(parent)
        elif not names.is_root_collection(collection):
            raise InvalidArgumentError(f"{collection} must be listed under a parent")
        show_deleted = params.get("showDeleted") == "true"
        filter_text = params.get("filter") or None
        items = self._filtered(parent, collection, filter_text, show_deleted, params)
        fingerprint = request_fingerprint(
            parent=parent,
            collection=collection,
            filter=filter_text,
            show_deleted=show_deleted,
            policy_type=params.get("policyType"),
        )
        page, next_token = paginate(
            items,
            page_size=_int_param(params, "page_size"),
            page_token=params.get("page_token") or None,
            fingerprint=fingerprint,
            max_page_size=self._settings.sandbox_max_page_size,
        )
        return {collection: [self._public(item).to_wire() for item in page], "nextPageToken": next_token}

    def _filtered(
        self,
        parent: str | None,
        collection: str,
        filter_text: str | None,
        show_deleted: bool,
        params: Mapping[str, str],
    ) -> list[Any]:
        candidates = list(self._stores[collection].values())
        if parent is None or not parent.endswith(f"/{names.ANY_ID}"):
            candidates = [item for item in candidates if names.parent_of(item.name) == parent]
        if collection == names.INSTANCES:
            instance_filter = InstanceFilter.from_params(filter_text, show_deleted)
            candidates = [
                item for item in candidates if instance_filter.matches(item, self._projects_of_instance(item.name))
            ]
        elif collection == names.PROJECTS:
            project_filter = ProjectFilter.from_params(filter_text, show_deleted)
            candidates = [item for item in candidates if project_filter.matches(item, self.default_project)]
        elif collection == names.DATABASES:
            database_filter = DatabaseFilter.from_params(filter_text)
            candidates = [item for item in candidates if database_filter.matches(item, self.default_project)]
        elif collection == names.USERS:
            user_filter = UserFilter.from_params(filter_text, show_deleted)
            members = self._project_members(user_filter.project) if user_filter.project else None
            candidates = [item for item in candidates if user_filter.matches(item, members)]
        else:
            if filter_text:
                raise InvalidArgumentError(f"{collection} does not accept a filter")
            candidates = [item for item in candidates if show_deleted or _state_of(item) is State.ACTIVE]
            policy_type = params.get("policyType")
            if collection == names.POLICIES and policy_type:
                candidates = [item for item in candidates if item.type.value == policy_type]
        if collection == names.ENVIRONMENTS:
            # Total order: ties on order fall back to the immutable name.
            return sorted(candidates, key=lambda item: (item.order, item.name))
        return sorted(candidates, key=lambda item: item.name)

    def _projects_of_instance(self, instance: str) -> set[str]:
        return {db.project for db in self._databases_of(instance) if db.state is State.ACTIVE}

    def _project_members(self, project: str) -> set[str]:
        policy = self._project_iam.get(project)
        if policy is None:
            return set()
        users = self._stores[names.USERS]
        by_email = {user.email: user.name for user in users.values()}
        members: set[str] = set()
        for binding in policy.bindings:
            for member in binding.members:
                kind, _, email = member.partition(":")
                if member == "allUsers":
                    members.update(users)
                elif kind == "user" and email.lower() in by_email:
                    members.add(by_email[email.lower()])
                elif kind == "group":
                    group = self._stores[names.GROUPS].get(names.group_name(email))
                    if group is not None:
                        members.update(item.member for item in group.members)
        return members

    # Collection-specific rules

    def _prepare(self, collection: str, before: Any | None, entity: Any) -> Any:
        # Validate references and fill server-owned fields on create/update.
        if collection == names.INSTANCES:
            self._check_reference(entity.environment, names.ENVIRONMENTS)
            if before is not None and before.environment != entity.environment:
                self._refresh_effective_environment(entity)
        elif collection == names.DATABASES:
            self._check_reference(entity.project, names.PROJECTS)
            self._check_reference(entity.environment, names.ENVIRONMENTS)
            instance = self._stores[names.INSTANCES].get(names.parent_of(entity.name))
            inherited = instance.environment if instance is not None else None
            entity = entity.model_copy(update={"effective_environment": entity.environment or inherited})
        elif collection == names.USERS:
            clash = next(
                (u for u in self._stores[names.USERS].values() if u.email == entity.email and u.name != entity.name),
                None,
            )
            if clash is not None:
                raise AlreadyExistsError(f"Email {entity.email} is already used by {clash.name}")
            update: dict[str, Any] = {"password": None}
            if entity.password:
                self._passwords[entity.name] = entity.password
            if before is None:
                update["create_time"] = _utc_now()
                if entity.user_type is UserType.SERVICE_ACCOUNT:
                    update["service_key"] = f"bbs_{secrets.token_urlsafe(18)}"
            entity = entity.model_copy(update=update)
        elif collection == names.GROUPS:
            for member in entity.members:
                self._check_reference(member.member, names.USERS)
        elif collection == names.DATABASE_GROUPS:
            cel.parse_expression(entity.database_expr.expression)
            entity = entity.model_copy(update={"matched_databases": None, "unmatched_databases": None})
        elif collection == names.RISKS:
            cel.parse_expression(entity.condition.expression)
        elif collection == names.ROLES and before is None:
            entity = entity.model_copy(update={"type": RoleType.CUSTOM})
        elif collection == names.PROJECTS and before is None and not entity.key:
            entity = entity.model_copy(update={"key": _trailing_id(entity.name).upper().replace("-", "")[:8]})
        return entity

    def _refresh_effective_environment(self, instance: Instance) -> None:
        store = self._stores[names.DATABASES]
        for db in self._databases_of(instance.name):
            if db.environment is None:
                store[db.name] = db.model_copy(update={"effective_environment": instance.environment})

    def _check_dependents(self, collection: str, name: str, entity: Any) -> None:
        if collection == names.ENVIRONMENTS:
            users = [
                item.name
                for item in self._stores[names.INSTANCES].values()
                if item.environment == name and item.state is State.ACTIVE
            ]
            if users:
                raise FailedPreconditionError(f"{name} is still used by {', '.join(sorted(users))}")
        elif collection == names.PROJECTS:
            if name == self.default_project:
                raise FailedPreconditionError("The default project cannot be deleted")
            owned = [
                db.name
                for db in self._stores[names.DATABASES].values()
                if db.project == name and db.state is State.ACTIVE
            ]
            if owned:
                raise FailedPreconditionError(f"{name} still owns {len(owned)} database(s)")
        elif collection == names.INSTANCES:
            assigned = [
                db.name
                for db in self._databases_of(name)
                if db.project != self.default_project and db.state is State.ACTIVE
            ]
            if assigned:
                raise FailedPreconditionError(f"{name} has databases assigned to projects: {', '.join(sorted(assigned))}")
        elif collection == names.ROLES:
            if entity.type is RoleType.BUILT_IN:
                raise FailedPreconditionError(f"{name} is a built-in role")
            policies = [self._workspace_iam, *self._project_iam.values()]
            if any(binding.role == name for policy in policies for binding in policy.bindings):
                raise FailedPreconditionError(f"{name} is still bound in an IAM policy")

    def _check_policy_placement(self, parsed: names.ResourceName, policy: Policy) -> None:
        parent = parsed.parent
        parent_collection = parent.collection if parent is not None else None
        if parent_collection not in POLICY_PLACEMENT[policy.type]:
            raise FailedPreconditionError(
                f"{policy.type.value} policies cannot be attached to {parent_collection or 'the workspace'}"
            )
        if parent is not None:
            _, owner = self._find(str(parent))
            if _state_of(owner) is State.DELETED:
                raise FailedPreconditionError(f"{parent} is deleted")

    # Custom verbs

    def get_iam_policy(self, resource: str) -> dict[str, Any]:
        if resource == names.WORKSPACE:
            return self._workspace_iam.to_wire()
        names.require_collection(resource, names.PROJECTS)
        self._require_active(resource)
        return self._project_iam.get(resource, IamPolicy()).to_wire()

    def set_iam_policy(self, resource: str, body: dict[str, Any]) -> dict[str, Any]:
        if resource != names.WORKSPACE:
            names.require_collection(resource, names.PROJECTS)
            self._require_active(resource)
        policy = IamPolicy.model_validate(body)
        for binding in policy.bindings:
            if binding.role not in self._stores[names.ROLES]:
                raise NotFoundError(f"{binding.role} not found")
        if resource == names.WORKSPACE:
            self._workspace_iam = policy
        else:
            self._project_iam[resource] = policy
        logger.info("sandbox_set_iam resource=%s bindings=%d", resource, len(policy.bindings))
        return policy.to_wire()

    def batch_update_databases(self, requests: list[dict[str, Any]]) -> dict[str, Any]:
        # Entries succeed or fail independently; no rollback across entries.
        results: list[dict[str, Any]] = []
        for entry in requests:
            database = entry.get("database") or {}
            name = str(database.get("name") or "")
            try:
                names.require_collection(name, names.DATABASES)
                updated = self.update(name, {"update_mask": entry.get("updateMask") or ""}, database)
            except LifecycleError as exc:
                results.append({"name": name, "error": {"code": exc.code.value, "message": exc.message}})
                continue
            except ValidationError as exc:
                message = exc.errors()[0]["msg"] if exc.errors() else str(exc)
                results.append({"name": name, "error": {"code": ErrorCode.INVALID_ARGUMENT.value, "message": message}})
                continue
            results.append({"name": name, "database": updated})
        return {"results": results}

    def sync_instance(self, name: str) -> dict[str, Any]:
        names.require_collection(name, names.INSTANCES)
        instance = self._require_active(name)
        discovered = list(self.catalog.get(name, []))
        for source in instance.data_sources:
            if source.database and source.database not in discovered:
                discovered.append(source.database)
        now = _utc_now()
        version = now.strftime("%Y%m%d%H%M%S")
        store = self._stores[names.DATABASES]
        for database in discovered:
            db_name = names.database_name(_trailing_id(name), database)
            existing = store.get(db_name)
            if existing is None:
                store[db_name] = Database(
                    name=db_name,
                    project=self.default_project,
                    effective_environment=instance.environment,
                    engine=instance.engine,
                    schema_version=version,
                    successful_sync_time=now,
                )
            else:
                store[db_name] = existing.model_copy(
                    update={"state": State.ACTIVE, "schema_version": version, "successful_sync_time": now}
                )
        for db in self._databases_of(name):
            if _trailing_id(db.name) not in discovered and db.state is State.ACTIVE:
                store[db.name] = db.model_copy(update={"state": State.DELETED})
        logger.info("sandbox_sync instance=%s databases=%d", name, len(discovered))
        return {}

    def parse_expression(self, expression: Any) -> dict[str, Any]:
        return {"expression": cel.parse_expression(expression).to_wire()}

    def _materialize(self, group: DatabaseGroup) -> DatabaseGroup:
        project = names.parent_of(group.name)
        expr = cel.parse_expression(group.database_expr.expression)
        matched: list[MatchedDatabase] = []
        unmatched: list[MatchedDatabase] = []
        candidates = sorted(
            (db for db in self._stores[names.DATABASES].values() if db.project == project and db.state is State.ACTIVE),
            key=lambda db: db.name,
        )
        for db in candidates:
            hit = cel.evaluate(expr, {"resource": self._database_activation(db)}) is True
            (matched if hit else unmatched).append(MatchedDatabase(name=db.name))
        return group.model_copy(update={"matched_databases": matched, "unmatched_databases": unmatched})

    def _database_activation(self, db: Database) -> dict[str, Any]:
        environment = db.effective_environment or db.environment
        return {
            "database_name": _trailing_id(db.name),
            "instance_id": _trailing_id(names.parent_of(db.name)),
            "environment_id": _trailing_id(environment),
            "environment_name": environment or "",
            "project_id": _trailing_id(db.project),
            "engine": db.engine.value if db.engine else "",
            "labels": dict(db.labels),
        }
