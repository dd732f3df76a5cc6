"""Structured list filters.

A filter travels as a conjunctive expression string, for example
``title.matches("orders") && engine in ["MYSQL"] && label == "env:prod"``,
plus a ``showDeleted`` flag. The server parses the string back with the
expression parser and applies ``matches`` to each candidate.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, ClassVar, Collection, Iterable

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from dblifecycle.core.config import DEFAULT_PROJECT_ID
from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain import names
from dblifecycle.domain.enums import Engine, State, UserType, parse_engine
from dblifecycle.domain.expr import Expr
from dblifecycle.domain.models import Database, Instance, Project, User
from dblifecycle.services import cel


MATCHES = "matches"
EQUALS = "=="
IN = "in"
# Repeated equality terms on one path; all must hold.
EACH = "each"

DEFAULT_PROJECT = f"{names.PROJECTS}/{DEFAULT_PROJECT_ID}"


def _quote(value: str) -> str:
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Enum):
        return _quote(str(value.value))
    if isinstance(value, int):
        return str(value)
    return _quote(str(value))


def _read_term(term: Expr) -> tuple[str, str, Any]:
    # Each conjunct is path.matches(lit), path == lit, or path in [lits].
    call = term.call_expr
    if call is None:
        raise InvalidArgumentError("Unsupported filter term")
    if call.function == MATCHES and call.target is not None and len(call.args) == 1:
        path = cel.field_path(call.target)
        if path is not None:
            return path, MATCHES, cel.literal_value(call.args[0])
    if call.function in ("_==_", cel.IN) and call.target is None and len(call.args) == 2:
        path = cel.field_path(call.args[0])
        if path is not None:
            value = cel.literal_value(call.args[1])
            if call.function == cel.IN:
                if not isinstance(value, list):
                    raise InvalidArgumentError(f"Filter term on {path} expects a list")
                return path, IN, value
            return path, EQUALS, value
    raise InvalidArgumentError("Unsupported filter term")


def _query_hits(query: str | None, *candidates: str | None) -> bool:
    if not query:
        return True
    needle = query.lower()
    return any(candidate and needle in candidate.lower() for candidate in candidates)


def _trailing_id(name: str) -> str:
    return name.rsplit("/", 1)[-1]


class ListFilter(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # attribute -> (wire path, operator), in emission order.
    wire_terms: ClassVar[dict[str, tuple[str, str]]] = {}

    def filter_string(self) -> str:
        terms: list[str] = []
        for field, (path, op) in self.wire_terms.items():
            value = getattr(self, field)
            if value is None or value is False or value == [] or value == "":
                continue
            if op == MATCHES:
                terms.append(f"{path}.matches({_quote(value)})")
            elif op == IN:
                terms.append(f"{path} in [{', '.join(_literal(item) for item in value)}]")
            elif op == EACH:
                terms.extend(f"{path} == {_literal(self._each_literal(item))}" for item in value)
            else:
                terms.append(f"{path} == {_literal(value)}")
        return " && ".join(terms)

    def _each_literal(self, item: Any) -> Any:
        return item

    def include_deleted(self) -> bool:
        return False

    def to_params(self) -> dict[str, str]:
        params: dict[str, str] = {}
        text = self.filter_string()
        if text:
            params["filter"] = text
        if self.include_deleted():
            params["showDeleted"] = "true"
        return params

    @classmethod
    def from_params(cls, filter_text: str | None, show_deleted: bool = False):
        values: dict[str, Any] = {}
        by_path = {path: (field, op) for field, (path, op) in cls.wire_terms.items()}
        if filter_text:
            for term in cel.conjuncts(cel.parse_expression(filter_text)):
                path, op, value = _read_term(term)
                entry = by_path.get(path)
                if entry is None:
                    raise InvalidArgumentError(f"Unsupported filter field: {path}")
                field, expected = entry
                if expected == EACH and op == EQUALS:
                    values.setdefault(field, []).append(value)
                elif expected == op:
                    values[field] = value
                else:
                    raise InvalidArgumentError(f"Unsupported operator {op} for filter field {path}")
        if show_deleted and "show_deleted" in cls.model_fields:
            values["show_deleted"] = True
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise InvalidArgumentError(f"Invalid filter: {exc.errors()[0]['msg']}") from exc


class _StateFilter(ListFilter):
    # Zero value lists ACTIVE only; show_deleted widens to both states.
    state: State | None = None
    show_deleted: bool = False

    def include_deleted(self) -> bool:
        return self.show_deleted or self.state is State.DELETED

    def state_allows(self, state: State) -> bool:
        if self.state is not None:
            return state is self.state
        return self.show_deleted or state is State.ACTIVE


def _engines(value: Iterable[Any] | None) -> list[Engine] | None:
    if value is None:
        return None
    return [parse_engine(item) for item in value]


def _resource_name(value: str | None, collection: str) -> str | None:
    if value is not None:
        names.require_collection(value, collection)
    return value


class InstanceFilter(_StateFilter):
    query: str | None = None
    environment: str | None = None
    project: str | None = None
    engines: list[Engine] | None = None
    host: str | None = None
    port: str | None = None

    wire_terms: ClassVar[dict[str, tuple[str, str]]] = {
        "query": ("title", MATCHES),
        "environment": ("environment", EQUALS),
        "project": ("project", EQUALS),
        "engines": ("engine", IN),
        "host": ("host", EQUALS),
        "port": ("port", EQUALS),
        "state": ("state", EQUALS),
    }

    @field_validator("engines", mode="before")
    @classmethod
    def _known_engines(cls, value: Any) -> Any:
        return _engines(value)

    @field_validator("environment")
    @classmethod
    def _environment_name(cls, value: str | None) -> str | None:
        return _resource_name(value, names.ENVIRONMENTS)

    @field_validator("project")
    @classmethod
    def _project_name(cls, value: str | None) -> str | None:
        return _resource_name(value, names.PROJECTS)

    def matches(self, instance: Instance, projects: Collection[str] = ()) -> bool:
        """Return True when ``instance`` satisfies every term.

        ``projects`` are the projects owning at least one of the instance's
        databases; the project term holds when it is among them.
        """
        if not self.state_allows(instance.state):
            return False
        if not _query_hits(self.query, instance.title, _trailing_id(instance.name)):
            return False
        if self.environment and instance.environment != self.environment:
            return False
        if self.project and self.project not in projects:
            return False
        if self.engines and instance.engine not in self.engines:
            return False
        if self.host and not any(source.host == self.host for source in instance.data_sources):
            return False
        if self.port and not any(source.port == self.port for source in instance.data_sources):
            return False
        return True


class ProjectFilter(_StateFilter):
    query: str | None = None
    exclude_default: bool = False

    wire_terms: ClassVar[dict[str, tuple[str, str]]] = {
        "query": ("title", MATCHES),
        "exclude_default": ("exclude_default", EQUALS),
        "state": ("state", EQUALS),
    }

    def matches(self, project: Project, default_project: str = DEFAULT_PROJECT) -> bool:
        if not self.state_allows(project.state):
            return False
        if self.exclude_default and project.name == default_project:
            return False
        return _query_hits(self.query, project.title, _trailing_id(project.name))


class DatabaseFilter(ListFilter):
    query: str | None = None
    environment: str | None = None
    project: str | None = None
    instance: str | None = None
    engines: list[Engine] | None = None
    # (key, value) pairs; every pair must be present on the database.
    labels: list[tuple[str, str]] | None = None
    exclude_unassigned: bool = False

    wire_terms: ClassVar[dict[str, tuple[str, str]]] = {
        "query": ("name", MATCHES),
        "environment": ("environment", EQUALS),
        "project": ("project", EQUALS),
        "instance": ("instance", EQUALS),
        "engines": ("engine", IN),
        "labels": ("label", EACH),
        "exclude_unassigned": ("exclude_unassigned", EQUALS),
    }

    @field_validator("engines", mode="before")
    @classmethod
    def _known_engines(cls, value: Any) -> Any:
        return _engines(value)

    @field_validator("environment")
    @classmethod
    def _environment_name(cls, value: str | None) -> str | None:
        return _resource_name(value, names.ENVIRONMENTS)

    @field_validator("project")
    @classmethod
    def _project_name(cls, value: str | None) -> str | None:
        return _resource_name(value, names.PROJECTS)

    @field_validator("instance")
    @classmethod
    def _instance_name(cls, value: str | None) -> str | None:
        return _resource_name(value, names.INSTANCES)

    @field_validator("labels", mode="before")
    @classmethod
    def _split_labels(cls, value: Any) -> Any:
        if value is None:
            return None
        pairs = []
        for item in value:
            if isinstance(item, str):
                key, sep, label_value = item.partition(":")
                if not sep or not key:
                    raise ValueError(f"label predicate must be key:value, got {item!r}")
                pairs.append((key, label_value))
            else:
                pairs.append(tuple(item))
        return pairs

    def _each_literal(self, item: Any) -> Any:
        key, value = item
        return f"{key}:{value}"

    def matches(self, database: Database, default_project: str = DEFAULT_PROJECT) -> bool:
        if database.state is not State.ACTIVE:
            return False
        if not _query_hits(self.query, _trailing_id(database.name)):
            return False
        if self.environment and (database.effective_environment or database.environment) != self.environment:
            return False
        if self.project and database.project != self.project:
            return False
        if self.instance and names.parent_of(database.name) != self.instance:
            return False
        if self.engines and database.engine not in self.engines:
            return False
        for key, value in self.labels or ():
            if database.labels.get(key) != value:
                return False
        if self.exclude_unassigned and database.project == default_project:
            return False
        return True


class UserFilter(_StateFilter):
    query: str | None = None
    email: str | None = None
    project: str | None = None
    user_types: list[UserType] | None = None

    wire_terms: ClassVar[dict[str, tuple[str, str]]] = {
        "query": ("name", MATCHES),
        "email": ("email", EQUALS),
        "project": ("project", EQUALS),
        "user_types": ("user_type", IN),
        "state": ("state", EQUALS),
    }

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, value: str | None) -> str | None:
        return value.lower() if value else value

    @field_validator("project")
    @classmethod
    def _project_name(cls, value: str | None) -> str | None:
        return _resource_name(value, names.PROJECTS)

    def matches(self, user: User, project_members: Collection[str] | None = None) -> bool:
        if not self.state_allows(user.state):
            return False
        if not _query_hits(self.query, user.title, user.email):
            return False
        if self.email and user.email != self.email:
            return False
        if self.project and (project_members is None or user.name not in project_members):
            return False
        if self.user_types and user.user_type not in self.user_types:
            return False
        return True
