from __future__ import annotations

import pytest

from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain.enums import Engine, State, UserType
from dblifecycle.domain.models import Database, Instance, Project, User
from dblifecycle.services.filters import DatabaseFilter, InstanceFilter, ProjectFilter, UserFilter


def test_empty_filter_has_no_params() -> None:
    assert InstanceFilter().to_params() == {}
    assert DatabaseFilter().filter_string() == ""


def test_instance_filter_serializes_conjunction() -> None:
    instance_filter = InstanceFilter(query="orders", engines=["mysql", Engine.POSTGRES], show_deleted=True)
    params = instance_filter.to_params()
    assert params["filter"] == 'title.matches("orders") && engine in ["MYSQL", "POSTGRES"]'
    assert params["showDeleted"] == "true"


def test_filter_round_trips_through_the_wire_form() -> None:
    original = DatabaseFilter(
        query='we"ird',
        project="projects/p1",
        engines=[Engine.MYSQL],
        labels=["env:prod", ("tier", "gold")],
        exclude_unassigned=True,
    )
    parsed = DatabaseFilter.from_params(original.filter_string())
    assert parsed == original
    assert parsed.labels == [("env", "prod"), ("tier", "gold")]


def test_unknown_engine_is_rejected() -> None:
    with pytest.raises(ValueError):
        InstanceFilter(engines=["ACCESS"])
    with pytest.raises(InvalidArgumentError):
        InstanceFilter.from_params('engine in ["ACCESS"]')


def test_unsupported_terms_are_rejected() -> None:
    with pytest.raises(InvalidArgumentError, match="Unsupported filter field"):
        ProjectFilter.from_params('owner == "me"')
    with pytest.raises(InvalidArgumentError):
        ProjectFilter.from_params('title == "x" || title == "y"')
    with pytest.raises(InvalidArgumentError, match="Unsupported operator"):
        InstanceFilter.from_params('engine == "MYSQL"')


def test_state_filter_defaults_to_active_only() -> None:
    project = Project(name="projects/p1", title="P1", state=State.DELETED)
    assert not ProjectFilter().matches(project)
    assert ProjectFilter(show_deleted=True).matches(project)
    assert ProjectFilter(state=State.DELETED).matches(project)
    assert ProjectFilter(state=State.DELETED).to_params() == {
        "filter": 'state == "DELETED"',
        "showDeleted": "true",
    }


def test_project_filter_excludes_default() -> None:
    default = Project(name="projects/default", title="Default")
    assert ProjectFilter().matches(default)
    assert not ProjectFilter(exclude_default=True).matches(default)


def test_instance_filter_matches_every_term() -> None:
    instance = Instance(name="instances/orders-db", title="Orders", engine=Engine.MYSQL, environment="environments/prod")
    assert InstanceFilter(query="ORD", environment="environments/prod").matches(instance)
    assert not InstanceFilter(query="ORD", environment="environments/test").matches(instance)
    assert InstanceFilter(project="projects/p1").matches(instance, {"projects/p1"})
    assert not InstanceFilter(project="projects/p1").matches(instance, set())


def test_database_filter_labels_are_conjunctive() -> None:
    database = Database(
        name="instances/i1/databases/shop",
        project="projects/p1",
        engine=Engine.MYSQL,
        effective_environment="environments/prod",
        labels={"env": "prod", "tier": "gold"},
    )
    assert DatabaseFilter(labels=["env:prod", "tier:gold"]).matches(database)
    assert not DatabaseFilter(labels=["env:prod", "tier:silver"]).matches(database)
    assert DatabaseFilter(environment="environments/prod", instance="instances/i1").matches(database)
    assert not DatabaseFilter(exclude_unassigned=True).matches(
        database.model_copy(update={"project": "projects/default"})
    )


def test_user_filter_project_membership() -> None:
    user = User(name="users/alice", email="Alice@Example.com", title="Alice", user_type=UserType.USER)
    assert UserFilter(email="ALICE@example.com").matches(user)
    assert UserFilter(project="projects/p1").matches(user, {"users/alice"})
    assert not UserFilter(project="projects/p1").matches(user, set())
    assert not UserFilter(user_types=[UserType.SERVICE_ACCOUNT]).matches(user)


def test_filters_forbid_unknown_attributes() -> None:
    with pytest.raises(ValueError):
        ProjectFilter(owner="me")


@pytest.mark.parametrize(
    "build",
    [
        lambda: InstanceFilter(environment="environments/BAD ID"),
        lambda: InstanceFilter(project="nonsense"),
        lambda: DatabaseFilter(environment="projects/p1"),
        lambda: DatabaseFilter(instance="instances/i1/databases/d1"),
        lambda: DatabaseFilter(project="projects/"),
        lambda: UserFilter(project="users/alice"),
    ],
)
def test_malformed_resource_names_are_rejected(build) -> None:
    with pytest.raises(ValueError):
        build()


def test_malformed_resource_name_from_wire_is_invalid_argument() -> None:
    with pytest.raises(InvalidArgumentError, match="Invalid filter"):
        DatabaseFilter.from_params('instance == "instances/Bad_Id"')
