from __future__ import annotations

import pytest

from dblifecycle.core.errors import InvalidArgumentError
from dblifecycle.domain.enums import Engine, RiskLevel, RiskSource, SettingName, parse_engine, parse_setting_name
from dblifecycle.domain.models import Expression, Risk, RiskPatch


def test_risk_levels_have_fixed_numeric_values() -> None:
    assert [level.to_int() for level in RiskLevel] == [0, 100, 200, 300]
    assert RiskLevel.DEFAULT < RiskLevel.LOW < RiskLevel.MODERATE < RiskLevel.HIGH
    assert max(RiskLevel) is RiskLevel.HIGH
    assert RiskLevel.from_int(200) is RiskLevel.MODERATE
    with pytest.raises(InvalidArgumentError):
        RiskLevel.from_int(150)


def test_risk_level_travels_as_integer() -> None:
    risk = Risk(
        name="risks/ddl-prod",
        title="DDL on prod",
        source=RiskSource.DDL,
        level=RiskLevel.HIGH,
        condition=Expression(expression='environment_id == "prod"'),
    )
    wire = risk.to_wire()
    assert wire["level"] == 300
    assert Risk.from_wire(wire).level is RiskLevel.HIGH
    assert RiskPatch(name=risk.name, level=100).level is RiskLevel.LOW


def test_parse_engine_is_case_insensitive_and_closed() -> None:
    assert parse_engine("postgres") is Engine.POSTGRES
    assert parse_engine(Engine.MYSQL) is Engine.MYSQL
    with pytest.raises(InvalidArgumentError):
        parse_engine("access")


def test_setting_names_are_well_known() -> None:
    assert parse_setting_name("bb.workspace.approval.external") is SettingName.WORKSPACE_EXTERNAL_APPROVAL
    with pytest.raises(InvalidArgumentError):
        parse_setting_name("bb.workspace.theme")
