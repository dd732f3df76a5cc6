from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _ExprModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class Constant(_ExprModel):
    # Exactly one value slot is populated; null_value marks an explicit null literal.
    null_value: bool | None = None
    bool_value: bool | None = None
    int64_value: int | None = None
    double_value: float | None = None
    string_value: str | None = None

    def value(self) -> Any:
        if self.bool_value is not None:
            return self.bool_value
        if self.int64_value is not None:
            return self.int64_value
        if self.double_value is not None:
            return self.double_value
        if self.string_value is not None:
            return self.string_value
        return None

    @classmethod
    def of(cls, value: Any) -> Constant:
        if value is None:
            return cls(null_value=True)
        if isinstance(value, bool):
            return cls(bool_value=value)
        if isinstance(value, int):
            return cls(int64_value=value)
        if isinstance(value, float):
            return cls(double_value=value)
        return cls(string_value=str(value))


class Ident(_ExprModel):
    name: str


class Select(_ExprModel):
    operand: Expr
    field: str


class Call(_ExprModel):
    target: Expr | None = None
    function: str
    args: list[Expr] = []


class CreateList(_ExprModel):
    elements: list[Expr] = []


class MapEntry(_ExprModel):
    key: Expr
    value: Expr


class CreateStruct(_ExprModel):
    entries: list[MapEntry] = []


class Expr(_ExprModel):
    """Abstract expression tree node, one kind slot populated per node."""

    id: int
    const_expr: Constant | None = None
    ident_expr: Ident | None = None
    select_expr: Select | None = None
    call_expr: Call | None = None
    list_expr: CreateList | None = None
    struct_expr: CreateStruct | None = None

    @property
    def kind(self) -> str:
        for slot in ("const_expr", "ident_expr", "select_expr", "call_expr", "list_expr", "struct_expr"):
            if getattr(self, slot) is not None:
                return slot
        return "unset"

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class ParsedExpression(_ExprModel):
    expression: str
    expr: Expr


Select.model_rebuild()
Call.model_rebuild()
CreateList.model_rebuild()
MapEntry.model_rebuild()
CreateStruct.model_rebuild()
Expr.model_rebuild()
