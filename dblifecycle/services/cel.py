from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Callable

from dblifecycle.core.errors import InvalidArgumentError, InvalidExpressionError
from dblifecycle.domain.expr import (
    Call,
    Constant,
    CreateList,
    CreateStruct,
    Expr,
    Ident,
    MapEntry,
    ParsedExpression,
    Select,
)


# Operator function names follow the common expression-language conventions.
AND = "_&&_"
OR = "_||_"
NOT = "!_"
NEGATE = "-_"
CONDITIONAL = "_?_:_"
INDEX = "_[_]"
IN = "@in"

_RELATIONS = {
    "==": "_==_",
    "!=": "_!=_",
    "<": "_<_",
    "<=": "_<=_",
    ">": "_>_",
    ">=": "_>=_",
    "in": IN,
}
_ADDITIVE = {"+": "_+_", "-": "_-_"}
_MULTIPLICATIVE = {"*": "_*_", "/": "_/_", "%": "_%_"}

_TWO_CHAR_OPS = {"==", "!=", "<=", ">=", "&&", "||"}
_ONE_CHAR_OPS = set("<>!+-*/%()[]{},.?:")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}
_NUMBER = re.compile(r"\d+(\.\d+)?([eE][+-]?\d+)?")
_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")

MAX_EXPRESSION_LENGTH = 16 * 1024


@dataclass(frozen=True)
class Token:
    kind: str
    value: Any
    position: int


def _syntax_error(expression: str, detail: str, position: int) -> InvalidExpressionError:
    diagnostic = f"Syntax error: {detail} at position {position}"
    return InvalidExpressionError(
        f"Failed to parse expression {expression!r}: {diagnostic}",
        diagnostic=diagnostic,
        position=position,
    )


def tokenize(expression: str) -> list[Token]:
    tokens: list[Token] = []
    index = 0
    length = len(expression)
    while index < length:
        char = expression[index]
        if char.isspace():
            index += 1
            continue
        if char in {'"', "'"}:
            start = index
            value, index = _read_string(expression, index)
            tokens.append(Token("STRING", value, start))
            continue
        number = _NUMBER.match(expression, index)
        if number:
            text = number.group(0)
            if number.group(1) or number.group(2):
                tokens.append(Token("FLOAT", float(text), index))
            else:
                tokens.append(Token("INT", int(text), index))
            index = number.end()
            continue
        ident = _IDENT.match(expression, index)
        if ident:
            word = ident.group(0)
            if word in {"true", "false"}:
                tokens.append(Token("BOOL", word == "true", index))
            elif word == "null":
                tokens.append(Token("NULL", None, index))
            elif word == "in":
                tokens.append(Token("OP", "in", index))
            else:
                tokens.append(Token("IDENT", word, index))
            index = ident.end()
            continue
        pair = expression[index : index + 2]
        if pair in _TWO_CHAR_OPS:
            tokens.append(Token("OP", pair, index))
            index += 2
            continue
        if char in _ONE_CHAR_OPS:
            tokens.append(Token("OP", char, index))
            index += 1
            continue
        raise _syntax_error(expression, f"unexpected character {char!r}", index)
    tokens.append(Token("EOF", None, length))
    return tokens


def _read_string(expression: str, start: int) -> tuple[str, int]:
    quote = expression[start]
    index = start + 1
    chars: list[str] = []
    while index < len(expression):
        char = expression[index]
        if char == "\\":
            if index + 1 >= len(expression):
                break
            escaped = expression[index + 1]
            chars.append(_ESCAPES.get(escaped, escaped))
            index += 2
            continue
        if char == quote:
            return "".join(chars), index + 1
        chars.append(char)
        index += 1
    raise _syntax_error(expression, "unterminated string literal", start)


class _Parser:
    def __init__(self, expression: str) -> None:
        self._expression = expression
        self._tokens = tokenize(expression)
        self._index = 0
        self._next_id = 0

    def parse(self) -> Expr:
        expr = self._conditional()
        token = self._peek()
        if token.kind != "EOF":
            raise self._error(f"unexpected token {token.value!r}", token)
        return expr

    def _peek(self) -> Token:
        return self._tokens[self._index]

    def _advance(self) -> Token:
        token = self._tokens[self._index]
        if token.kind != "EOF":
            self._index += 1
        return token

    def _accept(self, op: str) -> bool:
        token = self._peek()
        if token.kind == "OP" and token.value == op:
            self._index += 1
            return True
        return False

    def _expect(self, op: str) -> Token:
        token = self._peek()
        if token.kind == "OP" and token.value == op:
            return self._advance()
        found = "end of input" if token.kind == "EOF" else repr(token.value)
        raise self._error(f"expected {op!r}, found {found}", token)

    def _error(self, detail: str, token: Token) -> InvalidExpressionError:
        return _syntax_error(self._expression, detail, token.position)

    def _node(self, **kind: Any) -> Expr:
        self._next_id += 1
        return Expr(id=self._next_id, **kind)

    def _call(self, function: str, args: list[Expr], target: Expr | None = None) -> Expr:
        return self._node(call_expr=Call(function=function, args=args, target=target))

    def _conditional(self) -> Expr:
        condition = self._or()
        if self._accept("?"):
            truthy = self._or()
            self._expect(":")
            falsy = self._conditional()
            return self._call(CONDITIONAL, [condition, truthy, falsy])
        return condition

    def _or(self) -> Expr:
        left = self._and()
        while self._accept("||"):
            left = self._call(OR, [left, self._and()])
        return left

    def _and(self) -> Expr:
        left = self._relation()
        while self._accept("&&"):
            left = self._call(AND, [left, self._relation()])
        return left

    def _relation(self) -> Expr:
        left = self._additive()
        while True:
            token = self._peek()
            if token.kind == "OP" and token.value in _RELATIONS:
                self._advance()
                left = self._call(_RELATIONS[token.value], [left, self._additive()])
                continue
            return left

    def _additive(self) -> Expr:
        left = self._multiplicative()
        while True:
            token = self._peek()
            if token.kind == "OP" and token.value in _ADDITIVE:
                self._advance()
                left = self._call(_ADDITIVE[token.value], [left, self._multiplicative()])
                continue
            return left

    def _multiplicative(self) -> Expr:
        left = self._unary()
        while True:
            token = self._peek()
            if token.kind == "OP" and token.value in _MULTIPLICATIVE:
                self._advance()
                left = self._call(_MULTIPLICATIVE[token.value], [left, self._unary()])
                continue
            return left

    def _unary(self) -> Expr:
        if self._accept("!"):
            return self._call(NOT, [self._unary()])
        if self._accept("-"):
            return self._call(NEGATE, [self._unary()])
        return self._member()

    def _member(self) -> Expr:
        expr = self._primary()
        while True:
            if self._accept("."):
                token = self._peek()
                if token.kind != "IDENT":
                    found = "end of input" if token.kind == "EOF" else repr(token.value)
                    raise self._error(f"expected identifier after '.', found {found}", token)
                self._advance()
                if self._accept("("):
                    expr = self._call(token.value, self._arguments(")"), target=expr)
                else:
                    expr = self._node(select_expr=Select(operand=expr, field=token.value))
                continue
            if self._accept("["):
                index = self._conditional()
                self._expect("]")
                expr = self._call(INDEX, [expr, index])
                continue
            return expr

    def _primary(self) -> Expr:
        token = self._advance()
        if token.kind == "IDENT":
            if self._accept("("):
                return self._call(token.value, self._arguments(")"))
            return self._node(ident_expr=Ident(name=token.value))
        if token.kind in {"INT", "FLOAT", "STRING", "BOOL", "NULL"}:
            return self._node(const_expr=Constant.of(token.value))
        if token.kind == "OP" and token.value == "(":
            inner = self._conditional()
            self._expect(")")
            return inner
        if token.kind == "OP" and token.value == "[":
            return self._node(list_expr=CreateList(elements=self._arguments("]")))
        if token.kind == "OP" and token.value == "{":
            return self._node(struct_expr=CreateStruct(entries=self._entries()))
        found = "end of input" if token.kind == "EOF" else repr(token.value)
        raise self._error(f"unexpected {found}", token)

    def _arguments(self, closing: str) -> list[Expr]:
        args: list[Expr] = []
        if self._accept(closing):
            return args
        while True:
            args.append(self._conditional())
            if self._accept(closing):
                return args
            self._expect(",")

    def _entries(self) -> list[MapEntry]:
        entries: list[MapEntry] = []
        if self._accept("}"):
            return entries
        while True:
            key = self._conditional()
            self._expect(":")
            entries.append(MapEntry(key=key, value=self._conditional()))
            if self._accept("}"):
                return entries
            self._expect(",")


def parse_expression(expression: str) -> Expr:
    """Parse an expression string into an abstract expression tree.

    Raises ``InvalidExpressionError`` (an INVALID_ARGUMENT kind) carrying the
    parser diagnostic when the text is not a well-formed expression.
    """
    if not isinstance(expression, str) or not expression.strip():
        raise InvalidExpressionError(
            "Expression must be a non-empty string",
            diagnostic="Syntax error: empty expression at position 0",
            position=0,
        )
    if len(expression) > MAX_EXPRESSION_LENGTH:
        raise InvalidExpressionError(
            "Expression exceeds size limits",
            diagnostic=f"Syntax error: expression longer than {MAX_EXPRESSION_LENGTH} characters at position 0",
            position=0,
        )
    return _Parser(expression).parse()


def parse(expression: str) -> ParsedExpression:
    return ParsedExpression(expression=expression, expr=parse_expression(expression))


def conjuncts(expr: Expr) -> list[Expr]:
    # Flatten a tree of && calls into its operands, left to right.
    call = expr.call_expr
    if call is not None and call.function == AND and call.target is None:
        result: list[Expr] = []
        for arg in call.args:
            result.extend(conjuncts(arg))
        return result
    return [expr]


def literal_value(expr: Expr) -> Any:
    # Extract a constant or list-of-constants literal; anything else is rejected.
    if expr.const_expr is not None:
        return expr.const_expr.value()
    if expr.list_expr is not None:
        return [literal_value(element) for element in expr.list_expr.elements]
    raise InvalidArgumentError("Expected a literal value")


def field_path(expr: Expr) -> str | None:
    # Render ident/select chains as dotted paths, e.g. resource.environment_name.
    if expr.ident_expr is not None:
        return expr.ident_expr.name
    if expr.select_expr is not None:
        operand = field_path(expr.select_expr.operand)
        if operand is None:
            return None
        return f"{operand}.{expr.select_expr.field}"
    return None


def evaluate(expr: Expr, activation: dict[str, Any]) -> Any:
    """Evaluate an expression tree against a mapping of variables.

    Missing attributes resolve to None rather than erroring so that database
    group expressions over partially populated resources stay total.
    """
    if expr.const_expr is not None:
        return expr.const_expr.value()
    if expr.ident_expr is not None:
        return activation.get(expr.ident_expr.name)
    if expr.select_expr is not None:
        operand = evaluate(expr.select_expr.operand, activation)
        if isinstance(operand, dict):
            return operand.get(expr.select_expr.field)
        return getattr(operand, expr.select_expr.field, None)
    if expr.list_expr is not None:
        return [evaluate(element, activation) for element in expr.list_expr.elements]
    if expr.struct_expr is not None:
        return {
            evaluate(entry.key, activation): evaluate(entry.value, activation)
            for entry in expr.struct_expr.entries
        }
    if expr.call_expr is not None:
        return _evaluate_call(expr.call_expr, activation)
    raise InvalidArgumentError("Empty expression node")


def _evaluate_call(call: Call, activation: dict[str, Any]) -> Any:
    function = call.function
    if function == AND:
        return all(_truthy(evaluate(arg, activation)) for arg in call.args)
    if function == OR:
        return any(_truthy(evaluate(arg, activation)) for arg in call.args)
    if function == CONDITIONAL:
        condition, truthy, falsy = call.args
        return evaluate(truthy if _truthy(evaluate(condition, activation)) else falsy, activation)

    args = [evaluate(arg, activation) for arg in call.args]
    if call.target is not None:
        receiver = evaluate(call.target, activation)
        method = _METHODS.get(function)
        if method is None:
            raise InvalidArgumentError(f"Unsupported function: {function}")
        # Wrong arity or a bad pattern evaluates to null.
        try:
            return method(receiver, *args)
        except (TypeError, re.error):
            return None

    operator = _OPERATORS.get(function)
    if operator is None:
        raise InvalidArgumentError(f"Unsupported function: {function}")
    try:
        return operator(*args)
    except (TypeError, ZeroDivisionError):
        return None


def _truthy(value: Any) -> bool:
    return value is True


def _compare(op: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def _safe(left: Any, right: Any) -> bool:
        if left is None or right is None:
            return False
        try:
            return op(left, right)
        except TypeError:
            return False

    return _safe


def _membership(left: Any, right: Any) -> bool:
    if right is None:
        return False
    if isinstance(right, (list, tuple, set, dict)):
        return left in right
    return False


def _index(container: Any, key: Any) -> Any:
    try:
        return container[key]
    except (KeyError, IndexError, TypeError):
        return None


def _size(value: Any) -> int:
    try:
        return len(value)
    except TypeError:
        return 0


def _string_method(op: Callable[[str, str], bool]) -> Callable[[Any, Any], bool]:
    def _apply(receiver: Any, argument: Any) -> bool:
        if not isinstance(receiver, str) or argument is None:
            return False
        return op(receiver, str(argument))

    return _apply


_OPERATORS: dict[str, Callable[..., Any]] = {
    NOT: lambda value: not _truthy(value),
    NEGATE: lambda value: -value if isinstance(value, (int, float)) else None,
    "_==_": lambda left, right: left == right,
    "_!=_": lambda left, right: left != right,
    "_<_": _compare(lambda left, right: left < right),
    "_<=_": _compare(lambda left, right: left <= right),
    "_>_": _compare(lambda left, right: left > right),
    "_>=_": _compare(lambda left, right: left >= right),
    IN: _membership,
    "_+_": lambda left, right: left + right,
    "_-_": lambda left, right: left - right,
    "_*_": lambda left, right: left * right,
    "_/_": lambda left, right: left / right,
    "_%_": lambda left, right: left % right,
    INDEX: _index,
    "size": _size,
}

_METHODS: dict[str, Callable[..., Any]] = {
    "startsWith": _string_method(lambda value, prefix: value.startswith(prefix)),
    "endsWith": _string_method(lambda value, suffix: value.endswith(suffix)),
    "contains": _string_method(lambda value, part: part in value),
    "matches": _string_method(lambda value, pattern: re.search(pattern, value) is not None),
    "size": lambda value: _size(value),
}
