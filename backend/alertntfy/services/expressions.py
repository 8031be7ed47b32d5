"""Expression language for tag/action guards and topic/priority selection.

The syntax follows the gval language the original ntfy forwarder configs were
written for: arithmetic, text comparison and regex matching, `&&`/`||`/`!`,
JSON literals, `a ? b : c`, `a ?? b` and a deep-equality `in` operator.
Sources are compiled once into a tree of closures and evaluated per alert
against `Alert.fields()`.
"""

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from alertntfy.domain.errors import ConfigError, FieldResolutionError

Evaluator = Callable[[dict[str, Any]], Any]

LITERAL_SELECTOR = re.compile(r"^[-_A-Za-z0-9]{1,64}$")

_TOKEN = re.compile(
    r"""
    (?P<ws>\s+)
  | (?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
  | (?P<string>"(?:[^"\\]|\\.)*"|'(?:[^'\\]|\\.)*'|`[^`]*`)
  | (?P<ident>[A-Za-z_][A-Za-z0-9_]*)
  | (?P<op>\*\*|==|!=|<=|>=|=~|!~|&&|\|\||\?\?|[-+*/%<>!()\[\]{},:.?])
    """,
    re.VERBOSE,
)

_KEYWORDS = {"true": True, "false": False, "null": None, "nil": None}


class ExpressionCompileError(ConfigError):
    """Raised when an expression source cannot be parsed."""


class ExpressionEvalError(FieldResolutionError):
    """Raised when a compiled expression fails against a given alert."""


@dataclass(frozen=True)
class _Token:
    kind: str
    value: Any
    pos: int


def _decode_string(raw: str, pos: int) -> str:
    if raw[0] == "`":
        return raw[1:-1]
    if raw[0] == "'":
        body = raw[1:-1].replace("\\'", "'").replace('"', '\\"')
        raw = f'"{body}"'
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExpressionCompileError(f"invalid string literal at {pos}: {exc.msg}") from exc


def _tokenize(source: str) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN.match(source, pos)
        if not match:
            raise ExpressionCompileError(f"unexpected character {source[pos]!r} at {pos}")
        kind = match.lastgroup
        text = match.group()
        if kind == "number":
            tokens.append(_Token("const", float(text), pos))
        elif kind == "string":
            tokens.append(_Token("const", _decode_string(text, pos), pos))
        elif kind == "ident":
            if text in _KEYWORDS:
                tokens.append(_Token("const", _KEYWORDS[text], pos))
            elif text == "in":
                tokens.append(_Token("op", "in", pos))
            else:
                tokens.append(_Token("ident", text, pos))
        elif kind == "op":
            tokens.append(_Token("op", text, pos))
        pos = match.end()
    tokens.append(_Token("eof", None, pos))
    return tokens


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def deep_equal(a: Any, b: Any) -> bool:
    """Structural equality that never equates bools with numbers."""

    if _is_number(a) and _is_number(b):
        return float(a) == float(b)
    if _type_name(a) != _type_name(b):
        return False
    if isinstance(a, (list, tuple)):
        return len(a) == len(b) and all(deep_equal(x, y) for x, y in zip(a, b))
    if isinstance(a, dict):
        return a.keys() == b.keys() and all(deep_equal(a[k], b[k]) for k in a)
    return a == b


def _as_bool(value: Any, context: str) -> bool:
    if isinstance(value, bool):
        return value
    if value in ("true", "false"):
        return value == "true"
    raise ExpressionEvalError(f"{context}: expected bool but got {_type_name(value)}")


def _as_number(value: Any, op: str) -> float:
    if _is_number(value):
        return float(value)
    raise ExpressionEvalError(f"operator {op}: expected number but got {_type_name(value)}")


@lru_cache(maxsize=256)
def _regex(pattern: str) -> re.Pattern:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ExpressionEvalError(f"invalid regular expression {pattern!r}: {exc}") from exc


def _add(a: Any, b: Any) -> Any:
    if isinstance(a, str) and isinstance(b, str):
        return a + b
    return _as_number(a, "+") + _as_number(b, "+")


def _arith(op: str) -> Callable[[Any, Any], Any]:
    def apply(a: Any, b: Any) -> Any:
        x, y = _as_number(a, op), _as_number(b, op)
        try:
            if op == "-":
                return x - y
            if op == "*":
                return x * y
            if op == "/":
                return x / y
            if op == "%":
                return x % y
            return x**y
        except (ZeroDivisionError, OverflowError) as exc:
            raise ExpressionEvalError(f"operator {op}: {exc}") from exc

    return apply


def _order(op: str) -> Callable[[Any, Any], bool]:
    def apply(a: Any, b: Any) -> bool:
        if _is_number(a) and _is_number(b):
            a, b = float(a), float(b)
        elif not (isinstance(a, str) and isinstance(b, str)):
            raise ExpressionEvalError(
                f"operator {op}: cannot compare {_type_name(a)} with {_type_name(b)}"
            )
        if op == "<":
            return a < b
        if op == "<=":
            return a <= b
        if op == ">":
            return a > b
        return a >= b

    return apply


def _match(negate: bool) -> Callable[[Any, Any], bool]:
    def apply(a: Any, b: Any) -> bool:
        if not isinstance(a, str) or not isinstance(b, str):
            raise ExpressionEvalError(
                f"regex match expects strings but got {_type_name(a)} and {_type_name(b)}"
            )
        return (_regex(b).search(a) is not None) != negate

    return apply


def _contains(a: Any, b: Any) -> bool:
    if not isinstance(b, (list, tuple)):
        raise ExpressionEvalError(f"expected array for in operator but got {_type_name(b)}")
    return any(deep_equal(a, item) for item in b)


_BINARY: dict[str, Callable[[Any, Any], Any]] = {
    "+": _add,
    "-": _arith("-"),
    "*": _arith("*"),
    "/": _arith("/"),
    "%": _arith("%"),
    "**": _arith("**"),
    "==": deep_equal,
    "!=": lambda a, b: not deep_equal(a, b),
    "<": _order("<"),
    "<=": _order("<="),
    ">": _order(">"),
    ">=": _order(">="),
    "=~": _match(False),
    "!~": _match(True),
    "in": _contains,
}

# Binding power per infix operator, loosest first.
_PRECEDENCE: dict[str, int] = {
    "?": 10,
    "??": 20,
    "||": 30,
    "&&": 40,
    "==": 50,
    "!=": 50,
    "<": 50,
    "<=": 50,
    ">": 50,
    ">=": 50,
    "=~": 50,
    "!~": 50,
    "in": 50,
    "+": 60,
    "-": 60,
    "*": 70,
    "/": 70,
    "%": 70,
    "**": 80,
}
_UNARY_PRECEDENCE = 90


def _select(container: Any, key: Any, path: str) -> Any:
    if isinstance(container, dict):
        if not isinstance(key, str):
            raise ExpressionEvalError(f"{path}: object key must be a string, got {_type_name(key)}")
        if key not in container:
            raise ExpressionEvalError(f"unknown parameter {path}")
        return container[key]
    if isinstance(container, (list, tuple)):
        if not _is_number(key) or float(key) != int(key):
            raise ExpressionEvalError(f"{path}: array index must be an integer")
        index = int(key)
        if not 0 <= index < len(container):
            raise ExpressionEvalError(f"{path}: index {index} out of range")
        return container[index]
    raise ExpressionEvalError(f"{path}: cannot select from {_type_name(container)}")


class _Parser:
    """Pratt parser turning tokens into a closure tree."""

    def __init__(self, source: str) -> None:
        self.source = source
        self.tokens = _tokenize(source)
        self.index = 0

    @property
    def current(self) -> _Token:
        return self.tokens[self.index]

    def advance(self) -> _Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def expect(self, op: str) -> None:
        token = self.advance()
        if token.kind != "op" or token.value != op:
            found = "end of expression" if token.kind == "eof" else repr(token.value)
            raise ExpressionCompileError(f"expected {op!r} at {token.pos} but found {found}")

    def parse(self) -> Evaluator:
        if self.current.kind == "eof":
            raise ExpressionCompileError("empty expression")
        node = self.expression(0)
        if self.current.kind != "eof":
            raise ExpressionCompileError(f"unexpected {self.current.value!r} at {self.current.pos}")
        return node

    def expression(self, min_power: int) -> Evaluator:
        left = self.prefix()
        while True:
            token = self.current
            if token.kind != "op" or token.value not in _PRECEDENCE:
                return left
            power = _PRECEDENCE[token.value]
            if power <= min_power:
                return left
            self.advance()
            left = self.infix(token.value, left, power)

    def infix(self, op: str, left: Evaluator, power: int) -> Evaluator:
        if op == "?":
            then = self.expression(0)
            self.expect(":")
            otherwise = self.expression(power - 1)

            def ternary(fields: dict[str, Any]) -> Any:
                if _as_bool(left(fields), "ternary condition"):
                    return then(fields)
                return otherwise(fields)

            return ternary

        # `**` is right-associative, everything else binds left.
        right = self.expression(power - 1 if op == "**" else power)

        if op == "??":

            def coalesce(fields: dict[str, Any]) -> Any:
                try:
                    value = left(fields)
                except ExpressionEvalError:
                    value = None
                return right(fields) if value is None else value

            return coalesce

        if op == "&&":
            return lambda fields: _as_bool(left(fields), "&&") and _as_bool(right(fields), "&&")
        if op == "||":
            return lambda fields: _as_bool(left(fields), "||") or _as_bool(right(fields), "||")

        apply = _BINARY[op]
        return lambda fields: apply(left(fields), right(fields))

    def prefix(self) -> Evaluator:
        token = self.advance()
        if token.kind == "const":
            value = token.value
            node: Evaluator = lambda fields: value
            return self.postfix(node, json.dumps(value))
        if token.kind == "ident":
            name = token.value

            def variable(fields: dict[str, Any]) -> Any:
                if name not in fields:
                    raise ExpressionEvalError(f"unknown parameter {name}")
                return fields[name]

            return self.postfix(variable, name)
        if token.kind == "op":
            if token.value == "(":
                inner = self.expression(0)
                self.expect(")")
                return self.postfix(inner, "(...)")
            if token.value == "[":
                return self.postfix(self.array(), "[...]")
            if token.value == "{":
                return self.postfix(self.obj(), "{...}")
            if token.value == "!":
                operand = self.expression(_UNARY_PRECEDENCE)
                return lambda fields: not _as_bool(operand(fields), "!")
            if token.value == "-":
                operand = self.expression(_UNARY_PRECEDENCE)
                return lambda fields: -_as_number(operand(fields), "-")
        if token.kind == "eof":
            raise ExpressionCompileError("unexpected end of expression")
        raise ExpressionCompileError(f"unexpected {token.value!r} at {token.pos}")

    def postfix(self, node: Evaluator, path: str) -> Evaluator:
        while self.current.kind == "op" and self.current.value in (".", "["):
            if self.advance().value == ".":
                key_token = self.advance()
                if key_token.kind != "ident":
                    raise ExpressionCompileError(f"expected field name after '.' at {key_token.pos}")
                key = key_token.value
                path = f"{path}.{key}"
                node = self._selector(node, lambda fields, key=key: key, path)
            else:
                key_node = self.expression(0)
                self.expect("]")
                path = f"{path}[...]"
                node = self._selector(node, key_node, path)
        return node

    @staticmethod
    def _selector(container: Evaluator, key: Evaluator, path: str) -> Evaluator:
        return lambda fields: _select(container(fields), key(fields), path)

    def array(self) -> Evaluator:
        items: list[Evaluator] = []
        if not (self.current.kind == "op" and self.current.value == "]"):
            while True:
                items.append(self.expression(0))
                if self.current.kind == "op" and self.current.value == ",":
                    self.advance()
                    continue
                break
        self.expect("]")
        return lambda fields: [item(fields) for item in items]

    def obj(self) -> Evaluator:
        entries: list[tuple[Evaluator, Evaluator]] = []
        if not (self.current.kind == "op" and self.current.value == "}"):
            while True:
                # Keys bind tighter than the ternary so the ':' stays a separator.
                key = self.expression(_PRECEDENCE["?"])
                self.expect(":")
                entries.append((key, self.expression(0)))
                if self.current.kind == "op" and self.current.value == ",":
                    self.advance()
                    continue
                break
        self.expect("}")

        def build(fields: dict[str, Any]) -> dict[str, Any]:
            result: dict[str, Any] = {}
            for key_node, value_node in entries:
                key = key_node(fields)
                if not isinstance(key, str):
                    raise ExpressionEvalError(f"object key must be a string, got {_type_name(key)}")
                result[key] = value_node(fields)
            return result

        return build


def _format(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        number = float(value)
        return str(int(number)) if number.is_integer() else str(number)
    return json.dumps(value)


@dataclass(frozen=True)
class Expression:
    """A compiled expression and the source it was compiled from."""

    text: str
    evaluable: Evaluator

    def evaluate(self, fields: dict[str, Any]) -> Any:
        try:
            return self.evaluable(fields)
        except ExpressionEvalError:
            raise
        except (TypeError, ValueError, ArithmeticError, RecursionError) as exc:
            raise ExpressionEvalError(str(exc)) from exc

    def eval_bool(self, fields: dict[str, Any]) -> bool:
        return _as_bool(self.evaluate(fields), "expression result")

    def eval_string(self, fields: dict[str, Any]) -> str:
        return _format(self.evaluate(fields))


def compile_expression(source: str) -> Expression:
    """Compile an expression, raising ExpressionCompileError on bad syntax."""

    text = source.strip()
    try:
        evaluable = _Parser(text).parse()
    except RecursionError as exc:
        raise ExpressionCompileError("expression is nested too deeply") from exc
    return Expression(text=text, evaluable=evaluable)


@dataclass(frozen=True)
class StringSelector:
    """A topic or priority: either a plain literal or a compiled expression."""

    text: str
    expression: Expression | None = None

    @property
    def is_literal(self) -> bool:
        return self.expression is None

    def resolve(self, fields: dict[str, Any]) -> str:
        if self.expression is None:
            return self.text
        return self.expression.eval_string(fields)


def parse_selector(source: str) -> StringSelector:
    """Classify a selector as literal or expression. Decided once, at load time."""

    text = source.strip()
    if LITERAL_SELECTOR.match(text):
        return StringSelector(text=text)
    try:
        expression = compile_expression(text)
    except ExpressionCompileError as exc:
        raise ExpressionCompileError(f"bad expression {text!r}: {exc}") from exc
    return StringSelector(text=text, expression=expression)
