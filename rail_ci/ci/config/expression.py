"""
Variable expressions used by ``only: variables`` and ``except: variables``.

Supported syntax::

    $VARIABLE                  present and not empty
    $VARIABLE == "value"       equality (also !=), ``null`` for undefined
    $VARIABLE =~ /pattern/i    regexp match (also !~)
    expr && expr || (expr)     boolean operators, && binds tighter

``Expression(text)`` parses eagerly and raises :class:`ExpressionError` on
bad syntax, so configuration validation can report it before any pipeline
is built.
"""

import re
from typing import Any, Mapping, Optional

from .errors import ConfigError

_TOKEN = re.compile(
    r"""
    \s*(?:
        (?P<variable>\$\{?[A-Za-z_][A-Za-z0-9_]*\}?)
      | (?P<string>"[^"]*"|'[^']*')
      | (?P<pattern>/(?:\\.|[^/\\])+/[imx]*)
      | (?P<null>null\b)
      | (?P<operator>==|!=|=~|!~|&&|\|\|)
      | (?P<paren>[()])
    )
    """,
    re.VERBOSE,
)
_PATTERN = re.compile(r"\A/(.+)/([imx]*)\Z", re.DOTALL)
_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "x": re.VERBOSE}
_COMPARISONS = ("==", "!=", "=~", "!~")


class ExpressionError(ConfigError):
    pass


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _TOKEN.match(text, position)
        if match is None or match.end() == position:
            raise ExpressionError(f"invalid expression syntax: {text}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        position = match.end()
    return tokens


def compile_pattern(value: str) -> Optional[re.Pattern]:
    """Compile ``/pattern/flags``; ``None`` when ``value`` is not a valid regexp literal."""
    match = _PATTERN.match(value or "")
    if not match:
        return None
    flags = 0
    for flag in match.group(2):
        flags |= _FLAGS[flag]
    try:
        return re.compile(match.group(1), flags)
    except re.error:
        return None


class Expression:
    def __init__(self, text: Any):
        if not isinstance(text, str) or not text.strip():
            raise ExpressionError(f"invalid expression syntax: {text}")
        self.text = text
        self._tokens = _tokenize(text)
        self._index = 0
        self._tree = self._parse_or()
        if self._index != len(self._tokens):
            raise ExpressionError(f"invalid expression syntax: {text}")

    def __repr__(self) -> str:
        return f"Expression({self.text!r})"

    # parsing

    def _peek(self) -> Optional[tuple[str, str]]:
        if self._index < len(self._tokens):
            return self._tokens[self._index]
        return None

    def _take(self) -> tuple[str, str]:
        token = self._peek()
        if token is None:
            raise ExpressionError(f"invalid expression syntax: {self.text}")
        self._index += 1
        return token

    def _parse_or(self):
        node = self._parse_and()
        while self._peek() == ("operator", "||"):
            self._take()
            node = ("or", node, self._parse_and())
        return node

    def _parse_and(self):
        node = self._parse_primary()
        while self._peek() == ("operator", "&&"):
            self._take()
            node = ("and", node, self._parse_primary())
        return node

    def _parse_primary(self):
        if self._peek() == ("paren", "("):
            self._take()
            node = self._parse_or()
            if self._take() != ("paren", ")"):
                raise ExpressionError(f"invalid expression syntax: {self.text}")
            return node

        left = self._parse_operand()
        token = self._peek()
        if token is not None and token[0] == "operator" and token[1] in _COMPARISONS:
            self._take()
            right = self._parse_operand()
            if token[1] in ("=~", "!~") and right[0] == "pattern" and compile_pattern(right[1]) is None:
                raise ExpressionError(f"invalid expression syntax: {self.text}")
            return (token[1], left, right)
        if left[0] != "variable":
            raise ExpressionError(f"invalid expression syntax: {self.text}")
        return ("present", left)

    def _parse_operand(self):
        kind, value = self._take()
        if kind not in ("variable", "string", "pattern", "null"):
            raise ExpressionError(f"invalid expression syntax: {self.text}")
        if kind == "variable":
            value = value.lstrip("$").strip("{}")
        elif kind == "string":
            value = value[1:-1]
        return (kind, value)

    # evaluation

    def evaluate(self, variables: Mapping[str, Any]) -> bool:
        return bool(self._evaluate(self._tree, variables))

    def _value(self, operand, variables: Mapping[str, Any]):
        kind, value = operand
        if kind == "variable":
            return variables.get(value)
        if kind == "null":
            return None
        return value

    def _evaluate(self, node, variables: Mapping[str, Any]) -> bool:
        operator = node[0]
        if operator == "or":
            return self._evaluate(node[1], variables) or self._evaluate(node[2], variables)
        if operator == "and":
            return self._evaluate(node[1], variables) and self._evaluate(node[2], variables)
        if operator == "present":
            return bool(self._value(node[1], variables))

        left = self._value(node[1], variables)
        right = self._value(node[2], variables)
        if operator == "==":
            return left == right
        if operator == "!=":
            return left != right

        pattern = compile_pattern(right) if isinstance(right, str) else None
        matched = pattern is not None and left is not None and bool(pattern.search(str(left)))
        return matched if operator == "=~" else not matched
