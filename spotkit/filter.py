"""OData-like ``$filter`` expressions turned into query conditions."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from spotkit.errors import BadRequestError
from spotkit.query import Query

_TOKEN_RE = re.compile(
    r"\b(eq|ne|gt|lt|ge|le|and|or|like)\b|[()]|[A-Za-z0-9_\-.]+", re.ASCII
)
_OPERATORS = frozenset({"eq", "ne", "gt", "lt", "ge", "le", "and", "or", "like"})
_UNSUPPORTED = frozenset(
    {"has", "in", "contains", "startswith", "endswith", "any", "all", "not"}
)
_PRECEDENCE = {
    "or": 1,
    "and": 2,
    "eq": 3,
    "ne": 3,
    "gt": 3,
    "lt": 3,
    "ge": 3,
    "le": 3,
    "like": 3,
    "(": 0,
}
_COMPARISONS = {
    "eq": "=",
    "like": "LIKE",
    "ne": "!=",
    "gt": ">",
    "lt": "<",
    "ge": ">=",
    "le": "<=",
}


@dataclass(frozen=True)
class Token:
    """One token of a filter: type is "value", "operator" or "paren"."""

    type: str
    value: str


@dataclass
class FilterNode:
    """A node of the parsed filter: a binary operator or a plain value."""

    left: Optional["FilterNode"] = None
    operator: str = ""
    right: Optional["FilterNode"] = None
    value: str = ""


def is_unsupported_operator(token: str) -> bool:
    """Whether ``token`` names an operator that filters do not support."""
    return token.lower() in _UNSUPPORTED


def tokenize_filter(text: str) -> list[Token]:
    """Split ``text`` into tokens; raise BadRequestError on unsupported operators."""
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        word = match.group(0)
        lowered = word.lower()
        if lowered in _OPERATORS:
            tokens.append(Token("operator", lowered))
        elif word in ("(", ")"):
            tokens.append(Token("paren", word))
        elif is_unsupported_operator(word):
            raise BadRequestError(
                f"unsupported operator: '{word}', supported operators are: "
                "eq, ne, gt, lt, ge, le, and, or, like"
            )
        else:
            tokens.append(Token("value", word))
    return tokens


def parse_tokens(tokens: Iterable[Token]) -> FilterNode:
    """Build the expression tree for ``tokens``; raise BadRequestError if malformed."""
    operands: list[FilterNode] = []
    operators: list[str] = []

    def reduce(message: str) -> None:
        if len(operands) < 2:
            raise BadRequestError(message)
        right = operands.pop()
        left = operands.pop()
        operands.append(FilterNode(left=left, operator=operators.pop(), right=right))

    for token in tokens:
        if token.type == "value":
            operands.append(FilterNode(value=token.value))
        elif token.type == "operator":
            rank = _PRECEDENCE.get(token.value, 0)
            while operators and _PRECEDENCE.get(operators[-1], 0) >= rank:
                reduce(f"not enough operands for operator {operators[-1]}")
            operators.append(token.value)
        elif token.type == "paren":
            if token.value == "(":
                operators.append("(")
                continue
            while operators and operators[-1] != "(":
                reduce("not enough operands inside parentheses")
            if not operators:
                raise BadRequestError("mismatched parentheses in filter")
            operators.pop()

    while operators:
        if operators[-1] == "(":
            raise BadRequestError("mismatched parentheses in filter")
        reduce(f"not enough operands for operator {operators[-1]}")

    if len(operands) != 1:
        raise BadRequestError(f"invalid expression, {len(operands)} tokens remain")
    return operands[0]


def validate_field_name(name: str, allowed_fields: Optional[Iterable[str]]) -> bool:
    """Whether ``name`` is one of ``allowed_fields``."""
    return name in (allowed_fields or ())


def _convert(blank: Query, node: Optional[FilterNode], allowed: list[str]) -> Query:
    if node is None:
        return blank
    if node.operator in ("and", "or"):
        left = _convert(blank, node.left, allowed)
        right = _convert(blank, node.right, allowed)
        return left.merge(right) if node.operator == "and" else left.or_where(right)

    sql_operator = _COMPARISONS.get(node.operator)
    if sql_operator is None:
        return blank
    field_name = node.left.value if node.left is not None else ""
    if not validate_field_name(field_name, allowed):
        raise BadRequestError(
            f"field '{field_name}' is not allowed in filter query, "
            f"allowed fields are: {', '.join(allowed)}"
        )
    value = node.right.value if node.right is not None else ""
    if node.operator == "like":
        value = f"%{value}%"
    return blank.where(f"{field_name} {sql_operator} ?", value)


def apply_filter(
    text: str, allowed_fields: Optional[Iterable[str]], query: Query
) -> Query:
    """Return ``query`` narrowed by the filter ``text``.

    Only fields in ``allowed_fields`` may be compared; an empty filter leaves
    the query as it is. Raises BadRequestError for invalid filters.
    """
    if not text:
        return query
    allowed = list(allowed_fields or ())
    tree = parse_tokens(tokenize_filter(text))
    condition = _convert(query.db.model(query.model), tree, allowed)
    return query.merge(condition)