"""Filter clauses for WHERE and JOIN ... ON conditions.

A condition is a flat sequence of ``FilterClause`` tokens: group brackets,
AND/OR connectives and leaf comparisons. ``And`` and ``Or`` build bracketed
groups out of leaves and other groups, so arbitrary nesting flattens into
one list that dialects render left to right.

Example:
    >>> query.filter_or(Q("name", "=", "alice"), And(Q("age", ">", 30), Q("active", "IS", True)))
    >>> # WHERE ( "name" = $1 OR ( "age" > $2 AND "active" IS $3 ) )
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rem.exceptions import FilterError
from rem.fragments import Fragment

if TYPE_CHECKING:
    from rem.dialects.base import Dialect


OPERATORS = frozenset(
    {
        "=",
        "!=",
        "<>",
        "<",
        ">",
        "<=",
        ">=",
        "LIKE",
        "NOT LIKE",
        "IN",
        "NOT IN",
        "IS",
        "IS NOT",
        "ALL",
        "<> ALL",
        "ANY",
        "<> ANY",
        "EXISTS",
        "NOT EXISTS",
        "OVERLAPS",
        "?",
        "?&",
        "?|",
        "@>",
        "<@",
    }
)

_EXISTENCE_OPERATORS = frozenset({"EXISTS", "NOT EXISTS"})
_GROUPED_OPERATORS = frozenset({"IN", "NOT IN", "ALL", "<> ALL", "ANY", "<> ANY"})
_ARRAY_OPERATORS = frozenset({"?&", "?|"})


class _Skip:
    """Placeholder that ``And``/``Or`` drop, for optional branches."""

    def __repr__(self) -> str:
        return "SKIP"


SKIP = _Skip()


@dataclass(frozen=True)
class FilterClause:
    """One token of a flattened condition.

    ``rule`` is ``"("``, ``")"``, ``"AND"``, ``"OR"`` or ``"WHERE"`` for a
    leaf comparison of ``left`` against ``right``.
    """

    rule: str
    left: Any = None
    operator: str = ""
    right: Any = None

    def render(self, dialect: Dialect, args: list[Any]) -> str:
        """Render this token, appending bound values to ``args``."""
        if self.rule == "(":
            return " ("
        if self.rule == ")":
            return " )"
        if self.rule == "AND":
            return " AND"
        if self.rule == "OR":
            return " OR"
        if self.rule != "WHERE":
            raise FilterError(f"invalid rule '{self.rule}' on WHERE clause")

        if self.operator not in OPERATORS:
            raise FilterError(f"invalid operator '{self.operator}' on WHERE clause")

        left = self._render_left(dialect, args)
        right = self._render_right(dialect, args)

        if self.operator in _EXISTENCE_OPERATORS:
            return f" {self.operator} ({right})"
        if self.operator in _GROUPED_OPERATORS:
            return f" {left} {self.operator} ({right})"
        if self.operator in _ARRAY_OPERATORS and not getattr(self.right, "is_expression", False):
            return f" {left} {self.operator} array[{right}]"
        return f" {left} {self.operator} {right}"

    def _render_left(self, dialect: Dialect, args: list[Any]) -> str:
        if isinstance(self.left, str):
            return dialect.quote_identifier(self.left)
        if isinstance(self.left, Fragment):
            return self.left.render(dialect, args)
        raise FilterError(f"unsupported type for left side of filter clause '{self.left!r}'")

    def _render_right(self, dialect: Dialect, args: list[Any]) -> str:
        if isinstance(self.right, Fragment):
            return self.right.render(dialect, args)
        if self.right is None:
            return "NULL"
        if isinstance(self.right, (list, tuple)):
            placeholders = []
            for value in self.right:
                args.append(value)
                placeholders.append(dialect.param(len(args)))
            return ",".join(placeholders)
        args.append(self.right)
        return dialect.param(len(args))


OPEN = FilterClause("(")
CLOSE = FilterClause(")")
AND = FilterClause("AND")
OR = FilterClause("OR")


def Q(left: str | Fragment, operator: str, right: Any) -> FilterClause:
    """Build a leaf comparison.

    ``left`` is a column name or a fragment. ``right`` is a fragment (a
    ``Query`` renders as a subquery), ``None`` for NULL, a list or tuple of
    values, or a single value. Lists and values are bound as parameters.

    Example:
        >>> Q("id", "IN", [1, 2, 3])
        >>> Q("deleted_at", "IS", None)
        >>> Q(Column("groups.id"), "=", Column("accounts.group_id"))
    """
    if not isinstance(left, (str, Fragment)):
        raise FilterError(f"unsupported type for left side of filter clause '{left!r}'")
    return FilterClause("WHERE", left, operator, right)


def Exists(subquery: Fragment) -> FilterClause:
    """``EXISTS (subquery)``."""
    return FilterClause("WHERE", "", "EXISTS", subquery)


def NotExists(subquery: Fragment) -> FilterClause:
    """``NOT EXISTS (subquery)``."""
    return FilterClause("WHERE", "", "NOT EXISTS", subquery)


def flatten(items: Iterable[Any]) -> list[FilterClause]:
    """Flatten clauses and clause lists into one sequence.

    ``None`` and ``SKIP`` are dropped so optional branches can be written
    inline. Anything else that is not a clause is rejected.
    """
    flat: list[FilterClause] = []
    for item in items:
        if item is None or item is SKIP:
            continue
        if isinstance(item, FilterClause):
            flat.append(item)
        elif isinstance(item, (list, tuple)):
            for clause in item:
                if not isinstance(clause, FilterClause):
                    raise FilterError(f"unsupported filter argument '{clause!r}'")
            flat.extend(item)
        else:
            raise FilterError(f"unsupported filter argument '{item!r}'")
    return flat


def group(connective: FilterClause, clauses: list[FilterClause]) -> list[FilterClause]:
    """Wrap ``clauses`` in brackets, joining top-level siblings with ``connective``."""
    grouped = [OPEN]
    depth = 0
    for i, clause in enumerate(clauses):
        if i > 0 and depth == 0:
            grouped.append(connective)
        if clause.rule == "(":
            depth += 1
        elif clause.rule == ")":
            depth -= 1
        grouped.append(clause)
    grouped.append(CLOSE)
    return grouped


def And(*items: Any) -> list[FilterClause]:
    """Group items, joining them with AND."""
    return group(AND, flatten(items))


def Or(*items: Any) -> list[FilterClause]:
    """Group items, joining them with OR."""
    return group(OR, flatten(items))


def check_brackets(clauses: list[FilterClause]) -> None:
    """Raise FilterError unless every group bracket is closed in order."""
    depth = 0
    for clause in clauses:
        if clause.rule == "(":
            depth += 1
        elif clause.rule == ")":
            depth -= 1
            if depth < 0:
                raise FilterError("unbalanced ')' in filter clauses")
    if depth:
        raise FilterError("unclosed '(' in filter clauses")
