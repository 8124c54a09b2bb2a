"""SQL fragments that render themselves for a dialect.

Fragments can be used wherever a column name is accepted: the left or right
side of a filter clause, in ``Query.select`` and inside ``Sql``. Rendering
appends any bound values to ``args`` and returns the SQL text with the
dialect's placeholders in their place.

Example:
    >>> query.select("id", Column("accounts.name"), As("created_at", "joined"))
    >>> query.filter(Column("score"), ">", Sql("(SELECT avg(", Column("score"), ") FROM ", Column("accounts"), ")"))
    >>> query.filter("id", "IN", Sql(Param(1), ",", Param(2)))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from rem.exceptions import UnsupportedTypeError

if TYPE_CHECKING:
    from rem.dialects.base import Dialect


class Fragment:
    """Base class for SQL that renders itself for a dialect."""

    # Complete expressions are not wrapped in array[...] by the ?& and ?| operators.
    is_expression = False

    def render(self, dialect: Dialect, args: list[Any]) -> str:
        raise NotImplementedError


@dataclass(frozen=True)
class Unsafe(Fragment):
    """Raw SQL, emitted exactly as given. Never pass user input."""

    is_expression = True

    sql: str

    def render(self, dialect: Dialect, args: list[Any]) -> str:
        return self.sql

    def __str__(self) -> str:
        return self.sql


@dataclass(frozen=True)
class Column(Fragment):
    """A quoted column reference. Dotted paths are quoted per segment."""

    path: str

    def render(self, dialect: Dialect, args: list[Any]) -> str:
        return dialect.quote_identifier(self.path)


@dataclass(frozen=True)
class As(Fragment):
    """An aliased column or expression: ``"expr" AS "alias"``."""

    expression: str | Fragment
    alias: str

    def __post_init__(self) -> None:
        if not isinstance(self.expression, (str, Fragment)):
            raise UnsupportedTypeError(f"unsupported type for As '{self.expression!r}'")

    def render(self, dialect: Dialect, args: list[Any]) -> str:
        if isinstance(self.expression, str):
            expression = dialect.quote_identifier(self.expression)
        else:
            expression = self.expression.render(dialect, args)
        return f"{expression} AS {dialect.quote_identifier(self.alias)}"


@dataclass(frozen=True)
class Param:
    """A bound value inside ``Sql``."""

    value: Any


class Sql(Fragment):
    """Custom SQL assembled from literal text, fragments and bound parameters.

    Strings are emitted verbatim, ``Param`` values become placeholders,
    nested fragments render themselves and anything else is emitted with
    ``str()``.
    """

    is_expression = True

    def __init__(self, *segments: Any) -> None:
        self.segments = segments

    def __repr__(self) -> str:
        return f"Sql{self.segments!r}"

    def render(self, dialect: Dialect, args: list[Any]) -> str:
        parts = []
        for segment in self.segments:
            if isinstance(segment, Param):
                args.append(segment.value)
                parts.append(dialect.param(len(args)))
            elif isinstance(segment, str):
                parts.append(segment)
            elif isinstance(segment, Fragment):
                parts.append(segment.render(dialect, args))
            else:
                parts.append(str(segment))
        return "".join(parts)
