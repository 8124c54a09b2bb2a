"""Column and field definitions for rem models."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from rem.base import Base

T = TypeVar("T")


class Mapped(Generic[T]):
    """Type annotation wrapper indicating a database-mapped column.

    Example:
        >>> class Account(Base):
        ...     id: Mapped[int] = mapped_column(primary_key=True)
        ...     name: Mapped[str] = mapped_column(max_length=100)
        ...     nickname: Mapped[str | None]
        ...     group: Mapped[ForeignKey[Group]] = mapped_column("group_id")
    """

    pass


# Width markers. Plain ``int`` and ``float`` map to 64-bit columns.


class Int8(int):
    """8-bit integer column."""


class Int16(int):
    """16-bit integer column."""


class Int32(int):
    """32-bit integer column."""


class Int64(int):
    """64-bit integer column."""


class Float32(float):
    """Single precision float column."""


class Float64(float):
    """Double precision float column."""


KINDS: dict[Any, str] = {
    bool: "bool",
    Int8: "int8",
    Int16: "int16",
    Int32: "int32",
    Int64: "int64",
    int: "int64",
    Float32: "float32",
    Float64: "float64",
    float: "float64",
    str: "str",
    datetime: "datetime",
}

INTEGER_KINDS = frozenset({"int8", "int16", "int32", "int64"})
FLOAT_KINDS = frozenset({"float32", "float64"})

_BOOL_STRINGS = {"1": True, "t": True, "true": True, "0": False, "f": False, "false": False}


@dataclass
class ColumnInfo:
    """Stores metadata about a database column."""

    name: str | None = None
    attr: str | None = None
    python_type: Any = None
    nullable: bool = False
    primary_key: bool = False
    db_type: str | None = None
    max_length: int | None = None
    default: Any = None
    server_default: str | None = None
    unique: bool = False
    time_zone: bool = False
    on_update: str | None = None
    on_delete: str | None = None
    relation: Any = None  # ForeignKey, NullForeignKey or OneToMany
    target: Any = None  # related model class, or its name until resolved

    @property
    def kind(self) -> str | None:
        """The SQL-facing kind of this column, or None for custom types."""
        if self.is_foreign_key:
            return "foreign_key"
        return KINDS.get(self.python_type)

    @property
    def is_foreign_key(self) -> bool:
        return self.relation is not None and self.relation.to_one

    @property
    def is_one_to_many(self) -> bool:
        return self.relation is not None and not self.relation.to_one

    @property
    def type_name(self) -> str:
        """Readable name of the declared Python type, used in error messages."""
        if self.relation is not None:
            target = self.target if isinstance(self.target, str) else self.target.__name__
            return f"{self.relation.__name__}[{target}]"
        name = getattr(self.python_type, "__name__", repr(self.python_type))
        return f"{name} | None" if self.nullable else name

    def target_model(self) -> type[Base]:
        """Resolve the related model class of a relation column."""
        from rem.exceptions import ModelDefinitionError
        from rem.relationships import get_model

        if isinstance(self.target, str):
            resolved = get_model(self.target)
            if resolved is None:
                raise ModelDefinitionError(
                    f"relation '{self.attr}' references unknown model '{self.target}'"
                )
            self.target = resolved
        return self.target

    def zero(self, use_default: bool = True) -> Any:
        """Value a freshly constructed instance holds before assignment.

        Rows built from query results pass ``use_default=False``: Python-side
        defaults only apply to instances created in code.
        """
        if use_default and self.default is not None:
            return self.default() if callable(self.default) else self.default
        if self.nullable:
            return None
        kind = self.kind
        if kind == "bool":
            return False
        if kind in INTEGER_KINDS:
            return 0
        if kind in FLOAT_KINDS:
            return 0.0
        if kind == "str":
            return ""
        return None

    def coerce(self, value: Any) -> Any:
        """Normalize a driver value to the declared Python type.

        Raises:
            TypeError, ValueError: The value does not fit the column type.
        """
        if value is None:
            return None
        if hasattr(self.python_type, "from_sql_value"):
            if isinstance(value, self.python_type):
                return value
            return self.python_type.from_sql_value(value)

        kind = self.kind
        if kind == "bool":
            if isinstance(value, str):
                if value.lower() not in _BOOL_STRINGS:
                    raise ValueError(f"invalid boolean {value!r}")
                return _BOOL_STRINGS[value.lower()]
            if not isinstance(value, int):
                raise TypeError(f"expected a boolean, got {type(value).__name__}")
            return bool(value)
        if kind in INTEGER_KINDS:
            if type(value) is int:
                return value
            if isinstance(value, (bytes, datetime)):
                raise TypeError(f"expected an integer, got {type(value).__name__}")
            converted = int(value)
            if not isinstance(value, str) and converted != value:
                raise ValueError(f"{value!r} is not a whole number")
            return converted
        if kind in FLOAT_KINDS:
            if isinstance(value, (bytes, datetime)):
                raise TypeError(f"expected a number, got {type(value).__name__}")
            return float(value)
        if kind == "str":
            if isinstance(value, bytes):
                return value.decode()
            if not isinstance(value, str):
                raise TypeError(f"expected a string, got {type(value).__name__}")
            return value
        if kind == "datetime":
            if isinstance(value, str):
                return datetime.fromisoformat(value)
            if not isinstance(value, datetime):
                raise TypeError(f"expected a datetime, got {type(value).__name__}")
        return value


def mapped_column(
    name: str | None = None,
    /,
    *,
    primary_key: bool = False,
    db_type: str | None = None,
    max_length: int | None = None,
    default: Any = None,
    server_default: str | None = None,
    unique: bool = False,
    time_zone: bool = False,
    on_update: str | None = None,
    on_delete: str | None = None,
    nullable: bool = False,
) -> Any:
    """Define a database column.

    Args:
        name: Column name. Defaults to the attribute name. On a
            ``OneToMany`` attribute it names the referencing column on the
            related model.
        primary_key: Whether this is the primary key column
        db_type: Explicit SQL type, used verbatim in DDL
        max_length: Maximum length for string columns (VARCHAR vs TEXT)
        default: Python-side default for new instances (can be callable)
        server_default: SQL default expression, emitted unescaped in DDL
        unique: Whether values must be unique
        time_zone: Whether timestamps carry a time zone (PostgreSQL)
        on_update: Foreign key ON UPDATE action
        on_delete: Foreign key ON DELETE action
        nullable: Allows NULL even when the annotation is not optional

    Returns:
        A ColumnInfo descriptor

    Example:
        >>> id: Mapped[int] = mapped_column(primary_key=True)
        >>> email: Mapped[str] = mapped_column(max_length=255, unique=True)
        >>> group: Mapped[ForeignKey[Group]] = mapped_column("group_id", on_delete="CASCADE")
        >>> accounts: Mapped[OneToMany[Account]] = mapped_column("group_id")
    """
    return ColumnInfo(
        name=name,
        primary_key=primary_key,
        db_type=db_type,
        max_length=max_length,
        default=default,
        server_default=server_default,
        unique=unique,
        time_zone=time_zone,
        on_update=on_update,
        on_delete=on_delete,
        nullable=nullable,
    )
