"""Relation wrappers and batched loading of related rows."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, ClassVar, Generic, TypeVar

from rem.exceptions import ModelDefinitionError, QueryError

if TYPE_CHECKING:
    from rem.base import Base
    from rem.connection import Connection
    from rem.fields import ColumnInfo
    from rem.model import Model
    from rem.query import Query


T = TypeVar("T", bound="Base")


# Global model registry - maps class names to model classes
_model_registry: dict[str, type[Base]] = {}


def register_model(model_cls: type[Base]) -> None:
    """Register a model class for forward reference resolution."""
    _model_registry[model_cls.__name__] = model_cls


def get_model(name: str) -> type[Base] | None:
    """Get a model class by class name."""
    return _model_registry.get(name)


class Relation(Generic[T]):
    """Common surface of the relation wrappers stored on model attributes."""

    to_one: ClassVar[bool]
    nullable: ClassVar[bool] = False

    def __init__(self, column: ColumnInfo | None = None) -> None:
        self._column = column
        self._loaded = False

    @property
    def target(self) -> type[T]:
        if self._column is None:
            raise ModelDefinitionError(f"{type(self).__name__} is not bound to a model column")
        return self._column.target_model()

    @property
    def is_loaded(self) -> bool:
        """Whether the related data was fetched, not just referenced."""
        return self._loaded

    def related_model(self) -> Model[T]:
        """Descriptor of the related model."""
        from rem.model import use

        return use(self.target)

    def query(self) -> Query[T]:
        """A fresh query on the related model."""
        return self.related_model().query()


class ForeignKey(Relation[T]):
    """Reference to a related row through a NOT NULL foreign key column.

    ``row`` holds the related instance. After a plain SELECT it only carries
    the primary key; ``fetch_related`` or ``fetch`` load the full row.
    """

    to_one = True

    def __init__(self, row: T | None = None, *, valid: bool | None = None, column: ColumnInfo | None = None) -> None:
        super().__init__(column)
        self.row = row
        self.valid = row is not None if valid is None else valid
        self._loaded = row is not None

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.row!r}, valid={self.valid})"

    @classmethod
    def wrap(cls, value: Any, column: ColumnInfo) -> ForeignKey[Any]:
        """Coerce a constructor argument into a wrapper bound to ``column``."""
        from rem.base import Base

        if isinstance(value, ForeignKey):
            value._column = column
            return value
        if value is None:
            return cls(column=column)
        if isinstance(value, Base):
            return cls(value, column=column)
        fk = cls(column=column)
        fk.set_primary_key(value)
        return fk

    @property
    def row_pk(self) -> Any:
        """Primary key of the related row, or None when there is none."""
        if self.row is None:
            return None
        return self.row.primary_key_value

    def set_primary_key(self, value: Any) -> None:
        """Point at the related row with primary key ``value``."""
        target = self.target
        if target.__primary_key__ is None:
            raise ModelDefinitionError(f"model '{target.__name__}' has no primary key")
        row = target._blank()
        setattr(row, target.__primary_key__, value)
        self.row = row
        self.valid = True
        self._loaded = False

    async def fetch(self, conn: Connection) -> T | None:
        """Load the full related row and keep it on this wrapper."""
        if not self.valid:
            return None
        model = self.related_model()
        self.row = await model.query().filter(model.primary_column, "=", self.row_pk).first(conn)
        self._loaded = True
        return self.row


class NullForeignKey(ForeignKey[T]):
    """Like ``ForeignKey``, for a nullable foreign key column."""

    nullable = True


class OneToMany(Relation[T]):
    """Rows of another model whose foreign key points at this row.

    Declared with the name of the referencing column on the related model:

        accounts: Mapped[OneToMany[Account]] = mapped_column("group_id")
    """

    to_one = False

    def __init__(
        self,
        rows: list[T] | None = None,
        *,
        related_column: str | None = None,
        row_pk: Any = None,
        column: ColumnInfo | None = None,
    ) -> None:
        super().__init__(column)
        self.rows: list[T] = list(rows) if rows is not None else []
        self._loaded = rows is not None
        if related_column is None and column is not None:
            related_column = column.name
        self.related_column = related_column
        self.row_pk = row_pk

    def __repr__(self) -> str:
        return f"OneToMany({self.rows!r}, related_column={self.related_column!r}, row_pk={self.row_pk!r})"

    @classmethod
    def wrap(cls, value: Any, column: ColumnInfo, row_pk: Any) -> OneToMany[Any]:
        if isinstance(value, OneToMany):
            value._column = column
            value.related_column = column.name
            value.row_pk = row_pk
            return value
        return cls(value, column=column, row_pk=row_pk)

    async def all(self, conn: Connection) -> list[T]:
        """Load the related rows and keep them on this wrapper."""
        self.rows = await self.query().filter(self.related_column, "=", self.row_pk).all(conn)
        self._loaded = True
        return self.rows


# ========== Prefetching ==========


@dataclass
class _Prefetch:
    """One relation to load for a page of rows."""

    attr: str
    info: ColumnInfo
    target: Model[Any]
    related_attr: str | None = None  # to-many: attribute holding the back reference


def _plan(model: Model[Any], name: str) -> _Prefetch:
    info = model.type.__columns__.get(name) or model.one_to_many.get(name)
    if info is None:
        raise QueryError(f"invalid field '{name}' for fetching related. Field does not exist on model")
    if info.relation is None:
        raise QueryError(
            f"invalid field '{name}' for fetching related. "
            "Field must be a ForeignKey, NullForeignKey or OneToMany"
        )

    from rem.model import use

    target = use(info.target_model())
    if info.is_foreign_key:
        if target.primary_column is None:
            raise QueryError(f"model '{target.type.__name__}' has no primary key for fetching related")
        return _Prefetch(name, info, target)

    related = target.fields.get(info.name)
    if related is None:
        raise QueryError(
            f"invalid related column '{info.name}' for fetching related on field '{name}'. "
            "No fields with a matching column exist on the related model"
        )
    return _Prefetch(name, info, target, related.attr)


async def prefetch(query: Query[Any], rows: list[Any], conn: Connection) -> None:
    """Load every relation named in ``query.config.fetch_related`` onto ``rows``.

    Issues one ``IN`` query per relation, whatever the number of rows, and
    none when there is nothing to look up. Follow-up queries run through the
    same dialect, transaction and context as ``query``.
    """
    plans = [_plan(query.model, name) for name in query.config.fetch_related]
    if not rows:
        return

    for plan in plans:
        if plan.info.is_foreign_key:
            await _prefetch_to_one(query, plan, rows, conn)
        else:
            await _prefetch_to_many(query, plan, rows, conn)


def _follow_up(query: Query[Any], target: Model[Any]) -> Query[Any]:
    return (
        target.query()
        .dialect(query.selected_dialect)
        .transaction(query.config.transaction)
        .context(query.config.context)
    )


async def _prefetch_to_one(query: Query[Any], plan: _Prefetch, rows: list[Any], conn: Connection) -> None:
    wrappers = [getattr(row, plan.attr) for row in rows]
    values = list(dict.fromkeys(fk.row_pk for fk in wrappers if fk.valid))
    if not values:
        return

    target = plan.target
    related = await _follow_up(query, target).filter(target.primary_column, "IN", values).all(conn)
    by_pk = {row.primary_key_value: row for row in related}
    for fk in wrappers:
        if fk.valid and fk.row_pk in by_pk:
            fk.row = by_pk[fk.row_pk]
            fk._loaded = True


async def _prefetch_to_many(query: Query[Any], plan: _Prefetch, rows: list[Any], conn: Connection) -> None:
    owner_pks = list(dict.fromkeys(row.primary_key_value for row in rows))
    if not owner_pks:
        return

    related = await _follow_up(query, plan.target).filter(plan.info.name, "IN", owner_pks).all(conn)
    grouped: dict[Any, list[Any]] = defaultdict(list)
    for row in related:
        value = getattr(row, plan.related_attr)
        if isinstance(value, ForeignKey):
            value = value.row_pk if value.valid else None
        grouped[value].append(row)

    for row in rows:
        wrapper = getattr(row, plan.attr)
        wrapper.rows.extend(grouped.get(row.primary_key_value, []))
        wrapper._loaded = True
