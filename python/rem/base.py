"""Declarative base for rem models."""

from __future__ import annotations

import dataclasses
import inspect
import sys
import types
import typing
from typing import Any, ClassVar, ForwardRef, get_type_hints

from rem.exceptions import ModelDefinitionError
from rem.fields import ColumnInfo, Mapped
from rem.relationships import (
    ForeignKey,
    NullForeignKey,
    OneToMany,
    Relation,
    _model_registry,
    get_model,
    register_model,
)

_RELATIONS = (ForeignKey, NullForeignKey, OneToMany)


def _own_annotations(cls: type) -> dict[str, Any]:
    try:
        return inspect.get_annotations(cls)
    except NameError:
        # Deferred annotations that reference classes defined later in the module
        import annotationlib

        return annotationlib.get_annotations(cls, format=annotationlib.Format.FORWARDREF)


def _hint_namespace(cls: type) -> dict[str, Any]:
    """Globals for resolving the annotations of ``cls``."""
    from rem import fields

    module = sys.modules.get(cls.__module__, None)
    globalns: dict[str, Any] = dict(_model_registry)
    for name in ("Mapped", "Int8", "Int16", "Int32", "Int64", "Float32", "Float64"):
        globalns[name] = getattr(fields, name)
    for relation in _RELATIONS:
        globalns[relation.__name__] = relation
    globalns.update(getattr(module, "__dict__", {}))
    globalns["ClassVar"] = ClassVar
    globalns["Any"] = Any
    return globalns


def _resolve_hints(klass: type) -> dict[str, Any]:
    """Resolve the annotations declared directly on ``klass``.

    Names not defined yet become forward references, so relation targets
    declared later in the module resolve on first use. ``_parse_mapped``
    rejects forward references anywhere else.
    """
    annotations = {
        attr: hint
        for attr, hint in _own_annotations(klass).items()
        if not attr.startswith("_") and (not isinstance(hint, str) or "Mapped" in hint)
    }
    if not annotations:
        return {}

    holder = type(klass.__name__, (), {"__annotations__": annotations, "__module__": klass.__module__})
    globalns = _hint_namespace(klass)
    while True:
        try:
            return get_type_hints(holder, globalns=globalns, localns={})
        except NameError as exc:
            if not exc.name or exc.name in globalns:
                raise ModelDefinitionError(
                    f"cannot resolve annotations on model '{klass.__name__}': {exc}"
                ) from exc
            globalns[exc.name] = ForwardRef(exc.name)
        except Exception as exc:
            raise ModelDefinitionError(
                f"cannot resolve annotations on model '{klass.__name__}': {exc}"
            ) from exc


def _forward_name(value: Any) -> Any:
    """Unwrap a forward reference into the referenced name."""
    if isinstance(value, str):
        return value
    return getattr(value, "__forward_arg__", value)


def _unresolved(value: Any) -> bool:
    return isinstance(value, (str, ForwardRef))


def _parse_mapped(hint: Any, cls: type) -> tuple[Any, bool, Any, Any] | None:
    """Split a resolved ``Mapped[...]`` into (python_type, nullable, relation, target).

    Returns None for annotations that are not mapped columns.
    """
    if typing.get_origin(hint) is not Mapped:
        return None

    inner = typing.get_args(hint)[0]
    origin = typing.get_origin(inner)
    if origin in _RELATIONS:
        target = _forward_name(typing.get_args(inner)[0])
        if isinstance(target, str):
            target = get_model(target) or target
        return None, origin.nullable, origin, target

    nullable = False
    if origin in (typing.Union, types.UnionType):
        args = typing.get_args(inner)
        non_none = [arg for arg in args if arg is not type(None)]
        nullable = len(non_none) < len(args)
        if len(non_none) == 1:
            inner = non_none[0]
        unknown = [_forward_name(arg) for arg in non_none if _unresolved(arg)]
    else:
        unknown = [_forward_name(inner)] if _unresolved(inner) else []

    if unknown:
        raise ModelDefinitionError(
            f"cannot resolve annotation {unknown[0]!r} on model '{cls.__name__}'"
        )
    return inner, nullable, None, None


def _collect_columns(klass: type, columns: dict[str, ColumnInfo]) -> None:
    """Add the mapped annotations declared directly on ``klass``."""
    for attr, hint in _resolve_hints(klass).items():
        parsed = _parse_mapped(hint, klass)
        if parsed is None:
            continue
        python_type, nullable, relation, target = parsed

        value = klass.__dict__.get(attr)
        if isinstance(value, ColumnInfo):
            info = dataclasses.replace(value)
        else:
            info = ColumnInfo(default=value)

        info.attr = attr
        info.python_type = python_type
        info.nullable = info.nullable or nullable
        info.relation = relation
        info.target = target
        if relation is OneToMany:
            if not info.name:
                raise ModelDefinitionError(
                    f"OneToMany attribute '{attr}' on '{klass.__name__}' needs the related "
                    "column name, e.g. mapped_column('group_id')"
                )
        elif not info.name:
            info.name = attr
        columns[attr] = info


class ModelMeta(type):
    """Metaclass for rem models that processes field definitions."""

    def __new__(
        mcs,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
        **kwargs: Any,
    ) -> ModelMeta:
        cls = super().__new__(mcs, name, bases, namespace, **kwargs)

        # Skip processing for the Base class itself
        if name == "Base" and not bases:
            return cls

        cls.__tablename__ = namespace.get("__tablename__") or name.lower()  # type: ignore[attr-defined]

        # Parent models first, then mixins and this class, so subclasses override
        collected: dict[str, ColumnInfo] = {}
        for klass in reversed(cls.__mro__[1:]):
            if klass is object or klass is Base:
                continue
            if isinstance(klass, ModelMeta):
                for attr, info in {**klass.__columns__, **klass.__one_to_many__}.items():
                    collected[attr] = dataclasses.replace(info)
            else:
                _collect_columns(klass, collected)
        _collect_columns(cls, collected)

        columns: dict[str, ColumnInfo] = {}
        one_to_many: dict[str, ColumnInfo] = {}
        primary_key: str | None = None
        seen: dict[str, str] = {}
        for attr, info in collected.items():
            if info.is_one_to_many:
                one_to_many[attr] = info
                continue
            if info.name in seen:
                raise ModelDefinitionError(
                    f"column '{info.name}' is declared twice on '{name}' "
                    f"(attributes '{seen[info.name]}' and '{attr}')"
                )
            seen[info.name] = attr
            if info.primary_key:
                if primary_key is not None:
                    raise ModelDefinitionError(
                        f"model '{name}' declares more than one primary key "
                        f"('{primary_key}' and '{attr}')"
                    )
                primary_key = attr
            columns[attr] = info

        cls.__columns__ = columns  # type: ignore[attr-defined]
        cls.__one_to_many__ = one_to_many  # type: ignore[attr-defined]
        cls.__primary_key__ = primary_key  # type: ignore[attr-defined]

        # Register model for forward reference resolution
        register_model(cls)  # type: ignore[arg-type]

        return cls


class Base(metaclass=ModelMeta):
    """Base class for all rem models.

    Example:
        >>> class Account(Base):
        ...     __tablename__ = "accounts"
        ...     id: Mapped[int] = mapped_column(primary_key=True)
        ...     name: Mapped[str] = mapped_column(max_length=100)
        ...     group: Mapped[NullForeignKey[Group]] = mapped_column("group_id")
    """

    __tablename__: ClassVar[str]
    __columns__: ClassVar[dict[str, ColumnInfo]]
    __one_to_many__: ClassVar[dict[str, ColumnInfo]]
    __primary_key__: ClassVar[str | None]

    def __init__(self, **kwargs: Any) -> None:
        """Initialize a model instance with the given column values.

        Foreign key attributes accept a wrapper, a related instance, a
        primary key value or None. One-to-many attributes accept a wrapper
        or a list of related instances.
        """
        columns = self.__columns__
        one_to_many = self.__one_to_many__
        for key in kwargs:
            if key not in columns and key not in one_to_many:
                raise TypeError(f"Unknown column or relationship: {key}")

        for attr, info in columns.items():
            value = kwargs[attr] if attr in kwargs else info.zero()
            if info.is_foreign_key:
                value = info.relation.wrap(value, info)
            setattr(self, attr, value)

        pk = self.primary_key_value
        for attr, info in one_to_many.items():
            setattr(self, attr, OneToMany.wrap(kwargs.get(attr), info, pk))

    def __repr__(self) -> str:
        pk = self.__primary_key__
        if pk and pk in self.__dict__:
            return f"<{self.__class__.__name__} {pk}={getattr(self, pk)!r}>"
        return f"<{self.__class__.__name__}>"

    @property
    def primary_key_value(self) -> Any:
        pk = self.__primary_key__
        return getattr(self, pk, None) if pk else None

    def to_dict(self, include_relationships: bool = False) -> dict[str, Any]:
        """Convert model instance to a dictionary keyed by attribute name.

        Foreign keys hold the related primary key, or the related row as a
        nested dictionary when ``include_relationships`` is set. One-to-many
        attributes are only included with ``include_relationships``.
        """
        result: dict[str, Any] = {}
        for attr in self.__columns__:
            value = getattr(self, attr)
            if isinstance(value, Relation):
                if not value.valid:
                    value = None
                elif include_relationships:
                    value = value.row.to_dict(include_relationships)
                else:
                    value = value.row_pk
            result[attr] = value

        if include_relationships:
            for attr in self.__one_to_many__:
                result[attr] = [row.to_dict(include_relationships) for row in getattr(self, attr).rows]

        return result

    @classmethod
    def _blank(cls) -> Base:
        """Create an instance holding zero values, bypassing __init__ validation and defaults."""
        instance = object.__new__(cls)
        for attr, info in cls.__columns__.items():
            value = info.zero(use_default=False)
            if info.is_foreign_key:
                value = info.relation(column=info)
            instance.__dict__[attr] = value
        for attr, info in cls.__one_to_many__.items():
            instance.__dict__[attr] = OneToMany(column=info)
        return instance
