"""Entity property metadata.

Derives, once per entity type, the ordered list of :class:`PropertyDescriptor`
that both the schema generator and the entity mapper iterate. Declaration
order is the contract: column ``n`` of ``CREATE TABLE``, placeholder ``n`` of
the upsert, and column ``n`` of every ``SELECT *`` all refer to property ``n``.

Supported entity shapes:

* dataclasses (not frozen), introspected with ``dataclasses.fields`` and
  ``typing.get_type_hints(include_extras=True)``;
* pydantic models (not frozen), introspected with ``model_fields``.

Every field needs a default so the mapper can build an empty instance before
filling it column by column.

Architecture::

    describe(Person)
        │
        ├── cache hit? ──────────────► tuple[PropertyDescriptor, ...]
        │
        └── _build_entity_info(Person)
              ├── _field_specs()      name, annotation, metadata, has_default
              ├── unwrap_annotation()  int | None → (int, nullable)
              ├── sql_type_for()       int → INTEGER
              └── Id / GeneratedValue / Column markers

Tags:
    metadata, introspection, dataclasses, pydantic, cache
"""

from __future__ import annotations

import dataclasses
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, get_type_hints

from pydantic import BaseModel

from minorm.errors import ConfigurationError
from minorm.markers import Column, GeneratedValue, Id, is_marker, table_override
from minorm.typemap import Long, sql_type_for, unwrap_annotation


@dataclass(frozen=True)
class PropertyDescriptor:
    """One persistent property of an entity type."""

    name: str
    column_name: str
    sql_type: str
    python_type: Any
    nullable: bool
    accessor: Callable[[Any], Any] = field(repr=False, compare=False)
    mutator: Callable[[Any, Any], None] = field(repr=False, compare=False)
    is_id: bool = False
    is_generated: bool = False

    def get(self, instance: Any) -> Any:
        return self.accessor(instance)

    def set(self, instance: Any, value: Any) -> None:
        self.mutator(instance, value)


@dataclass(frozen=True)
class EntityInfo:
    """Table-level view of an entity type: table name, properties, identifier."""

    entity_type: type
    table_name: str
    properties: tuple[PropertyDescriptor, ...]
    id_property: PropertyDescriptor | None

    @property
    def column_names(self) -> list[str]:
        return [prop.column_name for prop in self.properties]

    def property_named(self, name: str) -> PropertyDescriptor | None:
        for prop in self.properties:
            if prop.name == name:
                return prop
        return None

    def new_instance(self) -> Any:
        return self.entity_type()


@dataclass(frozen=True)
class _FieldSpec:
    name: str
    annotation: Any
    metadata: tuple[Any, ...]
    has_default: bool


_CACHE: dict[type, EntityInfo] = {}
_LOCK = threading.Lock()

_GENERATED_TYPES = (int, Long)


def _accessor(name: str) -> Callable[[Any], Any]:
    def get(instance: Any) -> Any:
        return getattr(instance, name)

    return get


def _mutator(name: str) -> Callable[[Any, Any], None]:
    def set_(instance: Any, value: Any) -> None:
        setattr(instance, name, value)

    return set_


def _dataclass_fields(entity_type: type) -> list[_FieldSpec]:
    if entity_type.__dataclass_params__.frozen:  # type: ignore[attr-defined]
        raise ConfigurationError(
            f"entity {entity_type.__name__} is frozen, its properties have no mutator"
        )
    try:
        hints = get_type_hints(entity_type, include_extras=True)
    except NameError as exc:
        raise ConfigurationError(
            f"cannot resolve annotations of {entity_type.__name__}: {exc}", cause=exc
        ) from exc

    specs = []
    for f in dataclasses.fields(entity_type):
        has_default = (
            f.default is not dataclasses.MISSING
            or f.default_factory is not dataclasses.MISSING
        )
        specs.append(_FieldSpec(f.name, hints.get(f.name, f.type), (), has_default))
    return specs


def _pydantic_fields(entity_type: type[BaseModel]) -> list[_FieldSpec]:
    if entity_type.model_config.get("frozen"):
        raise ConfigurationError(
            f"entity {entity_type.__name__} is frozen, its properties have no mutator"
        )
    return [
        _FieldSpec(name, info.annotation, tuple(info.metadata), not info.is_required())
        for name, info in entity_type.model_fields.items()
    ]


def _field_specs(entity_type: type) -> list[_FieldSpec]:
    if dataclasses.is_dataclass(entity_type):
        return _dataclass_fields(entity_type)
    if issubclass(entity_type, BaseModel):
        return _pydantic_fields(entity_type)
    raise ConfigurationError(
        f"entity {entity_type.__name__} must be a dataclass or a pydantic model"
    )


def _describe_property(spec: _FieldSpec) -> PropertyDescriptor:
    unwrapped = unwrap_annotation(spec.annotation)
    metadata = spec.metadata + unwrapped.metadata

    column_name = spec.name
    for item in metadata:
        if isinstance(item, Column):
            column_name = item.name
            break

    sql_type = sql_type_for(unwrapped.python_type, property_name=spec.name)
    is_generated = any(is_marker(item, GeneratedValue) for item in metadata)
    if is_generated and unwrapped.python_type not in _GENERATED_TYPES:
        # drivers report generated keys as integers
        raise ConfigurationError(
            f"property {spec.name!r} of type {unwrapped.python_type.__name__} "
            "cannot be a GeneratedValue, use int or Long",
            context={"property": spec.name, "python_type": repr(unwrapped.python_type)},
        )

    return PropertyDescriptor(
        name=spec.name,
        column_name=column_name.upper(),
        sql_type=sql_type,
        python_type=unwrapped.python_type,
        nullable=unwrapped.nullable,
        accessor=_accessor(spec.name),
        mutator=_mutator(spec.name),
        is_id=any(is_marker(item, Id) for item in metadata),
        is_generated=is_generated,
    )


def _build_entity_info(entity_type: type) -> EntityInfo:
    if not isinstance(entity_type, type):
        raise ConfigurationError(f"{entity_type!r} is not a class")

    specs = _field_specs(entity_type)
    required = [spec.name for spec in specs if not spec.has_default]
    if required:
        raise ConfigurationError(
            f"entity {entity_type.__name__} is not default-constructible, "
            f"fields without default: {', '.join(required)}"
        )

    properties = tuple(_describe_property(spec) for spec in specs)
    ids = [prop for prop in properties if prop.is_id]
    if len(ids) > 1:
        raise ConfigurationError(
            f"entity {entity_type.__name__} declares {len(ids)} identifiers "
            f"({', '.join(prop.name for prop in ids)}), at most one is allowed"
        )

    table_name = (table_override(entity_type) or entity_type.__name__).upper()
    return EntityInfo(
        entity_type=entity_type,
        table_name=table_name,
        properties=properties,
        id_property=ids[0] if ids else None,
    )


def entity_info(entity_type: type) -> EntityInfo:
    """Return the cached :class:`EntityInfo` of ``entity_type``, deriving it on first use.

    Raises:
        ConfigurationError: unsupported shape, unmappable type, several identifiers.
    """
    info = _CACHE.get(entity_type)
    if info is not None:
        return info
    built = _build_entity_info(entity_type)
    with _LOCK:
        # first writer wins, racing derivations converge on one value
        return _CACHE.setdefault(entity_type, built)


def describe(entity_type: type) -> tuple[PropertyDescriptor, ...]:
    """Ordered property descriptors of ``entity_type``."""
    return entity_info(entity_type).properties


def clear_metadata_cache() -> None:
    with _LOCK:
        _CACHE.clear()


__all__ = [
    "PropertyDescriptor",
    "EntityInfo",
    "entity_info",
    "describe",
    "clear_metadata_cache",
]
