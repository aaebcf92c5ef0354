"""Python type → SQL column type mapping.

The table is fixed. ``int`` is a 32-bit ``INTEGER`` column; use :data:`Long`
to declare a 64-bit ``BIGINT`` column. Anything else is a configuration
error, raised when the entity type is first described.

Nullability follows the annotation: ``int | None`` (or ``Optional[int]``)
can hold absence, a bare ``int`` cannot and is rendered ``NOT NULL``.
"""

from __future__ import annotations

import types
from dataclasses import dataclass
from typing import Annotated, Any, NewType, Union, get_args, get_origin

from minorm.errors import ConfigurationError

Long = NewType("Long", int)

TYPE_MAPPING: dict[Any, str] = {
    int: "INTEGER",
    Long: "BIGINT",
    str: "VARCHAR(255)",
}


@dataclass(frozen=True)
class UnwrappedType:
    """An annotation split into its value type, nullability and Annotated metadata."""

    python_type: Any
    nullable: bool
    metadata: tuple[Any, ...] = ()


def _is_union(annotation: Any) -> bool:
    origin = get_origin(annotation)
    return origin is Union or origin is types.UnionType


def unwrap_annotation(annotation: Any) -> UnwrappedType:
    """Strip ``Annotated[...]`` and ``X | None`` layers from a field annotation.

    >>> unwrap_annotation(int | None)
    UnwrappedType(python_type=<class 'int'>, nullable=True, metadata=())
    """
    metadata: list[Any] = []
    nullable = False
    while True:
        if get_origin(annotation) is Annotated:
            base, *extra = get_args(annotation)
            metadata.extend(extra)
            annotation = base
            continue
        if _is_union(annotation):
            args = get_args(annotation)
            non_none = [arg for arg in args if arg is not type(None)]
            if len(non_none) == len(args) or len(non_none) != 1:
                # a real union of several value types, left for the mapper to reject
                break
            nullable = True
            annotation = non_none[0]
            continue
        break
    return UnwrappedType(annotation, nullable, tuple(metadata))


def sql_type_for(python_type: Any, *, property_name: str | None = None) -> str:
    """Return the SQL type name for ``python_type``.

    Raises:
        ConfigurationError: if the type has no entry in :data:`TYPE_MAPPING`.
    """
    try:
        return TYPE_MAPPING[python_type]
    except (KeyError, TypeError):
        subject = f"property {property_name!r}" if property_name else "type"
        raise ConfigurationError(
            f"cannot map {subject} of type {python_type!r} to a SQL type",
            context={"property": property_name, "python_type": repr(python_type)},
        ) from None


__all__ = [
    "Long",
    "TYPE_MAPPING",
    "UnwrappedType",
    "unwrap_annotation",
    "sql_type_for",
]
