"""Declarative markers consumed by the mapping layer.

Field markers live in ``typing.Annotated`` metadata so the same declaration
works for dataclasses and pydantic models::

    @table("PEOPLE")
    @dataclass
    class Person:
        id: Annotated[int | None, Id, GeneratedValue] = None
        name: Annotated[str | None, Column("FULL_NAME")] = None

Method markers are decorators on repository contract methods::

    class PersonRepository(Repository[Person, int]):
        @query("SELECT * FROM PEOPLE WHERE FULL_NAME LIKE ?")
        def search(self, pattern: str) -> list[Person]: ...

        @marker(Audited)
        def save(self, entity: Person) -> Person: ...
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, TypeVar

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])

_TABLE_ATTR = "__minorm_table__"
_QUERY_ATTR = "__minorm_query__"
_MARKERS_ATTR = "__minorm_markers__"


class Id:
    """Designates the identifier (primary key) property."""

    def __repr__(self) -> str:
        return "Id"


class GeneratedValue:
    """Designates a value assigned by the data store on insert."""

    def __repr__(self) -> str:
        return "GeneratedValue"


@dataclass(frozen=True)
class Column:
    """Overrides the column name of a property."""

    name: str


def is_marker(value: Any, marker_type: type) -> bool:
    """True for the marker class itself or any instance of it."""
    return value is marker_type or isinstance(value, marker_type)


def table(name: str) -> Callable[[type[T]], type[T]]:
    """Class decorator overriding the table name of an entity type."""

    def decorate(cls: type[T]) -> type[T]:
        setattr(cls, _TABLE_ATTR, name)
        return cls

    return decorate


def table_override(cls: type) -> str | None:
    """Table name declared with :func:`table` on ``cls`` itself (not inherited)."""
    return cls.__dict__.get(_TABLE_ATTR)


def query(sql: str) -> Callable[[F], F]:
    """Method decorator attaching literal SQL with positional ``?`` placeholders."""

    def decorate(func: F) -> F:
        setattr(func, _QUERY_ATTR, sql)
        return func

    return decorate


def query_of(func: Callable[..., Any]) -> str | None:
    return getattr(func, _QUERY_ATTR, None)


def marker(*markers: Any) -> Callable[[F], F]:
    """Method decorator attaching interceptor markers.

    Markers are matched by identity against the keys of an
    :class:`~minorm.interceptors.InterceptorRegistry`.
    """

    def decorate(func: F) -> F:
        existing = getattr(func, _MARKERS_ATTR, ())
        setattr(func, _MARKERS_ATTR, tuple(existing) + markers)
        return func

    return decorate


def markers_of(func: Callable[..., Any]) -> tuple[Any, ...]:
    return getattr(func, _MARKERS_ATTR, ())


__all__ = [
    "Id",
    "GeneratedValue",
    "Column",
    "is_marker",
    "table",
    "table_override",
    "query",
    "query_of",
    "marker",
    "markers_of",
]
