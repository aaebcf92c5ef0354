"""Repository strategies: what a contract method means.

A contract method is resolved once into one of five strategies, then the
strategy is executed on every call:

==========================  ==================================================
Method                      Strategy
==========================  ==================================================
``@query(sql)``             ``CustomQuery(sql, returns_list)``
``find_all``                ``FindAll()``
``find_by_id``              ``FindById(column)``
``find_by_<property>``      ``FindByProperty(property, column)``
``save``                    ``Save()``
==========================  ==================================================

``__eq__``, ``__hash__`` and ``__str__`` raise
:class:`~minorm.errors.UnsupportedOperationError`; any other name raises
:class:`~minorm.errors.ConfigurationError`.
"""

from __future__ import annotations

import inspect
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any, Union, get_origin, get_type_hints

from minorm.errors import ConfigurationError, UnsupportedOperationError
from minorm.mapper import save_entity, select_entities
from minorm.markers import query_of
from minorm.metadata import EntityInfo
from minorm.transaction import Session

FIND_BY_PREFIX = "find_by_"
UNSUPPORTED_METHODS = frozenset({"__eq__", "__hash__", "__str__"})

_LIST_ORIGINS = (list, tuple, Sequence, Iterable)
_LIST_PREFIXES = ("list[", "List[", "Sequence[", "tuple[", "Tuple[", "Iterable[")


def _first(entities: list[Any]) -> Any | None:
    return entities[0] if entities else None


@dataclass(frozen=True)
class FindAll:
    def execute(self, session: Session, info: EntityInfo, args: tuple[Any, ...]) -> list[Any]:
        return select_entities(session, session.dialect.select_all(info.table_name), info)


@dataclass(frozen=True)
class FindById:
    column_name: str

    def execute(self, session: Session, info: EntityInfo, args: tuple[Any, ...]) -> Any | None:
        sql = session.dialect.select_where(info.table_name, self.column_name)
        return _first(select_entities(session, sql, info, args[:1]))


@dataclass(frozen=True)
class FindByProperty:
    property_name: str
    column_name: str

    def execute(self, session: Session, info: EntityInfo, args: tuple[Any, ...]) -> Any | None:
        sql = session.dialect.select_where(info.table_name, self.column_name)
        return _first(select_entities(session, sql, info, args[:1]))


@dataclass(frozen=True)
class Save:
    def execute(self, session: Session, info: EntityInfo, args: tuple[Any, ...]) -> Any:
        return save_entity(session, info, args[0])


@dataclass(frozen=True)
class CustomQuery:
    sql: str
    returns_list: bool

    def execute(self, session: Session, info: EntityInfo, args: tuple[Any, ...]) -> Any:
        entities = select_entities(session, self.sql, info, args)
        return entities if self.returns_list else _first(entities)


RepositoryStrategy = Union[FindAll, FindById, FindByProperty, Save, CustomQuery]


def returns_list(method: Callable[..., Any]) -> bool:
    """True when ``method``'s return annotation is a multi-result container."""
    try:
        annotation = get_type_hints(method).get("return")
    except NameError:
        annotation = inspect.signature(method).return_annotation
    if isinstance(annotation, str):
        text = annotation.replace(" ", "")
        return text in ("list", "List") or text.startswith(_LIST_PREFIXES)
    origin = get_origin(annotation) or annotation
    return origin in _LIST_ORIGINS


def _parameter_count(method: Callable[..., Any]) -> int:
    parameters = list(inspect.signature(method).parameters.values())
    return len(parameters) - 1  # self


def _expect_arguments(name: str, method: Callable[..., Any], expected: int) -> None:
    count = _parameter_count(method)
    if count != expected:
        raise ConfigurationError(
            f"{name} must take {expected} argument(s), declared with {count}",
            context={"method": name},
        )


def _expect_positional(name: str, method: Callable[..., Any]) -> None:
    # arguments bind to ``?`` placeholders by position only
    for parameter in inspect.signature(method).parameters.values():
        if parameter.kind in (parameter.KEYWORD_ONLY, parameter.VAR_KEYWORD):
            raise ConfigurationError(
                f"{name} cannot declare keyword-only parameter {parameter.name!r}, "
                "query arguments are bound by position",
                context={"method": name, "parameter": parameter.name},
            )


def resolve_strategy(name: str, method: Callable[..., Any], info: EntityInfo) -> RepositoryStrategy:
    """Resolve contract method ``name`` of a repository bound to ``info``."""
    sql = query_of(method)
    if sql is not None:
        _expect_positional(name, method)
        return CustomQuery(sql, returns_list(method))

    if name in UNSUPPORTED_METHODS:
        raise UnsupportedOperationError(
            f"{name} is not supported on a repository", context={"method": name}
        )

    if name == "find_all":
        _expect_arguments(name, method, 0)
        return FindAll()

    if name == "find_by_id":
        _expect_arguments(name, method, 1)
        if info.id_property is None:
            raise ConfigurationError(
                f"entity {info.entity_type.__name__} declares no identifier, "
                "find_by_id is not available",
                context={"method": name, "table": info.table_name},
            )
        return FindById(info.id_property.column_name)

    if name.startswith(FIND_BY_PREFIX):
        _expect_arguments(name, method, 1)
        property_name = name[len(FIND_BY_PREFIX):]
        prop = info.property_named(property_name)
        if prop is None:
            raise ConfigurationError(
                f"no property {property_name!r} on {info.entity_type.__name__} for {name}",
                context={"method": name, "table": info.table_name},
            )
        return FindByProperty(prop.name, prop.column_name)

    if name == "save":
        _expect_arguments(name, method, 1)
        return Save()

    raise ConfigurationError(
        f"cannot derive a query for method {name!r}, "
        "use find_all, find_by_id, find_by_<property>, save or @query",
        context={"method": name, "table": info.table_name},
    )


__all__ = [
    "FindAll",
    "FindById",
    "FindByProperty",
    "Save",
    "CustomQuery",
    "RepositoryStrategy",
    "UNSUPPORTED_METHODS",
    "returns_list",
    "resolve_strategy",
]
