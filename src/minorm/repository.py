"""Repository synthesis.

Declare a contract, get a working repository::

    @dataclass
    class Person:
        id: Annotated[int | None, Id, GeneratedValue] = None
        name: str | None = None
        age: int | None = None

    class PersonRepository(Repository[Person, int]):
        def find_by_name(self, name: str) -> Person | None: ...

        @query("SELECT * FROM PERSON WHERE AGE >= ?")
        def adults(self, min_age: int) -> list[Person]: ...

    people = create_repository(PersonRepository)
    with transaction_scope(source):
        people.save(Person(name="Ada", age=30))
        people.find_by_name("Ada")

``create_repository`` builds a subclass of the contract whose methods all
forward into a :class:`RepositoryDispatcher`. The dispatcher keeps an
explicit dispatch table, method name → :mod:`strategy <minorm.strategies>`,
filled lazily on first call and cleared when the interceptor registry it
was created with changes.

A :class:`~minorm.errors.DatabaseError` leaving a strategy is wrapped in
:class:`~minorm.errors.UncheckedDatabaseError`; the enclosing transaction
scope unwraps it.
"""

from __future__ import annotations

import functools
import inspect
import threading
from abc import ABC, abstractmethod
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Generic, TypeVar, get_args, get_origin

from minorm.errors import ConfigurationError, DatabaseError, OrmError, UncheckedDatabaseError
from minorm.interceptors import InterceptorRegistry, Invocation
from minorm.logging import LogContext, get_logger
from minorm.metadata import EntityInfo, entity_info
from minorm.strategies import UNSUPPORTED_METHODS, RepositoryStrategy, resolve_strategy
from minorm.transaction import current_session

logger = get_logger(__name__)

E = TypeVar("E")
ID = TypeVar("ID")
R = TypeVar("R", bound="Repository[Any, Any]")

_DISPATCHER_ATTR = "__minorm_dispatcher__"


class Repository(ABC, Generic[E, ID]):
    """Base repository contract. Subclass it as ``Repository[Entity, IdType]``.

    Contracts stay abstract; :func:`create_repository` synthesizes the
    concrete class, overriding every contract method.
    """

    @abstractmethod
    def find_all(self) -> list[E]:
        """Every row of the entity's table, in table order."""
        ...

    @abstractmethod
    def find_by_id(self, id: ID) -> E | None:
        """The row whose identifier column equals ``id``, or None."""
        ...

    @abstractmethod
    def save(self, entity: E) -> E:
        """Upsert ``entity`` and return it with any generated key filled in."""
        ...


def resolve_entity_type(contract: type) -> type:
    """Entity type of a contract declared as ``class X(Repository[Entity, Id])``.

    Raises:
        ConfigurationError: ``contract`` does not parameterize ``Repository``
            exactly once with a concrete class.
    """
    name = getattr(contract, "__name__", repr(contract))
    if not isinstance(contract, type) or not issubclass(contract, Repository) or contract is Repository:
        raise ConfigurationError(f"invalid repository contract {name}, must subclass Repository[E, ID]")

    parameterized = [
        base for base in contract.__dict__.get("__orig_bases__", ()) if get_origin(base) is Repository
    ]
    if len(parameterized) != 1:
        raise ConfigurationError(
            f"invalid repository contract {name}, "
            f"expected Repository[E, ID] exactly once in its bases, found {len(parameterized)}"
        )

    type_argument = get_args(parameterized[0])[0]
    if not isinstance(type_argument, type):
        raise ConfigurationError(
            f"invalid type argument {type_argument!r} for repository contract {name}"
        )
    return type_argument


def _contract_methods(contract: type) -> dict[str, Callable[..., Any]]:
    methods: dict[str, Callable[..., Any]] = {}
    for klass in reversed(contract.__mro__):
        if klass in (object, Generic, ABC):
            continue
        for name, value in vars(klass).items():
            if name.startswith("__") and name.endswith("__"):
                continue
            if inspect.isfunction(value):
                methods[name] = value
            else:
                methods.pop(name, None)
    for name in UNSUPPORTED_METHODS:
        methods[name] = getattr(object, name)
    return methods


@dataclass(frozen=True)
class _Resolved:
    strategy: RepositoryStrategy
    invocation: Invocation


class RepositoryDispatcher:
    """Dispatch table of one synthesized repository."""

    def __init__(
        self,
        contract: type,
        info: EntityInfo,
        methods: dict[str, Callable[..., Any]],
        interceptors: InterceptorRegistry | None = None,
    ):
        self.contract = contract
        self.info = info
        self._methods = methods
        self._interceptors = interceptors
        self._generation = interceptors.generation if interceptors is not None else 0
        self._resolved: dict[str, _Resolved] = {}
        self._lock = threading.Lock()

    @property
    def strategies(self) -> Mapping[str, RepositoryStrategy]:
        """Snapshot of the strategies resolved so far."""
        with self._lock:
            return MappingProxyType({name: r.strategy for name, r in self._resolved.items()})

    def clear(self) -> None:
        with self._lock:
            self._resolved.clear()

    def _check_generation(self) -> None:
        if self._interceptors is None:
            return
        generation = self._interceptors.generation
        if generation == self._generation:
            return
        with self._lock:
            if generation != self._generation:
                self._resolved.clear()
                self._generation = generation
        logger.debug("repository_dispatch_reset", repository=self.contract.__name__)

    def _execute(self, strategy: RepositoryStrategy) -> Invocation:
        info = self.info

        def invocation(instance: Any, method: Callable[..., Any], args: tuple[Any, ...]) -> Any:
            return strategy.execute(current_session(), info, args)

        return invocation

    def resolve(self, name: str) -> RepositoryStrategy:
        return self._resolve(name).strategy

    def _resolve(self, name: str) -> _Resolved:
        self._check_generation()
        resolved = self._resolved.get(name)
        if resolved is not None:
            return resolved

        method = self._methods[name]
        try:
            strategy = resolve_strategy(name, method, self.info)
        except OrmError as exc:
            raise exc.with_context(repository=self.contract.__name__, method=name)
        invocation = self._execute(strategy)
        if self._interceptors is not None:
            invocation = self._interceptors.chain(method, invocation)

        with self._lock:
            resolved = self._resolved.setdefault(name, _Resolved(strategy, invocation))
        logger.debug(
            "repository_strategy_resolved",
            repository=self.contract.__name__,
            method=name,
            strategy=type(resolved.strategy).__name__,
        )
        return resolved

    def invoke(self, instance: Any, name: str, args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
        resolved = self._resolve(name)
        method = self._methods[name]
        bound = inspect.signature(method).bind(instance, *args, **kwargs)
        bound.apply_defaults()
        with LogContext(repository=self.contract.__name__, method=name):
            try:
                return resolved.invocation(instance, method, tuple(bound.args[1:]))
            except DatabaseError as exc:
                raise UncheckedDatabaseError(exc) from exc


def _forwarder(name: str, method: Callable[..., Any]) -> Callable[..., Any]:
    @functools.wraps(method)
    def forward(self: Any, *args: Any, **kwargs: Any) -> Any:
        return getattr(type(self), _DISPATCHER_ATTR).invoke(self, name, args, kwargs)

    # wraps() copies the flag from abstract contract methods
    forward.__isabstractmethod__ = False  # type: ignore[attr-defined]
    return forward


def create_repository(contract: type[R], *, interceptors: InterceptorRegistry | None = None) -> R:
    """Synthesize an implementation of ``contract``.

    Raises:
        ConfigurationError: invalid contract or entity shape, raised here
            before any method is invoked.
    """
    entity_type = resolve_entity_type(contract)
    info = entity_info(entity_type)
    methods = _contract_methods(contract)
    dispatcher = RepositoryDispatcher(contract, info, methods, interceptors)

    namespace: dict[str, Any] = {name: _forwarder(name, method) for name, method in methods.items()}
    namespace[_DISPATCHER_ATTR] = dispatcher
    namespace["__module__"] = contract.__module__
    namespace["__repr__"] = lambda self: f"<{contract.__name__} repository of {entity_type.__name__}>"

    implementation = type(contract)(f"{contract.__name__}Impl", (contract,), namespace)
    logger.debug(
        "repository_created",
        repository=contract.__name__,
        entity=entity_type.__name__,
        table=info.table_name,
    )
    return object.__new__(implementation)


def dispatcher_of(repository: Any) -> RepositoryDispatcher:
    dispatcher = getattr(type(repository), _DISPATCHER_ATTR, None)
    if dispatcher is None:
        raise TypeError(f"{type(repository).__name__} is not a synthesized repository")
    return dispatcher


def dispatch_table(repository: Any) -> Mapping[str, RepositoryStrategy]:
    """Strategies resolved so far by a synthesized repository."""
    return dispatcher_of(repository).strategies


__all__ = [
    "Repository",
    "RepositoryDispatcher",
    "resolve_entity_type",
    "create_repository",
    "dispatcher_of",
    "dispatch_table",
]
