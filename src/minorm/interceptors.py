"""Interceptors around synthesized repository methods.

Cross-cutting behavior (auditing, timing, access checks) is attached to
contract methods by marker, not by editing the repository::

    class Audited: ...

    class PersonRepository(Repository[Person, int]):
        @marker(Audited)
        def save(self, entity: Person) -> Person: ...

    registry = InterceptorRegistry()
    registry.add_around_advice(Audited, AuditAdvice())
    repository = create_repository(PersonRepository, interceptors=registry)

For a method, the chain is every interceptor registered for each of its
markers, markers in declaration order, interceptors in registration order;
the first one is the outermost. Each registration bumps
:attr:`InterceptorRegistry.generation`, which makes dependent repositories
drop their memoized dispatch entries.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from typing import Any, Protocol

from minorm.markers import markers_of

Invocation = Callable[[Any, Callable[..., Any], tuple[Any, ...]], Any]


class Interceptor(Protocol):
    def __call__(
        self,
        instance: Any,
        method: Callable[..., Any],
        args: tuple[Any, ...],
        invocation: Invocation,
    ) -> Any: ...


class AroundAdvice(Protocol):
    def before(self, instance: Any, method: Callable[..., Any], args: tuple[Any, ...]) -> None: ...

    def after(
        self,
        instance: Any,
        method: Callable[..., Any],
        args: tuple[Any, ...],
        result: Any,
    ) -> None: ...


def _advice_interceptor(advice: AroundAdvice) -> Interceptor:
    def intercept(instance, method, args, invocation):
        advice.before(instance, method, args)
        result = None
        try:
            result = invocation(instance, method, args)
        finally:
            advice.after(instance, method, args, result)
        return result

    return intercept


class InterceptorRegistry:
    """Interceptors keyed by method marker."""

    def __init__(self) -> None:
        self._interceptors: dict[Any, list[Interceptor]] = {}
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def generation(self) -> int:
        return self._generation

    def add_interceptor(self, marker: Any, interceptor: Interceptor) -> None:
        if marker is None or interceptor is None:
            raise TypeError("marker and interceptor must not be None")
        with self._lock:
            self._interceptors.setdefault(marker, []).append(interceptor)
            self._generation += 1

    def add_around_advice(self, marker: Any, advice: AroundAdvice) -> None:
        if advice is None:
            raise TypeError("advice must not be None")
        self.add_interceptor(marker, _advice_interceptor(advice))

    def find_interceptors(self, method: Callable[..., Any]) -> list[Interceptor]:
        with self._lock:
            return [
                interceptor
                for marker in markers_of(method)
                for interceptor in self._interceptors.get(marker, ())
            ]

    def chain(self, method: Callable[..., Any], target: Invocation) -> Invocation:
        """Wrap ``target`` with the interceptors that apply to ``method``."""
        invocation = target
        for interceptor in reversed(self.find_interceptors(method)):
            invocation = _link(interceptor, invocation)
        return invocation


def _link(interceptor: Interceptor, proceed: Invocation) -> Invocation:
    def invocation(instance, method, args):
        return interceptor(instance, method, args, proceed)

    return invocation


__all__ = [
    "Invocation",
    "Interceptor",
    "AroundAdvice",
    "InterceptorRegistry",
]
