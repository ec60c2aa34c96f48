"""
Deferred values.

A ``DeferredValue`` stands for something that is not known while the
topology is being declared: the identifier of a security group that will
be created, the image returned by a filtered lookup, the CIDR blocks of a
set of subnets. Consumers hold the handle and only read it; the wrapped
computation runs lazily, at most once, the first time somebody awaits
``resolve()``.
"""

from __future__ import annotations

__all__ = [
    "DeferredValue",
    "collect_deferred",
    "interpolate",
    "resolve_deep",
]

import asyncio
import inspect
from typing import Any, Awaitable, Callable, Generic, Iterable, TypeVar

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

from ._async_helper import gather_all, run_async, run_sync
from .exceptions import UnresolvedDependency

T = TypeVar("T")
U = TypeVar("U")

_PENDING = "pending"
_RESOLVED = "resolved"
_FAILED = "failed"


class DeferredValue(Generic[T]):
    """Single-assignment handle to a value computed later.

    Args:
        factory:
            Zero-argument coroutine function producing the value.
        name:
            Label used in error messages.
        depends:
            Deferred values this one is derived from. Their origins are
            inherited.
        origins:
            Request-graph resources this value belongs to.
    """

    name: str
    origins: frozenset[Any]

    def __init__(
        self,
        factory: Callable[[], Awaitable[T]] | None = None,
        name: str | None = None,
        depends: Iterable[DeferredValue] = (),
        origins: Iterable[Any] = (),
    ):
        self._factory = factory
        self._task: asyncio.Future | None = None
        self._state = _PENDING
        self._value: Any = None
        self._error: UnresolvedDependency | None = None
        self.name = name or "deferred"
        collected = set(origins)
        for value in depends:
            collected.update(value.origins)
        self.origins = frozenset(collected)

    @classmethod
    def of(cls, value: T, name: str | None = None) -> DeferredValue[T]:
        deferred: DeferredValue[T] = cls(name=name or repr(value))
        deferred._state = _RESOLVED
        deferred._value = value
        return deferred

    @classmethod
    def from_call(
        cls,
        func: Callable[..., T],
        *args: Any,
        name: str | None = None,
        **kwargs: Any,
    ) -> DeferredValue[T]:
        """Defer a blocking call; it runs in a worker thread."""

        async def factory() -> T:
            return await run_async(func, *args, **kwargs)

        return cls(factory, name=name or getattr(func, "__name__", None))

    @classmethod
    def from_coroutine(
        cls,
        afunc: Callable[..., Awaitable[T]],
        *args: Any,
        name: str | None = None,
        **kwargs: Any,
    ) -> DeferredValue[T]:
        async def factory() -> T:
            return await afunc(*args, **kwargs)

        return cls(factory, name=name or getattr(afunc, "__name__", None))

    @property
    def is_resolved(self) -> bool:
        return self._state == _RESOLVED

    @property
    def is_failed(self) -> bool:
        return self._state == _FAILED

    @property
    def value(self) -> T:
        if self._state == _RESOLVED:
            return self._value
        if self._state == _FAILED and self._error is not None:
            raise self._error
        raise UnresolvedDependency(f"{self.name} has not been resolved yet")

    async def resolve(self) -> T:
        if self._state == _RESOLVED:
            return self._value
        if self._state == _FAILED and self._error is not None:
            raise self._error
        if self._task is None or self._task.cancelled():
            self._task = asyncio.ensure_future(self._run())
        return await asyncio.shield(self._task)

    def resolve_sync(self) -> T:
        if self._state == _RESOLVED:
            return self._value
        return run_sync(self.resolve)

    async def _run(self) -> T:
        if self._factory is None:
            raise UnresolvedDependency(f"{self.name} has nothing to resolve")
        try:
            value = await self._factory()
        except UnresolvedDependency as e:
            self._fail(e)
            raise
        except Exception as e:
            error = UnresolvedDependency(f"{self.name}: {e}")
            self._fail(error)
            raise error from e
        self._value = value
        self._state = _RESOLVED
        self._factory = None
        return value

    def _fail(self, error: UnresolvedDependency) -> None:
        self._error = error
        self._state = _FAILED
        self._factory = None

    def map(
        self,
        func: Callable[[T], U | Awaitable[U]],
        name: str | None = None,
    ) -> DeferredValue[U]:
        async def factory() -> U:
            result = func(await self.resolve())
            if inspect.isawaitable(result):
                result = await result
            return result

        return DeferredValue(
            factory, name=name or f"{self.name}.map", depends=[self]
        )

    @staticmethod
    def join_all(
        values: Iterable[DeferredValue[T]],
        name: str | None = None,
    ) -> DeferredValue[list[T]]:
        items = list(values)

        async def factory() -> list[T]:
            return await gather_all(*(item.resolve() for item in items))

        return DeferredValue(factory, name=name or "join_all", depends=items)

    @classmethod
    def __get_pydantic_core_schema__(
        cls, source: Any, handler: GetCoreSchemaHandler
    ) -> core_schema.CoreSchema:
        return core_schema.is_instance_schema(cls)

    def __repr__(self) -> str:
        if self._state == _RESOLVED:
            return f"DeferredValue({self.name}={self._value!r})"
        return f"DeferredValue({self.name}, {self._state})"


def collect_deferred(obj: Any) -> list[DeferredValue]:
    """Return every deferred value nested in dicts, lists, tuples and sets."""
    found: list[DeferredValue] = []
    stack = [obj]
    while stack:
        current = stack.pop()
        if isinstance(current, DeferredValue):
            found.append(current)
        elif isinstance(current, dict):
            stack.extend(current.values())
        elif isinstance(current, (list, tuple, set, frozenset)):
            stack.extend(current)
    return found


async def resolve_deep(obj: Any) -> Any:
    if isinstance(obj, DeferredValue):
        return await resolve_deep(await obj.resolve())
    if isinstance(obj, dict):
        keys = list(obj.keys())
        values = await gather_all(*(resolve_deep(obj[k]) for k in keys))
        return dict(zip(keys, values))
    if isinstance(obj, tuple):
        return tuple(await gather_all(*(resolve_deep(v) for v in obj)))
    if isinstance(obj, list):
        return await gather_all(*(resolve_deep(v) for v in obj))
    if isinstance(obj, (set, frozenset)):
        return set(await gather_all(*(resolve_deep(v) for v in obj)))
    return obj


def interpolate(
    template: str,
    name: str | None = None,
    **values: Any,
) -> DeferredValue[str]:
    """Format ``template`` once every deferred argument is resolved."""
    deferred = collect_deferred(values)

    async def factory() -> str:
        resolved = await resolve_deep(values)
        return template.format(**resolved)

    return DeferredValue(
        factory, name=name or "interpolate", depends=deferred
    )
