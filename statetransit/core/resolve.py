# statetransit/core/resolve.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import inspect
import logging
from enum import IntEnum
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional, Sequence

from statetransit.core.errors import ResolveError

if TYPE_CHECKING:
    from statetransit.core.path import PathElement
    from statetransit.core.states import State
    from statetransit.runtime.injector import Injector

logger = logging.getLogger(__name__)


class ResolvePolicy(IntEnum):
    """
    When a resolvable is resolved during a transition.

    Resolving a path or an element with policy P resolves every resolvable
    whose own policy is at least P, so EAGER resolvables are resolved before
    any entering hook runs, LAZY ones when their state's element is prepared
    for invocation, and JIT ones only when something injects them.
    """

    JIT = 0
    LAZY = 1
    EAGER = 2


class Resolvable:
    """
    A named, lazily computed value bound to one state's scope.

    The value is computed at most once; concurrent requests share the same
    pending computation.
    """

    def __init__(
        self,
        name: str,
        resolve_fn: Callable[..., Any],
        state: Optional["State"] = None,
        policy: Optional[ResolvePolicy] = None,
    ) -> None:
        """
        :param name: Injection name of the value.
        :param resolve_fn: Callable computing the value; its own dependencies are injected.
        :param state: The state whose scope the value belongs to.
        :param policy: Resolve policy, EAGER if omitted.
        """
        if not callable(resolve_fn):
            raise ResolveError(f"Resolvable '{name}' requires a callable, got {resolve_fn!r}")
        self.name = name
        self.resolve_fn = resolve_fn
        self.state = state
        self.policy = ResolvePolicy.EAGER if policy is None else ResolvePolicy(policy)
        self._task: Optional[asyncio.Future] = None
        self._resolved = False
        self._value: Any = None

    @property
    def resolved(self) -> bool:
        """True once the value has been computed."""
        return self._resolved

    @property
    def value(self) -> Any:
        """
        The computed value.

        :raises ResolveError: If the value has not been computed yet.
        """
        if not self._resolved:
            raise ResolveError(f"Resolvable '{self.name}' has not been resolved")
        return self._value

    async def get(self, context: "ResolveContext") -> Any:
        """
        Resolve the value, awaiting dependencies and async resolve functions.

        :param context: A context in which this resolvable is visible.
        :return: The memoized value.
        """
        if self._resolved:
            return self._value
        if self._task is None:
            self._task = asyncio.ensure_future(self._resolve(context))
        return await self._task

    def get_now(self, context: "ResolveContext") -> Any:
        """
        Resolve the value synchronously.

        :param context: A context in which this resolvable is visible.
        :return: The memoized value.
        :raises ResolveError: If the value is still being resolved asynchronously,
            or the resolve function returns an awaitable.
        """
        if self._resolved:
            return self._value
        if self._task is not None:
            if self._task.done():
                return self._task.result()
            raise ResolveError(f"Resolvable '{self.name}' is still resolving")

        scope = context.scope_for(self)
        values = scope.resolve_dependencies_now(self.resolve_fn, exclude=self)
        result = scope.injector.invoke(self.resolve_fn, values)
        if inspect.isawaitable(result):
            if inspect.iscoroutine(result):
                result.close()
            raise ResolveError(f"Resolvable '{self.name}' cannot be resolved synchronously")
        return self._store(result)

    async def _resolve(self, context: "ResolveContext") -> Any:
        scope = context.scope_for(self)
        values = await scope.resolve_dependencies(self.resolve_fn, exclude=self)
        result = scope.injector.invoke(self.resolve_fn, values)
        if inspect.isawaitable(result):
            result = await result
        return self._store(result)

    def _store(self, value: Any) -> Any:
        self._value = value
        self._resolved = True
        logger.debug(f"Resolved '{self.name}' for state {self.state!r}")
        return value

    def __repr__(self) -> str:
        status = "resolved" if self._resolved else "pending"
        return f"Resolvable({self.name!r}, {self.policy.name}, {status})"


class ResolveContext:
    """
    The resolvables visible from one position in a path: those of every
    element from the root up to and including the tail. A name is looked up
    from the tail towards the root, so a deeper state shadows its ancestors.

    Base locals are offered to resolve functions ahead of resolvables.
    """

    def __init__(
        self,
        elements: Sequence["PathElement"],
        injector: Optional["Injector"] = None,
        locals: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """
        :param elements: Path elements, root first.
        :param injector: Injector used to call resolve functions.
        :param locals: Values injectable into resolve functions.
        """
        if injector is None:
            # Imported here to avoid a circular dependency at package import time
            from statetransit.runtime.injector import Injector

            injector = Injector()
        self._elements: List["PathElement"] = list(elements)
        self.injector = injector
        self.locals: Dict[str, Any] = dict(locals or {})

    @property
    def elements(self) -> List["PathElement"]:
        """A copy of the elements in scope, root first."""
        return list(self._elements)

    def find(self, name: str, exclude: Optional[Resolvable] = None) -> Optional[Resolvable]:
        """
        Find the nearest resolvable with the given name.

        :param name: Injection name.
        :param exclude: A resolvable to skip, so a resolvable can depend on the
            same-named value of an ancestor.
        """
        for element in reversed(self._elements):
            resolvable = element.resolvables.get(name)
            if resolvable is not None and resolvable is not exclude:
                return resolvable
        return None

    def resolvables(self) -> Dict[str, Resolvable]:
        """All visible resolvables by name, deeper states winning."""
        merged: Dict[str, Resolvable] = {}
        for element in self._elements:
            merged.update(element.resolvables)
        return merged

    def scope_for(self, resolvable: Resolvable) -> "ResolveContext":
        """
        Narrow the context to the element owning ``resolvable``.
        """
        for index, element in enumerate(self._elements):
            if element.resolvables.get(resolvable.name) is resolvable:
                return self._truncated(index + 1)
        return self

    def scope_for_element(self, element: "PathElement") -> "ResolveContext":
        """
        Narrow the context to ``element`` and its ancestors.
        """
        for index, candidate in enumerate(self._elements):
            if candidate is element:
                return self._truncated(index + 1)
        return self

    async def resolve_dependencies(
        self,
        fn: Callable[..., Any],
        locals: Optional[Mapping[str, Any]] = None,
        exclude: Optional[Resolvable] = None,
    ) -> Dict[str, Any]:
        """
        Collect the values ``fn`` declares, resolving resolvables as needed.

        Names that are neither locals nor visible resolvables are left out; the
        injector decides whether that is an error.
        """
        available = self._locals(locals)
        values: Dict[str, Any] = {}
        for name in self.injector.annotate(fn):
            if name in available:
                values[name] = available[name]
                continue
            resolvable = self.find(name, exclude)
            if resolvable is not None:
                values[name] = await resolvable.get(self)
        return values

    def resolve_dependencies_now(
        self,
        fn: Callable[..., Any],
        locals: Optional[Mapping[str, Any]] = None,
        exclude: Optional[Resolvable] = None,
    ) -> Dict[str, Any]:
        """
        Synchronous counterpart of resolve_dependencies.

        :raises ResolveError: If a needed resolvable can only be resolved asynchronously.
        """
        available = self._locals(locals)
        values: Dict[str, Any] = {}
        for name in self.injector.annotate(fn):
            if name in available:
                values[name] = available[name]
                continue
            resolvable = self.find(name, exclude)
            if resolvable is not None:
                values[name] = resolvable.get_now(self)
        return values

    def _locals(self, locals: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        if not locals:
            return self.locals
        return {**self.locals, **locals}

    def _truncated(self, size: int) -> "ResolveContext":
        return ResolveContext(self._elements[:size], self.injector, self.locals)

    def __repr__(self) -> str:
        return f"ResolveContext({[e.state.name for e in self._elements]})"
