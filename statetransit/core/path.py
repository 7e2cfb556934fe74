# statetransit/core/path.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional

from statetransit.core.errors import ValidationError
from statetransit.core.resolve import Resolvable, ResolveContext, ResolvePolicy

if TYPE_CHECKING:
    from statetransit.core.states import State
    from statetransit.runtime.injector import Injector

logger = logging.getLogger(__name__)


class PathElement:
    """
    One state of a path together with the resolvables it owns during a
    single transition.
    """

    def __init__(self, state: "State") -> None:
        """
        :param state: The state this element wraps.
        """
        self.state = state
        self.resolvables: Dict[str, Resolvable] = {}
        self.add_resolvables(state.resolve, state.resolve_policy)

    def add_resolvables(self, resolve: Mapping[str, Any], policy: Optional[ResolvePolicy] = None) -> List[Resolvable]:
        """
        Create resolvables for a map of name to resolve function and merge
        them into this element, replacing same-named ones.

        :param resolve: Map of injection name to callable.
        :param policy: Policy for the new resolvables, EAGER if omitted.
        :return: The created resolvables.
        :raises ValidationError: If a value is not callable.
        """
        created = []
        for name, fn in resolve.items():
            if not callable(fn):
                raise ValidationError(f"Resolve '{name}' for state '{self.state.name}' must be callable, got {fn!r}")
            created.append(Resolvable(name, fn, self.state, policy))
        for resolvable in created:
            self.resolvables[resolvable.name] = resolvable
        return created

    async def resolve(self, context: ResolveContext, policy: ResolvePolicy = ResolvePolicy.LAZY) -> Dict[str, Any]:
        """
        Resolve this element's resolvables whose policy is at least ``policy``.

        :return: The resolved values by name.
        """
        scope = context.scope_for_element(self)
        values = {}
        for resolvable in list(self.resolvables.values()):
            if resolvable.policy >= policy:
                values[resolvable.name] = await resolvable.get(scope)
        return values

    def invoke_now(self, fn: Callable[..., Any], locals: Optional[Mapping[str, Any]], context: ResolveContext) -> Any:
        """
        Invoke ``fn`` synchronously with its dependencies injected from this
        element's scope and ``locals``.

        :raises ResolveError: If a dependency needs asynchronous resolution.
        """
        scope = context.scope_for_element(self)
        values = scope.resolve_dependencies_now(fn, locals)
        return scope.injector.invoke(fn, values)

    async def invoke_later(self, fn: Callable[..., Any], locals: Optional[Mapping[str, Any]], context: ResolveContext) -> Any:
        """
        Resolve this element's lazy resolvables and then ``fn``'s own
        dependencies, and invoke ``fn``.

        :return: Whatever ``fn`` returns. An awaitable result is not awaited.
        """
        scope = context.scope_for_element(self)
        await self.resolve(scope, ResolvePolicy.LAZY)
        values = await scope.resolve_dependencies(fn, locals)
        return scope.injector.invoke(fn, values)

    def __repr__(self) -> str:
        return f"PathElement({self.state.name!r})"


class Path:
    """
    Root-first sequence of path elements.

    Elements are strictly ordered by tree depth and no state appears twice.
    """

    def __init__(self, elements: Iterable[PathElement] = ()) -> None:
        """
        :param elements: Path elements, root first.
        :raises ValidationError: If the ordering invariant does not hold.
        """
        self._elements: List[PathElement] = list(elements)
        self._validate()

    @classmethod
    def from_states(cls, states: Iterable["State"]) -> "Path":
        """Build a path with a fresh element for each state."""
        return cls(PathElement(state) for state in states)

    def _validate(self) -> None:
        seen = set()
        previous_depth = -1
        for element in self._elements:
            if id(element.state) in seen:
                raise ValidationError(f"State '{element.state.name}' appears twice in path")
            seen.add(id(element.state))
            depth = len(element.state.path)
            if depth <= previous_depth:
                raise ValidationError(f"Path elements out of depth order at state '{element.state.name}'")
            previous_depth = depth

    @property
    def elements(self) -> List[PathElement]:
        """A copy of the elements, root first."""
        return list(self._elements)

    def states(self) -> List["State"]:
        """The states of the path, root first."""
        return [element.state for element in self._elements]

    def slice(self, start: int, stop: Optional[int] = None) -> "Path":
        """Return the sub-path ``[start:stop]``, sharing elements with this one."""
        return Path(self._elements[start:stop])

    def concat(self, other: "Path") -> "Path":
        """
        Append another path's elements.

        :raises ValidationError: If the result breaks the ordering invariant.
        """
        return Path(self._elements + other.elements)

    def element_for(self, state: "State") -> Optional[PathElement]:
        """Find the element wrapping ``state``."""
        for element in self._elements:
            if element.state is state:
                return element
        return None

    def resolve_context(
        self,
        element: Optional[PathElement] = None,
        injector: Optional["Injector"] = None,
        locals: Optional[Mapping[str, Any]] = None,
    ) -> ResolveContext:
        """
        Build a resolve context from the root up to ``element`` (the whole
        path if omitted).
        """
        elements = self._elements
        if element is not None:
            elements = elements[: elements.index(element) + 1]
        return ResolveContext(elements, injector, locals)

    async def resolve(self, context: Optional[ResolveContext] = None, policy: ResolvePolicy = ResolvePolicy.EAGER) -> None:
        """
        Resolve every element's resolvables with policy at least ``policy``,
        root first.
        """
        if context is None:
            context = self.resolve_context()
        for element in self._elements:
            await element.resolve(context, policy)
        logger.debug(f"Resolved path {self!r} with policy {policy.name}")

    def __len__(self) -> int:
        return len(self._elements)

    def __iter__(self) -> Iterator[PathElement]:
        return iter(self._elements)

    def __getitem__(self, index: int) -> PathElement:
        return self._elements[index]

    def __repr__(self) -> str:
        return f"Path({[e.state.name for e in self._elements]})"
