# statetransit/interfaces/protocols.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Any, Callable, List, Mapping, Optional, Protocol, runtime_checkable


@runtime_checkable
class StateRegistryProtocol(Protocol):
    """
    State registry lookup used by transitions.

    Methods:
        find(ref): Resolve a name or state to a registered state, or None.
        get(ref): Resolve a name or state, raising StateNotFoundError if unknown.
        target(identifier, params): Build a state reference that may be invalid.

    Runtime Invariants:
    - Registered states do not change once registered.
    - Every registry has a root state named "".
    """

    def find(self, ref: Any) -> Optional[Any]:
        ...

    def get(self, ref: Any) -> Any:
        ...

    def target(self, identifier: Any, params: Optional[Mapping[str, Any]] = None) -> Any:
        ...


@runtime_checkable
class InjectorProtocol(Protocol):
    """
    Dependency injector used to invoke hooks and resolve functions.

    Methods:
        annotate(fn): Names of the dependencies ``fn`` declares.
        invoke(fn, values): Call ``fn`` with the values it declares.

    Error Handling:
    - invoke raises ResolveError when a required dependency is missing.
    """

    def annotate(self, fn: Callable[..., Any]) -> List[str]:
        ...

    def invoke(self, fn: Callable[..., Any], values: Mapping[str, Any]) -> Any:
        ...


@runtime_checkable
class DeferredProtocol(Protocol):
    """
    Single-assignment result slot, awaitable once settled.

    Runtime Invariants:
    - A deferred settles at most once; later settlement attempts are ignored.
    """

    def resolve(self, value: Any = None) -> bool:
        ...

    def reject(self, error: BaseException) -> bool:
        ...

    def done(self) -> bool:
        ...

    def add_done_callback(self, fn: Callable[[Any], Any]) -> None:
        ...

    def __await__(self) -> Any:
        ...


@runtime_checkable
class GlobMatcher(Protocol):
    """
    Compiled state-name glob.
    """

    def matches(self, name: str) -> bool:
        """Return True if the dotted state name matches."""
        ...
