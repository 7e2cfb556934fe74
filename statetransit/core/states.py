# statetransit/core/states.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, Iterator, Mapping, Optional, Tuple, Union

from statetransit.core.errors import StateNotFoundError, ValidationError
from statetransit.core.params import ParamDeclarations, StateParams

if TYPE_CHECKING:
    from statetransit.core.resolve import ResolvePolicy

StateRef = Union[str, "State"]


class State:
    """
    A named node in the application state tree.

    States are created and owned by a StateRegistry and are treated as
    read-only by the transition pipeline. The full ``name`` is dotted
    (``"parent.child"``); the implicit root state is named ``""``.
    """

    def __init__(
        self,
        name: str,
        parent: Optional[State] = None,
        params: Any = None,
        resolve: Optional[Mapping[str, Callable[..., Any]]] = None,
        resolve_policy: Optional["ResolvePolicy"] = None,
        on_enter: Optional[Callable[..., Any]] = None,
        on_exit: Optional[Callable[..., Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        :param name: Full dotted name of the state.
        :param parent: Parent state, None only for the root.
        :param params: Parameter declarations, see ParamDeclarations.build.
        :param resolve: Map of dependency name to resolve function.
        :param resolve_policy: Policy applied to this state's resolvables; EAGER if omitted.
        :param on_enter: Callback invoked (through the injector) when the state is entered.
        :param on_exit: Callback invoked (through the injector) when the state is exited.
        :param data: Free-form user data.
        """
        self._name = name
        self._parent = parent
        self._own_params = ParamDeclarations.build(params)
        self._params = parent.params.merged(self._own_params) if parent is not None else self._own_params
        self._resolve = dict(resolve or {})
        for key, fn in self._resolve.items():
            if not callable(fn):
                raise ValidationError(f"Resolve '{key}' of state '{name}' must be callable")
        self.resolve_policy = resolve_policy
        self.on_enter = on_enter
        self.on_exit = on_exit
        self.data: Dict[str, Any] = dict(data or {})
        self._path: Tuple[State, ...] = (parent.path if parent is not None else ()) + (self,)

    @property
    def name(self) -> str:
        """Full dotted name of the state."""
        return self._name

    @property
    def parent(self) -> Optional[State]:
        """The parent state, or None for the root."""
        return self._parent

    @property
    def own_params(self) -> ParamDeclarations:
        """Parameters declared directly on this state."""
        return self._own_params

    @property
    def params(self) -> ParamDeclarations:
        """Parameters declared on this state and all of its ancestors."""
        return self._params

    @property
    def resolve(self) -> Dict[str, Callable[..., Any]]:
        """A copy of the state's resolve functions."""
        return dict(self._resolve)

    @property
    def path(self) -> Tuple[State, ...]:
        """Ancestor chain from the root to this state, inclusive."""
        return self._path

    def root(self) -> State:
        """The root of the tree this state belongs to."""
        return self._path[0]

    def includes(self, other: State) -> bool:
        """Return True if ``other`` is this state or one of its ancestors."""
        return other in self._path

    def __repr__(self) -> str:
        return f"State({self._name!r})"


class TargetState:
    """
    A reference to a state plus parameter values, as requested by a caller.

    The reference is invalid when the identifier could not be resolved to a
    registered state.
    """

    def __init__(self, identifier: StateRef, params: Optional[Mapping[str, Any]] = None, state: Optional[State] = None) -> None:
        """
        :param identifier: The name or State the caller asked for.
        :param params: Requested parameter values.
        :param state: The resolved state, None if the identifier is unknown.
        """
        self._identifier = identifier
        self._params = StateParams(params or {})
        self._state = state

    @property
    def identifier(self) -> StateRef:
        """The name or State originally requested."""
        return self._identifier

    @property
    def name(self) -> str:
        """Name of the resolved state, or the requested name if unresolved."""
        if self._state is not None:
            return self._state.name
        if isinstance(self._identifier, State):
            return self._identifier.name
        return str(self._identifier)

    @property
    def state(self) -> Optional[State]:
        """The resolved state, or None."""
        return self._state

    @property
    def params(self) -> StateParams:
        """A copy of the requested parameter values."""
        return StateParams(self._params)

    def valid(self) -> bool:
        """Return True if the reference resolved to a registered state."""
        return self._state is not None

    def error(self) -> Optional[str]:
        """Describe why the reference is invalid, or None if it is valid."""
        if self.valid():
            return None
        return f"No such state '{self.name}'"

    def with_params(self, params: Optional[Mapping[str, Any]]) -> TargetState:
        """Return a copy of this reference with different parameter values."""
        return TargetState(self._identifier, params, self._state)

    def __repr__(self) -> str:
        marker = "" if self.valid() else "(X) "
        return f"TargetState({marker}{self.name!r}, {dict(self._params)!r})"


class StateRegistry:
    """
    Owns the state tree and resolves state references to registered states.

    Every registry has an implicit root state named ``""``; top-level states
    are its children.
    """

    def __init__(self) -> None:
        self._root = State("")
        self._states: Dict[str, State] = {"": self._root}

    @property
    def root(self) -> State:
        """The implicit root state."""
        return self._root

    def register(self, name: str, parent: Optional[StateRef] = None, **kwargs: Any) -> State:
        """
        Create and register a state.

        The parent defaults to the state named by the dotted prefix of ``name``
        (``"a.b"`` → ``"a"``), or the root for an undotted name.

        :param name: Full dotted name of the new state.
        :param parent: Explicit parent name or State.
        :param kwargs: Remaining State constructor arguments.
        :return: The registered state.
        :raises ValidationError: If the name is empty or already registered.
        :raises StateNotFoundError: If the parent is not registered.
        """
        if not name or not isinstance(name, str):
            raise ValidationError("State name must be a non-empty string")
        if name in self._states:
            raise ValidationError(f"State '{name}' is already registered")

        if parent is None:
            parent_state = self._states.get(name.rpartition(".")[0])
            if parent_state is None:
                raise StateNotFoundError(f"Parent state of '{name}' is not registered")
        else:
            parent_state = self.get(parent)

        state = State(name, parent=parent_state, **kwargs)
        self._states[name] = state
        return state

    def find(self, ref: Any) -> Optional[State]:
        """
        Resolve a name or State to the registered state, or None.
        """
        if isinstance(ref, State):
            registered = self._states.get(ref.name)
            return registered if registered is ref else None
        if isinstance(ref, str):
            return self._states.get(ref)
        return None

    def get(self, ref: Any) -> State:
        """
        Resolve a name or State to the registered state.

        :raises StateNotFoundError: If the reference cannot be resolved.
        """
        state = self.find(ref)
        if state is None:
            raise StateNotFoundError(f"No such state '{getattr(ref, 'name', ref)}'")
        return state

    def target(self, identifier: StateRef, params: Optional[Mapping[str, Any]] = None) -> TargetState:
        """
        Build a TargetState for an identifier; unknown identifiers produce an
        invalid reference instead of an error.
        """
        return TargetState(identifier, params, self.find(identifier))

    def __contains__(self, ref: object) -> bool:
        return self.find(ref) is not None

    def __iter__(self) -> Iterator[State]:
        return iter(self._states.values())

    def __len__(self) -> int:
        return len(self._states)
