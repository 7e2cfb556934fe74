# statetransit/runtime/service.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional, Union

from statetransit.core.hooks import HookRegistry
from statetransit.core.options import TransitionOptions
from statetransit.core.states import State, StateRegistry, TargetState
from statetransit.interfaces.types import HookCallback, RawMatchCriteria
from statetransit.runtime.injector import Injector

if TYPE_CHECKING:
    from statetransit.core.transition import Transition

logger = logging.getLogger(__name__)

TargetRef = Union[str, State, TargetState]


class TransitionService:
    """
    Creates transitions and owns the single "current transition" pointer.

    Starting a transition makes it current; a step of any other transition
    observes that it is no longer current and settles as SUPERSEDED. The
    service also exposes hook registration for every event type.
    """

    def __init__(
        self,
        registry: Optional[StateRegistry] = None,
        hooks: Optional[HookRegistry] = None,
        injector: Optional[Injector] = None,
    ) -> None:
        """
        :param registry: The state registry transitions resolve references against.
        :param hooks: The hook registry; a new one if omitted.
        :param injector: Injector used to invoke hooks and resolve functions.
        """
        self.registry = registry if registry is not None else StateRegistry()
        self.hooks = hooks if hooks is not None else HookRegistry()
        self.injector = injector if injector is not None else Injector()
        self._current: Optional["Transition"] = None

    @property
    def current(self) -> Optional["Transition"]:
        """The transition currently allowed to make progress, if any."""
        return self._current

    @current.setter
    def current(self, transition: Optional["Transition"]) -> None:
        previous = self._current
        self._current = transition
        if previous is not None and previous is not transition:
            logger.debug(f"{previous!r} is no longer current (now {transition!r})")

    def target(self, identifier: TargetRef, params: Optional[Mapping[str, Any]] = None) -> TargetState:
        """
        Build a TargetState for a name, State or existing TargetState.

        :param identifier: The state reference.
        :param params: Parameter values; for a TargetState, replaces its own.
        """
        if isinstance(identifier, TargetState):
            return identifier if params is None else identifier.with_params(params)
        return self.registry.target(identifier, params)

    def create(
        self,
        from_: TargetRef,
        to: TargetRef,
        options: Optional[Union[TransitionOptions, Mapping[str, Any]]] = None,
        *,
        from_params: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, Any]] = None,
        previous: Optional["Transition"] = None,
    ) -> "Transition":
        """
        Create a transition. It does nothing until its ``run()`` is called.

        :param from_: The origin state reference.
        :param to: The target state reference.
        :param options: Transition options.
        :param from_params: Current parameter values of the origin.
        :param params: Requested parameter values of the target.
        :param previous: The transition the new one replaces, if any.
        :raises StateNotFoundError: If the origin is not a registered state.
        """
        # Imported here to avoid circular dependency
        from statetransit.core.transition import Transition

        return Transition(
            self.target(from_, from_params),
            self.target(to, params),
            options,
            service=self,
            previous=previous,
        )

    @staticmethod
    def is_transition(value: Any) -> bool:
        """Return True if ``value`` is a Transition."""
        from statetransit.core.transition import is_transition

        return is_transition(value)

    def register_event_hook(self, event_type: str) -> Callable[..., None]:
        return self.hooks.register_event_hook(event_type)

    def on_before(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self.hooks.on_before(match_criteria, callback, options)

    def on_invalid(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self.hooks.on_invalid(match_criteria, callback, options)

    def on_start(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self.hooks.on_start(match_criteria, callback, options)

    def on(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self.hooks.on(match_criteria, callback, options)

    def entering(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self.hooks.entering(match_criteria, callback, options)

    def exiting(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self.hooks.exiting(match_criteria, callback, options)

    def on_success(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self.hooks.on_success(match_criteria, callback, options)

    def on_error(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self.hooks.on_error(match_criteria, callback, options)
