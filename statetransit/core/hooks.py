# statetransit/core/hooks.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from statetransit.core.errors import ValidationError
from statetransit.core.glob import Glob
from statetransit.core.options import HookOptions
from statetransit.interfaces.types import HookCallback, RawCriterion, RawMatchCriteria

logger = logging.getLogger(__name__)

EVENT_TYPES = (
    "on_before",
    "on_invalid",
    "on_start",
    "on",
    "entering",
    "exiting",
    "on_success",
    "on_error",
)


def _state_name(state: Any) -> Optional[str]:
    if state is None:
        return None
    if isinstance(state, str):
        return state
    return getattr(state, "name", None)


class MatchCriterion(ABC):
    """
    One side (``to`` or ``from``) of a hook's match criteria.
    """

    @abstractmethod
    def matches(self, state: Any) -> bool:
        """
        Test a State, TargetState or state name against the criterion.
        """

    @staticmethod
    def build(raw: RawCriterion) -> "MatchCriterion":
        """
        Build a criterion from its registration form: None (anything), a glob
        string, a list of globs or a predicate over a state.

        :raises ValidationError: If the form is not recognised.
        """
        if raw is None:
            return AnyState()
        if isinstance(raw, MatchCriterion):
            return raw
        if isinstance(raw, str):
            return GlobCriterion(raw)
        if isinstance(raw, (list, tuple)):
            for item in raw:
                if not isinstance(item, str):
                    raise ValidationError(f"Match criterion lists may only hold globs, got {item!r}")
            return AnyOf([GlobCriterion(item) for item in raw])
        if callable(raw):
            return Predicate(raw)
        raise ValidationError(f"Invalid match criterion: {raw!r}")


class AnyState(MatchCriterion):
    def matches(self, state: Any) -> bool:
        return True

    def __repr__(self) -> str:
        return "AnyState()"


class GlobCriterion(MatchCriterion):
    """Matches state names against a glob, or exactly when the pattern has no wildcard."""

    def __init__(self, pattern: str) -> None:
        self.pattern = pattern
        self._glob = Glob.from_string(pattern)

    def matches(self, state: Any) -> bool:
        name = _state_name(state)
        if name is None:
            return False
        if self._glob is None:
            return name == self.pattern
        return self._glob.matches(name)

    def __repr__(self) -> str:
        return f"GlobCriterion({self.pattern!r})"


class AnyOf(MatchCriterion):
    """Matches if any of its criteria match."""

    def __init__(self, criteria: Sequence[MatchCriterion]) -> None:
        self.criteria = list(criteria)

    def matches(self, state: Any) -> bool:
        return any(criterion.matches(state) for criterion in self.criteria)

    def __repr__(self) -> str:
        return f"AnyOf({self.criteria!r})"


class Predicate(MatchCriterion):
    def __init__(self, fn: Callable[[Any], Any]) -> None:
        self.fn = fn

    def matches(self, state: Any) -> bool:
        return bool(self.fn(state))

    def __repr__(self) -> str:
        return f"Predicate({self.fn!r})"


class EventHook:
    """
    A registered lifecycle callback and the criteria selecting the
    transitions it runs for.
    """

    def __init__(
        self,
        to: MatchCriterion,
        from_: MatchCriterion,
        callback: HookCallback,
        priority: int = 0,
        event_type: Optional[str] = None,
    ) -> None:
        self.to = to
        self.from_ = from_
        self.callback = callback
        self.priority = priority
        self.event_type = event_type

    def matches(self, to: Any, from_: Any) -> bool:
        """
        Both criteria must match.

        :param to: The state (or unresolved target) being transitioned to.
        :param from_: The state being transitioned from.
        """
        return self.to.matches(to) and self.from_.matches(from_)

    def __repr__(self) -> str:
        return f"EventHook({self.event_type}, to={self.to!r}, from={self.from_!r}, priority={self.priority})"


class HookRegistry:
    """
    Stores lifecycle hooks by event type, each list kept in ascending
    priority order with ties in registration order. Hooks are never removed.
    """

    def __init__(self) -> None:
        self._hooks: Dict[str, List[EventHook]] = {event_type: [] for event_type in EVENT_TYPES}

    def register_event_hook(self, event_type: str) -> Callable[..., None]:
        """
        Return the registration function for an event type.

        :param event_type: One of EVENT_TYPES.
        :return: A callable ``(match_criteria, callback, options=None) -> None``.
        :raises ValidationError: If the event type is unknown.
        """
        self._check_event_type(event_type)
        return partial(self._register, event_type)

    def _register(
        self,
        event_type: str,
        match_criteria: Optional[RawMatchCriteria],
        callback: HookCallback,
        options: Any = None,
    ) -> None:
        criteria = match_criteria or {}
        if not isinstance(criteria, Mapping):
            raise ValidationError(f"Match criteria must be a mapping, got {criteria!r}")
        unknown = set(criteria) - {"to", "from"}
        if unknown:
            raise ValidationError(f"Unknown match criteria keys: {sorted(unknown)}")
        if not callable(callback):
            raise ValidationError(f"Hook callback must be callable, got {callback!r}")
        hook_options = HookOptions.build(options)

        hook = EventHook(
            MatchCriterion.build(criteria.get("to")),
            MatchCriterion.build(criteria.get("from")),
            callback,
            hook_options.priority,
            event_type,
        )
        hooks = self._hooks[event_type]
        hooks.append(hook)
        # list.sort is stable, so equal priorities keep registration order
        hooks.sort(key=lambda h: h.priority)
        logger.debug(f"Registered {hook!r}")

    def on_before(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        """Register a hook run synchronously before the transition starts."""
        self._register("on_before", match_criteria, callback, options)

    def on_invalid(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        """Register a hook run when the target cannot be resolved."""
        self._register("on_invalid", match_criteria, callback, options)

    def on_start(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        """Register a hook run when a transition to a valid target starts."""
        self._register("on_start", match_criteria, callback, options)

    def on(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self._register("on", match_criteria, callback, options)

    def entering(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        """Register a hook run for each entered state."""
        self._register("entering", match_criteria, callback, options)

    def exiting(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        """Register a hook run for each exited state."""
        self._register("exiting", match_criteria, callback, options)

    def on_success(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self._register("on_success", match_criteria, callback, options)

    def on_error(self, match_criteria: Optional[RawMatchCriteria], callback: HookCallback, options: Any = None) -> None:
        self._register("on_error", match_criteria, callback, options)

    def hooks_for(self, event_type: str) -> List[EventHook]:
        """
        All hooks of an event type, in execution order.

        :raises ValidationError: If the event type is unknown.
        """
        self._check_event_type(event_type)
        return list(self._hooks[event_type])

    def matching(self, event_type: str, to: Any, from_: Any) -> List[EventHook]:
        """
        Hooks of an event type whose criteria match ``to`` and ``from_``, in
        execution order.
        """
        return [hook for hook in self.hooks_for(event_type) if hook.matches(to, from_)]

    def _check_event_type(self, event_type: str) -> None:
        if event_type not in self._hooks:
            raise ValidationError(f"Unknown hook event type '{event_type}'")
