# statetransit/core/options.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional, Union

from statetransit.core.errors import ValidationError

if TYPE_CHECKING:
    from statetransit.core.states import State


def _build(cls, raw):
    if raw is None:
        return cls()
    if isinstance(raw, cls):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError(f"{cls.__name__} must be built from a mapping, got {raw!r}")
    known = {f.name for f in fields(cls)}
    unknown = set(raw) - known
    if unknown:
        raise ValidationError(f"Unknown {cls.__name__} fields: {sorted(unknown)}")
    return cls(**raw)


@dataclass(frozen=True)
class TransitionOptions:
    """
    Options controlling a single transition.

    ``reload`` forces re-entry: True re-enters every state below the root, a
    state name or State re-enters that state and its descendants.
    ``inherit`` carries over the current values of parameters declared by
    ancestors shared between the origin and the target.
    ``custom`` is free-form data for hooks.
    """

    reload: Union[bool, str, "State"] = False
    inherit: bool = False
    custom: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def build(cls, raw: Optional[Union["TransitionOptions", Mapping[str, Any]]]) -> "TransitionOptions":
        """
        Accept None, a mapping of fields or an instance.

        :raises ValidationError: On unknown fields.
        """
        return _build(cls, raw)

    def with_changes(self, **changes: Any) -> "TransitionOptions":
        """Return a copy with some fields replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class HookOptions:
    """
    Options for a registered hook. Hooks of one event type run in ascending
    ``priority`` order.
    """

    priority: int = 0

    @classmethod
    def build(cls, raw: Optional[Union["HookOptions", Mapping[str, Any]]]) -> "HookOptions":
        """
        Accept None, a mapping of fields or an instance.

        :raises ValidationError: On unknown fields or a non-integer priority.
        """
        options = _build(cls, raw)
        if isinstance(options.priority, bool) or not isinstance(options.priority, (int, float)):
            raise ValidationError(f"Hook priority must be a number, got {options.priority!r}")
        return options
