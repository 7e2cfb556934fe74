# statetransit/core/params.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Union

from statetransit.core.errors import ValidationError

if TYPE_CHECKING:
    from statetransit.core.states import State


@dataclass(frozen=True)
class Param:
    """
    Declaration of a single state parameter.

    A dynamic parameter may change without forcing its owning state to be
    exited and re-entered.
    """

    name: str
    default: Any = None
    dynamic: bool = False

    def equals(self, a: Any, b: Any) -> bool:
        """
        Compare two values of this parameter.
        """
        return a == b


class ParamDeclarations:
    """
    Ordered, read-only collection of parameter declarations for a state.
    """

    def __init__(self, params: Iterable[Param] = ()) -> None:
        """
        :param params: Param declarations, in declaration order.
        :raises ValidationError: If two declarations share a name.
        """
        self._params: Dict[str, Param] = {}
        for param in params:
            if param.name in self._params:
                raise ValidationError(f"Duplicate parameter declaration '{param.name}'")
            self._params[param.name] = param

    @classmethod
    def build(cls, raw: Union[None, "ParamDeclarations", Mapping[str, Any], Iterable[Any]]) -> "ParamDeclarations":
        """
        Build declarations from the loose forms accepted at state registration.

        A mapping may map each name to a Param, to a dict of Param fields
        (``{"default": 1, "dynamic": True}``), or to a plain default value.
        An iterable may hold Param instances or bare names.

        :param raw: Declarations in any of the supported forms.
        :return: A ParamDeclarations instance.
        :raises ValidationError: If an entry cannot be interpreted.
        """
        if raw is None:
            return cls()
        if isinstance(raw, ParamDeclarations):
            return raw

        params: List[Param] = []
        if isinstance(raw, Mapping):
            for name, declared in raw.items():
                if isinstance(declared, Param):
                    if declared.name != name:
                        raise ValidationError(f"Param '{declared.name}' declared under key '{name}'")
                    params.append(declared)
                elif isinstance(declared, Mapping):
                    unknown = set(declared) - {"default", "dynamic"}
                    if unknown:
                        raise ValidationError(f"Unknown fields for param '{name}': {sorted(unknown)}")
                    params.append(Param(name=name, **declared))
                else:
                    params.append(Param(name=name, default=declared))
        else:
            for declared in raw:
                if isinstance(declared, Param):
                    params.append(declared)
                elif isinstance(declared, str):
                    params.append(Param(name=declared))
                else:
                    raise ValidationError(f"Invalid param declaration: {declared!r}")
        return cls(params)

    def __iter__(self) -> Iterator[Param]:
        return iter(self._params.values())

    def __len__(self) -> int:
        return len(self._params)

    def __contains__(self, name: object) -> bool:
        return name in self._params

    def __getitem__(self, name: str) -> Param:
        return self._params[name]

    def __repr__(self) -> str:
        return f"ParamDeclarations({list(self._params)})"

    def keys(self) -> List[str]:
        """Declared parameter names, in declaration order."""
        return list(self._params)

    def filter(self, predicate: Callable[[Param], bool]) -> "ParamDeclarations":
        """
        Return the subset of declarations for which the predicate holds.
        """
        return ParamDeclarations(p for p in self if predicate(p))

    def non_dynamic(self) -> "ParamDeclarations":
        """Declarations whose change forces re-entry of the owning state."""
        return self.filter(lambda p: not p.dynamic)

    def merged(self, other: "ParamDeclarations") -> "ParamDeclarations":
        """
        Combine with another set of declarations. Entries of ``other`` replace
        same-named entries of ``self``.
        """
        combined = dict(self._params)
        combined.update((p.name, p) for p in other)
        return ParamDeclarations(combined.values())

    def values(self, raw: Optional[Mapping[str, Any]]) -> "StateParams":
        """
        Project raw values onto the declared parameters, applying defaults and
        dropping undeclared names.
        """
        raw = raw or {}
        return StateParams((p.name, raw[p.name] if p.name in raw else p.default) for p in self)

    def equals(self, a: Optional[Mapping[str, Any]], b: Optional[Mapping[str, Any]]) -> bool:
        """
        Compare two parameter sets over the declared names only.
        """
        a = a or {}
        b = b or {}
        return all(p.equals(a.get(p.name), b.get(p.name)) for p in self)


class StateParams(dict):
    """
    Parameter values of a state, keyed by parameter name.
    """

    def inherit(self, new_params: Optional[Mapping[str, Any]], from_state: "State", to_state: "State") -> "StateParams":
        """
        Build parameters for ``to_state`` that keep the current values of every
        parameter declared by an ancestor shared with ``from_state``, overridden
        by ``new_params``.

        :param new_params: Explicitly requested parameter values.
        :param from_state: The state these parameters belong to.
        :param to_state: The state being transitioned to.
        :return: A new StateParams instance.
        """
        inherited: Dict[str, Any] = {}
        for ancestor in _common_ancestors(from_state, to_state):
            for name in ancestor.own_params.keys():
                if name not in inherited:
                    inherited[name] = self.get(name)
        inherited.update(new_params or {})
        return StateParams(inherited)


def _common_ancestors(first: "State", second: "State") -> List["State"]:
    common = []
    for a, b in zip(first.path, second.path):
        if a is not b:
            break
        common.append(a)
    return common
