# statetransit/runtime/injector.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import inspect
from typing import Any, Callable, Dict, List, Mapping, Tuple

from statetransit.core.errors import ResolveError

_NAMED_KINDS = (inspect.Parameter.POSITIONAL_OR_KEYWORD, inspect.Parameter.KEYWORD_ONLY)


class Injector:
    """
    Invokes callables with their dependencies supplied by name.

    A callable declares its dependencies through its parameter names, or
    explicitly through an ``__inject__`` list of names which are then passed
    positionally. ``*args``/``**kwargs`` and positional-only parameters are
    never injected.
    """

    def annotate(self, fn: Callable[..., Any]) -> List[str]:
        """
        List the dependency names a callable asks for.

        :param fn: The callable to inspect.
        :return: Dependency names in declaration order.
        """
        explicit = getattr(fn, "__inject__", None)
        if explicit is not None:
            return list(explicit)
        return [p.name for p in self._parameters(fn)]

    def required(self, fn: Callable[..., Any]) -> List[str]:
        """
        List the dependency names that have no default value.
        """
        explicit = getattr(fn, "__inject__", None)
        if explicit is not None:
            return list(explicit)
        return [p.name for p in self._parameters(fn) if p.default is inspect.Parameter.empty]

    def invoke(self, fn: Callable[..., Any], values: Mapping[str, Any]) -> Any:
        """
        Call ``fn`` with the values it declares.

        :param fn: The callable to invoke.
        :param values: Available dependency values keyed by name.
        :return: Whatever ``fn`` returns, possibly an awaitable.
        :raises ResolveError: If a required dependency is missing.
        """
        args, kwargs = self._arguments(fn, values)
        return fn(*args, **kwargs)

    def _arguments(self, fn: Callable[..., Any], values: Mapping[str, Any]) -> Tuple[List[Any], Dict[str, Any]]:
        explicit = getattr(fn, "__inject__", None)
        if explicit is not None:
            missing = [name for name in explicit if name not in values]
            if missing:
                raise ResolveError(f"Unknown dependency '{missing[0]}' for {_describe(fn)}")
            return [values[name] for name in explicit], {}

        kwargs: Dict[str, Any] = {}
        for param in self._parameters(fn):
            if param.name in values:
                kwargs[param.name] = values[param.name]
            elif param.default is inspect.Parameter.empty:
                raise ResolveError(f"Unknown dependency '{param.name}' for {_describe(fn)}")
        return [], kwargs

    @staticmethod
    def _parameters(fn: Callable[..., Any]) -> List[inspect.Parameter]:
        try:
            signature = inspect.signature(fn)
        except (TypeError, ValueError):
            # Builtins without introspectable signatures take no dependencies.
            return []
        return [p for p in signature.parameters.values() if p.kind in _NAMED_KINDS]


def _describe(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)
