# statetransit/interfaces/types.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details
from typing import Any, Callable, Dict, Mapping, Union

StateName = str
Priority = int

# Hook callbacks and resolve functions are invoked through the injector, so
# their signatures are free-form.
HookCallback = Callable[..., Any]
ResolveFn = Callable[..., Any]
Locals = Dict[str, Any]

# Raw match criteria accepted by hook registration: a glob, a list of globs,
# a predicate over a state, or None for "match anything".
RawCriterion = Union[None, str, list, tuple, Callable[[Any], Any]]
RawMatchCriteria = Mapping[str, RawCriterion]
