"""
Core package providing the transition pipeline.

Architecture:
- States, parameters and the state registry form the data layer
- Paths and resolvables scope dependency values to states
- Hooks are matched per event type and run as transition steps
- Transition orchestrates the diff, the step chain and settlement
"""

# Import order matters to avoid circular dependencies
from .errors import (
    ResolveError,
    StateNotFoundError,
    StateTransitError,
    TransitionError,
    TransitionRejectedError,
    ValidationError,
)
from .params import Param, ParamDeclarations, StateParams
from .states import State, StateRegistry, TargetState
from .glob import Glob
from .resolve import Resolvable, ResolveContext, ResolvePolicy
from .path import Path, PathElement
from .rejection import REJECT, RejectFactory, Rejection, RejectionType
from .options import HookOptions, TransitionOptions
from .hooks import EVENT_TYPES, AnyOf, AnyState, EventHook, GlobCriterion, HookRegistry, MatchCriterion, Predicate
from .step import EagerResolveStep, InvalidTargetStep, TransitionStep
from .transition import Transition, TreeChanges, is_transition

__all__ = [
    "AnyOf",
    "AnyState",
    "EVENT_TYPES",
    "EagerResolveStep",
    "EventHook",
    "Glob",
    "GlobCriterion",
    "HookOptions",
    "HookRegistry",
    "InvalidTargetStep",
    "MatchCriterion",
    "Param",
    "ParamDeclarations",
    "Path",
    "PathElement",
    "Predicate",
    "REJECT",
    "RejectFactory",
    "Rejection",
    "RejectionType",
    "ResolveContext",
    "ResolveError",
    "ResolvePolicy",
    "Resolvable",
    "State",
    "StateNotFoundError",
    "StateParams",
    "StateRegistry",
    "StateTransitError",
    "TargetState",
    "Transition",
    "TransitionError",
    "TransitionOptions",
    "TransitionRejectedError",
    "TransitionStep",
    "TreeChanges",
    "ValidationError",
    "is_transition",
]
