"""statetransit: hierarchical state transition pipeline

This package computes and executes transitions between the states of a
hierarchical, parameterized state tree.

Responsibilities:
    - Diffing the origin and target paths into retained, exited and entered states
    - Matching and ordering lifecycle hooks by event type and state criteria
    - Running the hook pipeline with supersession-based cancellation
    - Resolving per-state dependency values
    - Settling each transition with a success, error or rejection outcome

Interactions:
    - Client code through TransitionService and Transition
    - asyncio for scheduling the asynchronous part of the pipeline
    - Logging system for diagnostics

Cross-cutting Concerns:
    Concurrency:
        - Single event loop, one task per running transition
        - Cooperative cancellation through the current-transition pointer

    Error Handling:
        - Structured error hierarchy rooted at StateTransitError
        - Non-error outcomes carried as Rejection values

    Logging:
        - Module-level loggers, no handlers configured by the library
"""

from statetransit.core import (
    REJECT,
    HookOptions,
    HookRegistry,
    Param,
    Path,
    PathElement,
    Rejection,
    RejectionType,
    Resolvable,
    ResolveContext,
    ResolvePolicy,
    State,
    StateParams,
    StateRegistry,
    TargetState,
    Transition,
    TransitionOptions,
    is_transition,
)
from statetransit.core.errors import (
    ResolveError,
    StateNotFoundError,
    StateTransitError,
    TransitionError,
    TransitionRejectedError,
    ValidationError,
)
from statetransit.runtime import Deferred, Injector, TransitionService

__version__ = "0.1.0"

__all__ = [
    "REJECT",
    "Deferred",
    "HookOptions",
    "HookRegistry",
    "Injector",
    "Param",
    "Path",
    "PathElement",
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
    "TransitionService",
    "ValidationError",
    "is_transition",
]
