"""
Protocols for the collaborators of the transition pipeline and shared type aliases.
"""

from .protocols import DeferredProtocol, GlobMatcher, InjectorProtocol, StateRegistryProtocol
from .types import HookCallback, Locals, Priority, RawCriterion, RawMatchCriteria, ResolveFn, StateName

__all__ = [
    "DeferredProtocol",
    "GlobMatcher",
    "HookCallback",
    "InjectorProtocol",
    "Locals",
    "Priority",
    "RawCriterion",
    "RawMatchCriteria",
    "ResolveFn",
    "StateName",
    "StateRegistryProtocol",
]
