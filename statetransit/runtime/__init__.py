"""
Runtime package for executing transitions.

Architecture:
- Deferred provides the single-assignment outcome slots of a transition
- Injector invokes hooks and resolve functions with their dependencies
- TransitionService owns the current-transition pointer and hook registration
"""

from .deferred import Deferred
from .injector import Injector
from .service import TransitionService

__all__ = ["Deferred", "Injector", "TransitionService"]
