# statetransit/core/errors.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from statetransit.core.rejection import Rejection, RejectionType


class StateTransitError(Exception):
    """
    Base exception class for errors raised by the state transition library.
    """


class StateNotFoundError(StateTransitError):
    """
    Raised when a requested state does not exist in the state registry.
    """


class TransitionError(StateTransitError):
    """
    Raised when an attempted state transition is invalid or cannot be completed.
    """


class ValidationError(StateTransitError):
    """
    Raised when validation detects configuration or runtime constraints violations.
    """


class ResolveError(StateTransitError):
    """
    Raised when a dependency cannot be resolved for an injected callable.
    """


class TransitionRejectedError(TransitionError):
    """
    Carries a rejection value across the boundary of a transition's public
    deferreds. The rejection itself is a plain value; this wrapper exists only
    because awaiting a failed deferred has to raise.
    """

    def __init__(self, rejection: "Rejection") -> None:
        """
        :param rejection: The rejection value describing why the transition did not complete.
        """
        super().__init__(rejection.message)
        self.rejection = rejection

    @property
    def type(self) -> "RejectionType":
        """The rejection kind."""
        return self.rejection.type

    @property
    def detail(self) -> Any:
        """The rejection payload, e.g. the superseding transition."""
        return self.rejection.detail

    @property
    def redirected(self) -> bool:
        """True if the transition was superseded by an explicit redirect."""
        return self.rejection.redirected
