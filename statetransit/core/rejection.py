# statetransit/core/rejection.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any

from statetransit.core.errors import TransitionRejectedError


class RejectionType(IntEnum):
    """Kinds of non-error transition outcomes."""

    SUPERSEDED = 2
    ABORTED = 3
    INVALID = 4
    IGNORED = 5


@dataclass(frozen=True)
class Rejection:
    """
    A settled-but-unsuccessful transition outcome.

    Rejections flow through the pipeline as plain values; they are only
    wrapped in an exception when a public deferred is rejected.
    """

    type: RejectionType
    message: str
    detail: Any = None
    redirected: bool = False

    def to_error(self) -> TransitionRejectedError:
        """Wrap this rejection in an exception for a failed deferred."""
        return TransitionRejectedError(self)

    def __str__(self) -> str:
        return f"{self.type.name}: {self.message}"


class RejectFactory:
    """Builds the rejection for each outcome kind."""

    def superseded(self, detail: Any = None, redirected: bool = False) -> Rejection:
        """A newer transition replaced this one before it finished."""
        return Rejection(
            RejectionType.SUPERSEDED,
            "The transition has been superseded by a different transition (see detail).",
            detail,
            redirected,
        )

    def redirected(self, detail: Any = None) -> Rejection:
        """A hook explicitly redirected to ``detail``, the new transition."""
        return self.superseded(detail, redirected=True)

    def invalid(self, detail: Any = None) -> Rejection:
        """The target state reference could not be resolved."""
        return Rejection(RejectionType.INVALID, "The transition target is invalid.", detail)

    def ignored(self, detail: Any = None) -> Rejection:
        """The transition would not change anything."""
        return Rejection(RejectionType.IGNORED, "The transition was ignored.", detail)

    def aborted(self, detail: Any = None) -> Rejection:
        """A hook returned False."""
        return Rejection(RejectionType.ABORTED, "The transition has been aborted.", detail)


REJECT = RejectFactory()
