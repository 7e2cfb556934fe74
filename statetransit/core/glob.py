# statetransit/core/glob.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

from typing import List, Optional, Sequence


class Glob:
    """
    Matches dotted state names against a segment glob.

    ``*`` matches exactly one name segment and ``**`` matches zero or more
    segments, so ``"admin.*"`` matches ``"admin.users"`` but not
    ``"admin.users.edit"``, while ``"admin.**"`` matches all three of
    ``"admin"``, ``"admin.users"`` and ``"admin.users.edit"``.
    """

    def __init__(self, text: str) -> None:
        """
        :param text: The glob pattern.
        """
        self._text = text
        self._segments: List[str] = text.split(".")

    @property
    def text(self) -> str:
        """The pattern this glob was built from."""
        return self._text

    @staticmethod
    def is_glob(text: str) -> bool:
        """
        Return True if the text contains glob wildcards.
        """
        return "*" in text

    @classmethod
    def from_string(cls, text: str) -> Optional["Glob"]:
        """
        Build a Glob if the text contains wildcards, otherwise return None so the
        caller can fall back to an exact name comparison.
        """
        if not cls.is_glob(text):
            return None
        return cls(text)

    def matches(self, name: str) -> bool:
        """
        Check whether a state name matches this glob.

        :param name: A dotted state name.
        :return: True if the name matches.
        """
        return _match_segments(self._segments, name.split(".") if name else [])

    def __repr__(self) -> str:
        return f"Glob({self._text!r})"


def _match_segments(pattern: Sequence[str], segments: Sequence[str]) -> bool:
    if not pattern:
        return not segments
    head = pattern[0]
    if head == "**":
        return any(_match_segments(pattern[1:], segments[i:]) for i in range(len(segments) + 1))
    if not segments:
        return False
    if head == "*" or head == segments[0]:
        return _match_segments(pattern[1:], segments[1:])
    return False
