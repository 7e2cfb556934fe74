# tests/conftest.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from typing import Any, Optional, Tuple

import pytest

from statetransit.core.params import Param
from statetransit.core.states import StateRegistry
from statetransit.runtime.service import TransitionService


@pytest.fixture
def registry() -> StateRegistry:
    """
    A small state tree:

        ""  (root)
        ├── parent          (id)
        │   ├── parent.childA
        │   └── parent.childB
        ├── other
        └── search          (query, dynamic)
            ├── search.results
            └── search.map
    """
    registry = StateRegistry()
    registry.register("parent", params=["id"])
    registry.register("parent.childA")
    registry.register("parent.childB")
    registry.register("other")
    registry.register("search", params={"query": Param("query", dynamic=True)})
    registry.register("search.results")
    registry.register("search.map")
    return registry


@pytest.fixture
def service(registry) -> TransitionService:
    """A transition service over the shared registry."""
    return TransitionService(registry)


@pytest.fixture
def trace() -> list:
    """Records the order in which hooks run."""
    return []


@pytest.fixture
def settle():
    """Await a deferred and return (value, error) instead of raising."""

    async def _settle(deferred) -> Tuple[Any, Optional[BaseException]]:
        try:
            return await deferred, None
        except Exception as exc:
            return None, exc

    return _settle
