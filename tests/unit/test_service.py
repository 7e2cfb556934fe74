# tests/unit/test_service.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import logging

import pytest

from statetransit.core.errors import ValidationError
from statetransit.core.hooks import EVENT_TYPES, HookRegistry
from statetransit.core.states import StateRegistry, TargetState
from statetransit.core.transition import Transition
from statetransit.runtime.injector import Injector
from statetransit.runtime.service import TransitionService


def test_defaults():
    service = TransitionService()
    assert isinstance(service.registry, StateRegistry)
    assert isinstance(service.hooks, HookRegistry)
    assert isinstance(service.injector, Injector)
    assert service.current is None


def test_collaborators_are_used(registry):
    hooks, injector = HookRegistry(), Injector()
    service = TransitionService(registry, hooks, injector)
    assert service.registry is registry
    assert service.hooks is hooks
    assert service.injector is injector


def test_target(service):
    target = service.target("parent", {"id": 1})
    assert isinstance(target, TargetState)
    assert service.target(target) is target
    assert service.target(target, {"id": 2}).params == {"id": 2}
    assert not service.target("nowhere").valid()


def test_create(service):
    transition = service.create("other", "parent.childA", {"inherit": False}, params={"id": 3})
    assert isinstance(transition, Transition)
    assert transition.from_state is service.registry.get("other")
    assert transition.to_state is service.registry.get("parent.childA")
    assert transition.params == {"id": 3}
    assert not transition.started


def test_create_accepts_states_and_targets(service, registry):
    transition = service.create(registry.get("other"), registry.target("parent", {"id": 1}))
    assert transition.params == {"id": 1}


def test_current_pointer_logs_supersession(service, caplog):
    first = service.create("other", "parent", params={"id": 1})
    second = service.create("other", "parent", params={"id": 2})
    service.current = first
    with caplog.at_level(logging.DEBUG, logger="statetransit.runtime.service"):
        service.current = second
    assert service.current is second
    assert "no longer current" in caplog.text


@pytest.mark.parametrize("event_type", EVENT_TYPES)
def test_hook_registration_delegates(service, event_type):
    callback = lambda: None  # noqa: E731
    getattr(service, event_type)({"to": "parent"}, callback, {"priority": 1})
    (hook,) = service.hooks.hooks_for(event_type)
    assert hook.callback is callback
    assert hook.priority == 1


def test_register_event_hook(service):
    service.register_event_hook("on_success")({}, lambda: None)
    assert len(service.hooks.hooks_for("on_success")) == 1
    with pytest.raises(ValidationError):
        service.register_event_hook("nope")
