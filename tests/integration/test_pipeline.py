# tests/integration/test_pipeline.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

import asyncio
import logging
from unittest.mock import Mock

import pytest

from statetransit.core.errors import TransitionRejectedError
from statetransit.core.rejection import Rejection, RejectionType
from statetransit.core.resolve import ResolvePolicy
from statetransit.core.states import StateRegistry, TargetState
from statetransit.runtime.service import TransitionService


def record(trace, label):
    return lambda state: trace.append(f"{label}:{state.name}")


@pytest.fixture
def lifecycle(trace):
    """A service whose states record their own enter/exit callbacks."""
    registry = StateRegistry()
    registry.register("parent", params=["id"], on_enter=record(trace, "enter"), on_exit=record(trace, "exit"))
    registry.register("parent.childA", on_enter=record(trace, "enter"), on_exit=record(trace, "exit"))
    registry.register("parent.childB", on_enter=record(trace, "enter"), on_exit=record(trace, "exit"))
    registry.register("other", on_enter=record(trace, "enter"), on_exit=record(trace, "exit"))
    return TransitionService(registry)


def register_tracing_hooks(service, trace):
    service.on_before({}, lambda: trace.append("before"))
    service.on_start({}, lambda: trace.append("start"))
    service.on({}, lambda: trace.append("on"))
    service.exiting({}, record(trace, "exiting"))
    service.entering({}, record(trace, "entering"))
    service.on_success({}, lambda: trace.append("success"))
    service.on_error({}, lambda: trace.append("error"))


@pytest.mark.asyncio
async def test_full_event_order(lifecycle, trace):
    register_tracing_hooks(lifecycle, trace)
    t = lifecycle.create("parent.childA", "other", from_params={"id": 1})

    promise = t.run()
    # on_before hooks run synchronously inside run()
    assert trace == ["before"]

    result = await promise
    assert result is lifecycle.registry.get("other")
    assert await t.prepromise is result
    assert await t.redirects is result
    assert trace == [
        "before",
        "start",
        "on",
        "exiting:parent.childA",
        "exit:parent.childA",
        "exiting:parent",
        "exit:parent",
        "entering:other",
        "enter:other",
        "success",
    ]


@pytest.mark.asyncio
async def test_entering_is_root_first_and_exiting_leaf_first(lifecycle, trace):
    t = lifecycle.create("parent.childA", "parent.childB", from_params={"id": 1}, params={"id": 2})
    await t.run()
    assert trace == ["exit:parent.childA", "exit:parent", "enter:parent", "enter:parent.childB"]


@pytest.mark.asyncio
async def test_hook_priority_order(service, trace):
    for priority in (5, 1, 3):
        service.on({}, lambda p=priority: trace.append(p), {"priority": priority})

    await service.create("other", "parent", params={"id": 1}).run()
    assert trace == [1, 3, 5]


@pytest.mark.asyncio
async def test_abort_stops_pipeline(lifecycle, trace, settle):
    register_tracing_hooks(lifecycle, trace)
    errors = []
    lifecycle.on({}, lambda: False)
    lifecycle.on_error({}, lambda error: errors.append(error))
    t = lifecycle.create("parent.childA", "other", from_params={"id": 1})

    _, error = await settle(t.run())

    assert isinstance(error, TransitionRejectedError)
    assert error.type == RejectionType.ABORTED
    assert trace == ["before", "start", "on", "error"]
    assert isinstance(errors[0], Rejection)
    assert errors[0].type == RejectionType.ABORTED
    _, pre_error = await settle(t.prepromise)
    _, redirect_error = await settle(t.redirects)
    assert pre_error is error
    assert redirect_error is error


@pytest.mark.asyncio
async def test_hook_returned_resolvables_reach_later_steps(service):
    seen = []
    service.on_start({}, lambda: {"extra": lambda: 42})
    service.on({}, lambda extra: seen.append(("on", extra)))
    service.exiting({}, lambda extra, state: seen.append((state.name, extra)))
    service.entering({}, lambda extra, state: seen.append((state.name, extra)))

    await service.create("parent.childA", "other", from_params={"id": 1}).run()

    assert seen == [("on", 42), ("parent.childA", 42), ("parent", 42), ("other", 42)]


@pytest.mark.asyncio
async def test_eager_resolves_run_before_exiting_hooks(trace):
    registry = StateRegistry()
    registry.register("start")
    registry.register("loader", resolve={"data": lambda: trace.append("resolve") or "D"})
    service = TransitionService(registry)
    service.exiting({}, record(trace, "exiting"))
    service.entering({}, lambda data: trace.append(f"entering:{data}"))

    await service.create("start", "loader").run()

    assert trace == ["resolve", "exiting:start", "entering:D"]


@pytest.mark.asyncio
async def test_lazy_and_jit_resolves(trace):
    registry = StateRegistry()
    registry.register("start")
    registry.register(
        "lazy",
        resolve={"lazy_value": lambda: trace.append("lazy") or 1},
        resolve_policy=ResolvePolicy.LAZY,
    )
    registry.register(
        "lazy.jit",
        resolve={"jit_value": lambda: trace.append("jit") or 2},
        resolve_policy=ResolvePolicy.JIT,
    )
    service = TransitionService(registry)
    service.entering({"to": "lazy"}, lambda: trace.append("entering:lazy"))

    await service.create("start", "lazy.jit").run()

    # lazy values resolve when their state's hooks run; JIT values only on demand
    assert trace == ["lazy", "entering:lazy"]


@pytest.mark.asyncio
async def test_async_hooks_and_resolves(service):
    async def load():
        await asyncio.sleep(0)
        return "loaded"

    service.registry.register("async", resolve={"payload": load})
    seen = []

    async def entering(payload, state):
        await asyncio.sleep(0)
        seen.append((state.name, payload))

    service.entering({"to": "async"}, entering)
    result = await service.create("other", "async").run()

    assert result.name == "async"
    assert seen == [("async", "loaded")]


@pytest.mark.asyncio
async def test_invalid_target(service, trace, settle):
    service.on_invalid({}, lambda transition: trace.append(("invalid", transition.target.name)))
    service.on_start({}, lambda: trace.append("start"))
    service.on({}, lambda: trace.append("on"))
    t = service.create("other", "nowhere")

    _, error = await settle(t.run())

    assert error.type == RejectionType.INVALID
    assert isinstance(error.detail, TargetState)
    assert error.detail.name == "nowhere"
    assert trace == [("invalid", "nowhere")]
    assert t.entering() == []


@pytest.mark.asyncio
async def test_invalid_target_hook_criteria_use_requested_name(service, trace, settle):
    service.on_invalid({"to": "legacy.*"}, lambda: trace.append("legacy"))
    service.on_invalid({"to": "other"}, lambda: trace.append("other"))

    await settle(service.create("other", "legacy.page").run())
    assert trace == ["legacy"]


@pytest.mark.asyncio
async def test_invalid_target_redirected(service, settle):
    service.on_invalid({}, lambda transition: transition.redirect(service.target("parent", {"id": 9})))
    t = service.create("other", "nowhere")

    _, error = await settle(t.run())
    assert error.type == RejectionType.SUPERSEDED
    assert error.redirected
    redirect = error.detail
    assert redirect.previous is t

    result = await t.redirects
    assert result is service.registry.get("parent")
    assert redirect.params == {"id": 9}
    assert service.current is redirect


@pytest.mark.asyncio
async def test_ignored_transition_fires_no_hooks(service, settle):
    hook = Mock(return_value=None)
    for event_type in ("on_before", "on_start", "on", "entering", "exiting", "on_success", "on_error"):
        getattr(service, event_type)({}, hook)
    t = service.create("parent", "parent", from_params={"id": 1}, params={"id": 1})
    service.current = service.create("other", "parent")

    _, error = await settle(t.run())

    assert error.type == RejectionType.IGNORED
    for deferred in (t.prepromise, t.redirects):
        _, other_error = await settle(deferred)
        assert other_error.type == RejectionType.IGNORED
    hook.assert_not_called()
    assert service.current is None
    assert t.task is None


@pytest.mark.asyncio
async def test_reload_reenters_state(service, trace):
    service.exiting({}, record(trace, "exiting"))
    service.entering({}, record(trace, "entering"))

    await service.create("parent", "parent", {"reload": True}, from_params={"id": 1}, params={"id": 1}).run()
    assert trace == ["exiting:parent", "entering:parent"]


@pytest.mark.asyncio
async def test_dynamic_param_change_retains_ancestor(service, trace):
    service.exiting({}, record(trace, "exiting"))
    service.entering({}, record(trace, "entering"))

    await service.create("search.results", "search.map", from_params={"query": "a"}, params={"query": "b"}).run()
    assert trace == ["exiting:search.results", "entering:search.map"]


@pytest.mark.asyncio
async def test_state_params_locals(service):
    seen = []
    service.exiting({}, lambda state, state_params: seen.append(("exit", state.name, dict(state_params))))
    service.entering({}, lambda state, state_params: seen.append(("enter", state.name, dict(state_params))))

    await service.create("parent.childA", "parent.childB", from_params={"id": 1}, params={"id": 2}).run()

    assert seen == [
        ("exit", "parent.childA", {"id": 1}),
        ("exit", "parent", {"id": 1}),
        ("enter", "parent", {"id": 2}),
        ("enter", "parent.childB", {"id": 2}),
    ]


@pytest.mark.asyncio
async def test_per_state_criteria(service, trace):
    service.entering({"to": "parent.*"}, record(trace, "entering"))
    service.exiting({"from": "parent"}, record(trace, "exiting"))

    await service.create("parent.childA", "parent.childB", from_params={"id": 1}, params={"id": 2}).run()
    assert trace == ["exiting:parent", "entering:parent.childB"]


@pytest.mark.asyncio
async def test_hook_fault_fails_transition(service, settle):
    errors = []

    def broken():
        raise ValueError("entering failed")

    service.entering({}, broken)
    service.on_error({}, lambda error: errors.append(error))
    t = service.create("other", "parent", params={"id": 1})

    _, error = await settle(t.run())

    assert isinstance(error, ValueError)
    assert errors == [error]
    _, pre_error = await settle(t.prepromise)
    assert pre_error is error


@pytest.mark.asyncio
async def test_success_and_error_hook_faults_are_swallowed(service, caplog, settle):
    def broken():
        raise RuntimeError("handler bug")

    async def broken_async():
        raise RuntimeError("async handler bug")

    service.on_success({}, broken)
    service.on_success({}, broken_async)
    service.on_error({}, broken)

    with caplog.at_level(logging.ERROR, logger="statetransit.core.step"):
        result = await service.create("other", "parent", params={"id": 1}).run()
        service.on({}, lambda: False)
        _, error = await settle(service.create("other", "parent", params={"id": 2}).run())

    assert result.name == "parent"
    assert error.type == RejectionType.ABORTED
    assert caplog.text.count("Swallowed exception") == 3


@pytest.mark.asyncio
async def test_on_before_fault_fails_through_error_path(service, trace, settle):
    def broken():
        raise KeyError("before")

    service.on_before({}, broken)
    service.on_before({}, lambda: trace.append("second before"), {"priority": 1})
    service.on_start({}, lambda: trace.append("start"))
    service.on_error({}, lambda error: trace.append(type(error).__name__))
    t = service.create("other", "parent", params={"id": 1})

    promise = t.run()
    _, error = await settle(promise)

    assert isinstance(error, KeyError)
    assert trace == ["KeyError"]
    for deferred in (t.prepromise, t.redirects):
        _, other_error = await settle(deferred)
        assert other_error is error


@pytest.mark.asyncio
async def test_async_on_before_can_abort(service, trace, settle):
    async def check():
        await asyncio.sleep(0)
        return False

    service.on_before({}, check)
    service.on_start({}, lambda: trace.append("start"))

    _, error = await settle(service.create("other", "parent", params={"id": 1}).run())

    assert error.type == RejectionType.ABORTED
    assert trace == []


@pytest.mark.asyncio
async def test_explicit_injection_annotation(service):
    seen = []

    def hook(t, s):
        seen.append((t.to_state.name, s.name))

    hook.__inject__ = ["transition", "state"]
    service.entering({}, hook)

    await service.create("other", "parent", params={"id": 1}).run()
    assert seen == [("parent", "parent")]


@pytest.mark.asyncio
async def test_unknown_dependency_fails_transition(service, settle):
    service.on({}, lambda missing: None)
    _, error = await settle(service.create("other", "parent", params={"id": 1}).run())
    assert "missing" in str(error)


@pytest.mark.asyncio
async def test_cancelled_task_settles_as_aborted(service, trace, settle):
    entered = asyncio.Event()

    async def hang():
        entered.set()
        await asyncio.Event().wait()

    service.on_start({}, hang)
    service.on_error({}, lambda error: trace.append(error.type))
    t = service.create("other", "parent", params={"id": 1})
    t.run()
    await entered.wait()

    t.task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await t.task

    _, error = await settle(t.promise)
    assert error.type == RejectionType.ABORTED
    assert trace == [RejectionType.ABORTED]
    assert service.current is None


@pytest.mark.asyncio
async def test_cancel_while_awaiting_success_hooks_keeps_success(service):
    release = asyncio.Event()

    async def slow_success():
        await release.wait()

    service.on_success({}, slow_success)
    t = service.create("other", "parent", params={"id": 1})
    t.run()
    result = await t.prepromise

    t.task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await t.task

    assert result is service.registry.get("parent")
    assert await t.promise is result
    assert await t.redirects is result


@pytest.mark.asyncio
async def test_cancel_while_awaiting_error_hooks_keeps_failure(service, settle):
    release = asyncio.Event()

    async def slow_error():
        await release.wait()

    service.on({}, lambda: False)
    service.on_error({}, slow_error)
    t = service.create("other", "parent", params={"id": 1})
    t.run()
    _, error = await settle(t.prepromise)

    t.task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await t.task

    assert error.type == RejectionType.ABORTED
    assert error.detail == "Hook aborted transition"
    for deferred in (t.promise, t.redirects):
        _, other_error = await settle(deferred)
        assert other_error is error


@pytest.mark.asyncio
async def test_failing_criterion_fails_transition(service, settle):
    def broken(state):
        raise RuntimeError("criterion failed")

    errors = []
    service.on({"to": broken}, lambda: None)
    service.on_error({}, lambda error: errors.append(error))
    t = service.create("other", "parent", params={"id": 1})

    promise = t.run()
    _, error = await settle(promise)

    assert isinstance(error, RuntimeError)
    assert errors == [error]
    for deferred in (t.prepromise, t.redirects):
        _, other_error = await settle(deferred)
        assert other_error is error


@pytest.mark.asyncio
async def test_failing_settlement_criterion_is_swallowed(service, caplog):
    def broken(state):
        raise RuntimeError("criterion failed")

    service.on_success({"from": broken}, lambda: None)
    with caplog.at_level(logging.ERROR, logger="statetransit.core.transition"):
        result = await service.create("other", "parent", params={"id": 1}).run()

    assert result.name == "parent"
    assert "while matching on_success hooks" in caplog.text


@pytest.mark.asyncio
async def test_hook_resolvables_survive_root_reload(service, registry):
    seen = []
    service.on_start({}, lambda: {"extra": lambda: 42})
    service.exiting({}, lambda extra, state: seen.append(("exit", state.name, extra)))
    service.entering({}, lambda extra, state: seen.append(("enter", state.name, extra)))

    await service.create("other", "other", {"reload": registry.root}).run()

    assert seen == [
        ("exit", "other", 42),
        ("exit", "", 42),
        ("enter", "", 42),
        ("enter", "other", 42),
    ]
