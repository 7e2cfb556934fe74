# statetransit/core/step.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Optional

from statetransit.core.path import Path, PathElement
from statetransit.core.rejection import REJECT, Rejection
from statetransit.core.resolve import ResolveContext, ResolvePolicy

if TYPE_CHECKING:
    from statetransit.core.states import TargetState
    from statetransit.core.transition import Transition

logger = logging.getLogger(__name__)

CurrentFn = Callable[[], Optional["Transition"]]


class _GuardedStep:
    """
    Common currency guard for pipeline steps: a step of a transition that is
    no longer current settles as SUPERSEDED without doing anything.
    """

    def __init__(self, transition: "Transition", current: CurrentFn, reject_if_superseded: bool = True) -> None:
        self.transition = transition
        self.current = current
        self.reject_if_superseded = reject_if_superseded

    def is_superseded(self) -> bool:
        return self.current() is not self.transition

    def _superseded(self) -> Rejection:
        current = self.current()
        logger.debug(f"{self!r} superseded by {current!r}")
        return REJECT.superseded(current)

    async def invoke_step_async(self) -> Optional[Rejection]:
        raise NotImplementedError


class TransitionStep(_GuardedStep):
    """
    A single hook invocation within a transition.

    The outcome of a step is None to continue, or a Rejection. Faults raised
    by the hook propagate to the caller.
    """

    def __init__(
        self,
        element: PathElement,
        fn: Callable[..., Any],
        locals: Optional[Mapping[str, Any]],
        context: ResolveContext,
        transition: "Transition",
        current: CurrentFn,
        is_async: bool = True,
        reject_if_superseded: bool = True,
        event_type: str = "",
        to: Any = None,
        from_: Any = None,
        shared_element: Optional[PathElement] = None,
    ) -> None:
        """
        :param element: Path element whose scope the hook runs in.
        :param fn: The hook callback.
        :param locals: Values injectable into the hook besides resolvables.
        :param context: Resolve context the hook's dependencies come from.
        :param transition: The transition owning this step.
        :param current: Returns the service's current transition.
        :param is_async: Invoke through invoke_later rather than invoke_now.
        :param reject_if_superseded: Skip the hook if the transition is no longer current.
        :param event_type: Event type, for diagnostics.
        :param to: State (or target) the hook was matched against as ``to``.
        :param from_: State the hook was matched against as ``from``.
        :param shared_element: A second element that also receives resolvables
            returned by the hook, used when the root is re-entered.
        """
        super().__init__(transition, current, reject_if_superseded)
        self.element = element
        self.fn = fn
        self.locals: Dict[str, Any] = dict(locals or {})
        self.context = context
        self.is_async = is_async
        self.event_type = event_type
        self.to = to
        self.from_ = from_
        self.shared_element = shared_element

    @property
    def state(self):
        return self.element.state

    def invoke_step(self) -> Any:
        """
        Invoke the hook synchronously.

        :return: None, a Rejection, or an awaitable producing one of those
            when the hook returned something pending.
        """
        if self.reject_if_superseded and self.is_superseded():
            return self._superseded()
        result = self.element.invoke_now(self.fn, self.locals, self.context)
        return self._handle_result(result)

    async def invoke_step_async(self) -> Optional[Rejection]:
        """
        Invoke the hook and wait for its outcome.
        """
        if not self.is_async:
            outcome = self.invoke_step()
        elif self.reject_if_superseded and self.is_superseded():
            return self._superseded()
        else:
            result = await self.element.invoke_later(self.fn, self.locals, self.context)
            outcome = self._handle_result(result)
        while inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    def _handle_result(self, result: Any) -> Any:
        # Imported here to avoid a circular dependency
        from statetransit.core.transition import is_transition

        if self.reject_if_superseded and self.is_superseded():
            _close(result)
            return self._superseded()
        if result is False:
            logger.debug(f"{self!r} aborted the transition")
            return REJECT.aborted("Hook aborted transition")
        if is_transition(result):
            if result is self.transition:
                return None
            logger.debug(f"{self!r} redirected to {result!r}")
            return REJECT.redirected(result)
        if inspect.isawaitable(result):
            return self._settle_pending(result)
        if isinstance(result, Mapping):
            created = self.element.add_resolvables(result)
            if self.shared_element is not None:
                self.shared_element.resolvables.update((r.name, r) for r in created)
            return None
        return None

    async def _settle_pending(self, pending: Any) -> Any:
        return self._handle_result(await pending)

    def __repr__(self) -> str:
        return (
            f"Step( .{self.event_type}({{ from: {_name(self.from_)}, to: {_name(self.to)} }}) "
            f"(state: {_name(self.element.state)}) )"
        )


class EagerResolveStep(_GuardedStep):
    """
    Resolves every EAGER resolvable of the target path before any state is
    entered. An empty path resolves trivially.
    """

    def __init__(self, path: Path, context: ResolveContext, transition: "Transition", current: CurrentFn) -> None:
        super().__init__(transition, current)
        self.path = path
        self.context = context

    async def invoke_step_async(self) -> Optional[Rejection]:
        if self.reject_if_superseded and self.is_superseded():
            return self._superseded()
        if len(self.path):
            await self.path.resolve(self.context, ResolvePolicy.EAGER)
        return None

    def __repr__(self) -> str:
        return f"Step( .eager_resolve({self.path!r}) )"


class InvalidTargetStep(_GuardedStep):
    """
    Fails a transition whose target could not be resolved and that no
    ``on_invalid`` hook redirected.
    """

    def __init__(self, target: "TargetState", transition: "Transition", current: CurrentFn) -> None:
        super().__init__(transition, current)
        self.target = target

    async def invoke_step_async(self) -> Optional[Rejection]:
        if self.reject_if_superseded and self.is_superseded():
            return self._superseded()
        logger.debug(f"Invalid transition target {self.target!r}: {self.target.error()}")
        return REJECT.invalid(self.target)

    def __repr__(self) -> str:
        return f"Step( .invalid_target({self.target.name}) )"


def run_synchronous_hooks(steps: Iterable[TransitionStep], swallow_exceptions: bool = False) -> List[Any]:
    """
    Invoke steps synchronously, in order.

    Every step runs even if an earlier one produced a rejection. A fault
    raised by a step stops the run and propagates, unless
    ``swallow_exceptions`` is set, in which case it is logged and skipped.

    :return: The non-None outcomes: rejections and pending awaitables.
    """
    outcomes: List[Any] = []
    for step in steps:
        try:
            outcome = step.invoke_step()
        except Exception:
            if not swallow_exceptions:
                _close_all(outcomes)
                raise
            logger.exception(f"Swallowed exception during synchronous hook {step!r}")
            continue
        if outcome is not None:
            outcomes.append(outcome)
    return outcomes


async def settle_outcomes(outcomes: List[Any], swallow_exceptions: bool = False) -> Optional[Rejection]:
    """
    Await the pending outcomes of run_synchronous_hooks, in order.

    :return: The first rejection, or None. With ``swallow_exceptions`` all
        outcomes are awaited, faults are logged and None is returned.
    """
    for index, outcome in enumerate(outcomes):
        try:
            while inspect.isawaitable(outcome):
                outcome = await outcome
        except Exception:
            if not swallow_exceptions:
                _close_all(outcomes[index + 1 :])
                raise
            logger.exception("Swallowed exception from asynchronous hook result")
            continue
        if isinstance(outcome, Rejection) and not swallow_exceptions:
            _close_all(outcomes[index + 1 :])
            return outcome
    return None


def _close(value: Any) -> None:
    if inspect.iscoroutine(value):
        value.close()


def _close_all(values: Iterable[Any]) -> None:
    for value in values:
        _close(value)


def _name(state: Any) -> str:
    if state is None:
        return "None"
    name = getattr(state, "name", state)
    return repr(name)
