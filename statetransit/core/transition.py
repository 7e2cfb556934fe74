# statetransit/core/transition.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import json
import logging
import weakref
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple, Union

from statetransit.core.errors import StateNotFoundError, TransitionError
from statetransit.core.hooks import MatchCriterion
from statetransit.core.options import TransitionOptions
from statetransit.core.params import StateParams
from statetransit.core.path import Path, PathElement
from statetransit.core.rejection import REJECT, Rejection, RejectionType
from statetransit.core.resolve import ResolveContext
from statetransit.core.states import State, TargetState
from statetransit.core.step import (
    EagerResolveStep,
    InvalidTargetStep,
    TransitionStep,
    run_synchronous_hooks,
    settle_outcomes,
)
from statetransit.runtime.deferred import Deferred

if TYPE_CHECKING:
    from statetransit.core.step import _GuardedStep
    from statetransit.runtime.service import TransitionService

logger = logging.getLogger(__name__)

Failure = Union[Rejection, Exception]


@dataclass(frozen=True)
class TreeChanges:
    """
    Result of diffing the origin path against the target path.

    ``retained`` and ``exiting`` share their elements with ``from_path``;
    ``to_path`` is ``retained`` followed by ``entering``.
    """

    from_path: Path
    to_path: Path
    retained: Path
    exiting: Path
    entering: Path


class Transition:
    """
    One attempt to move from an origin state to a target state.

    A transition computes which states are retained, exited and entered,
    then runs the matching lifecycle hooks in order and settles three
    deferreds:

    - ``prepromise`` once the hook chain has succeeded or failed, before the
      success or error hooks run;
    - ``promise`` after the success or error hooks;
    - ``redirects`` like ``promise``, except that when the transition was
      redirected it follows the redirect transition instead.

    A successful transition resolves them with the target State. A failed
    one rejects them with the raised exception, or with a
    TransitionRejectedError wrapping the Rejection.
    """

    SUPERSEDED = RejectionType.SUPERSEDED
    ABORTED = RejectionType.ABORTED
    INVALID = RejectionType.INVALID
    IGNORED = RejectionType.IGNORED

    def __init__(
        self,
        from_: Union[str, State, TargetState],
        to: Union[str, State, TargetState],
        options: Optional[Union[TransitionOptions, Mapping[str, Any]]] = None,
        *,
        service: "TransitionService",
        previous: Optional["Transition"] = None,
    ) -> None:
        """
        :param from_: The origin, with its current parameter values.
        :param to: The requested target, with requested parameter values.
        :param options: Transition options.
        :param service: The service owning the current-transition pointer.
        :param previous: The transition this one was redirected from.
        :raises StateNotFoundError: If the origin or the reload state is not registered.
        """
        self._service = service
        self._options = TransitionOptions.build(options)

        self._origin = service.target(from_)
        if self._origin.state is None:
            raise StateNotFoundError(f"Transition origin '{self._origin.name}' is not a registered state")
        self._from_state: State = self._origin.state
        self._from_params = StateParams(self._origin.params)

        target = service.target(to)
        self._to_state: Optional[State] = target.state
        params = target.params
        if self._to_state is not None:
            if self._options.inherit:
                params = self._from_params.inherit(params, self._from_state, self._to_state)
            params = self._to_state.params.values(params)
        self._params = StateParams(params)
        self._target = target.with_params(self._params)

        self._reload_state = self._resolve_reload(self._options.reload)
        self._previous = weakref.ref(previous) if previous is not None else None
        self._tree_changes: Optional[TreeChanges] = None
        self._started = False
        self._task: Optional[asyncio.Task] = None
        self._root_element: Optional[PathElement] = None
        self._root_context: Optional[ResolveContext] = None

        self.prepromise = Deferred("prepromise")
        self.promise = Deferred("promise")
        self.redirects = Deferred("redirects")

    def _resolve_reload(self, reload: Union[bool, str, State]) -> Optional[State]:
        if reload is True:
            if self._to_state is None:
                return None
            path = self._to_state.path
            # Everything below the implicit root
            return path[min(1, len(path) - 1)]
        if reload is False or reload is None:
            return None
        return self._service.registry.get(reload)

    @property
    def options(self) -> TransitionOptions:
        return self._options

    @property
    def origin(self) -> TargetState:
        """The origin reference as passed in."""
        return self._origin

    @property
    def target(self) -> TargetState:
        """The target reference, carrying the resolved parameters."""
        return self._target

    @property
    def from_state(self) -> State:
        return self._from_state

    @property
    def to_state(self) -> Optional[State]:
        """The target state, or None if the target is invalid."""
        return self._to_state

    @property
    def params(self) -> StateParams:
        """Parameter values of the target."""
        return StateParams(self._params)

    @property
    def from_params(self) -> StateParams:
        """Parameter values of the origin."""
        return StateParams(self._from_params)

    @property
    def reload_state(self) -> Optional[State]:
        """The state from which re-entry is forced, if any."""
        return self._reload_state

    @property
    def previous(self) -> Optional["Transition"]:
        """The transition this one was redirected from, while it is still alive."""
        return self._previous() if self._previous is not None else None

    @property
    def started(self) -> bool:
        """True once run() has been called."""
        return self._started

    @property
    def task(self) -> Optional[asyncio.Task]:
        """The task running the asynchronous part of the pipeline."""
        return self._task

    def tree_changes(self) -> TreeChanges:
        """
        The retained, exiting and entering paths. Computed once.
        """
        if self._tree_changes is None:
            self._tree_changes = self._calculate_tree_changes()
        return self._tree_changes

    def _calculate_tree_changes(self) -> TreeChanges:
        from_states = self._from_state.path
        from_path = Path.from_states(from_states)

        keep = 0
        if self._to_state is not None:
            to_states = self._to_state.path
            while keep < len(to_states) and keep < len(from_states):
                state = to_states[keep]
                if state is not from_states[keep] or state is self._reload_state:
                    break
                if not state.params.non_dynamic().equals(self._params, self._from_params):
                    break
                keep += 1

        retained = from_path.slice(0, keep)
        exiting = from_path.slice(keep)
        entering = Path.from_states(self._to_state.path[keep:]) if self._to_state is not None else Path()
        changes = TreeChanges(from_path, retained.concat(entering), retained, exiting, entering)
        logger.debug(f"{self!r}: retained {retained!r}, exiting {exiting!r}, entering {entering!r}")
        return changes

    @property
    def to_path(self) -> Path:
        return self.tree_changes().to_path

    def entering(self) -> List[State]:
        """States to be entered, root first."""
        return self.tree_changes().entering.states()

    def exiting(self) -> List[State]:
        """States to be exited, deepest first."""
        return list(reversed(self.tree_changes().exiting.states()))

    def retained(self) -> List[State]:
        """States kept active, root first."""
        return self.tree_changes().retained.states()

    def ignored(self) -> bool:
        """
        True when the transition would change nothing: same state, equal
        non-dynamic parameters and no reload requested.
        """
        if self._reloading() or self._to_state is not self._from_state:
            return False
        return self._to_state.params.non_dynamic().equals(self._params, self._from_params)

    def _reloading(self) -> bool:
        reload = self._options.reload
        return reload is not False and reload is not None

    def is_active(self) -> bool:
        """True while this is the service's current transition."""
        return self._service.current is self

    def abort(self) -> None:
        """
        Stop the transition at its next step. Has no effect unless this is
        the current transition.
        """
        if self.is_active():
            logger.debug(f"Aborting {self!r}")
            self._service.current = None

    def redirect(
        self,
        new_target: Union[str, State, TargetState],
        options: Optional[Union[TransitionOptions, Mapping[str, Any]]] = None,
    ) -> "Transition":
        """
        Build a transition from the same origin to a different target.

        :param new_target: The new target reference.
        :param options: Options for the new transition; defaults to this one's.
        :return: ``self`` if the target is unchanged, otherwise a new, not yet
            started transition whose ``previous`` is this one.
        """
        target = self._service.target(new_target)
        if self._same_target(target.state, target.name, target.params):
            return self
        return Transition(
            self._origin,
            target,
            self._options if options is None else options,
            service=self._service,
            previous=self,
        )

    def matches(self, compare: Union["Transition", Mapping[str, Any]]) -> bool:
        """
        Compare with another transition or test against hook-style criteria.

        Two transitions match when they have the same target state, the same
        target parameters and the same origin state. A mapping with optional
        ``"to"`` and ``"from"`` keys matches like a hook's match criteria.
        """
        if is_transition(compare):
            return compare.from_state is self._from_state and self._same_target(
                compare.to_state, compare.target.name, compare.params
            )
        to = MatchCriterion.build(compare.get("to"))
        from_ = MatchCriterion.build(compare.get("from"))
        return to.matches(self._hook_to()) and from_.matches(self._from_state)

    def _same_target(self, state: Optional[State], name: str, params: Mapping[str, Any]) -> bool:
        if self._to_state is None or state is None:
            return self._to_state is None and state is None and name == self._target.name and dict(params) == dict(self._params)
        if state is not self._to_state:
            return False
        return state.params.equals(state.params.values(params), self._params)

    def run(self) -> Deferred:
        """
        Start the transition. Must be called from a running event loop.

        Synchronous ``on_before`` hooks run before this method returns; the
        rest of the pipeline runs in a task.

        :return: The ``promise`` deferred.
        :raises TransitionError: If the transition was already started.
        :raises RuntimeError: If no event loop is running.
        """
        loop = asyncio.get_running_loop()
        if self._started:
            raise TransitionError(f"{self!r} has already been run")
        self._started = True
        changes = self.tree_changes()

        if self.ignored():
            self._service.current = None
            error = REJECT.ignored().to_error()
            for deferred in (self.prepromise, self.promise, self.redirects):
                deferred.reject(error)
            logger.debug(f"{self!r} ignored")
            return self.promise

        self._service.current = self
        logger.debug(f"Running {self!r}")

        chain: List["_GuardedStep"] = []
        outcomes: List[Any] = []
        failure: Optional[Failure] = None
        try:
            # Matching calls user predicates
            before, chain = self._make_steps(changes)
            outcomes = run_synchronous_hooks(before)
        except Exception as exc:
            logger.debug(f"Preparing {self!r} raised {exc!r}")
            failure = exc

        self._task = loop.create_task(self._execute(outcomes, chain, failure))
        self._task.add_done_callback(self._task_done)
        return self.promise

    def _current(self) -> Optional["Transition"]:
        return self._service.current

    def _hook_to(self) -> Union[State, TargetState]:
        return self._to_state if self._to_state is not None else self._target

    def _hook_steps(
        self,
        event_type: str,
        to: Any,
        from_: Any,
        element: PathElement,
        locals: Dict[str, Any],
        context: ResolveContext,
        **options: Any,
    ) -> List[TransitionStep]:
        return [
            TransitionStep(
                element,
                hook.callback,
                locals,
                context,
                self,
                self._current,
                event_type=event_type,
                to=to,
                from_=from_,
                **options,
            )
            for hook in self._service.hooks.matching(event_type, to, from_)
        ]

    def _make_steps(self, changes: TreeChanges) -> Tuple[List[TransitionStep], List["_GuardedStep"]]:
        injector = self._service.injector
        root = changes.from_path[0]
        root_context = changes.from_path.resolve_context(root, injector)
        self._root_element, self._root_context = root, root_context
        # A re-entered root has a fresh element in the target path
        target_root = changes.to_path[0] if len(changes.to_path) else None
        shared = target_root if target_root is not None and target_root is not root else None

        to, from_ = self._hook_to(), self._from_state
        t_locals = {"transition": self}

        before = self._hook_steps("on_before", to, from_, root, t_locals, root_context, is_async=False, shared_element=shared)
        if self._target.valid():
            start: List["_GuardedStep"] = list(self._hook_steps("on_start", to, from_, root, t_locals, root_context, shared_element=shared))
        else:
            start = list(self._hook_steps("on_invalid", to, from_, root, t_locals, root_context, shared_element=shared))
            start.append(InvalidTargetStep(self._target, self, self._current))
        on = self._hook_steps("on", to, from_, root, t_locals, root_context, shared_element=shared)
        eager = EagerResolveStep(changes.to_path, changes.to_path.resolve_context(injector=injector), self, self._current)

        exiting: List[TransitionStep] = []
        for element in reversed(changes.exiting.elements):
            state = element.state
            locals = dict(t_locals, state=state, state_params=state.params.values(self._from_params))
            context = changes.from_path.resolve_context(element, injector)
            exiting.extend(self._hook_steps("exiting", to, state, element, locals, context))
            if state.on_exit is not None:
                exiting.append(
                    TransitionStep(element, state.on_exit, locals, context, self, self._current, event_type="on_exit", to=to, from_=state)
                )

        entering: List[TransitionStep] = []
        for element in changes.entering:
            state = element.state
            locals = dict(t_locals, state=state, state_params=state.params.values(self._params))
            context = changes.to_path.resolve_context(element, injector)
            entering.extend(self._hook_steps("entering", state, from_, element, locals, context))
            if state.on_enter is not None:
                entering.append(
                    TransitionStep(element, state.on_enter, locals, context, self, self._current, event_type="on_enter", to=state, from_=from_)
                )

        return before, start + on + [eager] + exiting + entering

    async def _execute(self, outcomes: List[Any], chain: List["_GuardedStep"], failure: Optional[Failure]) -> None:
        if failure is None:
            failure = await self._run_chain(outcomes, chain)
        if failure is None:
            await self._settle_success()
        else:
            await self._settle_failure(failure)

    def _task_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            self.abort()
            self._settle_cancelled()

    async def _run_chain(self, outcomes: List[Any], chain: List["_GuardedStep"]) -> Optional[Failure]:
        try:
            rejection = await settle_outcomes(outcomes)
            if rejection is not None:
                return rejection
            for step in chain:
                rejection = await step.invoke_step_async()
                if rejection is not None:
                    logger.debug(f"{step!r} rejected {self!r}: {rejection}")
                    return rejection
        except Exception as exc:
            logger.debug(f"{self!r} failed: {exc!r}")
            return exc
        return None

    def _settle_hooks(self, event_type: str, locals: Dict[str, Any]) -> List[Any]:
        try:
            steps = self._hook_steps(
                event_type,
                self._hook_to(),
                self._from_state,
                self._root_element,
                locals,
                self._root_context,
                is_async=False,
                reject_if_superseded=False,
            )
        except Exception:
            logger.exception(f"Swallowed exception while matching {event_type} hooks of {self!r}")
            return []
        return run_synchronous_hooks(steps, swallow_exceptions=True)

    async def _settle_success(self) -> None:
        result = self._to_state
        self.prepromise.resolve(result)
        outcomes = self._settle_hooks("on_success", {"transition": self})
        await settle_outcomes(outcomes, swallow_exceptions=True)
        self.promise.resolve(result)
        self.redirects.resolve(result)
        logger.debug(f"{self!r} succeeded")

    async def _settle_failure(self, failure: Failure) -> None:
        error = failure.to_error() if isinstance(failure, Rejection) else failure
        self.prepromise.reject(error)
        outcomes = self._settle_hooks("on_error", {"transition": self, "error": failure})
        await settle_outcomes(outcomes, swallow_exceptions=True)
        self.promise.reject(error)
        logger.debug(f"{self!r} failed: {failure}")

        redirect = failure.detail if isinstance(failure, Rejection) and failure.redirected else None
        if is_transition(redirect):
            self.redirects.follow(redirect.redirects)
            if not redirect.started:
                redirect.run()
        else:
            self.redirects.reject(error)

    def _settle_cancelled(self) -> None:
        if self.promise.done():
            return
        if self.prepromise.done():
            # Cancelled while awaiting success or error hooks; keep the outcome
            error = self.prepromise.exception()
            for deferred in (self.promise, self.redirects):
                if deferred.done():
                    continue
                if error is None:
                    deferred.resolve(self.prepromise.result())
                else:
                    deferred.reject(error)
            return
        rejection = REJECT.aborted("Transition task was cancelled")
        error = rejection.to_error()
        self.prepromise.reject(error)
        for outcome in self._settle_hooks("on_error", {"transition": self, "error": rejection}):
            if asyncio.iscoroutine(outcome):
                outcome.close()
        self.promise.reject(error)
        self.redirects.reject(error)

    def __repr__(self) -> str:
        valid = "" if self._target.valid() else "(X) "
        return (
            f"Transition( {self._from_state.name}{_to_json(self._from_params)} -> "
            f"{valid}{self._target.name}{_to_json(self._params)} )"
        )


def _to_json(params: Mapping[str, Any]) -> str:
    return json.dumps(dict(params), default=str)


def is_transition(value: Any) -> bool:
    """Return True if ``value`` is a Transition."""
    return isinstance(value, Transition)
