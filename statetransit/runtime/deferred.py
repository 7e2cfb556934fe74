# statetransit/runtime/deferred.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Generator, List, Optional

logger = logging.getLogger(__name__)


class Deferred:
    """
    Single-assignment awaitable result slot.

    A Deferred is settled exactly once, either resolved with a value or
    rejected with an exception. Later settlement attempts are logged and
    ignored. Awaiting a Deferred returns the value or raises the exception;
    any number of coroutines may await it, before or after it settles.
    """

    def __init__(self, name: str = "") -> None:
        """
        :param name: Label used in log messages.
        """
        self.name = name
        self._settled = False
        self._value: Any = None
        self._error: Optional[BaseException] = None
        self._waiters: List[asyncio.Future] = []
        self._callbacks: List[Callable[["Deferred"], Any]] = []

    def done(self) -> bool:
        """True once the deferred has been resolved or rejected."""
        return self._settled

    def rejected(self) -> bool:
        return self._settled and self._error is not None

    def resolve(self, value: Any = None) -> bool:
        """
        Settle with a value.

        :return: False if the deferred was already settled.
        """
        return self._settle(value, None)

    def reject(self, error: BaseException) -> bool:
        """
        Settle with an exception.

        :return: False if the deferred was already settled.
        """
        return self._settle(None, error)

    def result(self) -> Any:
        """
        The settled value.

        :raises asyncio.InvalidStateError: If not yet settled.
        :raises BaseException: The rejection error, if rejected.
        """
        if not self._settled:
            raise asyncio.InvalidStateError(f"Deferred '{self.name}' is not settled")
        if self._error is not None:
            raise self._error
        return self._value

    def exception(self) -> Optional[BaseException]:
        """
        The rejection error, or None if resolved.

        :raises asyncio.InvalidStateError: If not yet settled.
        """
        if not self._settled:
            raise asyncio.InvalidStateError(f"Deferred '{self.name}' is not settled")
        return self._error

    def add_done_callback(self, fn: Callable[["Deferred"], Any]) -> None:
        """
        Call ``fn(self)`` once settled; immediately if already settled.
        """
        if self._settled:
            self._run_callback(fn)
        else:
            self._callbacks.append(fn)

    def follow(self, other: "Deferred") -> None:
        """
        Settle this deferred the same way ``other`` settles.
        """

        def _copy(source: Deferred) -> None:
            self._settle(source._value, source._error)

        other.add_done_callback(_copy)

    def _settle(self, value: Any, error: Optional[BaseException]) -> bool:
        if self._settled:
            logger.warning(f"Deferred '{self.name}' is already settled; ignoring second settlement")
            return False
        self._settled = True
        self._value = value
        self._error = error
        logger.debug(f"Deferred '{self.name}' {'rejected' if error is not None else 'resolved'}")

        waiters, self._waiters = self._waiters, []
        for waiter in waiters:
            if waiter.done():
                continue
            if error is not None:
                waiter.set_exception(error)
            else:
                waiter.set_result(value)

        callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            self._run_callback(fn)
        return True

    def _run_callback(self, fn: Callable[["Deferred"], Any]) -> None:
        try:
            fn(self)
        except Exception:
            # Remaining callbacks still run, as with asyncio.Future
            logger.exception(f"Exception in done callback of deferred '{self.name}'")

    def __await__(self) -> Generator[Any, None, Any]:
        waiter = asyncio.get_running_loop().create_future()
        if self._settled:
            if self._error is not None:
                waiter.set_exception(self._error)
            else:
                waiter.set_result(self._value)
        else:
            self._waiters.append(waiter)
        return (yield from waiter.__await__())

    def __repr__(self) -> str:
        if not self._settled:
            status = "pending"
        elif self._error is not None:
            status = f"rejected {self._error!r}"
        else:
            status = f"resolved {self._value!r}"
        return f"Deferred({self.name!r}, {status})"
