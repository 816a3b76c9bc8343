"""Revocable cancellation scopes for in-flight requests and timed waits.

A widget instance owns exactly one current scope. Sleep, wake, and dispose
cancel it and install a fresh one; work that captured the old scope observes
the revocation at its next await and unwinds without touching shared state.
"""

from __future__ import annotations

import asyncio
import weakref
from collections.abc import Awaitable
from contextlib import suppress
from typing import Any, TypeVar

from beefweb_widget.errors import RequestCancelled

T = TypeVar("T")


class CancellationScope:
    """Hierarchical cancellation token.

    Awaitables run through `run()` are torn down when the scope (or any
    ancestor) is cancelled and surface as `RequestCancelled` rather than
    `asyncio.CancelledError`, so callers can tell a revoked request apart
    from their own task being cancelled.
    """

    def __init__(
        self, *, name: str = "scope", parent: CancellationScope | None = None
    ) -> None:
        self.name = name
        self._cancelled = False
        self._waiters: set[asyncio.Future[None]] = set()
        self._children: weakref.WeakSet[CancellationScope] = weakref.WeakSet()
        if parent is not None:
            if parent.cancelled:
                self._cancelled = True
            else:
                parent._children.add(self)

    def __repr__(self) -> str:
        state = "cancelled" if self._cancelled else "active"
        return f"CancellationScope(name={self.name!r}, {state})"

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def child(self, name: str | None = None) -> CancellationScope:
        """Return a scope that is cancelled together with this one."""
        return CancellationScope(name=name or f"{self.name}/child", parent=self)

    def cancel(self) -> None:
        """Revoke the scope, waking every pending `run()`/`sleep()`."""
        if self._cancelled:
            return
        self._cancelled = True
        waiters = list(self._waiters)
        self._waiters.clear()
        for waiter in waiters:
            if not waiter.done():
                waiter.set_result(None)
        for child in list(self._children):
            child.cancel()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise RequestCancelled(f"{self.name} cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable` unless the scope is cancelled first."""
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise RequestCancelled(f"{self.name} cancelled")
        loop = asyncio.get_running_loop()
        task = asyncio.ensure_future(awaitable)
        waiter: asyncio.Future[None] = loop.create_future()
        self._waiters.add(waiter)
        try:
            pending: set[asyncio.Future[Any]] = {task, waiter}
            await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
        finally:
            self._waiters.discard(waiter)
            if not waiter.done():
                waiter.cancel()
            if not task.done():
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
        if self._cancelled:
            if not task.cancelled():
                # Retrieve the outcome so asyncio does not report it as unhandled.
                task.exception()
            raise RequestCancelled(f"{self.name} cancelled")
        return task.result()

    async def sleep(self, seconds: float) -> None:
        """Cancellable delay."""
        await self.run(asyncio.sleep(max(0.0, seconds)))
