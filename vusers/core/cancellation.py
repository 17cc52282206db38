"""Cooperative cancellation tokens for virtual users."""

from __future__ import annotations

import asyncio
from typing import Optional

from common.errors import CancellationSignal


class CancellationToken:
    """A stop signal checked at iteration boundaries and during pauses.

    Tokens form a tree: cancelling a token cancels all of its children, while
    cancelling a child leaves the parent untouched. The run holds the root and
    every virtual user gets a child, so one user can be retired on its own.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self._children: list[CancellationToken] = []
        self._parent = parent
        self.reason: Optional[str] = None

        if parent is not None:
            parent._children.append(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: Optional[str] = "cancelled") -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        for child in list(self._children):
            child.cancel(reason)

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def detach(self) -> None:
        """Drop this token from its parent once it is no longer needed."""
        if self._parent is not None:
            try:
                self._parent._children.remove(self)
            except ValueError:
                pass
            self._parent = None

    async def wait(self, timeout: Optional[float] = None) -> bool:
        """Sleep up to ``timeout`` seconds. Returns True if cancelled meanwhile."""
        if self.cancelled:
            return True
        if timeout is None:
            await self._event.wait()
            return True
        if timeout <= 0:
            return False
        try:
            await asyncio.wait_for(self._event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise CancellationSignal(self.reason or "cancelled")
