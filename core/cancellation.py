"""
Cancellation tokens for remote calls.

A token is handed to every data-service call. When the owner of the call goes
away (a store is closed, a cart is unmounted) it cancels its token and any result
that arrives afterwards is ignored instead of being applied to stale state.
"""

import logging
from typing import Callable, Optional

logger = logging.getLogger("cancellation")


class OperationCancelled(Exception):
    """Raised when work is attempted on behalf of a cancelled token."""


class CancellationToken:
    """
    One-shot cancellation flag with optional parent.

    A child token reports cancelled when either it or its parent was cancelled,
    so a per-call token can be derived from a component's scope token.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._cancelled = False
        self._parent = parent
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        if self._cancelled:
            return True
        return self._parent is not None and self._parent.cancelled

    def cancel(self) -> None:
        """Cancel the token. Calling it again is a no-op."""
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback raised: {e}")

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run `callback` when this token is cancelled (immediately if it already is)."""
        if self._cancelled:
            callback()
        else:
            self._callbacks.append(callback)

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled("operation was cancelled")

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"
