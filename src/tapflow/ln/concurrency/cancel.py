"""Cancellation tokens bound to anyio cancel scopes."""

from __future__ import annotations

import logging
from collections.abc import Callable

import anyio

from ...errors import OperationCancelled

logger = logging.getLogger(__name__)

CancelScope = anyio.CancelScope


class CancelToken:
    """Cancellation handle handed to a caller-supplied operation.

    The token is a flag plus an observation channel: operations may poll
    ``cancelled``, await ``wait()``, call ``raise_if_cancelled()`` or register
    callbacks. Cancel scopes bound with ``bind`` are cancelled together with
    the token, interrupting the operation at its next checkpoint.
    """

    __slots__ = ("_cancelled", "_reason", "_scopes", "_callbacks", "_event")

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: BaseException | None = None
        self._scopes: list[CancelScope] = []
        self._callbacks: list[Callable[[BaseException], None]] = []
        self._event: anyio.Event | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> BaseException | None:
        return self._reason

    def cancel(self, reason: BaseException | None = None) -> bool:
        """Cancel the token. Returns False if it was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason if reason is not None else OperationCancelled()
        for scope in self._scopes:
            scope.cancel()
        self._scopes.clear()
        callbacks, self._callbacks = self._callbacks, []
        try:
            for callback in callbacks:
                self._run_callback(callback)
        finally:
            if self._event is not None:
                self._event.set()
        return True

    def _run_callback(self, callback: Callable[[BaseException], None]) -> None:
        try:
            callback(self._reason)
        except Exception as e:
            # Callback failures never reach whoever cancelled the token
            logger.error(f"Cancel callback {callback!r} failed: {e}", exc_info=True)

    def bind(self, scope: CancelScope) -> None:
        """Cancel ``scope`` whenever this token is cancelled."""
        if self._cancelled:
            scope.cancel()
            return
        self._scopes.append(scope)

    def add_callback(self, callback: Callable[[BaseException], None]) -> None:
        """Run ``callback(reason)`` on cancellation (immediately if already cancelled)."""
        if self._cancelled:
            self._run_callback(callback)
            return
        self._callbacks.append(callback)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise self._reason

    async def wait(self) -> BaseException:
        """Block until the token is cancelled and return the reason."""
        if not self._cancelled:
            if self._event is None:
                self._event = anyio.Event()
            await self._event.wait()
        return self._reason

    def __repr__(self) -> str:
        state = f"cancelled: {type(self._reason).__name__}" if self._cancelled else "active"
        return f"<CancelToken {state}>"
