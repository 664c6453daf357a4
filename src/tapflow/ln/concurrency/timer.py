"""One-shot timers and debouncing on top of a task group."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import anyio

from .cancel import CancelScope

Spawn = Callable[..., None]


class Timer:
    """Run ``callback`` once after ``delay`` seconds unless cleared first.

    The timer does nothing until its ``run`` coroutine is started on a task
    group; ``clear`` is safe before, during and after that.
    """

    __slots__ = ("delay", "callback", "_scope", "_cleared", "_fired")

    def __init__(self, delay: float, callback: Callable[[], Any]) -> None:
        self.delay = delay
        self.callback = callback
        self._scope: CancelScope | None = None
        self._cleared = False
        self._fired = False

    @property
    def active(self) -> bool:
        return not (self._cleared or self._fired)

    @property
    def fired(self) -> bool:
        return self._fired

    def clear(self) -> None:
        self._cleared = True
        if self._scope is not None:
            self._scope.cancel()

    def start(self, spawn: Spawn) -> Timer:
        spawn(self.run)
        return self

    async def run(self) -> None:
        if self._cleared:
            return
        with CancelScope() as scope:
            self._scope = scope
            await anyio.sleep(self.delay)
            if self._cleared:
                return
            self._fired = True
        self._scope = None
        if self._fired:
            self.callback()


class Debouncer:
    """Coalesce rapid submissions: only the last callback in a window runs.

    With ``delay <= 0`` callbacks run immediately.
    """

    __slots__ = ("delay", "_spawn", "_timer")

    def __init__(self, delay: float, spawn: Spawn) -> None:
        self.delay = delay
        self._spawn = spawn
        self._timer: Timer | None = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and self._timer.active

    def __call__(self, callback: Callable[[], Any]) -> None:
        if self.delay <= 0:
            callback()
            return
        self.cancel()
        self._timer = Timer(self.delay, callback).start(self._spawn)

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.clear()
            self._timer = None
