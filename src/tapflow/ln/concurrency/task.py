"""Task group wrapper (thin facade over anyio.create_task_group)."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import anyio
import anyio.abc


class TaskGroup:
    """Minimal TaskGroup with stable surface."""

    __slots__ = ("_tg",)

    def __init__(self, tg: anyio.abc.TaskGroup) -> None:
        self._tg = tg

    def start_soon(
        self, func: Callable[..., Awaitable[Any]], *args: Any, name: str | None = None
    ) -> None:
        self._tg.start_soon(func, *args, name=name)

    def cancel(self) -> None:
        self._tg.cancel_scope.cancel()


@asynccontextmanager
async def create_task_group() -> AsyncIterator[TaskGroup]:
    async with anyio.create_task_group() as tg:
        yield TaskGroup(tg)
