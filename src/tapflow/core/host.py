# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Host graph interface and a minimal in-memory implementation.

The host decides which destinations a tap serves, resolves their parameters
and fans published values out to them. Taps only decide *what* to publish and
*to whom*.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable
from contextlib import AbstractAsyncContextManager
from functools import partial
from typing import TYPE_CHECKING, Any, Protocol

from ..errors import ExistsError, NotAttachedError, NotFoundError
from ..ln.concurrency import Debouncer, TaskGroup, create_task_group
from .destination import Destination, ParamBag
from .grip import Grip
from .strategy import Updates

if TYPE_CHECKING:
    from .async_tap import AsyncTap

logger = logging.getLogger(__name__)


class Host(Protocol):
    """What an async tap consumes from the graph it is attached to."""

    def resolve_params(self, tap: AsyncTap, destination: Destination) -> ParamBag | None:
        """Current parameters of ``destination`` for ``tap``; None if it is gone."""
        ...

    def destinations(self, tap: AsyncTap) -> list[Destination]:
        """Destinations currently connected to ``tap``."""
        ...

    def publish(
        self, tap: AsyncTap, updates: Updates, destination: Destination | None = None
    ) -> int:
        """Deliver ``updates`` to one or all destinations; returns notifications sent."""
        ...

    def spawn(self, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        """Run ``func(*args)`` in the background."""
        ...


class TapHost:
    """In-memory host: one home scope with shared params and many destinations.

    Must be entered as an async context manager; background work (fetches,
    deadline timers, debounced notifications) runs in its task group and is
    torn down on exit.

    Example:
        async with TapHost() as host:
            host.attach(weather_tap)
            panel = host.connect("panel-1", [TEMPERATURE])
            panel.set_param(CITY, "Oslo")
    """

    def __init__(self, *, name: str = "home") -> None:
        self.name = name
        self._taps: list[AsyncTap] = []
        self._providers: dict[Grip[Any], AsyncTap] = {}
        self._connections: dict[AsyncTap, dict[str, Destination]] = {}
        self._destinations: dict[str, Destination] = {}
        self._home_params: dict[Grip[Any], Any] = {}
        self._debouncers: dict[tuple[AsyncTap, str | None], Debouncer] = {}
        self._task_group: TaskGroup | None = None
        self._tg_cm: AbstractAsyncContextManager[TaskGroup] | None = None

    async def __aenter__(self) -> TapHost:
        self._tg_cm = create_task_group()
        self._task_group = await self._tg_cm.__aenter__()
        logger.debug(f"TapHost {self.name} started")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        tg_cm = self._tg_cm
        try:
            for tap in list(self._taps):
                self.detach(tap)
            for debouncer in self._debouncers.values():
                debouncer.cancel()
            self._debouncers.clear()
            if self._task_group is not None:
                self._task_group.cancel()
        finally:
            self._task_group = None
            self._tg_cm = None
            logger.debug(f"TapHost {self.name} stopped")
        return await tg_cm.__aexit__(exc_type, exc, tb)

    @property
    def running(self) -> bool:
        return self._task_group is not None

    def spawn(self, func: Callable[..., Awaitable[Any]], *args: Any) -> None:
        if self._task_group is None:
            raise NotAttachedError(f"TapHost {self.name} is not running")
        self._task_group.start_soon(func, *args)

    # taps

    @property
    def taps(self) -> tuple[AsyncTap, ...]:
        return tuple(self._taps)

    def attach(self, tap: AsyncTap) -> AsyncTap:
        for grip in tap.provides:
            if grip in self._providers:
                raise ExistsError(
                    f"Grip {grip.key} is already provided by {self._providers[grip].name}",
                    details={"grip": grip.key},
                )
        self._taps.append(tap)
        for grip in tap.provides:
            self._providers[grip] = tap
        self._connections[tap] = {}
        tap.on_attach(self)
        return tap

    def detach(self, tap: AsyncTap) -> None:
        if tap not in self._connections:
            raise NotFoundError(f"Tap {tap.name} is not attached to {self.name}")
        tap.on_detach()
        for key in [k for k in self._debouncers if k[0] is tap]:
            self._debouncers.pop(key).cancel()
        for dest in self._connections.pop(tap).values():
            for grip in tap.provides:
                dest._remove_grip(grip)
            if not dest.connected:
                self._destinations.pop(dest.id, None)
        for grip in tap.provides:
            self._providers.pop(grip, None)
        self._taps.remove(tap)

    def provider(self, grip: Grip[Any]) -> AsyncTap | None:
        return self._providers.get(grip)

    # destinations

    def destination(self, dest_id: str) -> Destination | None:
        return self._destinations.get(dest_id)

    def connect(self, dest_id: str, grips: Iterable[Grip[Any]]) -> Destination:
        """Subscribe ``dest_id`` to ``grips``, creating the destination if needed."""
        grips = list(grips)
        taps = []
        for grip in grips:
            tap = self._providers.get(grip)
            if tap is None:
                raise NotFoundError(f"No tap provides {grip.key}", details={"grip": grip.key})
            taps.append(tap)

        dest = self._destinations.get(dest_id)
        if dest is None:
            dest = self._destinations[dest_id] = Destination(dest_id, self)

        newly_connected: list[AsyncTap] = []
        for grip, tap in zip(grips, taps):
            dest._add_grip(grip)
            connected = self._connections[tap]
            if dest_id not in connected:
                connected[dest_id] = dest
                newly_connected.append(tap)

        for tap in newly_connected:
            logger.debug(f"Destination {dest_id!r} connected to {tap.name}")
            tap.on_connect(dest)
        return dest

    def disconnect(self, dest_id: str, grips: Iterable[Grip[Any]] | None = None) -> None:
        """Drop ``grips`` (default: all) from ``dest_id``; no-op for unknown ids."""
        dest = self._destinations.get(dest_id)
        if dest is None:
            return
        grips = list(dest.grips if grips is None else grips)

        affected: list[AsyncTap] = []
        for grip in grips:
            dest._remove_grip(grip)
            tap = self._providers.get(grip)
            if tap is not None and tap not in affected:
                affected.append(tap)

        remaining = dest.grips
        for tap in affected:
            if any(grip in remaining for grip in tap.provides):
                continue
            if self._connections[tap].pop(dest_id, None) is None:
                continue
            debouncer = self._debouncers.pop((tap, dest_id), None)
            if debouncer is not None:
                debouncer.cancel()
            logger.debug(f"Destination {dest_id!r} disconnected from {tap.name}")
            tap.on_disconnect(dest)

        if not dest.connected:
            del self._destinations[dest_id]

    # parameters

    def home_param(self, grip: Grip[Any]) -> Any:
        return self._home_params.get(grip, grip.default)

    def set_home_param(self, grip: Grip[Any], value: Any) -> None:
        """Set a shared parameter; taps reading it are notified if it changed."""
        if grip in self._home_params and self._home_params[grip] == value:
            return
        self._home_params[grip] = value
        for tap in list(self._taps):
            if grip in tap.home_param_grips:
                self._notify(tap, None, tap.on_home_params_changed)
            if grip in tap.destination_param_grips:
                # Destinations without their own value fall back to the home value
                for dest in list(self._connections.get(tap, {}).values()):
                    if not dest.has_param(grip):
                        self._notify(tap, dest.id, partial(tap.on_destination_params_changed, dest))

    def destination_param_changed(self, dest: Destination, grip: Grip[Any]) -> None:
        for tap in list(self._taps):
            if grip in tap.destination_param_grips and dest.id in self._connections.get(tap, {}):
                self._notify(tap, dest.id, partial(tap.on_destination_params_changed, dest))

    def _notify(self, tap: AsyncTap, scope: str | None, callback: Callable[[], Any]) -> None:
        delay = tap.options.debounce_s
        if delay <= 0:
            callback()
            return
        debouncer = self._debouncers.get((tap, scope))
        if debouncer is None:
            debouncer = self._debouncers[(tap, scope)] = Debouncer(delay, self.spawn)
        debouncer(callback)

    # Host protocol

    def resolve_params(self, tap: AsyncTap, destination: Destination) -> ParamBag | None:
        if self._connections.get(tap, {}).get(destination.id) is not destination:
            return None
        values: dict[Grip[Any], Any] = {}
        for grip in tap.home_param_grips:
            values[grip] = self.home_param(grip)
        for grip in tap.destination_param_grips:
            if destination.has_param(grip):
                values[grip] = destination.param(grip)
            else:
                values[grip] = self.home_param(grip)
        return ParamBag(values, destination)

    def destinations(self, tap: AsyncTap) -> list[Destination]:
        return list(self._connections.get(tap, {}).values())

    def publish(
        self, tap: AsyncTap, updates: Updates, destination: Destination | None = None
    ) -> int:
        connected = self._connections.get(tap)
        if connected is None:
            raise NotFoundError(f"Tap {tap.name} is not attached to {self.name}")
        if destination is not None:
            if connected.get(destination.id) is not destination:
                raise NotFoundError(
                    f"Destination {destination.id!r} is not connected to {tap.name}",
                    details={"destination": destination.id},
                )
            targets = [destination]
        else:
            targets = list(connected.values())

        notified = 0
        for dest in targets:
            subscribed = dest.grips
            for grip, value in updates.items():
                if grip in subscribed and grip in tap.provides:
                    notified += dest.drip(grip).next(value)
        return notified
