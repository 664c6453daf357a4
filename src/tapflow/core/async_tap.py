# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Async taps: per-destination fetch orchestration with single-flight,
caching, deadlines and latest-only ordering.

One engine serves every variant (single or multi output, destination- or
home-scoped parameters, with or without local state); the variants differ
only in the injected ``TapStrategy``.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Iterable, Mapping
from functools import partial
from typing import TYPE_CHECKING, Any

import msgspec

from ..errors import (
    ConfigurationError,
    DeadlineExceeded,
    NotAttachedError,
    OperationCancelled,
    OperationError,
)
from ..ln.concurrency import CancelScope, CancelToken, Timer
from ..telemetry import get_telemetry, timed
from .cache import AsyncCache, LruTtlCache
from .destination import Destination, ParamBag
from .grip import Grip
from .options import AsyncTapOptions
from .pending import OperationStatus, PendingOperation, PendingTable
from .strategy import TapState, TapStrategy, Updates
from .tracker import DestinationState, DestinationStateTracker

if TYPE_CHECKING:
    from .host import Host

logger = logging.getLogger(__name__)


class AsyncTap:
    """Producer whose outputs come from an asynchronous operation.

    Features:
    - One in-flight operation per request key, shared by every destination
      resolving to that key (single-flight)
    - Results broadcast to all destinations currently matching the key
    - LRU/TTL result cache with stale-while-revalidate semantics
    - Per-request deadline and cooperative cancellation
    - Latest-only: the most recently started request of a destination wins
    - Bulk teardown through flat registries of handles and timers
    """

    def __init__(
        self,
        provides: Iterable[Grip[Any]],
        strategy: TapStrategy,
        *,
        options: AsyncTapOptions | None = None,
        destination_param_grips: Iterable[Grip[Any]] = (),
        home_param_grips: Iterable[Grip[Any]] = (),
        handle_grip: Grip[Any] | None = None,
        initial_state: Mapping[Grip[Any], Any] | Iterable[tuple[Grip[Any], Any]] | None = None,
        cache: AsyncCache[str, Any] | None = None,
        name: str | None = None,
    ) -> None:
        self.outputs: tuple[Grip[Any], ...] = tuple(provides)
        if not self.outputs:
            raise ConfigurationError("An async tap must provide at least one grip")
        self.handle_grip = handle_grip
        self.provides = self.outputs + ((handle_grip,) if handle_grip is not None else ())
        self.destination_param_grips = tuple(destination_param_grips)
        self.home_param_grips = tuple(home_param_grips)
        for grip in self.destination_param_grips + self.home_param_grips:
            if grip in self.provides:
                # A tap cannot consume what it produces
                raise ConfigurationError(
                    f"Parameter grip {grip.key} is also provided by this tap",
                    details={"grip": grip.key},
                )

        self.options = options or AsyncTapOptions()
        self.strategy = strategy
        self.name = name or "async:" + ",".join(g.name for g in self.outputs)
        self.state = TapState(initial_state, on_change=self._state_changed)

        self._cache: AsyncCache[str, Any] = (
            cache if cache is not None else LruTtlCache(self.options.cache_capacity)
        )
        self._tracker = DestinationStateTracker()
        self._pending = PendingTable()
        self._host: Host | None = None
        self._ever_connected = False

    # host

    @property
    def attached(self) -> bool:
        return self._host is not None

    @property
    def cache(self) -> AsyncCache[str, Any]:
        return self._cache

    def on_attach(self, host: Host) -> None:
        self._host = host
        logger.debug(f"Tap {self.name} attached")

    def on_detach(self) -> None:
        """Cancel every live operation and timer, then forget the host."""
        handles, timers = self._tracker.release_all(OperationCancelled("Tap detached"))
        self._tracker.clear()
        self._host = None
        logger.debug(f"Tap {self.name} detached: cancelled {handles} operations, {timers} timers")

    def on_connect(self, destination: Destination) -> None:
        if not self._ever_connected:
            self._ever_connected = True
            initial = self._initial_updates()
            if initial:
                self.publish(initial)
        self.kickoff(destination)

    def on_disconnect(self, destination: Destination) -> None:
        self._tracker.dispose(destination.id)

    def on_home_params_changed(self) -> None:
        self.produce()

    def on_destination_params_changed(self, destination: Destination) -> None:
        # Ignore partial parameter states
        host = self._host
        if host is None:
            return
        params = host.resolve_params(self, destination)
        if params is None or self.strategy.request_key(params, self.state) is None:
            return
        self.kickoff(destination)

    def produce(self, destination: Destination | None = None, *, force_refetch: bool = False) -> None:
        """Re-run the request lifecycle for one destination or for all of them."""
        if destination is not None:
            self.kickoff(destination, force_refetch)
            return
        host = self._host
        if host is None:
            return
        for dest in host.destinations(self):
            self.kickoff(dest, force_refetch)

    def publish(self, updates: Updates, destination: Destination | None = None) -> int:
        if self._host is None:
            raise NotAttachedError(f"Tap {self.name} is not attached to a host")
        return self._host.publish(self, updates, destination)

    # state

    def get_state(self, grip: Grip[Any]) -> Any:
        return self.state.get(grip)

    def set_state(self, grip: Grip[Any], value: Any) -> bool:
        return self.state.set(grip, value)

    def _state_changed(self, grip: Grip[Any]) -> None:
        logger.debug(f"Tap {self.name} state {grip.key} changed, re-producing")
        self.produce()

    # core flow

    def kickoff(self, destination: Destination, force_refetch: bool = False) -> None:
        """Drive one destination towards the value for its current parameters.

        Safe to call redundantly and for destinations that are already gone.
        """
        host = self._host
        if host is None:
            return

        params = host.resolve_params(self, destination)
        if params is None:
            state = self._tracker.get(destination.id)
            if state is not None:
                self._tracker.abort(state)
                state.current_key = None
            return

        state = self._tracker.get_or_create(destination.id)
        key = self.strategy.request_key(params, self.state)
        telemetry = get_telemetry()

        if key is None:
            self._tracker.abort(state)
            state.current_key = None
            state.retry_armed = False
            telemetry.counter("tap.reset", tap=self.name)
            self.publish(self._reset_updates(params), destination)
            return

        if state.current_key is not None and state.current_key != key:
            # New key supersedes the old request; published values stay visible
            logger.debug(f"Destination {destination.id!r} key {state.current_key!r} -> {key!r}")
            self._tracker.abort(state)

        if self.options.caching_enabled and not force_refetch:
            entry = self._cache.get(key)
            if entry is not None:
                telemetry.counter("tap.cache.hit", tap=self.name)
                self._broadcast(key, entry.value)
                return

        pending = self._pending.get(key)
        if pending is not None:
            if pending.token is state.cancel_handle:
                # Already waiting on its own request
                return
            state.retry_armed = True
            state.current_key = key
            pending.observe(destination.id, partial(self._pending_settled, destination, key))
            telemetry.counter("tap.fetch.deduped", tap=self.name)
            return

        self._start(destination, state, params, key)

    def _start(
        self, destination: Destination, state: DestinationState, params: ParamBag, key: str
    ) -> None:
        host = self._host
        state.sequence += 1
        seq = state.sequence
        self._tracker.abort(state)

        token = CancelToken()
        state.cancel_handle = token
        self._tracker.register_handle(token)
        state.current_key = key
        state.retry_armed = False

        timer = None
        deadline_s = self.options.deadline_s
        if deadline_s is not None:
            timer = Timer(deadline_s, partial(self._deadline_expired, token, key))
            state.deadline_timer = timer
            self._tracker.register_timer(timer)

        op = PendingOperation(key, token, destination.id)
        self._pending.add(op)
        get_telemetry().counter("tap.fetch.started", tap=self.name)
        logger.debug(f"Tap {self.name} starting fetch #{seq} for {destination.id!r} key {key!r}")

        if timer is not None:
            timer.start(host.spawn)
        host.spawn(self._run, state, op, params, seq, timer)

    async def _run(
        self,
        state: DestinationState,
        op: PendingOperation,
        params: ParamBag,
        seq: int,
        timer: Timer | None,
    ) -> None:
        token = op.token
        status = OperationStatus.FAILED
        try:
            with CancelScope() as scope:
                token.bind(scope)
                try:
                    with timed("tap.fetch.duration_s", tap=self.name):
                        result = await self.strategy.fetch(params, token, self.state)
                except Exception as e:
                    status = self._fail(op, e)
                else:
                    status = self._complete(state, op, seq, result)
        finally:
            if token.cancelled and status is OperationStatus.FAILED:
                status = OperationStatus.CANCELLED
            self._settle(state, op, timer, status)

    def _complete(
        self, state: DestinationState, op: PendingOperation, seq: int, result: Any
    ) -> OperationStatus:
        """Apply a successful fetch.

        Starting a request always cancels the destination's previous one, so a
        superseded result already stops at the token check. The sequence check
        under ``latest_only`` is a second guard; with ``latest_only=False``
        superseded results are still dropped.
        """
        telemetry = get_telemetry()
        if op.token.cancelled:
            return OperationStatus.CANCELLED
        if self.options.latest_only and state.sequence != seq:
            logger.debug(f"Discarding superseded result #{seq} for key {op.key!r}")
            telemetry.counter("tap.fetch.discarded", tap=self.name)
            return OperationStatus.DISCARDED

        if self.options.caching_enabled:
            self._cache.set(op.key, result, self.options.cache_ttl_ms)
        telemetry.counter("tap.fetch.succeeded", tap=self.name)
        self._broadcast(op.key, result)
        return OperationStatus.SUCCEEDED

    def _fail(self, op: PendingOperation, exc: Exception) -> OperationStatus:
        if op.token.cancelled:
            return OperationStatus.CANCELLED

        error = OperationError(
            f"Fetch for key {op.key!r} failed",
            details={"key": op.key, "origin": op.origin, "error_type": type(exc).__name__},
            cause=exc,
        )
        logger.warning(f"{error.message}: {exc}", extra={"error": error.to_dict(include_cause=True)})
        get_telemetry().counter("tap.fetch.failed", tap=self.name, error_type=type(exc).__name__)
        return OperationStatus.FAILED

    def _settle(
        self,
        state: DestinationState,
        op: PendingOperation,
        timer: Timer | None,
        status: OperationStatus,
    ) -> None:
        self._pending.remove(op)
        if timer is not None:
            timer.clear()
            self._tracker.discard_timer(timer)
            if state.deadline_timer is timer:
                state.deadline_timer = None
        self._tracker.discard_handle(op.token)
        if state.cancel_handle is op.token:
            state.cancel_handle = None
        if status is OperationStatus.CANCELLED:
            logger.debug(f"Fetch for key {op.key!r} cancelled: {op.token.reason!r}")
            get_telemetry().counter("tap.fetch.cancelled", tap=self.name)
        op.settle(status)

    def _pending_settled(self, destination: Destination, key: str) -> None:
        state = self._tracker.get(destination.id)
        if state is None or self._host is None:
            return
        if self.options.caching_enabled:
            entry = self._cache.get(key)
            if entry is not None:
                self._broadcast(key, entry.value)
                return
        if state.retry_armed and state.current_key == key and key not in self._pending:
            state.retry_armed = False
            get_telemetry().counter("tap.fetch.retried", tap=self.name)
            logger.debug(f"Retrying key {key!r} for destination {destination.id!r}")
            self.kickoff(destination, force_refetch=True)

    def _deadline_expired(self, token: CancelToken, key: str) -> None:
        logger.debug(f"Deadline of {self.options.deadline_ms}ms exceeded for key {key!r}")
        token.cancel(
            DeadlineExceeded(
                f"Fetch for key {key!r} exceeded {self.options.deadline_ms}ms",
                details={"key": key, "deadline_ms": self.options.deadline_ms},
            )
        )

    def _broadcast(self, key: str, result: Any) -> int:
        """Publish ``result`` to every connected destination resolving to ``key``."""
        host = self._host
        if host is None:
            return 0
        notified = 0
        for dest in host.destinations(self):
            params = host.resolve_params(self, dest)
            if params is None or self.strategy.request_key(params, self.state) != key:
                continue
            self._tracker.get_or_create(dest.id).current_key = key
            try:
                notified += host.publish(self, self._map_result(params, result), dest)
            except Exception as e:
                # One destination failing to map or deliver does not stop the others
                logger.error(
                    f"Publishing result for key {key!r} to {dest.id!r} failed: {e}",
                    exc_info=True,
                )
                get_telemetry().counter(
                    "tap.publish.failed", tap=self.name, error_type=type(e).__name__
                )
        return notified

    def _map_result(self, params: ParamBag, result: Any) -> dict[Grip[Any], Any]:
        updates = dict(self.strategy.map_result(params, result, self.state))
        if self.handle_grip is not None:
            updates[self.handle_grip] = self
        return updates

    def _reset_updates(self, params: ParamBag) -> dict[Grip[Any], Any]:
        if self.strategy.reset_updates is not None:
            return dict(self.strategy.reset_updates(params))
        return {grip: grip.default for grip in self.outputs}

    def _initial_updates(self) -> dict[Grip[Any], Any]:
        if self.handle_grip is not None:
            return {self.handle_grip: self}
        return {}

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "destinations": len(self._tracker),
            "pending": len(self._pending),
            "live_handles": len(self._tracker.live_handles),
            "live_timers": len(self._tracker.live_timers),
            "cache_size": len(self._cache),
            "attached": self.attached,
        }

    def __repr__(self) -> str:
        return f"<AsyncTap {self.name}>"


def _resolve_options(
    options: AsyncTapOptions | None, overrides: dict[str, Any]
) -> AsyncTapOptions:
    if options is None:
        return AsyncTapOptions(**overrides)
    if overrides:
        return msgspec.structs.replace(options, **overrides)
    return options


def create_async_value_tap(
    provides: Grip[Any],
    request_key: Callable[[ParamBag], str | None],
    fetcher: Callable[[ParamBag, CancelToken], Awaitable[Any]],
    *,
    destination_param_grips: Iterable[Grip[Any]] = (),
    home_param_grips: Iterable[Grip[Any]] = (),
    options: AsyncTapOptions | None = None,
    cache: AsyncCache[str, Any] | None = None,
    name: str | None = None,
    **option_overrides: Any,
) -> AsyncTap:
    """Create a tap publishing the fetched value directly to one output grip.

    Example:
        tap = create_async_value_tap(
            TEMPERATURE,
            request_key=lambda p: p[CITY] or None,
            fetcher=lambda p, token: weather_api.current(p[CITY]),
            destination_param_grips=[CITY],
            cache_ttl_ms=60_000,
        )
    """
    strategy = TapStrategy(
        request_key=lambda params, state: request_key(params),
        fetch=lambda params, token, state: fetcher(params, token),
        map_result=lambda params, result, state: {provides: result},
    )
    return AsyncTap(
        [provides],
        strategy,
        options=_resolve_options(options, option_overrides),
        destination_param_grips=destination_param_grips,
        home_param_grips=home_param_grips,
        cache=cache,
        name=name,
    )


def create_async_multi_tap(
    provides: Iterable[Grip[Any]],
    request_key: Callable[[ParamBag, TapState], str | None],
    fetcher: Callable[[ParamBag, CancelToken, TapState], Awaitable[Any]],
    map_result: Callable[[ParamBag, Any, TapState], Updates],
    *,
    reset_updates: Callable[[ParamBag], Updates] | None = None,
    handle_grip: Grip[Any] | None = None,
    initial_state: Mapping[Grip[Any], Any] | Iterable[tuple[Grip[Any], Any]] | None = None,
    destination_param_grips: Iterable[Grip[Any]] = (),
    home_param_grips: Iterable[Grip[Any]] = (),
    options: AsyncTapOptions | None = None,
    cache: AsyncCache[str, Any] | None = None,
    name: str | None = None,
    **option_overrides: Any,
) -> AsyncTap:
    """Create a tap mapping one fetched result onto several output grips.

    Local state seeded from ``initial_state`` is readable by all three
    callables; when ``handle_grip`` is given the tap itself is published on it
    so consumers can call ``get_state``/``set_state``.
    """
    strategy = TapStrategy(
        request_key=request_key,
        fetch=fetcher,
        map_result=map_result,
        reset_updates=reset_updates,
    )
    return AsyncTap(
        provides,
        strategy,
        options=_resolve_options(options, option_overrides),
        destination_param_grips=destination_param_grips,
        home_param_grips=home_param_grips,
        handle_grip=handle_grip,
        initial_state=initial_state,
        cache=cache,
        name=name,
    )
