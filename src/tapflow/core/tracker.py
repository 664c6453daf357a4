# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Per-destination request state plus flat registries for bulk release."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import OperationCancelled
from ..ln.concurrency import CancelToken, Timer

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class DestinationState:
    """Request lifecycle record for one destination of one tap."""

    dest_id: str
    cancel_handle: CancelToken | None = None
    sequence: int = 0
    current_key: str | None = None
    deadline_timer: Timer | None = None
    retry_armed: bool = False


class DestinationStateTracker:
    """Owns every ``DestinationState`` of a tap.

    Besides the per-destination table, every live cancel handle and deadline
    timer is kept in flat registries so that ``release_all`` can tear
    everything down without walking destinations (whose records may already
    be gone).
    """

    def __init__(self) -> None:
        self._states: dict[str, DestinationState] = {}
        self._handles: set[CancelToken] = set()
        self._timers: set[Timer] = set()

    def get(self, dest_id: str) -> DestinationState | None:
        return self._states.get(dest_id)

    def get_or_create(self, dest_id: str) -> DestinationState:
        state = self._states.get(dest_id)
        if state is None:
            state = self._states[dest_id] = DestinationState(dest_id)
        return state

    def abort(self, state: DestinationState, reason: BaseException | None = None) -> None:
        """Cancel the destination's in-flight operation and clear its timer."""
        token = state.cancel_handle
        if token is not None:
            state.cancel_handle = None
            token.cancel(reason or OperationCancelled("Superseded"))
            self._handles.discard(token)
        timer = state.deadline_timer
        if timer is not None:
            state.deadline_timer = None
            timer.clear()
            self._timers.discard(timer)

    def dispose(self, dest_id: str) -> bool:
        """Abort and forget a destination. Returns False if it had no record."""
        state = self._states.pop(dest_id, None)
        if state is None:
            return False
        self.abort(state, OperationCancelled("Destination disconnected"))
        logger.debug(f"Disposed state for destination {dest_id!r}")
        return True

    def clear(self) -> None:
        self._states.clear()

    # flat registries

    def register_handle(self, token: CancelToken) -> None:
        self._handles.add(token)

    def discard_handle(self, token: CancelToken) -> None:
        self._handles.discard(token)

    def register_timer(self, timer: Timer) -> None:
        self._timers.add(timer)

    def discard_timer(self, timer: Timer) -> None:
        self._timers.discard(timer)

    def release_all(self, reason: BaseException | None = None) -> tuple[int, int]:
        """Cancel every live handle and clear every live timer.

        Returns the number of handles and timers released.
        """
        handles, self._handles = self._handles, set()
        timers, self._timers = self._timers, set()
        reason = reason or OperationCancelled("Tap detached")
        for token in handles:
            token.cancel(reason)
        for timer in timers:
            timer.clear()
        logger.debug(f"Released {len(handles)} handles and {len(timers)} timers")
        return len(handles), len(timers)

    @property
    def live_handles(self) -> frozenset[CancelToken]:
        return frozenset(self._handles)

    @property
    def live_timers(self) -> frozenset[Timer]:
        return frozenset(self._timers)

    def __contains__(self, dest_id: str) -> bool:
        return dest_id in self._states

    def __len__(self) -> int:
        return len(self._states)
