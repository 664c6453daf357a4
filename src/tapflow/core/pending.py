# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Single-flight registry of in-flight operations keyed by request key."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum

from ..errors import ExistsError
from ..ln.concurrency import CancelToken

logger = logging.getLogger(__name__)

Observer = Callable[[], None]


class OperationStatus(Enum):
    """Lifecycle of a pending operation."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DISCARDED = "discarded"


class PendingOperation:
    """The one in-flight operation for a request key.

    Destinations that piggy-back on it register an observer; observers run
    once, synchronously, when the operation settles.
    """

    __slots__ = ("key", "token", "origin", "status", "_observers")

    def __init__(self, key: str, token: CancelToken, origin: str) -> None:
        self.key = key
        self.token = token
        self.origin = origin
        self.status = OperationStatus.RUNNING
        self._observers: dict[str, Observer] = {}

    @property
    def settled(self) -> bool:
        return self.status is not OperationStatus.RUNNING

    @property
    def observers(self) -> tuple[str, ...]:
        return tuple(self._observers)

    def observe(self, dest_id: str, observer: Observer) -> None:
        """Attach ``observer`` for ``dest_id`` (replacing a previous one)."""
        self._observers[dest_id] = observer

    def settle(self, status: OperationStatus) -> None:
        if self.settled:
            return
        self.status = status
        observers, self._observers = self._observers, {}
        for dest_id, observer in observers.items():
            try:
                observer()
            except Exception as e:
                # Isolate observer failures from each other
                logger.error(
                    f"Settlement observer for {dest_id!r} on key {self.key!r} failed: {e}",
                    exc_info=True,
                )

    def __repr__(self) -> str:
        return f"<PendingOperation {self.key!r} {self.status.value} origin={self.origin!r}>"


class PendingTable:
    """Map from request key to its single in-flight operation."""

    def __init__(self) -> None:
        self._ops: dict[str, PendingOperation] = {}

    def get(self, key: str) -> PendingOperation | None:
        return self._ops.get(key)

    def add(self, op: PendingOperation) -> None:
        current = self._ops.get(op.key)
        if current is not None and current is not op:
            raise ExistsError(
                f"Operation already in flight for key {op.key!r}",
                details={"key": op.key, "origin": current.origin},
            )
        self._ops[op.key] = op

    def remove(self, op: PendingOperation) -> bool:
        """Remove ``op`` if it is still the registered operation for its key."""
        if self._ops.get(op.key) is op:
            del self._ops[op.key]
            return True
        return False

    def __contains__(self, key: str) -> bool:
        return key in self._ops

    def __len__(self) -> int:
        return len(self._ops)
