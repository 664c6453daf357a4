# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Strategy objects injected into the async tap engine."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .grip import Grip

if TYPE_CHECKING:
    from ..ln.concurrency import CancelToken
    from .destination import ParamBag

Updates = Mapping[Grip[Any], Any]
RequestKeyFn = Callable[["ParamBag", "TapState"], "str | None"]
FetchFn = Callable[["ParamBag", "CancelToken", "TapState"], Awaitable[Any]]
MapResultFn = Callable[["ParamBag", Any, "TapState"], Updates]
ResetFn = Callable[["ParamBag"], Updates]


class TapState:
    """Local key/value state scoped to one tap instance.

    Writing a value that differs from the stored one calls ``on_change``;
    writing an equal value does nothing.
    """

    __slots__ = ("_values", "_on_change")

    def __init__(
        self,
        initial: Mapping[Grip[Any], Any] | Iterable[tuple[Grip[Any], Any]] | None = None,
        on_change: Callable[[Grip[Any]], None] | None = None,
    ) -> None:
        self._values: dict[Grip[Any], Any] = dict(initial or {})
        self._on_change = on_change

    def get(self, grip: Grip[Any], default: Any = None) -> Any:
        return self._values.get(grip, default)

    def set(self, grip: Grip[Any], value: Any) -> bool:
        """Store ``value``; returns True if it changed."""
        prev = self._values.get(grip)
        if prev is value or prev == value:
            return False
        self._values[grip] = value
        if self._on_change is not None:
            self._on_change(grip)
        return True

    def __contains__(self, grip: Grip[Any]) -> bool:
        return grip in self._values


@dataclass(slots=True)
class TapStrategy:
    """What an async tap fetches and how results become output updates.

    ``request_key`` returns None when parameters are insufficient; the tap then
    publishes ``reset_updates`` (by default every output back to its grip
    default) instead of fetching.
    """

    request_key: RequestKeyFn
    fetch: FetchFn
    map_result: MapResultFn
    reset_updates: ResetFn | None = None
