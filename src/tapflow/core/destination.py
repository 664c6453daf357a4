# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Destinations (subscriber contexts) and resolved parameter bags."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import TYPE_CHECKING, Any

from .drip import Drip
from .grip import Grip

if TYPE_CHECKING:
    from .host import TapHost

_MISSING = object()


class ParamBag(Mapping[Grip[Any], Any]):
    """Read-only snapshot of the parameters resolved for one destination."""

    __slots__ = ("_values", "destination")

    def __init__(self, values: Mapping[Grip[Any], Any], destination: Destination | None = None):
        self._values = dict(values)
        self.destination = destination

    def __getitem__(self, grip: Grip[Any]) -> Any:
        return self._values[grip]

    def __iter__(self) -> Iterator[Grip[Any]]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        inner = ", ".join(f"{g.key}={v!r}" for g, v in self._values.items())
        return f"ParamBag({inner})"


class Destination:
    """A subscriber context: the grips it wants plus its own parameter values.

    Destinations are created by the host on ``connect``; ``id`` is stable for
    the destination's lifetime and keys all per-destination tap state.
    """

    __slots__ = ("id", "_host", "_params", "_drips", "_grips")

    def __init__(self, dest_id: str, host: TapHost | None = None) -> None:
        self.id = dest_id
        self._host = host
        self._params: dict[Grip[Any], Any] = {}
        self._drips: dict[Grip[Any], Drip[Any]] = {}
        self._grips: set[Grip[Any]] = set()

    @property
    def grips(self) -> frozenset[Grip[Any]]:
        return frozenset(self._grips)

    @property
    def connected(self) -> bool:
        return bool(self._grips)

    def has_param(self, grip: Grip[Any]) -> bool:
        return grip in self._params

    def param(self, grip: Grip[Any], default: Any = _MISSING) -> Any:
        value = self._params.get(grip, _MISSING)
        if value is _MISSING:
            return grip.default if default is _MISSING else default
        return value

    def set_param(self, grip: Grip[Any], value: Any) -> None:
        """Set a destination-scoped parameter and notify the host if it changed."""
        if grip in self._params and self._params[grip] == value:
            return
        self._params[grip] = value
        if self._host is not None:
            self._host.destination_param_changed(self, grip)

    def drip(self, grip: Grip[Any]) -> Drip[Any]:
        drip = self._drips.get(grip)
        if drip is None:
            drip = self._drips[grip] = Drip(grip.default)
        return drip

    def get(self, grip: Grip[Any]) -> Any:
        """Current published value of ``grip`` at this destination."""
        return self.drip(grip).get()

    def _add_grip(self, grip: Grip[Any]) -> None:
        self._grips.add(grip)

    def _remove_grip(self, grip: Grip[Any]) -> None:
        self._grips.discard(grip)

    def __repr__(self) -> str:
        return f"Destination({self.id!r})"
