# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Observable holder for one published value at one destination."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Generic, TypeVar

T = TypeVar("T")
Unsubscribe = Callable[[], None]


class Drip(Generic[T]):
    """Current value of a grip at a destination, with change subscribers."""

    __slots__ = ("_value", "_subs")

    def __init__(self, initial: T | None = None) -> None:
        self._value = initial
        self._subs: list[Callable[[T | None], Any]] = []

    def get(self) -> T | None:
        return self._value

    def next(self, value: T | None) -> int:
        """Store ``value`` and notify subscribers; returns how many were notified.

        Unchanged values notify nobody.
        """
        if value is self._value or value == self._value:
            return 0
        self._value = value
        notified = 0
        for fn in list(self._subs):
            fn(value)
            notified += 1
        return notified

    def subscribe(self, fn: Callable[[T | None], Any]) -> Unsubscribe:
        self._subs.append(fn)

        def unsubscribe() -> None:
            if fn in self._subs:
                self._subs.remove(fn)

        return unsubscribe

    @property
    def has_subscribers(self) -> bool:
        return bool(self._subs)

    def __repr__(self) -> str:
        return f"Drip({self._value!r})"
