# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Typed identifiers for tap outputs and parameters."""

from __future__ import annotations

from typing import Any, Generic, TypeVar

from ..errors import ExistsError

T = TypeVar("T")


class Grip(Generic[T]):
    """Identifier of one kind of value (an output or a parameter).

    Grips compare by identity; ``key`` ("scope:name") is for display and
    registry lookup.
    """

    __slots__ = ("scope", "name", "key", "default")

    def __init__(self, name: str, default: T | None = None, scope: str = "app") -> None:
        self.scope = scope
        self.name = name
        self.key = f"{scope}:{name}"
        self.default = default

    def __repr__(self) -> str:
        return f"Grip({self.key!r})"


class GripRegistry:
    """Registry guaranteeing one grip per ``scope:name`` key."""

    def __init__(self) -> None:
        self._grips: dict[str, Grip[Any]] = {}

    def define(self, name: str, default: T | None = None, scope: str = "app") -> Grip[T]:
        grip: Grip[T] = Grip(name, default, scope)
        if grip.key in self._grips:
            raise ExistsError(f"Grip already registered: {grip.key}", details={"key": grip.key})
        self._grips[grip.key] = grip
        return grip

    def get(self, scope: str, name: str) -> Grip[Any] | None:
        return self._grips.get(f"{scope}:{name}")

    def __contains__(self, key: str) -> bool:
        return key in self._grips

    def __len__(self) -> int:
        return len(self._grips)
