# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Immutable per-tap configuration."""

from __future__ import annotations

import msgspec

from ..errors import ConfigurationError

DEFAULT_CACHE_CAPACITY = 200


class AsyncTapOptions(msgspec.Struct, kw_only=True, frozen=True):
    """Async tap policy configuration using msgspec.

    All durations are in milliseconds. ``cache_ttl_ms == 0`` disables caching
    and ``deadline_ms == 0`` disables the per-request timeout. ``debounce_ms``
    is honoured by the host when coalescing parameter changes; the tap itself
    never delays a kickoff. Superseded results are always dropped because a new
    request cancels the previous one; ``latest_only`` adds a sequence check on
    top of that.
    """

    cache_ttl_ms: int = 0
    deadline_ms: int = 0
    latest_only: bool = True
    debounce_ms: int = 0
    cache_capacity: int = DEFAULT_CACHE_CAPACITY

    def __post_init__(self) -> None:
        for name in ("cache_ttl_ms", "deadline_ms", "debounce_ms"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigurationError.from_value(
                    value, expected=">= 0", message=f"{name} must be >= 0", field=name
                )
        if self.cache_capacity < 1:
            raise ConfigurationError.from_value(
                self.cache_capacity,
                expected=">= 1",
                message="cache_capacity must be >= 1",
                field="cache_capacity",
            )

    @property
    def caching_enabled(self) -> bool:
        return self.cache_ttl_ms > 0

    @property
    def deadline_s(self) -> float | None:
        return self.deadline_ms / 1000 if self.deadline_ms > 0 else None

    @property
    def debounce_s(self) -> float:
        return self.debounce_ms / 1000

    def to_dict(self) -> dict[str, int | bool]:
        return msgspec.structs.asdict(self)
