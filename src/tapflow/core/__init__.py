# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Tapflow core exports."""

from .async_tap import AsyncTap, create_async_multi_tap, create_async_value_tap
from .cache import AsyncCache, CacheEntry, LruTtlCache
from .destination import Destination, ParamBag
from .drip import Drip
from .grip import Grip, GripRegistry
from .host import Host, TapHost
from .options import DEFAULT_CACHE_CAPACITY, AsyncTapOptions
from .pending import OperationStatus, PendingOperation, PendingTable
from .strategy import TapState, TapStrategy
from .tracker import DestinationState, DestinationStateTracker

__all__ = [
    # Taps
    "AsyncTap",
    "AsyncTapOptions",
    "DEFAULT_CACHE_CAPACITY",
    "TapStrategy",
    "TapState",
    "create_async_value_tap",
    "create_async_multi_tap",
    # Graph
    "Grip",
    "GripRegistry",
    "Drip",
    "Destination",
    "ParamBag",
    "Host",
    "TapHost",
    # Engine internals
    "AsyncCache",
    "CacheEntry",
    "LruTtlCache",
    "DestinationState",
    "DestinationStateTracker",
    "OperationStatus",
    "PendingOperation",
    "PendingTable",
]
