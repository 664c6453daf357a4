# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Tapflow: async data taps with single-flight fetching, caching and
latest-only delivery to many destinations."""

from .core import *
from .core import __all__ as _core_all
from .errors import *
from .errors import __all__ as _errors_all
from .ln import CancelToken
from .telemetry import Telemetry, get_telemetry, set_telemetry

__version__ = "0.1.0"

__all__ = [
    *_core_all,
    *_errors_all,
    "CancelToken",
    "Telemetry",
    "get_telemetry",
    "set_telemetry",
]
