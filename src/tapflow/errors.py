# Copyright (c) 2025, HaiyangLi <quantocean.li at gmail dot com>
# SPDX-License-Identifier: Apache-2.0

"""Error hierarchy for tapflow.

Errors carry a behavioral classification (retryable or not), a machine-readable
code and structured details so they can be logged and counted uniformly.
Failures of caller-supplied operations never escape the orchestrator; these
types are raised at API boundaries (bad configuration, unknown destinations,
detached taps) and used as cancellation reasons.
"""

from __future__ import annotations

from typing import Any, ClassVar

__all__ = (
    "TapflowError",
    "NonRetryableError",
    "ConfigurationError",
    "NotFoundError",
    "ExistsError",
    "NotAttachedError",
    "OperationError",
    "OperationCancelled",
    "DeadlineExceeded",
)


class TapflowError(Exception):
    """Base for all tapflow errors.

    Provides:
    - Behavioral classification (retryable/non-retryable)
    - Machine-readable error codes
    - Structured details and context for logging
    """

    default_message: ClassVar[str] = "tapflow error"
    retryable: ClassVar[bool] = False
    code: ClassVar[str] = "tapflow_error"
    severity: ClassVar[str] = "error"

    def __init__(
        self,
        message: str | None = None,
        *,
        details: dict[str, Any] | None = None,
        context: dict[str, Any] | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message or self.default_message)
        if cause:
            self.__cause__ = cause
        self.message = message or self.default_message
        self.details = details or {}
        self.context = context or {}

    def to_dict(self, *, include_cause: bool = False) -> dict[str, Any]:
        """Serialize error to a structured dictionary for logging/monitoring."""
        data = {
            "error": self.__class__.__name__,
            "code": type(self).code,
            "message": self.message,
            "retryable": type(self).retryable,
            "severity": type(self).severity,
            **({"details": self.details} if self.details else {}),
            **({"context": self.context} if self.context else {}),
        }
        if include_cause and (cause := self.get_cause()):
            data["cause"] = repr(cause)
        return data

    def get_cause(self) -> BaseException | None:
        """Get the cause of this error, if any."""
        return self.__cause__

    @classmethod
    def from_value(
        cls,
        value: Any,
        *,
        expected: str | None = None,
        message: str | None = None,
        cause: BaseException | None = None,
        **extra: Any,
    ):
        """Create error from an offending value with optional expectation."""
        details = {
            "value": value,
            "type": type(value).__name__,
            **({"expected": expected} if expected else {}),
            **extra,
        }
        return cls(message=message, details=details, cause=cause)


class NonRetryableError(TapflowError):
    """Error that should not be retried (bad input, programming errors)."""

    code = "non_retryable_error"


class ConfigurationError(NonRetryableError):
    """Invalid tap or cache configuration."""

    default_message = "Invalid configuration"
    code = "invalid_configuration"


class NotFoundError(NonRetryableError):
    """Destination, grip or provider not found."""

    default_message = "Resource not found"
    code = "not_found"


class ExistsError(NonRetryableError):
    """Resource already registered."""

    default_message = "Resource already exists"
    code = "resource_exists"


class NotAttachedError(NonRetryableError):
    """Tap used while not attached to a host."""

    default_message = "Tap is not attached to a host"
    code = "not_attached"


class OperationError(TapflowError):
    """A caller-supplied operation failed.

    Never propagated by the orchestrator; used to describe swallowed failures
    in logs and telemetry.
    """

    default_message = "Operation failed"
    retryable = True
    severity = "warning"
    code = "operation_failed"


class OperationCancelled(TapflowError):
    """Operation was cancelled (superseded, disconnected or detached)."""

    default_message = "Operation cancelled"
    severity = "debug"
    code = "cancelled"


class DeadlineExceeded(OperationCancelled):
    """Operation cancelled because its deadline elapsed."""

    default_message = "Operation deadline exceeded"
    code = "deadline_exceeded"
