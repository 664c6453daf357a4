import pytest

from tapflow.errors import (
    ConfigurationError,
    DeadlineExceeded,
    NonRetryableError,
    OperationCancelled,
    OperationError,
    TapflowError,
)


def test_hierarchy_classification():
    assert issubclass(ConfigurationError, NonRetryableError)
    assert not ConfigurationError.retryable
    assert OperationError.retryable
    assert issubclass(DeadlineExceeded, OperationCancelled)
    assert issubclass(OperationCancelled, TapflowError)


def test_default_message_and_code():
    err = DeadlineExceeded()
    assert err.message == "Operation deadline exceeded"
    assert str(err) == err.message
    assert err.to_dict() == {
        "error": "DeadlineExceeded",
        "code": "deadline_exceeded",
        "message": "Operation deadline exceeded",
        "retryable": False,
        "severity": "debug",
    }


def test_to_dict_with_details_and_cause():
    cause = ValueError("bad")
    err = OperationError("Fetch failed", details={"key": "k"}, cause=cause)
    assert err.get_cause() is cause
    data = err.to_dict(include_cause=True)
    assert data["details"] == {"key": "k"}
    assert data["cause"] == repr(cause)
    assert data["severity"] == "warning"


def test_from_value():
    err = ConfigurationError.from_value(-1, expected=">= 0", field="deadline_ms")
    assert err.details == {"value": -1, "type": "int", "expected": ">= 0", "field": "deadline_ms"}
    with pytest.raises(TapflowError):
        raise err
