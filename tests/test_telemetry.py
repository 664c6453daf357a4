from tapflow.telemetry import get_telemetry, set_telemetry, timed


def test_noop_by_default():
    set_telemetry(None)
    telemetry = get_telemetry()
    telemetry.counter("x")
    telemetry.histogram("x", 1.0)
    with telemetry.span("x"):
        pass


def test_timed_records_histogram(telemetry):
    with timed("tap.fetch.duration_s", tap="weather"):
        pass
    (duration,) = telemetry.histograms["tap.fetch.duration_s"]
    assert duration >= 0


def test_set_telemetry_none_restores_noop(telemetry):
    assert get_telemetry() is telemetry
    set_telemetry(None)
    assert get_telemetry() is not telemetry
