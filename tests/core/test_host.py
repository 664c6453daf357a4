import anyio
import pytest

from tapflow.core import Grip, TapHost, create_async_multi_tap, create_async_value_tap
from tapflow.errors import ExistsError, NotAttachedError, NotFoundError

CITY = Grip("city")
UNITS = Grip("units", default="metric")
TEMPERATURE = Grip("temperature")
HUMIDITY = Grip("humidity")


def weather_tap(calls, **overrides):
    async def fetch(params, token):
        calls.append(params[CITY])
        return f"{params[CITY]}/{params[UNITS]}"

    return create_async_value_tap(
        TEMPERATURE,
        request_key=lambda p: f"{p[CITY]}/{p[UNITS]}" if p[CITY] else None,
        fetcher=fetch,
        destination_param_grips=[CITY],
        home_param_grips=[UNITS],
        **overrides,
    )


def test_spawn_requires_running_host():
    async def noop():
        pass

    with pytest.raises(NotAttachedError):
        TapHost().spawn(noop)


@pytest.mark.anyio
async def test_attach_rejects_second_provider(anyio_backend):
    async with TapHost() as host:
        host.attach(weather_tap([]))
        with pytest.raises(ExistsError):
            host.attach(weather_tap([]))


@pytest.mark.anyio
async def test_connect_unknown_grip_creates_nothing(anyio_backend):
    async with TapHost() as host:
        host.attach(weather_tap([]))
        with pytest.raises(NotFoundError):
            host.connect("panel", [TEMPERATURE, HUMIDITY])
        assert host.destination("panel") is None


@pytest.mark.anyio
async def test_params_resolve_destination_then_home_then_default(anyio_backend):
    async with TapHost() as host:
        tap = host.attach(weather_tap([]))
        dest = host.connect("panel", [TEMPERATURE])

        params = host.resolve_params(tap, dest)
        assert params[CITY] is None
        assert params[UNITS] == "metric"
        assert params.destination is dest

        host.set_home_param(CITY, "Oslo")
        host.set_home_param(UNITS, "imperial")
        params = host.resolve_params(tap, dest)
        assert (params[CITY], params[UNITS]) == ("Oslo", "imperial")

        dest.set_param(CITY, "Rome")
        assert host.resolve_params(tap, dest)[CITY] == "Rome"


@pytest.mark.anyio
async def test_unconnected_destination_resolves_to_none(anyio_backend, settle):
    async with TapHost() as host:
        tap = host.attach(weather_tap([]))
        dest = host.connect("panel", [TEMPERATURE])
        host.disconnect("panel")
        assert host.resolve_params(tap, dest) is None
        assert host.destination("panel") is None
        with pytest.raises(NotFoundError):
            host.publish(tap, {TEMPERATURE: 1}, dest)


@pytest.mark.anyio
async def test_home_param_reaches_destinations_without_own_value(anyio_backend, settle):
    calls = []
    async with TapHost() as host:
        host.attach(weather_tap(calls))
        inherits = host.connect("inherits", [TEMPERATURE])
        pinned = host.connect("pinned", [TEMPERATURE])
        pinned.set_param(CITY, "Rome")
        await settle()

        host.set_home_param(CITY, "Oslo")
        await settle()

        assert inherits.get(TEMPERATURE) == "Oslo/metric"
        assert pinned.get(TEMPERATURE) == "Rome/metric"
        assert sorted(calls) == ["Oslo", "Rome"]


@pytest.mark.anyio
async def test_publish_counts_notified_subscribers(anyio_backend):
    async with TapHost() as host:
        tap = host.attach(weather_tap([]))
        a = host.connect("a", [TEMPERATURE])
        b = host.connect("b", [TEMPERATURE])
        seen = []
        a.drip(TEMPERATURE).subscribe(seen.append)
        b.drip(TEMPERATURE).subscribe(seen.append)

        assert host.publish(tap, {TEMPERATURE: 21}) == 2
        assert host.publish(tap, {TEMPERATURE: 21}) == 0
        assert host.publish(tap, {TEMPERATURE: 22}, a) == 1
        # Grips the tap does not provide are ignored
        assert host.publish(tap, {HUMIDITY: 50}) == 0
        assert seen == [21, 21, 22]


@pytest.mark.anyio
async def test_disconnect_notifies_tap_after_last_grip(anyio_backend, settle):
    async def fetch(params, token, state):
        return {"t": 20, "h": 40}

    tap = create_async_multi_tap(
        [TEMPERATURE, HUMIDITY],
        request_key=lambda p, s: p[CITY],
        fetcher=fetch,
        map_result=lambda p, r, s: {TEMPERATURE: r["t"], HUMIDITY: r["h"]},
        destination_param_grips=[CITY],
    )
    async with TapHost() as host:
        host.attach(tap)
        dest = host.connect("panel", [TEMPERATURE, HUMIDITY])
        dest.set_param(CITY, "Oslo")
        await settle()
        assert tap.stats["destinations"] == 1

        host.disconnect("panel", [HUMIDITY])
        assert host.destinations(tap) == [dest]
        assert tap.stats["destinations"] == 1

        host.disconnect("panel", [TEMPERATURE])
        assert host.destinations(tap) == []
        assert tap.stats["destinations"] == 0
        assert host.destination("panel") is None

        # Unknown ids are ignored
        host.disconnect("panel")


@pytest.mark.anyio
async def test_debounced_param_changes_coalesce(anyio_backend):
    calls = []
    async with TapHost() as host:
        host.attach(weather_tap(calls, debounce_ms=20))
        dest = host.connect("panel", [TEMPERATURE])
        for city in ("Oslo", "Rome", "Lima"):
            dest.set_param(CITY, city)
        await anyio.sleep(0)
        assert calls == []

        await anyio.sleep(0.1)
        assert calls == ["Lima"]
        assert dest.get(TEMPERATURE) == "Lima/metric"


@pytest.mark.anyio
async def test_exit_detaches_taps(anyio_backend):
    tap = weather_tap([])
    async with TapHost() as host:
        host.attach(tap)
        host.connect("panel", [TEMPERATURE])
        assert tap.attached

    assert not tap.attached
    assert host.taps == ()
    assert not host.running
