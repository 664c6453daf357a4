import anyio
import pytest

from tapflow.ln import Debouncer, Timer


@pytest.mark.anyio
async def test_timer_fires_once_after_delay(anyio_backend):
    calls = []
    async with anyio.create_task_group() as tg:
        timer = Timer(0.01, lambda: calls.append("fired")).start(tg.start_soon)
        assert timer.active
        await anyio.sleep(0.05)

    assert calls == ["fired"]
    assert timer.fired is True
    assert timer.active is False


@pytest.mark.anyio
async def test_cleared_timer_never_fires(anyio_backend):
    calls = []
    async with anyio.create_task_group() as tg:
        timer = Timer(0.02, lambda: calls.append("fired")).start(tg.start_soon)
        await anyio.sleep(0)
        timer.clear()
        await anyio.sleep(0.05)

    assert calls == []
    assert timer.fired is False
    assert timer.active is False


@pytest.mark.anyio
async def test_timer_cleared_before_start_returns_immediately(anyio_backend):
    calls = []
    timer = Timer(5, lambda: calls.append("fired"))
    timer.clear()
    with anyio.fail_after(1):
        await timer.run()
    assert calls == []


@pytest.mark.anyio
async def test_debouncer_runs_only_last_callback(anyio_backend):
    calls = []
    async with anyio.create_task_group() as tg:
        debounce = Debouncer(0.02, tg.start_soon)
        for i in range(3):
            debounce(lambda i=i: calls.append(i))
        assert debounce.pending
        await anyio.sleep(0.08)
        assert not debounce.pending

    assert calls == [2]


@pytest.mark.anyio
async def test_debouncer_without_delay_is_immediate(anyio_backend):
    calls = []
    async with anyio.create_task_group() as tg:
        debounce = Debouncer(0, tg.start_soon)
        debounce(lambda: calls.append("now"))
        assert calls == ["now"]
        assert not debounce.pending


@pytest.mark.anyio
async def test_debouncer_cancel_drops_pending_callback(anyio_backend):
    calls = []
    async with anyio.create_task_group() as tg:
        debounce = Debouncer(0.02, tg.start_soon)
        debounce(lambda: calls.append("late"))
        debounce.cancel()
        await anyio.sleep(0.05)

    assert calls == []
