import pytest

from geohunt.engine.scheduler import VirtualScheduler


def test_repeating_timer_fires_on_interval():
    clock = VirtualScheduler(start_ms=1000)
    fired = []
    _ = clock.call_every(500, fired.append)

    clock.advance(2000)

    assert fired == [1500, 2000, 2500, 3000]
    assert clock.now_ms() == 3000


def test_same_instant_runs_in_scheduling_order():
    clock = VirtualScheduler()
    order = []
    _ = clock.call_every(1000, lambda _: order.append("poll"))
    _ = clock.call_at(1000, lambda _: order.append("once"))
    _ = clock.call_every(1000, lambda _: order.append("tick"))

    clock.advance(1000)

    assert order == ["poll", "once", "tick"]


def test_cancelled_timer_never_fires_again():
    clock = VirtualScheduler()
    fired = []
    handle = clock.call_every(100, fired.append)
    clock.advance(250)
    clock.cancel(handle)
    clock.advance(1000)

    assert fired == [100, 200]
    assert clock.pending == 0


def test_callback_can_cancel_itself():
    clock = VirtualScheduler()
    fired = []

    def _once_then_stop(now: int) -> None:
        fired.append(now)
        clock.cancel(handle)

    handle = clock.call_every(100, _once_then_stop)
    clock.advance(1000)

    assert fired == [100]


def test_call_at_in_the_past_runs_on_next_advance():
    clock = VirtualScheduler(start_ms=5000)
    fired = []
    _ = clock.call_at(10, fired.append)
    clock.advance(0)
    assert fired == [5000]


def test_invalid_use_raises():
    clock = VirtualScheduler(start_ms=100)
    with pytest.raises(ValueError, match="positive"):
        _ = clock.call_every(0, lambda _: None)
    with pytest.raises(ValueError, match="backwards"):
        clock.advance_to(50)
