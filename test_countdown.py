"""Countdown: remaining-time formula, resume, one-shot timeout and timer threads."""
import threading
from datetime import timedelta

import pytest

from conftest import T0, FakeClock
from src.countdown import CountdownController, RepeatingTimer, format_clock, remaining_seconds


def test_remaining_is_limit_minus_floored_elapsed():
    assert remaining_seconds(T0, 1800, T0 + timedelta(seconds=600.9)) == 1200
    assert remaining_seconds(T0, 1800, T0) == 1800
    assert remaining_seconds(T0, 1800, T0 + timedelta(hours=3)) == 0


def test_clock_before_start_does_not_add_time():
    assert remaining_seconds(T0, 60, T0 - timedelta(seconds=30)) == 60


def test_resume_uses_started_at_only():
    clock = FakeClock(T0 + timedelta(minutes=10))
    first = CountdownController(T0, 1800, on_timeout=lambda: None, clock=clock)
    assert first.tick() == 1200

    # page reloaded five minutes later: a fresh controller, same started_at
    clock.advance(300)
    reloaded = CountdownController(T0, 1800, on_timeout=lambda: None, clock=clock)
    assert reloaded.tick() == 900


def test_timeout_fires_once_from_load_and_live_paths():
    calls = []
    clock = FakeClock(T0 + timedelta(minutes=45))
    countdown = CountdownController(T0, 1800, on_timeout=lambda: calls.append(1), clock=clock)

    assert countdown.check_on_load() is True
    assert countdown.tick() == 0
    clock.advance(5)
    assert countdown.tick() == 0

    assert calls == [1]
    assert countdown.fired


def test_not_expired_on_load():
    calls = []
    clock = FakeClock(T0 + timedelta(seconds=10))
    countdown = CountdownController(T0, 60, on_timeout=lambda: calls.append(1), clock=clock)

    assert countdown.check_on_load() is False
    clock.advance(49)
    assert countdown.tick() == 1
    clock.advance(1)
    assert countdown.tick() == 0
    assert calls == [1]


def test_concurrent_ticks_fire_once():
    calls = []
    clock = FakeClock(T0 + timedelta(hours=1))
    countdown = CountdownController(T0, 60, on_timeout=lambda: calls.append(1), clock=clock)
    barrier = threading.Barrier(8)

    def tick():
        barrier.wait()
        countdown.tick()

    threads = [threading.Thread(target=tick) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert calls == [1]


def test_cancelled_countdown_never_fires():
    calls = []
    clock = FakeClock()
    countdown = CountdownController(T0, 60, on_timeout=lambda: calls.append(1), clock=clock)
    countdown.cancel()
    clock.advance(120)
    assert countdown.tick() == 0
    assert calls == []


def test_started_countdown_fires_from_its_thread():
    done = threading.Event()
    clock = FakeClock(T0 + timedelta(seconds=61))
    countdown = CountdownController(T0, 60, on_timeout=done.set, clock=clock)

    countdown.start(interval=0.01)
    try:
        assert done.wait(timeout=2)
    finally:
        countdown.cancel()


def test_repeating_timer_runs_until_cancelled():
    ticks = []
    enough = threading.Event()

    def fn():
        ticks.append(1)
        if len(ticks) >= 3:
            enough.set()

    timer = RepeatingTimer(0.01, fn, name="test-timer").start()
    assert enough.wait(timeout=2)
    timer.cancel()
    count = len(ticks)

    assert not timer.active
    assert len(ticks) == count


def test_repeating_timer_survives_callback_errors():
    ticks = []
    enough = threading.Event()

    def fn():
        ticks.append(1)
        if len(ticks) >= 2:
            enough.set()
        raise RuntimeError("boom")

    timer = RepeatingTimer(0.01, fn).start()
    try:
        assert enough.wait(timeout=2)
    finally:
        timer.cancel()


def test_timer_can_cancel_itself():
    stopped = threading.Event()
    holder = {}

    def fn():
        holder["timer"].cancel()
        stopped.set()

    holder["timer"] = RepeatingTimer(0.01, fn)
    holder["timer"].start()
    assert stopped.wait(timeout=2)
    holder["timer"]._thread.join(timeout=2)
    assert not holder["timer"].active


@pytest.mark.parametrize("seconds, expected", [
    (None, "--:--"),
    (0, "00:00"),
    (59, "00:59"),
    (65, "01:05"),
    (1800, "30:00"),
    (-4, "00:00"),
])
def test_format_clock(seconds, expected):
    assert format_clock(seconds) == expected
