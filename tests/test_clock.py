import threading
import time

from nexcore.clock import CLICKS_PER_SECOND, Clock, ClockTime, clock_diff


def total(t):
    return t.seconds * 1000 + t.millis


def test_diff_without_borrow():
    start = ClockTime(2, 100)
    stop = ClockTime(5, 350)
    d = clock_diff(start, stop)
    assert total(d) == total(stop) - total(start)
    assert 0 <= d.millis < 1000


def test_diff_with_borrow():
    start = ClockTime(1, 900)
    stop = ClockTime(3, 100)
    d = clock_diff(start, stop)
    assert total(d) == total(stop) - total(start)
    assert 0 <= d.millis < 1000


def test_fresh_clock_reads_zero():
    assert Clock().read() == ClockTime(0, 0)


def test_half_second_of_ticks():
    clock = Clock()
    for _ in range(CLICKS_PER_SECOND // 2):
        clock.tick()
    assert clock.read() == ClockTime(0, 500)


def test_full_second_rolls_over():
    clock = Clock()
    for _ in range(CLICKS_PER_SECOND):
        clock.tick()
    assert clock.read() == ClockTime(1, 0)


def test_wait_returns_after_enough_ticks():
    clock = Clock()
    done = threading.Event()
    readings = {}

    def waiter():
        readings["start"] = clock.read()
        clock.wait(100)
        readings["end"] = clock.read()
        done.set()

    thread = threading.Thread(target=waiter)
    thread.start()
    ticks = 0
    while not done.is_set() and ticks < 1000:
        clock.tick()
        ticks += 1
        time.sleep(0.002)
    thread.join(timeout=2)
    assert done.is_set()
    elapsed = clock_diff(readings["start"], readings["end"])
    assert total(elapsed) >= 100