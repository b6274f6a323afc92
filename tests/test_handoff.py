"""Tests for handoff.py — unbuffered rendezvous semantics."""

import threading
import time

from handoff import Handoff
from conftest import run_in_thread


def test_put_blocks_until_taken():
    h = Handoff()
    result = []
    producer = run_in_thread(lambda: result.append(h.put("frame")))

    time.sleep(0.1)
    assert result == []

    assert h.take(timeout=1.0) == "frame"
    producer.join(timeout=1.0)
    assert result == [True]


def test_put_timeout_retracts_item():
    h = Handoff()

    assert h.put("stale", timeout=0.05) is False
    assert h.poll() is None


def test_poll_empty_returns_none():
    assert Handoff().poll() is None


def test_take_timeout_returns_none():
    started = time.monotonic()
    assert Handoff().take(timeout=0.05) is None
    assert time.monotonic() - started >= 0.04


def test_close_releases_blocked_producer():
    h = Handoff()
    result = []
    producer = run_in_thread(lambda: result.append(h.put("frame")))
    time.sleep(0.05)

    h.close()
    producer.join(timeout=1.0)

    assert result == [False]
    assert h.closed
    assert h.put("late") is False


def test_close_releases_blocked_consumer():
    h = Handoff()
    result = []
    consumer = run_in_thread(lambda: result.append(h.take()))
    time.sleep(0.05)

    h.close()
    consumer.join(timeout=1.0)

    assert result == [None]


def test_items_arrive_in_order_from_one_producer():
    h = Handoff()
    items = list(range(20))
    producer = run_in_thread(lambda: [h.put(i) for i in items])

    received = [h.take(timeout=1.0) for _ in items]
    producer.join(timeout=1.0)

    assert received == items


def test_only_one_item_in_flight():
    h = Handoff()
    done = threading.Event()
    run_in_thread(lambda: h.put("a"))
    run_in_thread(lambda: (h.put("b"), done.set()))
    time.sleep(0.05)

    first = h.take(timeout=1.0)
    second = h.take(timeout=1.0)

    assert {first, second} == {"a", "b"}
    assert done.wait(1.0)
