import threading

import pytest

from hostforge.config import Config
from hostforge.modules.provision import WaitPolicy, WaitTimeoutError, wait_for


def counting_probe(succeed_on):
    calls = []

    def probe():
        calls.append(1)
        return len(calls) >= succeed_on
    return probe, calls


def test_returns_number_of_attempts():
    probe, calls = counting_probe(3)
    sleeps = []
    attempts = wait_for(probe, WaitPolicy(interval=0.5, max_attempts=5), sleep=sleeps.append)
    assert attempts == 3
    assert len(calls) == 3
    assert sleeps == [0.5, 0.5]


def test_exhausted_attempts_raise():
    probe, calls = counting_probe(100)
    with pytest.raises(WaitTimeoutError) as exc:
        wait_for(probe, WaitPolicy(interval=0, max_attempts=4), description="the thing")
    assert exc.value.attempts == 4
    assert exc.value.cancelled is False
    assert "the thing" in str(exc.value)
    assert len(calls) == 4


def test_timeout_bounds_the_wait():
    probe, calls = counting_probe(100)
    with pytest.raises(WaitTimeoutError) as exc:
        wait_for(probe, WaitPolicy(interval=0, max_attempts=50, timeout=0))
    assert exc.value.attempts == 1


def test_cancel_event_stops_between_calls():
    event = threading.Event()

    def probe():
        event.set()
        return False

    with pytest.raises(WaitTimeoutError) as exc:
        wait_for(probe, WaitPolicy(interval=0, max_attempts=10), cancel_event=event)
    assert exc.value.cancelled is True
    assert exc.value.attempts == 1
    assert "cancelled" in str(exc.value)


def test_probe_exceptions_propagate_unchanged():
    def probe():
        raise KeyError("boom")

    with pytest.raises(KeyError):
        wait_for(probe, WaitPolicy(interval=0, max_attempts=10))


def test_lock_default_is_bounded_by_time(monkeypatch):
    monkeypatch.setattr(Config, 'LOCK_WAIT_INTERVAL', 5.0)
    monkeypatch.setattr(Config, 'LOCK_WAIT_TIMEOUT', 600)
    policy = WaitPolicy.lock_default()
    assert policy.interval == 5.0
    assert policy.timeout == 600
    assert policy.max_attempts == 121


def test_default_policy_reads_config(monkeypatch):
    monkeypatch.setattr(Config, 'WAIT_INTERVAL', 1.5)
    monkeypatch.setattr(Config, 'WAIT_MAX_ATTEMPTS', 7)
    assert WaitPolicy.default() == WaitPolicy(interval=1.5, max_attempts=7)
