"""
Tests for the immediate-then-suppress debounce gate.
"""

import pytest

from govee_touch.debounce import DebounceGate, GateDecision


def test_first_call_fires_immediately():
    gate = DebounceGate(window=1.0)

    assert gate.allow("k", 10.0)
    assert gate.last_fire("k") == 10.0
    assert gate.due("k") is None


def test_call_within_window_is_coalesced_into_one_deferred_fire():
    gate = DebounceGate(window=1.0)

    assert gate.submit("k", 0.0, "first") is GateDecision.FIRE
    assert gate.submit("k", 0.2, "second") is GateDecision.DEFERRED

    # Due at last_fire + window, not 0.2 + window
    assert gate.due("k") == pytest.approx(1.0)

    pending = gate.release("k", 1.0)
    assert pending.payload == "second"
    assert gate.release("k", 1.0) is None


def test_last_call_wins():
    gate = DebounceGate(window=1.0)
    gate.submit("k", 0.0, "a")
    gate.submit("k", 0.1, "b")

    assert gate.submit("k", 0.5, "c") is GateDecision.COALESCED
    assert gate.submit("k", 0.9, "d") is GateDecision.COALESCED
    assert gate.due("k") == pytest.approx(1.0)
    assert gate.release("k", 1.0).payload == "d"


def test_deferred_fire_counts_as_last_fire():
    gate = DebounceGate(window=1.0)
    gate.submit("k", 0.0)
    gate.submit("k", 0.5)
    gate.release("k", 1.0)

    assert gate.last_fire("k") == 1.0
    assert gate.submit("k", 1.5) is GateDecision.DEFERRED
    assert gate.due("k") == pytest.approx(2.0)


def test_window_boundary_fires():
    gate = DebounceGate(window=1.0)
    gate.allow("k", 0.0)

    assert not gate.allow("k", 0.999)
    assert gate.allow("k", 1.0)
    # The immediate fire replaced the pending deferred one
    assert gate.due("k") is None


def test_keys_are_independent():
    gate = DebounceGate(window=1.0)

    assert gate.allow(4, 0.0)
    assert gate.allow(5, 0.1)
    assert not gate.allow(4, 0.2)
    assert gate.pending_keys() == [4]


def test_cancel_drops_pending_fire():
    gate = DebounceGate(window=1.0)
    gate.submit(1, 0.0)
    gate.submit(1, 0.3)
    gate.submit(2, 0.0)
    gate.submit(2, 0.3)

    assert gate.cancel(1)
    assert not gate.cancel(1)
    assert gate.cancel_all() == 1
    assert gate.release(2, 1.0) is None


def test_zero_window_never_suppresses():
    gate = DebounceGate(window=0)

    assert all(gate.allow("k", 0.0) for _ in range(3))


def test_negative_window_rejected():
    with pytest.raises(ValueError):
        DebounceGate(window=-1)
