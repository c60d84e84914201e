import random

import pytest

from constants import GATE_CLOSED, GATE_NO_FACE, GATE_OPEN, PEAK_FLOOR
from eye_gate import PeakTracker, ThresholdGate, compute_threshold


def test_peak_starts_at_seed():
    assert PeakTracker().peak == pytest.approx(0.3)


def test_new_maximum_replaces_peak():
    tracker = PeakTracker()
    assert tracker.update(0.35) == pytest.approx(0.35)


def test_peak_decays_without_new_maximum():
    tracker = PeakTracker()
    tracker.update(0.35)
    assert tracker.update(0.1) == pytest.approx(0.35 * 0.99)


def test_seed_below_floor_is_clamped():
    assert PeakTracker(seed=0.05).peak == pytest.approx(PEAK_FLOOR)


def test_reset_returns_to_seed():
    tracker = PeakTracker()
    tracker.update(0.5)
    tracker.reset()
    assert tracker.peak == pytest.approx(0.3)


def test_peak_never_below_floor_and_threshold_never_above_peak():
    rng = random.Random(1234)
    tracker = PeakTracker()
    for _ in range(2000):
        peak = tracker.update(rng.uniform(0.0, 0.5))
        assert peak >= PEAK_FLOOR
        assert compute_threshold(peak) <= peak


def test_decay_is_geometric_and_converges_to_floor():
    tracker = PeakTracker()
    tracker.update(0.4)
    previous = tracker.peak
    for _ in range(200):
        current = tracker.update(0.0)
        assert current <= previous
        assert current == pytest.approx(max(previous * 0.99, PEAK_FLOOR))
        previous = current
    assert previous == pytest.approx(PEAK_FLOOR)


def test_closing_eyes_after_calibration_closes_gate():
    gate = ThresholdGate()

    first = gate.evaluate(0.35)
    assert first.state == GATE_OPEN
    assert first.peak == pytest.approx(0.35)
    assert first.threshold == pytest.approx(0.21)

    second = gate.evaluate(0.15)
    assert second.state == GATE_CLOSED


def test_no_face_regardless_of_history():
    gate = ThresholdGate()
    gate.evaluate(0.4)
    gate.evaluate(0.05)
    peak_before = gate.tracker.peak

    reading = gate.no_face()

    assert reading.state == GATE_NO_FACE
    assert gate.state == GATE_NO_FACE
    assert reading.ear is None
    assert gate.tracker.peak == peak_before
