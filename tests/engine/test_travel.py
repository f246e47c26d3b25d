import pytest

from geohunt.core.state import PositionSample
from geohunt.engine.travel import TravelMonitor
from tests.test_utils import at


def test_walking_pace_is_fine():
    monitor = TravelMonitor("alpha")
    assert monitor.observe(PositionSample(0, at())) is None
    assert monitor.observe(PositionSample(10_000, at(20))) is None


def test_teleport_is_flagged():
    monitor = TravelMonitor("alpha", max_speed_mps=2.5)
    _ = monitor.observe(PositionSample(0, at()))

    event = monitor.observe(PositionSample(10_000, at(500)))

    assert event is not None
    assert event.speed_mps == pytest.approx(50, rel=1e-3)
    assert event.elapsed_ms == 10_000


def test_lost_fix_and_zero_elapsed_are_ignored():
    monitor = TravelMonitor("alpha")
    _ = monitor.observe(PositionSample(0, at()))
    assert monitor.observe(PositionSample(1, None)) is None
    assert monitor.observe(PositionSample(0, at(900))) is None
