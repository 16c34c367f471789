"""
Unit tests for rom_processor/progress.py and the in-memory store history.

Usage:
    pytest tests/test_progress.py -v
"""

import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from rom_processor.joints import BodySide, JointType, MovementType
from rom_processor.progress import (
    KNEE_TEP_MILESTONES, SHOULDER_OP_MILESTONES, AlertType, Severity,
    check_for_alerts, milestones_due,
)
from rom_processor.session import Measurement
from rom_processor.storage import InMemoryMeasurementStore


def make_measurement(i, angle, joint=JointType.KNEE, movement=MovementType.FLEXION, side=BodySide.RIGHT):
    return Measurement(
        id=f"m{i}",
        joint_type=joint,
        movement_type=movement,
        body_side=side,
        angle=angle,
        neutral_zero_format=f"0-0-{round(angle)}",
        confidence=0.9,
        timestamp=f"2026-01-{i + 1:02d}T10:00:00+00:00",
    )


class TestMilestones:

    def test_due_by_week_four(self):
        due = milestones_due(KNEE_TEP_MILESTONES, "knee", "flexion", 4)
        assert [m.target_angle for m in due] == [70.0, 80.0, 90.0]

    def test_flexion_reached(self):
        week6 = milestones_due(KNEE_TEP_MILESTONES, "knee", "flexion", 6)[-1]
        assert week6.is_reached(100)
        assert not week6.is_reached(99.9)

    def test_extension_deficit_lower_is_better(self):
        week4 = milestones_due(KNEE_TEP_MILESTONES, "knee", "extension", 4)[-1]
        assert week4.target_angle == 5.0
        assert week4.is_reached(3)
        assert not week4.is_reached(8)

    def test_shoulder_abduction(self):
        due = milestones_due(SHOULDER_OP_MILESTONES, JointType.SHOULDER, MovementType.ABDUCTION, 12)
        assert len(due) == 2


class TestAlerts:

    def test_too_few_measurements(self):
        assert check_for_alerts([90, 90, 90, 90], "flexion") is None

    def test_stagnation(self):
        alert = check_for_alerts([90, 91, 89, 90, 91], "flexion")
        assert alert.type == AlertType.STAGNATION
        assert alert.severity == Severity.WARNING
        assert "flexion" in alert.message

    def test_regression(self):
        # newest first: dropped from 100 to 92
        alert = check_for_alerts([92, 96, 100, 95, 90], "flexion")
        assert alert.type == AlertType.REGRESSION
        assert alert.severity == Severity.CRITICAL
        assert "8" in alert.message

    def test_improving(self):
        assert check_for_alerts([100, 96, 92, 88, 84], "flexion") is None

    def test_extension_wording(self):
        alert = check_for_alerts([5, 5, 5, 5, 5], "extension")
        assert "extension" in alert.message


class TestStoreHistory:

    @pytest.fixture
    def store(self):
        store = InMemoryMeasurementStore()
        for i, angle in enumerate([84, 88, 92, 96, 100]):
            store.save(make_measurement(i, angle))
        store.save(make_measurement(10, 10, movement=MovementType.EXTENSION))
        return store

    def test_query_newest_first(self, store):
        angles = [m.angle for m in store.query("knee", "flexion", "right")]
        assert angles == [100, 96, 92, 88, 84]

    def test_latest(self, store):
        assert store.latest(JointType.KNEE, MovementType.EXTENSION, BodySide.RIGHT).angle == 10
        assert store.latest("knee", "flexion", "left") is None

    def test_duplicate_id_ignored(self, store):
        store.save(make_measurement(0, 50))
        assert len(store) == 6

    def test_history_feeds_alerts(self, store):
        angles = [m.angle for m in store.query("knee", "flexion", "right")]
        assert check_for_alerts(angles, "flexion") is None
