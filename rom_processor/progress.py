"""
Recovery progress over committed measurements: post-op milestones and
stagnation/regression alerts.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from rom_processor.joints import JointType, MovementType

STAGNATION_WINDOW = 5
STAGNATION_RANGE = 3.0   # degrees across the newest 5
REGRESSION_DROP = 5.0    # degrees lost between 3rd newest and newest


class Priority(str, Enum):
    CRITICAL = "critical"
    TARGET = "target"
    STRETCH = "stretch"


class AlertType(str, Enum):
    STAGNATION = "stagnation"
    REGRESSION = "regression"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Milestone:
    week_post_op: int
    joint_type: JointType
    movement_type: MovementType
    target_angle: float
    label: str
    priority: Priority

    def is_reached(self, angle: float) -> bool:
        # Extension targets are a deficit: lower is better
        if self.movement_type == MovementType.EXTENSION:
            return angle <= self.target_angle
        return angle >= self.target_angle


@dataclass(frozen=True)
class Alert:
    type: AlertType
    message: str
    severity: Severity


def _m(week, joint, movement, target, label, priority) -> Milestone:
    return Milestone(week, joint, movement, float(target), label, priority)


KNEE_TEP_MILESTONES: List[Milestone] = [
    _m(1, JointType.KNEE, MovementType.FLEXION, 70, "Week 1: 70° flexion", Priority.CRITICAL),
    _m(2, JointType.KNEE, MovementType.FLEXION, 80, "Week 2: 80° flexion", Priority.CRITICAL),
    _m(4, JointType.KNEE, MovementType.FLEXION, 90, "Week 4: 90° flexion", Priority.CRITICAL),
    _m(6, JointType.KNEE, MovementType.FLEXION, 100, "Week 6: 100° flexion", Priority.TARGET),
    _m(8, JointType.KNEE, MovementType.FLEXION, 110, "Week 8: 110° flexion", Priority.TARGET),
    _m(12, JointType.KNEE, MovementType.FLEXION, 120, "Week 12: 120° flexion", Priority.STRETCH),
    _m(1, JointType.KNEE, MovementType.EXTENSION, 10, "Week 1: <10° extension deficit", Priority.CRITICAL),
    _m(4, JointType.KNEE, MovementType.EXTENSION, 5, "Week 4: <5° extension deficit", Priority.CRITICAL),
    _m(8, JointType.KNEE, MovementType.EXTENSION, 0, "Week 8: full extension", Priority.TARGET),
]

SHOULDER_OP_MILESTONES: List[Milestone] = [
    _m(2, JointType.SHOULDER, MovementType.FLEXION, 90, "Week 2: 90° flexion (passive)", Priority.CRITICAL),
    _m(6, JointType.SHOULDER, MovementType.FLEXION, 120, "Week 6: 120° flexion", Priority.TARGET),
    _m(6, JointType.SHOULDER, MovementType.ABDUCTION, 90, "Week 6: 90° abduction", Priority.TARGET),
    _m(12, JointType.SHOULDER, MovementType.FLEXION, 160, "Week 12: 160° flexion", Priority.STRETCH),
    _m(12, JointType.SHOULDER, MovementType.ABDUCTION, 150, "Week 12: 150° abduction", Priority.STRETCH),
]


def milestones_due(
        milestones: Sequence[Milestone],
        joint,
        movement,
        week_post_op: int
) -> List[Milestone]:
    """Milestones for this joint/movement that should be reached by week_post_op."""
    joint = JointType(joint)
    movement = MovementType(movement)
    return [
        m for m in milestones
        if m.joint_type == joint and m.movement_type == movement and m.week_post_op <= week_post_op
    ]


def _movement_word(movement) -> str:
    return "flexion" if MovementType(movement) == MovementType.FLEXION else "extension"


def check_for_alerts(angles_newest_first: Sequence[float], movement) -> Optional[Alert]:
    """
    Look for stagnation or regression in a measurement history.

    Args:
        angles_newest_first: ROM values of committed measurements, newest first
        movement: Movement the history belongs to (for the message)

    Returns:
        Alert, or None when there is no concern or fewer than 5 measurements
    """
    if len(angles_newest_first) < STAGNATION_WINDOW:
        return None

    word = _movement_word(movement)
    recent = list(angles_newest_first[:STAGNATION_WINDOW])
    if max(recent) - min(recent) < STAGNATION_RANGE:
        return Alert(
            type=AlertType.STAGNATION,
            message=f"Your {word} has not changed over the last {len(recent)} measurements. "
                    f"Talk to your therapist.",
            severity=Severity.WARNING,
        )

    drop = angles_newest_first[2] - angles_newest_first[0]
    if drop >= REGRESSION_DROP:
        return Alert(
            type=AlertType.REGRESSION,
            message=f"Your {word} got worse by {round(drop)}°. Please contact your doctor.",
            severity=Severity.CRITICAL,
        )

    return None
