"""
Drift and compensation guards.

DriftGuard pins the joint vertex at the moment of alignment and flags
frames where it has wandered too far. CompensationDetector flags pelvic
tilt, the usual way patients "cheat" a lower-limb reading.
"""

import logging
import math
from typing import Optional, Sequence, Tuple

from rom_processor.landmarks import LEFT_HIP, RIGHT_HIP, Landmark, get_landmark

logger = logging.getLogger(__name__)

DRIFT_TOLERANCE = 150.0
PELVIC_TILT_LIMIT = 15.0
HIP_MIN_CONFIDENCE = 0.5
MIN_HIP_SPAN = 20.0

# Only lower-limb readings are affected by pelvic tilt
COMPENSATION_JOINTS = frozenset({"hip", "knee", "ankle"})


class DriftGuard:
    """Anchors the vertex position and checks distance from it."""

    def __init__(self, tolerance: float = DRIFT_TOLERANCE):
        self.tolerance = tolerance
        self.anchor: Optional[Tuple[float, float]] = None
        self.last_distance = 0.0

    @property
    def is_anchored(self) -> bool:
        return self.anchor is not None

    def align(self, position: Tuple[float, float]):
        """Set the anchor to the current vertex position."""
        self.anchor = (float(position[0]), float(position[1]))
        self.last_distance = 0.0

    def distance(self, position: Tuple[float, float]) -> float:
        if self.anchor is None:
            return 0.0
        return math.hypot(position[0] - self.anchor[0], position[1] - self.anchor[1])

    def check(self, position: Tuple[float, float]) -> bool:
        """
        Returns:
            True if the vertex drifted beyond tolerance. The anchor is kept
            either way; the user is expected to move back to it.
        """
        self.last_distance = self.distance(position)
        return self.last_distance > self.tolerance

    def clear(self):
        self.anchor = None
        self.last_distance = 0.0


def pelvic_tilt(left_hip: Landmark, right_hip: Landmark) -> float:
    """
    Angle of the hip line against the horizontal, in degrees.

    The raw atan2 direction is folded into [-90, 90] so the result does
    not depend on which way the patient faces the camera.
    """
    tilt = math.degrees(math.atan2(right_hip.y - left_hip.y, right_hip.x - left_hip.x))
    if tilt > 90.0:
        tilt -= 180.0
    elif tilt < -90.0:
        tilt += 180.0
    return tilt


class CompensationDetector:
    """Flags pelvic tilt beyond a limit for hip/knee/ankle measurements."""

    def __init__(
            self,
            tilt_limit: float = PELVIC_TILT_LIMIT,
            min_confidence: float = HIP_MIN_CONFIDENCE,
            min_hip_span: float = MIN_HIP_SPAN
    ):
        self.tilt_limit = tilt_limit
        self.min_confidence = min_confidence
        self.min_hip_span = min_hip_span
        self.last_tilt: Optional[float] = None

    @staticmethod
    def applies_to(joint) -> bool:
        return getattr(joint, "value", joint) in COMPENSATION_JOINTS

    def check(self, landmarks: Sequence[Optional[Landmark]], joint) -> bool:
        """
        Args:
            landmarks: Current frame landmarks
            joint: Joint being measured

        Returns:
            True if compensation is detected. Frames where the hips are
            not confidently visible, or too close together to give a
            direction, are not flagged.
        """
        self.last_tilt = None
        if not self.applies_to(joint):
            return False

        left = get_landmark(landmarks, LEFT_HIP)
        right = get_landmark(landmarks, RIGHT_HIP)
        if left is None or right is None:
            return False
        if left.confidence <= self.min_confidence or right.confidence <= self.min_confidence:
            return False
        if math.hypot(right.x - left.x, right.y - left.y) < self.min_hip_span:
            return False

        self.last_tilt = pelvic_tilt(left, right)
        return abs(self.last_tilt) > self.tilt_limit
