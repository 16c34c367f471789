"""
Landmark type and confidence gate for the three keypoints of a joint.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np


# BlazePose / MediaPipe Pose indices used outside the joint registry
LEFT_HIP = 23
RIGHT_HIP = 24

NUM_POSE_LANDMARKS = 33


@dataclass(frozen=True)
class Landmark:
    """
    One body keypoint for one frame.

    Coordinates are in whatever space the pose source delivers
    (pixels for the camera flow). Never mutated after creation.
    """
    x: float
    y: float
    z: float = 0.0
    confidence: float = 1.0

    @classmethod
    def from_dict(cls, d: dict) -> "Landmark":
        """Build from a {x, y, z, visibility|confidence} dict."""
        confidence = d.get("confidence", d.get("visibility", 0.0))
        return cls(
            x=float(d["x"]),
            y=float(d["y"]),
            z=float(d.get("z", 0.0)),
            confidence=float(confidence if confidence is not None else 0.0),
        )

    def to_array(self, use_depth: bool = False) -> np.ndarray:
        if use_depth:
            return np.array([self.x, self.y, self.z], dtype=np.float64)
        return np.array([self.x, self.y], dtype=np.float64)

    def position(self) -> tuple[float, float]:
        """Screen-space (x, y)."""
        return (self.x, self.y)


def get_landmark(landmarks: Optional[Sequence[Optional[Landmark]]], index: int) -> Optional[Landmark]:
    """Return landmarks[index], or None when the index is missing."""
    if not landmarks or index < 0 or index >= len(landmarks):
        return None
    return landmarks[index]


def validate_landmarks(
        landmarks: Optional[Sequence[Optional[Landmark]]],
        triple: Sequence[int],
        min_confidence: float
) -> bool:
    """
    Check that all three keypoints of a joint are present and confident.

    Args:
        landmarks: Per-frame landmark list from the pose source
        triple: (proximal, vertex, distal) indices
        min_confidence: Minimum confidence each landmark must reach

    Returns:
        True iff every indexed landmark exists and has
        confidence >= min_confidence
    """
    for index in triple:
        lm = get_landmark(landmarks, index)
        if lm is None or lm.confidence < min_confidence:
            return False
    return True
