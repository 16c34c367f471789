"""
Joint angle geometry and the raw-angle to clinical ROM transform.
"""

import logging
from typing import Callable, Dict, Tuple

import numpy as np

from rom_processor.errors import ConfigurationError
from rom_processor.landmarks import Landmark

logger = logging.getLogger(__name__)


def is_degenerate(a: Landmark, b: Landmark, c: Landmark, use_depth: bool = False) -> bool:
    """True if either vector from the vertex has zero length."""
    vertex = b.to_array(use_depth)
    return (not np.any(a.to_array(use_depth) - vertex)
            or not np.any(c.to_array(use_depth) - vertex))


def joint_angle(a: Landmark, b: Landmark, c: Landmark, use_depth: bool = False) -> float:
    """
    Angle at vertex b formed by a-b-c.

    Args:
        a: Proximal point (e.g. hip)
        b: Vertex (e.g. knee)
        c: Distal point (e.g. ankle)
        use_depth: Include z in the vectors (3D) instead of x, y only

    Returns:
        Angle in degrees in [0, 180], rounded to one decimal.
        0.0 when either vector has zero length (occluded/collapsed joint).
    """
    p1 = a.to_array(use_depth)
    p2 = b.to_array(use_depth)
    p3 = c.to_array(use_depth)

    ba = p1 - p2
    bc = p3 - p2

    mag_ba = np.linalg.norm(ba)
    mag_bc = np.linalg.norm(bc)
    if mag_ba == 0 or mag_bc == 0:
        logger.debug("Degenerate joint geometry at vertex (%.1f, %.1f)", b.x, b.y)
        return 0.0

    cos_angle = np.dot(ba, bc) / (mag_ba * mag_bc)
    cos_angle = np.clip(cos_angle, -1.0, 1.0)  # float error can leave [-1, 1]

    angle_deg = float(np.degrees(np.arccos(cos_angle)))
    return round(angle_deg, 1)


def _flexion(raw: float) -> float:
    # Straight limb (180) is 0 flexion; never negative
    return max(0.0, 180.0 - raw)


def _extension(raw: float) -> float:
    # Signed: negative means hyperextension
    return 180.0 - raw


def _pass_through(raw: float) -> float:
    return raw


def _wrist(raw: float) -> float:
    return abs(180.0 - raw)


def _ankle(raw: float) -> float:
    # Foot-to-shank rests at 90
    return abs(90.0 - raw)


ROM_TRANSFORMS: Dict[Tuple[str, str], Callable[[float], float]] = {
    ("knee", "flexion"): _flexion,
    ("hip", "flexion"): _flexion,
    ("elbow", "flexion"): _flexion,
    ("knee", "extension"): _extension,
    ("elbow", "extension"): _extension,
    ("shoulder", "flexion"): _pass_through,
    ("shoulder", "abduction"): _pass_through,
    ("wrist", "flexion"): _wrist,
    ("wrist", "extension"): _wrist,
    ("ankle", "dorsiflexion"): _ankle,
    ("ankle", "plantarflexion"): _ankle,
}


def _key(joint, movement) -> Tuple[str, str]:
    return (getattr(joint, "value", joint), getattr(movement, "value", movement))


def is_mapped(joint, movement) -> bool:
    """True if to_rom() knows how to convert this joint/movement."""
    return _key(joint, movement) in ROM_TRANSFORMS


def to_rom(raw_angle: float, joint, movement) -> float:
    """
    Convert a raw vertex angle to clinical ROM degrees.

    0 is the anatomical neutral posture; larger values mean more motion.

    Args:
        raw_angle: Vertex angle from joint_angle()
        joint: Joint type (enum or its string value)
        movement: Movement type (enum or its string value)

    Returns:
        ROM in degrees

    Raises:
        ConfigurationError: The combination has no mapping
    """
    key = _key(joint, movement)
    transform = ROM_TRANSFORMS.get(key)
    if transform is None:
        raise ConfigurationError(f"No ROM mapping for {key[0]}_{key[1]}")
    return transform(raw_angle)
