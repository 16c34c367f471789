"""
Neutral-Zero Method rendering (Extension-0-Flexion).
"""

import math

from rom_processor.errors import ConfigurationError

# Movements reported on the flexion side: "0-0-<angle>"
FLEXION_STYLE = frozenset({"flexion", "plantarflexion", "adduction"})
# Movements reported on the extension side: "<angle>-0-0"
EXTENSION_STYLE = frozenset({"extension", "dorsiflexion", "abduction"})

KNOWN_JOINTS = frozenset({"knee", "hip", "shoulder", "elbow", "wrist", "ankle"})


def round_half_up(value: float) -> int:
    """Round to the nearest integer degree, halves away from zero."""
    if value < 0:
        return -int(math.floor(-value + 0.5))
    return int(math.floor(value + 0.5))


def is_formattable(joint, movement) -> bool:
    joint = getattr(joint, "value", joint)
    movement = getattr(movement, "value", movement)
    return joint in KNOWN_JOINTS and (movement in FLEXION_STYLE or movement in EXTENSION_STYLE)


def format_neutral_zero(angle: float, joint, movement) -> str:
    """
    Render a ROM value in Neutral-Zero notation.

    Args:
        angle: ROM in degrees
        joint: Joint type (enum or string value)
        movement: Movement type (enum or string value)

    Returns:
        e.g. "0-0-95" for 95° knee flexion, "5-0-0" for 5° dorsiflexion

    Raises:
        ConfigurationError: Unknown joint or movement
    """
    joint = getattr(joint, "value", joint)
    movement = getattr(movement, "value", movement)
    if joint not in KNOWN_JOINTS:
        raise ConfigurationError(f"No neutral-zero format for joint {joint!r}")

    degrees = round_half_up(angle)
    if movement in FLEXION_STYLE:
        return f"0-0-{degrees}"
    if movement in EXTENSION_STYLE:
        return f"{degrees}-0-0"
    raise ConfigurationError(f"No neutral-zero format for {joint}_{movement}")
