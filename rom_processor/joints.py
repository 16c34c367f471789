"""
Joint/movement registry.

Static per (joint, side, movement) configuration: landmark triple,
healthy range and patient instructions. Built once at startup and passed
into the measurement session; read-only afterwards.
"""

from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Dict, Iterable, List, Tuple

from rom_processor.angles import is_mapped
from rom_processor.errors import ConfigurationError
from rom_processor.formatter import is_formattable


class JointType(str, Enum):
    KNEE = "knee"
    HIP = "hip"
    SHOULDER = "shoulder"
    ELBOW = "elbow"
    WRIST = "wrist"
    ANKLE = "ankle"


class MovementType(str, Enum):
    FLEXION = "flexion"
    EXTENSION = "extension"
    ABDUCTION = "abduction"
    ADDUCTION = "adduction"
    DORSIFLEXION = "dorsiflexion"
    PLANTARFLEXION = "plantarflexion"


class BodySide(str, Enum):
    LEFT = "left"
    RIGHT = "right"


class CameraPosition(str, Enum):
    SAGITTAL = "sagittal"
    FRONTAL = "frontal"


@dataclass(frozen=True)
class JointMovementConfig:
    """Configuration for measuring one movement of one joint on one side."""
    joint: JointType
    side: BodySide
    movement: MovementType
    landmark_triple: Tuple[int, int, int]
    normal_range: Tuple[float, float]
    label: str
    instructions: Tuple[str, ...] = ()
    camera_position: CameraPosition = CameraPosition.SAGITTAL

    @property
    def key(self) -> Tuple[JointType, BodySide, MovementType]:
        return (self.joint, self.side, self.movement)

    @property
    def vertex_index(self) -> int:
        return self.landmark_triple[1]

    def in_normal_range(self, angle: float) -> bool:
        low, high = self.normal_range
        return low <= angle <= high


class JointRegistry:
    """
    Read-only lookup of JointMovementConfig by (joint, side, movement).

    Every entry is checked against the ROM mapper and the formatter on
    construction, so an unsupported combination fails at startup instead
    of producing a wrong clinical number mid-session.
    """

    def __init__(self, configs: Iterable[JointMovementConfig]):
        entries: Dict[Tuple[JointType, BodySide, MovementType], JointMovementConfig] = {}
        for cfg in configs:
            if not is_mapped(cfg.joint, cfg.movement):
                raise ConfigurationError(
                    f"Registry entry {cfg.joint.value}_{cfg.movement.value} has no ROM mapping")
            if not is_formattable(cfg.joint, cfg.movement):
                raise ConfigurationError(
                    f"Registry entry {cfg.joint.value}_{cfg.movement.value} has no neutral-zero format")
            if cfg.key in entries:
                raise ConfigurationError(f"Duplicate registry entry {cfg.key}")
            entries[cfg.key] = cfg
        self._entries = MappingProxyType(entries)

    def get(self, joint, side, movement) -> JointMovementConfig:
        try:
            key = (JointType(joint), BodySide(side), MovementType(movement))
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        cfg = self._entries.get(key)
        if cfg is None:
            raise ConfigurationError(
                f"No registry entry for {key[0].value}/{key[1].value}/{key[2].value}")
        return cfg

    def entries(self) -> List[JointMovementConfig]:
        return list(self._entries.values())

    def movements_for(self, joint, side) -> List[JointMovementConfig]:
        joint, side = JointType(joint), BodySide(side)
        return [c for c in self._entries.values() if c.joint == joint and c.side == side]

    def __contains__(self, key) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)


# Landmark triples (proximal, vertex, distal), MediaPipe Pose indices
TRIPLES = {
    (JointType.KNEE, BodySide.LEFT): (23, 25, 27),      # hip -> knee -> ankle
    (JointType.KNEE, BodySide.RIGHT): (24, 26, 28),
    (JointType.HIP, BodySide.LEFT): (11, 23, 25),       # shoulder -> hip -> knee
    (JointType.HIP, BodySide.RIGHT): (12, 24, 26),
    (JointType.SHOULDER, BodySide.LEFT): (23, 11, 13),  # hip -> shoulder -> elbow
    (JointType.SHOULDER, BodySide.RIGHT): (24, 12, 14),
    (JointType.ELBOW, BodySide.LEFT): (11, 13, 15),     # shoulder -> elbow -> wrist
    (JointType.ELBOW, BodySide.RIGHT): (12, 14, 16),
    (JointType.WRIST, BodySide.LEFT): (13, 15, 17),     # elbow -> wrist -> pinky
    (JointType.WRIST, BodySide.RIGHT): (14, 16, 18),
    (JointType.ANKLE, BodySide.LEFT): (25, 27, 31),     # knee -> ankle -> foot index
    (JointType.ANKLE, BodySide.RIGHT): (26, 28, 32),
}

# (joint, movement, label, normal range, camera position, instructions)
MOVEMENTS = [
    (JointType.KNEE, MovementType.FLEXION, "Knee flexion", (0, 150), CameraPosition.SAGITTAL,
     ("Stand side-on to the camera", "Step one leg slightly back", "Bend the knee as far as you can")),
    (JointType.KNEE, MovementType.EXTENSION, "Knee extension", (0, 10), CameraPosition.SAGITTAL,
     ("Sit down", "Stretch the leg out", "Push the knee straight")),
    (JointType.HIP, MovementType.FLEXION, "Hip flexion", (0, 120), CameraPosition.SAGITTAL,
     ("Lie on your back", "Pull the knee towards your chest")),
    (JointType.SHOULDER, MovementType.FLEXION, "Shoulder flexion", (0, 180), CameraPosition.SAGITTAL,
     ("Raise the straight arm forwards and up",)),
    (JointType.SHOULDER, MovementType.ABDUCTION, "Shoulder abduction", (0, 180), CameraPosition.FRONTAL,
     ("Raise the arm sideways and up",)),
    (JointType.ELBOW, MovementType.FLEXION, "Elbow flexion", (0, 150), CameraPosition.SAGITTAL,
     ("Keep the arm at your side", "Bend the forearm up as far as you can")),
    (JointType.ELBOW, MovementType.EXTENSION, "Elbow extension", (0, 10), CameraPosition.SAGITTAL,
     ("Stretch the arm down", "Push the elbow straight")),
    (JointType.WRIST, MovementType.FLEXION, "Wrist flexion (palmar)", (0, 80), CameraPosition.SAGITTAL,
     ("Rest the forearm on a table", "Bend the hand downwards")),
    (JointType.WRIST, MovementType.EXTENSION, "Wrist extension (dorsal)", (0, 70), CameraPosition.SAGITTAL,
     ("Rest the forearm on a table", "Lift the hand upwards")),
    (JointType.ANKLE, MovementType.DORSIFLEXION, "Ankle dorsiflexion", (0, 20), CameraPosition.SAGITTAL,
     ("Stretch the leg out", "Pull the toes up")),
    (JointType.ANKLE, MovementType.PLANTARFLEXION, "Ankle plantarflexion", (0, 45), CameraPosition.SAGITTAL,
     ("Stretch the leg out", "Point the toes down")),
]


def default_configs() -> List[JointMovementConfig]:
    configs = []
    for joint, movement, label, normal_range, camera, instructions in MOVEMENTS:
        for side in BodySide:
            configs.append(JointMovementConfig(
                joint=joint,
                side=side,
                movement=movement,
                landmark_triple=TRIPLES[(joint, side)],
                normal_range=(float(normal_range[0]), float(normal_range[1])),
                label=f"{label} ({side.value})",
                instructions=instructions,
                camera_position=camera,
            ))
    return configs


def build_default_registry() -> JointRegistry:
    """Registry with every supported joint, side and movement."""
    return JointRegistry(default_configs())
