"""
Measurement session: the state machine that turns per-frame landmarks
into one confirmed ROM measurement.

    SEARCHING -> ALIGNED -> TRACKING -> STABLE -> FROZEN -> CONFIRMED
        ^                                            |
        +---------------- retake() ------------------+

All state (buffer, anchor, draft) is owned by one MeasurementSession and
updated under its lock, one accepted frame at a time.
"""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional, Sequence, Tuple

from rom_processor.angles import is_degenerate, joint_angle, to_rom
from rom_processor.config import MeasurementConfig, StabilitySettings
from rom_processor.errors import Condition, SaveFailure, SessionStateError
from rom_processor.formatter import format_neutral_zero
from rom_processor.guards import CompensationDetector, DriftGuard
from rom_processor.joints import BodySide, JointMovementConfig, JointRegistry, JointType, MovementType
from rom_processor.landmarks import Landmark, validate_landmarks
from rom_processor.smoothing import AngleSample, SmoothingBuffer, is_stable
from rom_processor.storage import MeasurementStore

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    SEARCHING = "searching"
    ALIGNED = "aligned"
    TRACKING = "tracking"
    STABLE = "stable"
    FROZEN = "frozen"
    CONFIRMED = "confirmed"


class SyncStatus(str, Enum):
    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


# Which condition the UI shows when several are active
CONDITION_PRIORITY = (
    Condition.LOW_CONFIDENCE,
    Condition.DRIFT_EXCEEDED,
    Condition.COMPENSATION_DETECTED,
    Condition.DEGENERATE_GEOMETRY,
)


@dataclass(frozen=True)
class Measurement:
    """Committed measurement record, owned by persistence once handed over."""
    id: str
    joint_type: JointType
    movement_type: MovementType
    body_side: BodySide
    angle: float
    neutral_zero_format: str
    confidence: float
    timestamp: str  # ISO 8601, UTC
    sync_status: SyncStatus = SyncStatus.PENDING

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "joint_type": self.joint_type.value,
            "movement_type": self.movement_type.value,
            "body_side": self.body_side.value,
            "angle": self.angle,
            "neutral_zero_format": self.neutral_zero_format,
            "confidence": self.confidence,
            "timestamp": self.timestamp,
            "sync_status": self.sync_status.value,
        }


@dataclass
class MeasurementDraft:
    """Working measurement, alive from ALIGNED until confirm or retake."""
    joint_type: JointType
    movement_type: MovementType
    body_side: BodySide
    angle: float = 0.0
    confidence: float = 0.0
    timestamp_candidate: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def finalize(self) -> Measurement:
        timestamp = self.timestamp_candidate or datetime.now(timezone.utc)
        return Measurement(
            id=self.id,
            joint_type=self.joint_type,
            movement_type=self.movement_type,
            body_side=self.body_side,
            angle=round(self.angle, 1),
            neutral_zero_format=format_neutral_zero(self.angle, self.joint_type, self.movement_type),
            confidence=round(self.confidence, 3),
            timestamp=timestamp.isoformat(),
        )


@dataclass(frozen=True)
class SessionSnapshot:
    """What the UI overlay needs after each frame."""
    current_angle: float
    session_state: SessionState
    validation_error: Optional[Condition] = None
    conditions: Tuple[Condition, ...] = ()
    frame_index: int = 0
    sample_count: int = 0
    drift_distance: float = 0.0
    pelvic_tilt: Optional[float] = None

    @property
    def is_stable(self) -> bool:
        return self.session_state in (SessionState.STABLE, SessionState.FROZEN)

    def to_dict(self) -> dict:
        return {
            "currentAngle": self.current_angle,
            "sessionState": self.session_state.value,
            "validationError": self.validation_error.value if self.validation_error else None,
            "conditions": [c.value for c in self.conditions],
            "frameIndex": self.frame_index,
            "sampleCount": self.sample_count,
            "driftDistance": self.drift_distance,
            "pelvicTilt": self.pelvic_tilt,
        }


class MeasurementSession:
    """
    Runs one ROM measurement for a single joint, side and movement.

    Example:
        >>> session = MeasurementSession(build_default_registry(), "knee", "right", "flexion")
        >>> snapshot = session.process_frame(landmarks)
        >>> if snapshot.session_state == SessionState.FROZEN:
        ...     measurement = session.confirm(store)
    """

    def __init__(
            self,
            registry: JointRegistry,
            joint,
            side,
            movement,
            config: Optional[MeasurementConfig] = None,
            settings: Optional[StabilitySettings] = None,
            clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            registry: Joint registry (ConfigurationError if the combination is missing)
            joint: Joint type or its string value
            side: Body side or its string value
            movement: Movement type or its string value
            config: Static measurement config
            settings: User stability settings, read on every frame
            clock: Time source in seconds, used when frames carry no timestamp
        """
        self.movement_config: JointMovementConfig = registry.get(joint, side, movement)
        self.config = config or MeasurementConfig()
        self.settings = settings or StabilitySettings()
        self._clock = clock

        self._lock = threading.RLock()
        self._buffer = SmoothingBuffer(self.config.buffer_capacity)
        self._drift = DriftGuard(self.config.drift_tolerance)
        self._compensation = CompensationDetector(
            tilt_limit=self.config.pelvic_tilt_limit,
            min_confidence=self.config.hip_min_confidence,
            min_hip_span=self.config.min_hip_span,
        )

        self._state = SessionState.SEARCHING
        self._draft: Optional[MeasurementDraft] = None
        self._pending: Optional[Measurement] = None
        self._conditions: Tuple[Condition, ...] = ()
        self._current_angle = 0.0
        self._frame_index = 0
        self._stable_since: Optional[float] = None
        self._clamp_warned = False
        self.frames_ignored = 0

    # ==================== READ ACCESS ====================

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def draft(self) -> Optional[MeasurementDraft]:
        """Copy of the current draft."""
        with self._lock:
            return replace(self._draft) if self._draft else None

    @property
    def anchor(self) -> Optional[Tuple[float, float]]:
        with self._lock:
            return self._drift.anchor

    @property
    def sample_count(self) -> int:
        with self._lock:
            return len(self._buffer)

    def buffer_values(self) -> list:
        with self._lock:
            return self._buffer.values()

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            return self._snapshot()

    # ==================== FRAME PROCESSING ====================

    def process_frame(
            self,
            landmarks: Optional[Sequence[Optional[Landmark]]],
            timestamp: Optional[float] = None
    ) -> SessionSnapshot:
        """
        Apply one frame of landmarks.

        Args:
            landmarks: Landmark list from the pose source (None = no pose)
            timestamp: Frame time in seconds; defaults to the session clock

        Returns:
            Snapshot for the UI after this frame
        """
        with self._lock:
            now = self._clock() if timestamp is None else timestamp
            self._frame_index += 1

            if self._state in (SessionState.FROZEN, SessionState.CONFIRMED):
                # Delivery may keep running; measurement state stays put
                self.frames_ignored += 1
                return self._snapshot()

            self._apply(landmarks, now)
            return self._snapshot()

    def _apply(self, landmarks, now: float):
        cfg = self.movement_config
        use_depth = self.config.use_depth

        if not validate_landmarks(landmarks, cfg.landmark_triple, self.config.min_confidence):
            if self._state != SessionState.SEARCHING:
                logger.info("Landmarks lost while %s, back to searching", self._state.value)
                self._reset()
            self._conditions = (Condition.LOW_CONFIDENCE,)
            return

        a, b, c = (landmarks[i] for i in cfg.landmark_triple)
        conditions = []
        degenerate = is_degenerate(a, b, c, use_depth)
        if degenerate:
            conditions.append(Condition.DEGENERATE_GEOMETRY)

        rom = to_rom(joint_angle(a, b, c, use_depth), cfg.joint, cfg.movement)
        vertex = b.position()

        compensating = self._compensation.check(landmarks, cfg.joint)
        if compensating:
            if Condition.COMPENSATION_DETECTED not in self._conditions:
                logger.warning("Compensation detected: pelvic tilt %.1f deg", self._compensation.last_tilt)
            conditions.append(Condition.COMPENSATION_DETECTED)

        if self._state == SessionState.SEARCHING:
            self._current_angle = rom
            if rom > 0 and not degenerate:
                self._align(vertex)
            self._conditions = self._ordered(conditions)
            return

        if self._drift.check(vertex):
            if Condition.DRIFT_EXCEEDED not in self._conditions:
                logger.warning("Joint drifted %.0f from anchor (tolerance %.0f)",
                               self._drift.last_distance, self._drift.tolerance)
            conditions.append(Condition.DRIFT_EXCEEDED)
            self._leave_stable()
            self._conditions = self._ordered(conditions)
            return

        self._conditions = self._ordered(conditions)
        if degenerate:
            return

        self._buffer.push(AngleSample(value=rom, frame_index=self._frame_index))
        if self._state == SessionState.ALIGNED:
            self._state = SessionState.TRACKING

        smoothed = self._buffer.average(self.config.smoothing_window)
        self._current_angle = smoothed
        self._draft.angle = smoothed
        self._draft.confidence = (a.confidence + b.confidence + c.confidence) / 3

        stable = not compensating and is_stable(
            self._buffer, self.settings.threshold, self._effective_min_frames())

        if not stable:
            self._leave_stable()
            return

        if self._state != SessionState.STABLE:
            self._state = SessionState.STABLE
            self._stable_since = now
            logger.info("Stable at %.1f deg", smoothed)

        if self.config.auto_freeze and now - self._stable_since >= self.config.freeze_debounce_s:
            self._freeze()

    def _align(self, vertex: Tuple[float, float]):
        cfg = self.movement_config
        self._drift.align(vertex)
        self._draft = MeasurementDraft(
            joint_type=cfg.joint,
            movement_type=cfg.movement,
            body_side=cfg.side,
        )
        self._state = SessionState.ALIGNED
        logger.info("Aligned %s at (%.1f, %.1f)", cfg.label, vertex[0], vertex[1])

    def _leave_stable(self):
        if self._state == SessionState.STABLE:
            self._state = SessionState.TRACKING
        self._stable_since = None

    def _effective_min_frames(self) -> int:
        frames = self.settings.frames
        if frames > self._buffer.capacity:
            if not self._clamp_warned:
                logger.warning("Stability frames %d exceed buffer capacity %d, using %d",
                               frames, self._buffer.capacity, self._buffer.capacity)
                self._clamp_warned = True
            return self._buffer.capacity
        return frames

    def _freeze(self):
        self._state = SessionState.FROZEN
        self._stable_since = None
        self._draft.angle = round(self._current_angle, 1)
        self._draft.timestamp_candidate = datetime.now(timezone.utc)
        logger.info("Frozen at %.1f deg", self._draft.angle)

    @staticmethod
    def _ordered(conditions) -> Tuple[Condition, ...]:
        return tuple(c for c in CONDITION_PRIORITY if c in conditions)

    def _reset(self):
        self._buffer.clear()
        self._drift.clear()
        self._draft = None
        self._pending = None
        self._stable_since = None
        self._current_angle = 0.0
        self._conditions = ()
        self._state = SessionState.SEARCHING

    def _snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            current_angle=round(self._current_angle, 1),
            session_state=self._state,
            validation_error=self._conditions[0] if self._conditions else None,
            conditions=self._conditions,
            frame_index=self._frame_index,
            sample_count=len(self._buffer),
            drift_distance=round(self._drift.last_distance, 1),
            pelvic_tilt=self._compensation.last_tilt,
        )

    # ==================== USER ACTIONS ====================

    def freeze(self) -> bool:
        """
        Manually freeze the current value.

        Returns:
            True if frozen; False unless the session is STABLE
        """
        with self._lock:
            if self._state != SessionState.STABLE:
                return False
            self._freeze()
            return True

    def confirm(self, store: MeasurementStore) -> Measurement:
        """
        Accept the frozen value and hand it to persistence.

        On failure the session stays FROZEN with the draft intact; calling
        confirm() again retries with the same record.

        Raises:
            SessionStateError: Session is not FROZEN
            SaveFailure: The store raised
        """
        with self._lock:
            if self._state == SessionState.CONFIRMED and self._pending is not None:
                return self._pending
            if self._state != SessionState.FROZEN:
                raise SessionStateError(f"Cannot confirm while {self._state.value}")

            if self._pending is None:
                self._pending = self._draft.finalize()

            try:
                store.save(self._pending)
            except Exception as e:
                logger.exception("Saving measurement %s failed", self._pending.id)
                raise SaveFailure(f"Could not save measurement: {e}") from e

            self._state = SessionState.CONFIRMED
            logger.info("Confirmed %s: %s", self.movement_config.label, self._pending.neutral_zero_format)
            return self._pending

    def retake(self) -> SessionSnapshot:
        """Discard draft, buffer and anchor and start searching again."""
        with self._lock:
            logger.info("Retake requested while %s", self._state.value)
            self._reset()
            return self._snapshot()
