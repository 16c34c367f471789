"""
Persistence seam for confirmed measurements.

The session hands each confirmed Measurement to a MeasurementStore and
does not care how it is stored or synced.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from rom_processor.session import Measurement


class MeasurementStore(ABC):
    """Persistence collaborator interface."""

    @abstractmethod
    def save(self, measurement: "Measurement") -> None:
        """Store a measurement. Raise on failure."""


class InMemoryMeasurementStore(MeasurementStore):
    """Keeps measurements newest-first in memory. Saving the same id twice is a no-op."""

    def __init__(self):
        self._lock = threading.Lock()
        self._items: List["Measurement"] = []

    def save(self, measurement: "Measurement") -> None:
        with self._lock:
            if any(m.id == measurement.id for m in self._items):
                return
            self._items.insert(0, measurement)

    def all(self) -> List["Measurement"]:
        with self._lock:
            return list(self._items)

    def latest(self, joint, movement, side) -> Optional["Measurement"]:
        for m in self.query(joint, movement, side, limit=1):
            return m
        return None

    def query(self, joint, movement, side, limit: int = 90) -> List["Measurement"]:
        """Newest-first measurements for one joint, movement and side."""
        joint = getattr(joint, "value", joint)
        movement = getattr(movement, "value", movement)
        side = getattr(side, "value", side)
        with self._lock:
            rows = [
                m for m in self._items
                if m.joint_type.value == joint and m.movement_type.value == movement
                and m.body_side.value == side
            ]
        return rows[:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
