"""
Rolling ROM sample window and the stability (hold-still) test.
"""

from collections import deque
from dataclasses import dataclass
from typing import Iterable, List, Union


BUFFER_CAPACITY = 20
DEFAULT_WINDOW = 5
DEFAULT_STABILITY_THRESHOLD = 4.0
DEFAULT_STABILITY_FRAMES = 10


@dataclass(frozen=True)
class AngleSample:
    """One accepted ROM value."""
    value: float
    frame_index: int


class SmoothingBuffer:
    """Fixed-capacity FIFO of ROM samples with a moving-average readout."""

    def __init__(self, capacity: int = BUFFER_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._samples = deque(maxlen=capacity)

    def push(self, sample: AngleSample):
        """Append a sample, evicting the oldest once full."""
        self._samples.append(sample)

    def average(self, window_size: int = DEFAULT_WINDOW) -> float:
        """
        Mean of the last min(window_size, len) samples.

        Returns:
            Average in degrees, 0.0 when the buffer is empty
        """
        if not self._samples or window_size < 1:
            return 0.0
        window = self.values()[-window_size:]
        return sum(window) / len(window)

    def values(self) -> List[float]:
        """Sample values, oldest first."""
        return [s.value for s in self._samples]

    def samples(self) -> List[AngleSample]:
        return list(self._samples)

    def clear(self):
        self._samples.clear()

    def __len__(self) -> int:
        return len(self._samples)


def is_stable(
        buffer: Union[SmoothingBuffer, Iterable[float]],
        threshold: float = DEFAULT_STABILITY_THRESHOLD,
        min_frames: int = DEFAULT_STABILITY_FRAMES
) -> bool:
    """
    Check whether the last min_frames samples have converged.

    Every sample in the window must lie within threshold degrees of the
    window mean. A single outlier keeps this False until it ages out.

    Args:
        buffer: SmoothingBuffer or plain sequence of ROM values
        threshold: Max allowed deviation from the mean, in degrees
        min_frames: Window length; fewer samples means not stable

    Returns:
        True if the window is stable
    """
    values = buffer.values() if isinstance(buffer, SmoothingBuffer) else list(buffer)
    if min_frames < 1 or len(values) < min_frames:
        return False

    recent = values[-min_frames:]
    avg = sum(recent) / len(recent)
    return all(abs(v - avg) <= threshold for v in recent)
