"""
Frame delivery between the pose source and the measurement session.

The camera/pose side offers frames into a single-slot FrameChannel; a
MeasurementWorker thread takes them one at a time and applies them to
the session. A frame offered while the slot is full or the worker is
still busy is dropped, never queued, so frames are lost but never
reordered.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from rom_processor.errors import ConfigurationError
from rom_processor.landmarks import Landmark
from rom_processor.session import MeasurementSession, SessionSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PoseFrame:
    """Landmarks for one camera frame."""
    landmarks: Optional[Sequence[Optional[Landmark]]]
    timestamp: Optional[float] = None


class FrameChannel:
    """Bounded single-slot channel with drop-newest on back-pressure."""

    def __init__(self):
        self._cond = threading.Condition()
        self._slot: Optional[PoseFrame] = None
        self._busy = False
        self._closed = False
        self.offered = 0
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def idle(self) -> bool:
        """True when the slot is empty and no frame is being processed."""
        with self._cond:
            return self._slot is None and not self._busy

    def offer(self, frame: PoseFrame) -> bool:
        """
        Offer a frame without blocking.

        Returns:
            True if accepted; False if dropped (busy, slot full or closed)
        """
        with self._cond:
            self.offered += 1
            if self._closed or self._busy or self._slot is not None:
                self.dropped += 1
                logger.debug("Frame dropped (%d dropped so far)", self.dropped)
                return False
            self._slot = frame
            self._cond.notify()
            return True

    def take(self, timeout: Optional[float] = None) -> Optional[PoseFrame]:
        """
        Wait for the next frame and mark the consumer busy.

        Returns:
            The frame, or None on timeout or once the channel is closed
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._slot is not None or self._closed, timeout):
                return None
            if self._slot is None:
                return None
            frame, self._slot = self._slot, None
            self._busy = True
            return frame

    def done(self):
        """Consumer finished the frame it took; new frames are accepted again."""
        with self._cond:
            self._busy = False

    def close(self):
        with self._cond:
            self._closed = True
            self._slot = None
            self._cond.notify_all()

    def reopen(self):
        """Accept frames again after close()."""
        with self._cond:
            self._closed = False
            self._busy = False


class MeasurementWorker:
    """
    Consumes frames from a FrameChannel and feeds a MeasurementSession.

    A failing on_update callback (e.g. the overlay socket is gone) is
    logged and the worker keeps measuring. A ConfigurationError from the
    session stops the worker: it is kept in `error`, passed to on_error,
    and the channel is closed so no further frames are accepted.

    Example:
        >>> worker = MeasurementWorker(session, channel, on_update=osc.send_snapshot)
        >>> worker.start()
        >>> channel.offer(PoseFrame(landmarks))
        >>> worker.stop()
    """

    def __init__(
            self,
            session: MeasurementSession,
            channel: Optional[FrameChannel] = None,
            on_update: Optional[Callable[[SessionSnapshot], None]] = None,
            on_error: Optional[Callable[[Exception], None]] = None,
            poll_interval: float = 0.1
    ):
        self.session = session
        self.channel = channel or FrameChannel()
        self.on_update = on_update
        self.on_error = on_error
        self.poll_interval = poll_interval
        self.processed = 0
        self.failed = 0
        self.update_errors = 0
        self.error: Optional[ConfigurationError] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start the worker thread, reopening the channel after a stop()."""
        if self.running:
            return
        self._stop.clear()
        self.error = None
        self.channel.reopen()
        self._thread = threading.Thread(target=self._run, name="rom-measurement", daemon=True)
        self._thread.start()
        logger.info("Measurement worker started")

    def stop(self, timeout: float = 2.0):
        """Stop delivery and wait for the in-flight frame to finish."""
        self._stop.set()
        self.channel.close()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Measurement worker stopped (%d processed, %d dropped)",
                    self.processed, self.channel.dropped)

    def _run(self):
        while not self._stop.is_set():
            frame = self.channel.take(timeout=self.poll_interval)
            if frame is None:
                if self.channel.closed:
                    break
                continue
            try:
                snapshot = self.session.process_frame(frame.landmarks, frame.timestamp)
            except ConfigurationError as e:
                self.channel.done()
                self._fail(e)
                break
            except Exception:
                # One bad frame must not end the session
                self.failed += 1
                logger.exception("Measurement failed on frame, skipping it")
                self.channel.done()
                continue

            self.processed += 1
            try:
                self._publish(snapshot)
            finally:
                self.channel.done()

    def _publish(self, snapshot: SessionSnapshot):
        if self.on_update is None:
            return
        try:
            self.on_update(snapshot)
        except Exception as e:
            self.update_errors += 1
            if self.update_errors == 1:
                logger.exception("Snapshot update failed, measurement continues")
            else:
                logger.debug("Snapshot update failed again: %s", e)

    def _fail(self, error: ConfigurationError):
        logger.error("Measurement worker stopped on configuration error: %s", error)
        self.error = error
        self.channel.close()
        if self.on_error is not None:
            self.on_error(error)
