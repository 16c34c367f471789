"""
Integration tests for the ROM measurement pipeline.

Tests that modules connect and communicate correctly using mocked I/O.
No camera or overlay required.

Tier 2 tests cover:
- OSCSender: message formatting, snapshot bundles, address patterns
- FrameChannel: single-slot delivery and drop-newest back-pressure
- Pipeline: FrameChannel → MeasurementWorker → MeasurementSession → OSCSender
- Pipeline: confirmed measurement → MeasurementStore

Usage:
    pytest tests/integration/test_integration.py -v
"""

import math
import time
import pytest
import sys
import os
from unittest.mock import MagicMock, patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), "../.."))

from rom_processor.engine import FrameChannel, MeasurementWorker, PoseFrame
from rom_processor.errors import Condition, ConfigurationError
from rom_processor.joints import build_default_registry
from rom_processor.landmarks import Landmark
from rom_processor.osc_sender import OSCSender
from rom_processor.session import MeasurementSession, SessionSnapshot, SessionState
from rom_processor.storage import InMemoryMeasurementStore


# =============================================================================
# HELPERS
# =============================================================================

def make_landmark(x, y, confidence=0.9):
    return Landmark.from_dict({"x": x, "y": y, "z": 0.0, "visibility": confidence})


def make_landmarks_knee(rom=95.0, confidence=0.9):
    """Right knee bent to `rom` degrees flexion, level pelvis, pixel coordinates."""
    lm = [None] * 33
    direction = math.radians(90.0 - rom)
    lm[23] = make_landmark(340.0, 200.0, confidence)
    lm[24] = make_landmark(300.0, 200.0, confidence)
    lm[26] = make_landmark(300.0, 400.0, confidence)
    lm[28] = make_landmark(300.0 + 200.0 * math.cos(direction),
                           400.0 + 200.0 * math.sin(direction), confidence)
    return lm


def bundle_values(bundle):
    """{address: first param} for every message in an OSC bundle."""
    return {msg.address: msg.params[0] for msg in bundle}


def wait_for(predicate, timeout=2.0):
    deadline = time.time() + timeout
    while not predicate():
        if time.time() > deadline:
            pytest.fail("Timed out waiting for worker")
        time.sleep(0.005)


def deliver(worker, frame):
    """Offer one frame and wait until the worker has finished it."""
    target = worker.processed + 1
    assert worker.channel.offer(frame)
    wait_for(lambda: worker.processed >= target and worker.channel.idle)


# =============================================================================
# OSCSender - unit tests with mocked UDP
# =============================================================================

class TestOSCSender:

    @patch("rom_processor.osc_sender.udp_client.SimpleUDPClient")
    def test_initializes_with_defaults(self, mock_udp):
        OSCSender()
        mock_udp.assert_called_once_with("127.0.0.1", 57120)

    @patch("rom_processor.osc_sender.udp_client.SimpleUDPClient")
    def test_initializes_with_custom_host_port(self, mock_udp):
        OSCSender(host="192.168.1.10", port=9000)
        mock_udp.assert_called_once_with("192.168.1.10", 9000)

    @patch("rom_processor.osc_sender.udp_client.SimpleUDPClient")
    def test_send_single_message(self, mock_udp):
        mock_client = MagicMock()
        mock_udp.return_value = mock_client

        sender = OSCSender()
        sender.send("/rom/currentAngle", 42.5)

        mock_client.send_message.assert_called_once_with("/rom/currentAngle", 42.5)

    @patch("rom_processor.osc_sender.udp_client.SimpleUDPClient")
    def test_send_snapshot_sends_one_bundle(self, mock_udp):
        mock_client = MagicMock()
        mock_udp.return_value = mock_client

        sender = OSCSender()
        sender.send_snapshot(SessionSnapshot(current_angle=95.0, session_state=SessionState.STABLE))

        mock_client.send.assert_called_once()
        mock_client.send_message.assert_not_called()

    @patch("rom_processor.osc_sender.udp_client.SimpleUDPClient")
    def test_snapshot_bundle_contents(self, mock_udp):
        mock_client = MagicMock()
        mock_udp.return_value = mock_client

        sender = OSCSender()
        sender.send_snapshot(SessionSnapshot(
            current_angle=95.0,
            session_state=SessionState.TRACKING,
            validation_error=Condition.DRIFT_EXCEEDED,
            conditions=(Condition.DRIFT_EXCEEDED,),
        ))

        values = bundle_values(mock_client.send.call_args[0][0])
        assert values["/rom/currentAngle"] == pytest.approx(95.0)
        assert values["/rom/state"] == "tracking"
        assert values["/rom/validationError"] == "drift_exceeded"
        assert values["/rom/stable"] == 0

    @patch("rom_processor.osc_sender.udp_client.SimpleUDPClient")
    def test_no_error_sends_empty_string(self, mock_udp):
        mock_client = MagicMock()
        mock_udp.return_value = mock_client

        sender = OSCSender()
        sender.send_snapshot(SessionSnapshot(current_angle=0.0, session_state=SessionState.FROZEN))

        values = bundle_values(mock_client.send.call_args[0][0])
        assert values["/rom/validationError"] == ""
        assert values["/rom/stable"] == 1

    @patch("rom_processor.osc_sender.udp_client.SimpleUDPClient")
    def test_addresses_use_rom_prefix(self, mock_udp):
        mock_client = MagicMock()
        mock_udp.return_value = mock_client

        OSCSender().send_snapshot(SessionSnapshot(current_angle=1.0, session_state=SessionState.SEARCHING))

        values = bundle_values(mock_client.send.call_args[0][0])
        assert all(address.startswith("/rom/") for address in values)


# =============================================================================
# FrameChannel
# =============================================================================

class TestFrameChannel:

    @pytest.fixture
    def channel(self):
        return FrameChannel()

    def test_offer_and_take(self, channel):
        frame = PoseFrame(make_landmarks_knee(), timestamp=0.0)
        assert channel.offer(frame)
        assert channel.take(timeout=0.1) is frame

    def test_full_slot_drops_newest(self, channel):
        first = PoseFrame(make_landmarks_knee(), timestamp=0.0)
        second = PoseFrame(make_landmarks_knee(), timestamp=0.1)
        channel.offer(first)

        assert not channel.offer(second)
        assert channel.take(timeout=0.1) is first
        assert channel.dropped == 1
        assert channel.offered == 2

    def test_busy_consumer_drops(self, channel):
        channel.offer(PoseFrame(None))
        channel.take(timeout=0.1)

        assert not channel.offer(PoseFrame(None))
        assert not channel.idle

        channel.done()
        assert channel.idle
        assert channel.offer(PoseFrame(None))

    def test_take_times_out(self, channel):
        assert channel.take(timeout=0.01) is None

    def test_closed_channel(self, channel):
        channel.offer(PoseFrame(None))
        channel.close()
        assert channel.closed
        assert channel.take(timeout=0.01) is None
        assert not channel.offer(PoseFrame(None))

    def test_reopen_after_close(self, channel):
        channel.close()
        channel.reopen()
        assert not channel.closed
        assert channel.offer(PoseFrame(None))


# =============================================================================
# Pipeline: FrameChannel → MeasurementWorker → Session → OSC
# =============================================================================

class TestMeasurementPipeline:

    @pytest.fixture
    def session(self):
        return MeasurementSession(build_default_registry(), "knee", "right", "flexion")

    @pytest.fixture
    def worker(self, session):
        updates = []
        w = MeasurementWorker(session, on_update=updates.append, poll_interval=0.01)
        w.updates = updates
        w.start()
        yield w
        w.stop()

    def test_worker_starts_and_stops(self, session):
        w = MeasurementWorker(session, poll_interval=0.01)
        w.start()
        assert w.running
        w.stop()
        assert not w.running

    def test_frames_reach_session(self, worker, session):
        for i in range(3):
            deliver(worker, PoseFrame(make_landmarks_knee(), timestamp=i * 0.25))

        assert worker.processed == 3
        assert session.state == SessionState.TRACKING
        assert [s.frame_index for s in worker.updates] == [1, 2, 3]

    def test_full_measurement_to_store(self, worker, session):
        for i in range(13):
            deliver(worker, PoseFrame(make_landmarks_knee(), timestamp=i * 0.25))

        assert session.state == SessionState.FROZEN
        store = InMemoryMeasurementStore()
        measurement = session.confirm(store)

        assert measurement.neutral_zero_format == "0-0-95"
        assert store.latest("knee", "flexion", "right") is measurement

    def test_lost_pose_resets(self, worker, session):
        for i in range(4):
            deliver(worker, PoseFrame(make_landmarks_knee(), timestamp=i * 0.25))
        deliver(worker, PoseFrame(None, timestamp=1.0))

        assert session.state == SessionState.SEARCHING
        assert worker.updates[-1].validation_error == Condition.LOW_CONFIDENCE

    @patch("rom_processor.osc_sender.udp_client.SimpleUDPClient")
    def test_snapshots_sent_over_osc(self, mock_udp, session):
        mock_client = MagicMock()
        mock_udp.return_value = mock_client
        osc = OSCSender()

        w = MeasurementWorker(session, on_update=osc.send_snapshot, poll_interval=0.01)
        w.start()
        try:
            for i in range(2):
                deliver(w, PoseFrame(make_landmarks_knee(), timestamp=i * 0.25))
        finally:
            w.stop()

        assert mock_client.send.call_count == 2
        last = bundle_values(mock_client.send.call_args[0][0])
        assert last["/rom/state"] == "tracking"
        assert last["/rom/currentAngle"] == pytest.approx(95.0)


# =============================================================================
# MeasurementWorker - failure handling
# =============================================================================

class TestWorkerFailures:

    @pytest.fixture
    def session(self):
        return MeasurementSession(build_default_registry(), "knee", "right", "flexion")

    def test_failing_update_keeps_measuring(self, session):
        def unreachable_overlay(snapshot):
            raise OSError("Network is unreachable")

        w = MeasurementWorker(session, on_update=unreachable_overlay, poll_interval=0.01)
        w.start()
        try:
            for i in range(6):
                deliver(w, PoseFrame(make_landmarks_knee(), timestamp=i * 0.25))
            assert w.running
        finally:
            w.stop()

        assert w.processed == 6
        assert w.update_errors == 6
        assert w.channel.dropped == 0
        assert session.state == SessionState.TRACKING
        assert session.sample_count == 5

    def test_bad_frame_is_skipped(self):
        session = MagicMock()
        session.process_frame.side_effect = [
            RuntimeError("bad frame"),
            SessionSnapshot(current_angle=95.0, session_state=SessionState.ALIGNED),
        ]
        updates = []
        w = MeasurementWorker(session, on_update=updates.append, poll_interval=0.01)
        w.start()
        try:
            assert w.channel.offer(PoseFrame(None, timestamp=0.0))
            wait_for(lambda: w.failed == 1 and w.channel.idle)
            deliver(w, PoseFrame(None, timestamp=0.25))
            assert w.running
        finally:
            w.stop()

        assert w.processed == 1
        assert updates[0].session_state == SessionState.ALIGNED

    def test_configuration_error_stops_worker(self):
        session = MagicMock()
        session.process_frame.side_effect = ConfigurationError("No ROM mapping for hip_abduction")
        errors = []
        w = MeasurementWorker(session, on_error=errors.append, poll_interval=0.01)
        w.start()
        try:
            assert w.channel.offer(PoseFrame(None, timestamp=0.0))
            wait_for(lambda: not w.running)
        finally:
            w.stop()

        assert isinstance(w.error, ConfigurationError)
        assert errors == [w.error]
        assert w.channel.closed
        assert not w.channel.offer(PoseFrame(None, timestamp=0.25))

    def test_restart_after_stop(self, session):
        w = MeasurementWorker(session, poll_interval=0.01)
        w.start()
        w.stop()
        assert w.channel.closed

        w.start()
        try:
            assert not w.channel.closed
            deliver(w, PoseFrame(make_landmarks_knee(), timestamp=0.0))
        finally:
            w.stop()

        assert w.processed == 1
        assert session.state == SessionState.ALIGNED
