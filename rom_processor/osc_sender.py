"""
OSC sender for the live measurement overlay.
"""

import logging

from pythonosc import udp_client
from pythonosc.osc_bundle_builder import IMMEDIATELY, OscBundleBuilder
from pythonosc.osc_message_builder import OscMessageBuilder

from rom_processor.session import SessionSnapshot

logger = logging.getLogger(__name__)

ADDRESS_PREFIX = "/rom"


class OSCSender:
    """Sends session snapshots to the UI collaborator via OSC."""

    def __init__(self, host: str = "127.0.0.1", port: int = 57120):
        """
        Initialize OSC client.

        Args:
            host: Overlay host (default localhost)
            port: Overlay OSC port
        """
        self.host = host
        self.port = port
        self.client = udp_client.SimpleUDPClient(host, port)
        logger.info("OSC sender ready: %s:%s", host, port)

    def send(self, address: str, value):
        """
        Send a single OSC message.

        Args:
            address: OSC address (e.g., "/rom/currentAngle")
            value: Float, int or string value
        """
        self.client.send_message(address, value)

    def send_snapshot(self, snapshot: SessionSnapshot):
        """
        Send the overlay fields as one OSC bundle.

        Addresses: /rom/currentAngle (float), /rom/state (str),
        /rom/validationError (str, "" when none), /rom/stable (int 0/1)
        """
        values = {
            "currentAngle": float(snapshot.current_angle),
            "state": snapshot.session_state.value,
            "validationError": snapshot.validation_error.value if snapshot.validation_error else "",
            "stable": int(snapshot.is_stable),
        }

        bundle_builder = OscBundleBuilder(IMMEDIATELY)
        for name, value in values.items():
            msg_builder = OscMessageBuilder(address=f"{ADDRESS_PREFIX}/{name}")
            msg_builder.add_arg(value)
            bundle_builder.add_content(msg_builder.build())

        self.client.send(bundle_builder.build())
