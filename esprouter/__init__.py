"""Framing, MQTT packets and client, packet ACLs and simulated flash storage for a small router."""

__version__ = "0.1.0"