"""
API module for Sequencer - the UI message boundary.

This module provides:
- Pydantic models for inbound UI messages
- PluginController, which dispatches messages for one document
- A FastAPI bridge exposing a session over HTTP
"""

from .controller import PluginController
from .messages import InboundMessage, parse_message, sequence_payload

__all__ = [
    "PluginController",
    "InboundMessage",
    "parse_message",
    "sequence_payload",
]
