"""
maibot-telegram-adapter — bridge Telegram bots to a MaiBot server.

WebSocket message-bus client for MaiBot's MessageBase envelopes,
plus a Telegram Bot API adapter built on it.
"""

from maibot_tg.bridge import Bridge
from maibot_tg.config import Config, load_config
from maibot_tg.correlation import CorrelationTable
from maibot_tg.errors import (
    AdapterError,
    ClosedError,
    ConnectionError,
    DecodeError,
    DuplicateIDError,
    EncodeError,
    NotASegListError,
    NotConnectedError,
    RequestTimeoutError,
    SendError,
)
from maibot_tg.models.envelope import MessageBase, Segment
from maibot_tg.transport.envelope import decode, encode
from maibot_tg.transport.websocket import BusClient, ConnectionState

__version__ = "0.1.0"
__all__ = [
    "Bridge",
    "BusClient",
    "ConnectionState",
    "CorrelationTable",
    "Config",
    "load_config",
    "MessageBase",
    "Segment",
    "encode",
    "decode",
    "AdapterError",
    "ConnectionError",
    "NotConnectedError",
    "SendError",
    "EncodeError",
    "DecodeError",
    "NotASegListError",
    "RequestTimeoutError",
    "DuplicateIDError",
    "ClosedError",
]
