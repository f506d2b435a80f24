"""
Adapter error types — one base class, a stable ``code`` per failure kind.
"""

from typing import Any, Optional


class AdapterError(Exception):
    def __init__(self, code: str, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.details = details


class ConnectionError(AdapterError):
    """WebSocket handshake with the MaiBot server failed."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("connection_error", message, details)


class NotConnectedError(AdapterError):
    def __init__(self, message: str = "WebSocket not connected"):
        super().__init__("not_connected", message)


class SendError(AdapterError):
    """Write failed on an established connection. The connection has been torn down."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("send_error", message, details)


class EncodeError(AdapterError):
    def __init__(self, message: str):
        super().__init__("encode_error", message)


class DecodeError(AdapterError):
    def __init__(self, message: str):
        super().__init__("decode_error", message)


class NotASegListError(AdapterError):
    def __init__(self, segment_type: str):
        super().__init__(
            "not_a_seglist",
            f"message segment is not a seglist (type={segment_type!r})",
            {"type": segment_type},
        )


class RequestTimeoutError(AdapterError, TimeoutError):
    def __init__(self, correlation_id: str, timeout: Optional[float] = None):
        message = f"No response for request {correlation_id!r}"
        if timeout is not None:
            message += f" within {timeout}s"
        super().__init__("timeout", message, {"correlation_id": correlation_id})


class DuplicateIDError(AdapterError):
    def __init__(self, correlation_id: str):
        super().__init__(
            "duplicate_id",
            f"Request id {correlation_id!r} is already pending",
            {"correlation_id": correlation_id},
        )


class ClosedError(AdapterError):
    def __init__(self, message: str = "Client is closed"):
        super().__init__("closed", message)


class TelegramAPIError(AdapterError):
    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__("telegram_error", message, details)


class ConfigError(AdapterError):
    def __init__(self, message: str):
        super().__init__("config_error", message)
