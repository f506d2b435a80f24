"""
WebSocket bus client for the MaiBot server.

One logical connection to one endpoint: handshake with platform identity headers,
an application-level ping heartbeat, a read loop that reconnects forever with a
fixed backoff, a serialized write path, and request/response correlation.

Connection: ws://{host}/ with headers ``platform`` and (optional) ``authorization``.
"""

import asyncio
import enum
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from maibot_tg import errors
from maibot_tg.correlation import CorrelationTable
from maibot_tg.models.envelope import MessageBase
from maibot_tg.transport.envelope import (
    decode,
    encode,
    new_group_text_message,
    new_simple_text_message,
)

logger = logging.getLogger(__name__)

DEFAULT_HEARTBEAT_INTERVAL = 30.0
DEFAULT_RECONNECT_INTERVAL = 5.0
DEFAULT_HANDSHAKE_TIMEOUT = 10.0

ECHO_FIELD = "echo"

# Failures that mean the transport is gone.
TRANSPORT_ERRORS = (ConnectionClosed, OSError)


class Transport(Protocol):
    async def send(self, message: str) -> None: ...
    async def recv(self) -> Union[str, bytes]: ...
    async def ping(self) -> Any: ...
    async def close(self) -> None: ...


Connector = Callable[[str, dict[str, str], float], Awaitable[Transport]]
InboundHandler = Callable[[MessageBase], Any]


async def websocket_connector(url: str, headers: dict[str, str], timeout: float) -> Transport:
    """Open a WebSocket with the library keepalive off; BusClient runs its own heartbeat."""
    return await ws_connect(
        url,
        additional_headers=headers,
        open_timeout=timeout,
        ping_interval=None,
    )


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class BusClient:
    def __init__(
        self,
        url: str,
        platform: str,
        token: Optional[str] = None,
        *,
        heartbeat_interval: float = DEFAULT_HEARTBEAT_INTERVAL,
        reconnect_interval: float = DEFAULT_RECONNECT_INTERVAL,
        handshake_timeout: float = DEFAULT_HANDSHAKE_TIMEOUT,
        connector: Optional[Connector] = None,
    ):
        self._url = url
        self._platform = platform
        self._token = token
        self._heartbeat_interval = heartbeat_interval
        self._reconnect_interval = reconnect_interval
        self._handshake_timeout = handshake_timeout
        self._connector = connector or websocket_connector

        self._ws: Optional[Transport] = None
        self._state = ConnectionState.DISCONNECTED
        self._connect_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._closed = asyncio.Event()

        self._pending = CorrelationTable(sweep_interval=heartbeat_interval)
        self._handler: Optional[InboundHandler] = None

        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._background: set[asyncio.Task[Any]] = set()

    @property
    def url(self) -> str:
        return self._url

    @property
    def platform(self) -> str:
        return self._platform

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._ws is not None

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    @property
    def pending(self) -> CorrelationTable:
        return self._pending

    def set_inbound_handler(self, handler: Optional[InboundHandler]) -> None:
        """Install the callback for unsolicited envelopes (replaces any previous one)."""
        self._handler = handler

    def _headers(self) -> dict[str, str]:
        headers = {"platform": self._platform}
        if self._token:
            headers["authorization"] = self._token
        return headers

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Perform the handshake and start the heartbeat for the new connection."""
        async with self._connect_lock:
            if self.closed:
                raise errors.ClosedError()
            if self.connected:
                return

            self._state = ConnectionState.CONNECTING
            try:
                ws = await asyncio.wait_for(
                    self._connector(self._url, self._headers(), self._handshake_timeout),
                    timeout=self._handshake_timeout,
                )
            except asyncio.TimeoutError as e:
                self._state = ConnectionState.DISCONNECTED
                raise errors.ConnectionError(
                    f"Handshake with {self._url} timed out after {self._handshake_timeout}s",
                    {"endpoint": self._url},
                ) from e
            except (InvalidURI, InvalidHandshake, OSError) as e:
                self._state = ConnectionState.DISCONNECTED
                raise errors.ConnectionError(
                    f"Failed to connect to {self._url}: {e}", {"endpoint": self._url},
                ) from e

            if self.closed:
                await self._close_transport(ws)
                raise errors.ClosedError()

            async with self._write_lock:
                self._ws = ws
                self._state = ConnectionState.CONNECTED
            self._heartbeat_task = asyncio.create_task(self._heartbeat(ws))
            logger.info("Connected to WebSocket endpoint: %s", self._url)

    def start(self) -> None:
        """Run the read/reconnect loop and the correlation sweeper in the background.

        Call from within a running event loop. The first connection attempt happens
        inside the read loop, so a server that is down at startup is simply retried.
        """
        if self.closed:
            raise errors.ClosedError()
        self._spawn(self.listen(), name="maibot-listen")
        self._spawn(self._pending.run_sweeper(), name="maibot-sweeper")
        logger.info("MaiBot WebSocket client started with auto-reconnect")

    async def close(self) -> None:
        """Stop every loop, close the transport, drop pending requests. Idempotent."""
        if self.closed:
            return
        self._closed.set()
        self._state = ConnectionState.CLOSING

        async with self._write_lock:
            ws, self._ws = self._ws, None
        if ws is not None:
            await self._close_transport(ws)

        tasks = [t for t in (self._heartbeat_task, *self._background) if t is not None]
        current = asyncio.current_task()
        tasks = [t for t in tasks if t is not current]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._heartbeat_task = None
        self._background.clear()
        self._pending.close()
        logger.info("MaiBot WebSocket client closed")

    async def listen(self) -> None:
        """Read frames until closed, reconnecting after every failure."""
        while not self.closed:
            ws = self._ws
            if ws is None:
                logger.info("Attempting to reconnect to %s...", self._url)
                try:
                    await self.connect()
                except errors.ClosedError:
                    break
                except errors.ConnectionError as e:
                    logger.error("Reconnection failed: %s", e)
                    await self._backoff()
                continue

            try:
                frame = await ws.recv()
            except TRANSPORT_ERRORS as e:
                if self.closed:
                    break
                logger.error("Error reading message from %s: %s", self._url, e)
                await self._teardown(ws)
                await self._backoff()
                continue

            logger.debug("Received message: %s", frame)
            self._dispatch(frame)

    async def _backoff(self) -> None:
        """Sleep for the reconnect interval, waking early on close()."""
        try:
            await asyncio.wait_for(self._closed.wait(), timeout=self._reconnect_interval)
        except asyncio.TimeoutError:
            pass

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _discard(self, ws: Transport) -> bool:
        """Forget ``ws`` if it is still the live transport. Only the first caller wins."""
        if self._ws is not ws:
            return False
        self._ws = None
        if not self.closed:
            self._state = ConnectionState.DISCONNECTED
        heartbeat = self._heartbeat_task
        if heartbeat is not None and heartbeat is not asyncio.current_task():
            heartbeat.cancel()
        self._heartbeat_task = None
        return True

    async def _teardown(self, ws: Transport) -> None:
        async with self._write_lock:
            dropped = self._discard(ws)
        if dropped:
            await self._close_transport(ws)

    async def _close_transport(self, ws: Transport) -> None:
        try:
            await ws.close()
        except TRANSPORT_ERRORS as e:
            logger.debug("Error while closing transport to %s: %s", self._url, e)

    # ------------------------------------------------------------------
    # Heartbeat
    # ------------------------------------------------------------------

    async def _heartbeat(self, ws: Transport) -> None:
        """Ping ``ws`` every heartbeat interval. A failed ping tears the connection down."""
        alive = True
        while alive:
            await asyncio.sleep(self._heartbeat_interval)
            async with self._write_lock:
                if self._ws is not ws:
                    return
                try:
                    await ws.ping()
                except TRANSPORT_ERRORS as e:
                    logger.error("Ping to %s failed: %s", self._url, e)
                    self._discard(ws)
                    alive = False
        await self._close_transport(ws)

    # ------------------------------------------------------------------
    # Write path
    # ------------------------------------------------------------------

    async def send(self, envelope: MessageBase) -> None:
        """Write one envelope. No retry: a failed write tears the connection down and raises SendError."""
        if self.closed:
            raise errors.ClosedError()
        frame = encode(envelope).decode("utf-8")

        failure: Optional[BaseException] = None
        async with self._write_lock:
            ws = self._ws
            if ws is None:
                raise errors.NotConnectedError()
            try:
                await ws.send(frame)
            except TRANSPORT_ERRORS as e:
                failure = e
                self._discard(ws)
        if failure is None:
            return

        # Outside the lock: close() can wait out the peer's close timeout.
        message_id = envelope.message_info.message_id
        logger.error("SendMessage to %s failed (message_id=%s): %s", self._url, message_id, failure)
        await self._close_transport(ws)
        raise errors.SendError(
            f"Failed to send message: {failure}",
            {"endpoint": self._url, "message_id": message_id},
        ) from failure

    async def send_text_message(
        self, message_id: str, user_id: str, text: str, group_id: Optional[str] = None,
    ) -> None:
        if group_id:
            envelope = new_group_text_message(self._platform, message_id, user_id, group_id, text)
        else:
            envelope = new_simple_text_message(self._platform, message_id, user_id, text)
        await self.send(envelope)

    async def send_request(
        self, envelope: MessageBase, correlation_id: str, timeout: float = 10.0,
    ) -> MessageBase:
        """Send ``envelope`` and wait for the response that echoes ``correlation_id``.

        The counterpart echoes the id in ``message_info.additional_config["echo"]``
        (or reuses it as its ``message_id``). The pending slot is always removed
        before this returns or raises.
        """
        if self.closed:
            raise errors.ClosedError()
        future = self._pending.register(correlation_id, timeout)
        try:
            await self.send(envelope)
            done, _ = await asyncio.wait({future}, timeout=timeout)
            if future.cancelled() and self.closed:
                raise errors.ClosedError()
            if not done or future.cancelled():
                logger.warning("Request %s to %s timed out", correlation_id, self._url)
                raise errors.RequestTimeoutError(correlation_id, timeout)
            return future.result()
        finally:
            self._pending.cancel(correlation_id)

    # ------------------------------------------------------------------
    # Read path
    # ------------------------------------------------------------------

    def _dispatch(self, frame: Union[str, bytes]) -> None:
        try:
            envelope = decode(frame)
        except errors.DecodeError as e:
            logger.error("Failed to parse received message: %s", e)
            return

        info = envelope.message_info
        echo = info.additional_config.get(ECHO_FIELD)
        if isinstance(echo, str):
            if not self._pending.deliver(echo, envelope):
                logger.warning("Dropping response for %s: no pending request", echo)
            return
        if info.message_id and info.message_id in self._pending:
            self._pending.deliver(info.message_id, envelope)
            return

        logger.info("Received MessageBase from MaiBot server: %s", envelope.text_content())
        handler = self._handler
        if handler is None:
            logger.debug("No inbound handler installed, dropping message %s", info.message_id)
            return
        try:
            result = handler(envelope)
        except Exception:
            logger.exception("Inbound handler failed for message %s", info.message_id)
            return
        if inspect.isawaitable(result):
            self._spawn(self._run_handler(result, info.message_id), name="maibot-handler")

    async def _run_handler(self, pending: Awaitable[Any], message_id: str) -> None:
        try:
            await pending
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Inbound handler failed for message %s", message_id)

    def _spawn(self, coro: Awaitable[Any], name: str) -> None:
        task = asyncio.ensure_future(coro)
        task.set_name(name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
