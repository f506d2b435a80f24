"""Shared fixtures: an in-memory WebSocket transport and the connector that hands it out."""

import asyncio
from typing import Callable, Union

import pytest

_CLOSED = object()


class FakeTransport:
    def __init__(self) -> None:
        self.sent: list[str] = []
        self.pings = 0
        self.closed = False
        self.fail_send = False
        self.fail_ping = False
        self.hold_close = False
        self._close_gate = asyncio.Event()
        self._inbox: asyncio.Queue = asyncio.Queue()

    def feed(self, frame: Union[str, bytes]) -> None:
        self._inbox.put_nowait(frame)

    def drop(self) -> None:
        """Simulate the peer going away: pending and future reads fail."""
        self._inbox.put_nowait(_CLOSED)

    async def send(self, message: str) -> None:
        if self.closed or self.fail_send:
            raise ConnectionResetError("send failed")
        self.sent.append(message)

    async def recv(self) -> Union[str, bytes]:
        item = await self._inbox.get()
        if item is _CLOSED:
            self._inbox.put_nowait(_CLOSED)
            raise ConnectionResetError("connection lost")
        return item

    async def ping(self) -> None:
        if self.closed or self.fail_ping:
            raise ConnectionResetError("ping failed")
        self.pings += 1

    def release_close(self) -> None:
        self._close_gate.set()

    async def close(self) -> None:
        if self.hold_close:
            await self._close_gate.wait()
        if not self.closed:
            self.closed = True
            self.drop()


class FakeConnector:
    def __init__(self) -> None:
        self.transports: list[FakeTransport] = []
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.failures = 0
        self.hang = False

    @property
    def last(self) -> FakeTransport:
        return self.transports[-1]

    async def __call__(self, url: str, headers: dict[str, str], timeout: float) -> FakeTransport:
        self.calls.append((url, dict(headers)))
        if self.hang:
            await asyncio.sleep(3600)
        if self.failures:
            self.failures -= 1
            raise ConnectionRefusedError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


@pytest.fixture
def eventually() -> Callable:
    return wait_until
