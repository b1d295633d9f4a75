import asyncio
from collections.abc import AsyncIterator

import pytest

from bittle_link.domain.channel import CommandChannel
from bittle_link.domain.connection import ConnectionManager
from bittle_link.domain.events import LogBus, LogEntry, LogKind
from bittle_link.domain.sequence import SequenceController, Step


class FakeTransport:
    def __init__(self) -> None:
        self.writes: list[bytes] = []
        self.write_times: list[float] = []
        self.opened_port: str | None = None
        self.baudrate: int | None = None
        self.open_error: Exception | None = None
        self.write_error: Exception | None = None
        self.stop_error: Exception | None = None
        self.close_error: Exception | None = None
        self.open_delay = 0.0
        self.stop_calls = 0
        self.close_calls = 0
        self._incoming: asyncio.Queue[bytes | Exception | None] = asyncio.Queue()

    async def open(self, port: str | None, baudrate: int = 115200) -> str:
        await asyncio.sleep(self.open_delay)
        if self.open_error:
            raise self.open_error
        self.opened_port = port or "/dev/ttyFAKE0"
        self.baudrate = baudrate
        return self.opened_port

    async def write(self, data: bytes) -> None:
        await asyncio.sleep(0)
        if self.write_error:
            raise self.write_error
        self.writes.append(bytes(data))
        self.write_times.append(asyncio.get_running_loop().time())

    async def read_chunks(self) -> AsyncIterator[bytes]:
        while True:
            item = await self._incoming.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def stop_reading(self) -> None:
        self.stop_calls += 1
        if self.stop_error:
            raise self.stop_error
        self._incoming.put_nowait(None)

    async def close(self) -> None:
        self.close_calls += 1
        if self.close_error:
            raise self.close_error
        self.opened_port = None

    def feed(self, data: bytes | Exception) -> None:
        self._incoming.put_nowait(data)


class LogRecorder:
    def __init__(self) -> None:
        self.entries: list[LogEntry] = []

    def __call__(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def of(self, kind: LogKind) -> list[str]:
        return [e.message for e in self.entries if e.kind == kind]

    @property
    def tx(self) -> list[str]:
        return self.of(LogKind.TX)

    @property
    def rx(self) -> list[str]:
        return self.of(LogKind.RX)

    @property
    def errors(self) -> list[str]:
        return self.of(LogKind.ERROR)


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def log_bus():
    return LogBus()


@pytest.fixture
def log_recorder(log_bus):
    recorder = LogRecorder()
    log_bus.subscribe(recorder)
    return recorder


@pytest.fixture
def connection(fake_transport, log_bus):
    return ConnectionManager(fake_transport, log_bus)


@pytest.fixture
def channel(connection, log_bus):
    return CommandChannel(connection, log_bus, settle_delay=0.0)


@pytest.fixture
def make_controller(channel, connection, log_bus):
    def make(script: list[Step], motor_port: int = 9) -> SequenceController:
        return SequenceController(
            channel=channel,
            connection=connection,
            log=log_bus,
            script_provider=lambda: list(script),
            motor_port=motor_port,
        )

    return make
