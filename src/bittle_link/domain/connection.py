import asyncio
import codecs
import logging

from bittle_link.domain.errors import (
    ConnectFailure,
    LinkBusyError,
    NotConnectedError,
    SerialDeviceError,
)
from bittle_link.domain.events import LogBus
from bittle_link.domain.state import ConnectionState, validate_transition
from bittle_link.ports.transport import BAUD_RATE, SerialTransportPort

logger = logging.getLogger(__name__)


class ConnectionManager:
    def __init__(self, transport: SerialTransportPort, log: LogBus) -> None:
        self._transport = transport
        self._log = log
        self._state = ConnectionState.DISCONNECTED
        self._port_name: str | None = None
        self._read_task: asyncio.Task | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def port_name(self) -> str | None:
        return self._port_name

    def _transition_to(self, target: ConnectionState) -> None:
        validate_transition(self._state, target)
        logger.info("State: %s -> %s", self._state.name, target.name)
        self._state = target

    async def connect(self, port: str | None = None) -> str:
        """Open the serial device and start the background reader.

        Returns the name of the opened device. Raises ``ConnectFailure``
        (``SerialUnsupportedError`` or ``SerialDeviceError``) when the device
        cannot be opened; the manager is left disconnected in that case.
        Connecting an open link returns its device unchanged; while a connect
        or disconnect is still in progress ``LinkBusyError`` is raised.
        """
        if self._state == ConnectionState.CONNECTED:
            logger.info("Connect ignored, already connected to %s", self._port_name)
            return self._port_name
        if self._state != ConnectionState.DISCONNECTED:
            raise LinkBusyError(f"link is {self._state.name.lower()}")

        self._transition_to(ConnectionState.CONNECTING)
        try:
            opened = await self._transport.open(port, BAUD_RATE)
        except ConnectFailure as exc:
            self._log.error(f"Connection failed: {exc}")
            self._transition_to(ConnectionState.DISCONNECTED)
            raise
        except Exception as exc:
            self._log.error(f"Connection failed: {exc}")
            self._transition_to(ConnectionState.DISCONNECTED)
            raise SerialDeviceError(str(exc)) from exc

        self._port_name = opened
        self._transition_to(ConnectionState.CONNECTED)
        self._read_task = asyncio.create_task(self._read_loop())
        self._log.info(f"Connected to Bittle at {BAUD_RATE} baud ({opened})")
        return opened

    async def disconnect(self) -> None:
        if self._state != ConnectionState.CONNECTED:
            return

        self._transition_to(ConnectionState.DISCONNECTING)
        failed = False
        for step, release in (
            ("read loop", self._stop_read_loop),
            ("reader", self._transport.stop_reading),
            ("device", self._transport.close),
        ):
            try:
                await release()
            except Exception as exc:
                failed = True
                logger.warning("Release of %s failed", step, exc_info=True)
                self._log.error(f"Disconnect error ({step}): {exc}")

        self._port_name = None
        self._transition_to(ConnectionState.DISCONNECTED)
        if failed:
            self._log.info("Disconnected from Bittle (with errors)")
        else:
            self._log.info("Disconnected from Bittle")

    async def write(self, data: bytes) -> None:
        if not self.is_connected:
            raise NotConnectedError("Not connected")
        await self._transport.write(data)

    async def _stop_read_loop(self) -> None:
        task, self._read_task = self._read_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _read_loop(self) -> None:
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            async for chunk in self._transport.read_chunks():
                text = decoder.decode(chunk)
                for line in text.splitlines():
                    line = line.strip()
                    if line:
                        self._log.rx(line)
            tail = decoder.decode(b"", final=True).strip()
            if tail:
                self._log.rx(tail)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if self.is_connected:
                logger.exception("Serial read loop failed")
                self._log.error(f"Read error: {exc}")
