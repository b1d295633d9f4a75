import asyncio
import logging
import threading
from collections.abc import AsyncIterator

import janus
import serial
from serial.tools import list_ports

from bittle_link.domain.errors import SerialDeviceError, SerialUnsupportedError
from bittle_link.ports.transport import BAUD_RATE, DATA_BITS, PARITY, STOP_BITS

logger = logging.getLogger(__name__)

READ_TIMEOUT_SECONDS = 0.05
WRITE_TIMEOUT_SECONDS = 2.0
READ_QUEUE_SIZE = 256


def list_serial_ports() -> list[str]:
    return [p.device for p in list_ports.comports()]


class PySerialTransport:
    """pyserial device with a blocking reader thread bridged through janus."""

    def __init__(self) -> None:
        self._serial: serial.SerialBase | None = None
        self._queue: janus.Queue[bytes | Exception] | None = None
        self._reader_thread: threading.Thread | None = None
        self._stop_reading = threading.Event()
        self._write_lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    async def open(self, port: str | None, baudrate: int = BAUD_RATE) -> str:
        if not port:
            available = list_serial_ports()
            if not available:
                raise SerialUnsupportedError("No serial ports available on this host")
            port = available[0]
            logger.info("No port configured, using %s", port)

        try:
            self._serial = await asyncio.to_thread(
                serial.serial_for_url,
                port,
                baudrate=baudrate,
                bytesize=DATA_BITS,
                parity=PARITY,
                stopbits=STOP_BITS,
                timeout=READ_TIMEOUT_SECONDS,
                write_timeout=WRITE_TIMEOUT_SECONDS,
            )
        except (serial.SerialException, OSError, ValueError) as exc:
            raise SerialDeviceError(f"Cannot open {port}: {exc}") from exc

        self._queue = janus.Queue(maxsize=READ_QUEUE_SIZE)
        self._stop_reading.clear()
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            args=(self._serial, self._queue),
            name=f"serial-reader-{port}",
            daemon=True,
        )
        self._reader_thread.start()
        logger.info("Serial port %s open (%d 8N1)", port, baudrate)
        return port

    async def write(self, data: bytes) -> None:
        await asyncio.to_thread(self._write_blocking, data)

    async def read_chunks(self) -> AsyncIterator[bytes]:
        while True:
            queue = self._queue
            if queue is None:
                return
            try:
                item = await asyncio.wait_for(queue.async_q.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue
            except janus.AsyncQueueShutDown:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def stop_reading(self) -> None:
        self._stop_reading.set()
        thread, self._reader_thread = self._reader_thread, None
        if thread is not None:
            await asyncio.to_thread(thread.join, READ_TIMEOUT_SECONDS * 20)
            if thread.is_alive():
                logger.warning("Serial reader thread did not stop in time")
        queue, self._queue = self._queue, None
        if queue is not None:
            queue.close()
            await queue.wait_closed()

    async def close(self) -> None:
        await asyncio.to_thread(self._close_blocking)

    def _write_blocking(self, data: bytes) -> None:
        with self._write_lock:
            if self._serial is None or not self._serial.is_open:
                raise serial.SerialException("Serial port is not open")
            self._serial.write(data)
            self._serial.flush()

    def _close_blocking(self) -> None:
        with self._write_lock:
            ser, self._serial = self._serial, None
            if ser is not None:
                ser.close()
                logger.info("Serial port %s closed", ser.port)

    def _reader_loop(self, ser: serial.SerialBase, queue: janus.Queue) -> None:
        while not self._stop_reading.is_set():
            try:
                data = ser.read(ser.in_waiting or 1)
            except (serial.SerialException, OSError, TypeError) as exc:
                if not self._stop_reading.is_set():
                    self._offer(queue, exc)
                return
            if not data:
                continue
            if not self._offer(queue, data):
                return

    def _offer(self, queue: janus.Queue, item: bytes | Exception) -> bool:
        try:
            queue.sync_q.put_nowait(item)
        except janus.SyncQueueFull:
            logger.warning("Serial read queue full, dropping %d bytes", len(item) if isinstance(item, bytes) else 0)
        except janus.SyncQueueShutDown:
            return False
        return True
