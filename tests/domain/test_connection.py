import asyncio

import pytest

from bittle_link.domain.errors import (
    LinkBusyError,
    NotConnectedError,
    SerialDeviceError,
    SerialUnsupportedError,
)
from bittle_link.domain.state import ConnectionState


async def _let_reader_run():
    for _ in range(5):
        await asyncio.sleep(0)


class TestConnect:
    @pytest.mark.asyncio
    async def test_connect_opens_at_115200(self, connection, fake_transport, log_recorder):
        opened = await connection.connect("/dev/ttyUSB0")

        assert opened == "/dev/ttyUSB0"
        assert fake_transport.baudrate == 115200
        assert connection.state == ConnectionState.CONNECTED
        assert connection.port_name == "/dev/ttyUSB0"
        assert log_recorder.of("info")[-1] == "Connected to Bittle at 115200 baud (/dev/ttyUSB0)"
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_connect_without_port_uses_transport_choice(self, connection):
        assert await connection.connect() == "/dev/ttyFAKE0"
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_connect_twice_is_noop(self, connection, fake_transport):
        await connection.connect("/dev/ttyUSB0")
        assert await connection.connect("/dev/ttyUSB1") == "/dev/ttyUSB0"
        assert fake_transport.opened_port == "/dev/ttyUSB0"
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_connect_while_connecting_is_rejected(self, connection, fake_transport):
        fake_transport.open_delay = 0.05
        first = asyncio.create_task(connection.connect("/dev/ttyUSB0"))
        await asyncio.sleep(0)
        assert connection.state == ConnectionState.CONNECTING

        with pytest.raises(LinkBusyError):
            await connection.connect("/dev/ttyUSB1")

        assert await first == "/dev/ttyUSB0"
        assert fake_transport.opened_port == "/dev/ttyUSB0"
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_unsupported_failure_leaves_disconnected(
        self, connection, fake_transport, log_recorder
    ):
        fake_transport.open_error = SerialUnsupportedError("no serial ports available")

        with pytest.raises(SerialUnsupportedError):
            await connection.connect()

        assert connection.state == ConnectionState.DISCONNECTED
        assert log_recorder.errors == ["Connection failed: no serial ports available"]

    @pytest.mark.asyncio
    async def test_unexpected_failure_wrapped_as_device_error(self, connection, fake_transport):
        fake_transport.open_error = PermissionError("access denied")

        with pytest.raises(SerialDeviceError):
            await connection.connect("/dev/ttyUSB0")

        assert connection.state == ConnectionState.DISCONNECTED
        assert not connection.is_connected

    @pytest.mark.asyncio
    async def test_can_retry_after_failure(self, connection, fake_transport):
        fake_transport.open_error = SerialDeviceError("busy")
        with pytest.raises(SerialDeviceError):
            await connection.connect("/dev/ttyUSB0")

        fake_transport.open_error = None
        await connection.connect("/dev/ttyUSB0")
        assert connection.is_connected
        await connection.disconnect()


class TestReadLoop:
    @pytest.mark.asyncio
    async def test_each_line_logged_as_rx(self, connection, fake_transport, log_recorder):
        await connection.connect()
        fake_transport.feed(b"OK\r\n\r\nkhi done\n")
        await _let_reader_run()

        assert log_recorder.rx == ["OK", "khi done"]
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_invalid_utf8_is_replaced(self, connection, fake_transport, log_recorder):
        await connection.connect()
        fake_transport.feed(b"bad \xff byte\n")
        await _let_reader_run()

        assert log_recorder.rx == ["bad � byte"]
        await connection.disconnect()

    @pytest.mark.asyncio
    async def test_read_error_logged(self, connection, fake_transport, log_recorder):
        await connection.connect()
        fake_transport.feed(OSError("device unplugged"))
        await _let_reader_run()

        assert "Read error: device unplugged" in log_recorder.errors
        await connection.disconnect()


class TestDisconnect:
    @pytest.mark.asyncio
    async def test_releases_reader_then_device(self, connection, fake_transport, log_recorder):
        await connection.connect()
        await connection.disconnect()

        assert connection.state == ConnectionState.DISCONNECTED
        assert connection.port_name is None
        assert fake_transport.stop_calls == 1
        assert fake_transport.close_calls == 1
        assert log_recorder.of("info")[-1] == "Disconnected from Bittle"

    @pytest.mark.asyncio
    async def test_release_failure_still_ends_disconnected(
        self, connection, fake_transport, log_recorder
    ):
        await connection.connect()
        fake_transport.stop_error = OSError("reader stuck")

        await connection.disconnect()

        assert connection.state == ConnectionState.DISCONNECTED
        assert fake_transport.close_calls == 1
        assert "Disconnect error (reader): reader stuck" in log_recorder.errors
        assert log_recorder.of("info")[-1] == "Disconnected from Bittle (with errors)"

    @pytest.mark.asyncio
    async def test_disconnect_when_idle_is_noop(self, connection, fake_transport):
        await connection.disconnect()
        assert fake_transport.close_calls == 0


class TestWrite:
    @pytest.mark.asyncio
    async def test_write_requires_connection(self, connection):
        with pytest.raises(NotConnectedError):
            await connection.write(b"khi\n")

    @pytest.mark.asyncio
    async def test_write_passes_bytes_through(self, connection, fake_transport):
        await connection.connect()
        await connection.write(b"Wd\x09\x01")
        assert fake_transport.writes == [b"Wd\x09\x01"]
        await connection.disconnect()
