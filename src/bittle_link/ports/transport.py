from typing import Protocol, AsyncIterator

BAUD_RATE = 115200
DATA_BITS = 8
PARITY = "N"
STOP_BITS = 1


class SerialTransportPort(Protocol):
    async def open(self, port: str | None, baudrate: int = BAUD_RATE) -> str: ...
    async def write(self, data: bytes) -> None: ...
    def read_chunks(self) -> AsyncIterator[bytes]: ...
    async def stop_reading(self) -> None: ...
    async def close(self) -> None: ...
