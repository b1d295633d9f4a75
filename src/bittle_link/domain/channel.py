import asyncio
import collections
import logging

from bittle_link.domain.commands import Command
from bittle_link.domain.connection import ConnectionManager
from bittle_link.domain.events import LogBus

logger = logging.getLogger(__name__)

DEFAULT_SETTLE_DELAY_SECONDS = 0.05


class CommandChannel:
    """Single-writer FIFO in front of the serial link.

    Each command waits ``settle_delay`` before it is written and the channel
    waits ``settle_delay`` again after every attempt, failed or not, so the
    firmware's input buffer has drained before the next frame arrives.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        log: LogBus,
        settle_delay: float = DEFAULT_SETTLE_DELAY_SECONDS,
    ) -> None:
        self._connection = connection
        self._log = log
        self._settle_delay = settle_delay
        self._queue: collections.deque[tuple[Command, asyncio.Future]] = collections.deque()
        self._running = False
        self._drain_task: asyncio.Task | None = None
        self._transmitted = 0
        self._dropped = 0

    @property
    def pending(self) -> int:
        return len(self._queue)

    @property
    def busy(self) -> bool:
        return self._running

    @property
    def transmitted(self) -> int:
        return self._transmitted

    @property
    def dropped(self) -> int:
        return self._dropped

    def enqueue(self, command: Command) -> asyncio.Future:
        future = asyncio.get_running_loop().create_future()
        self._queue.append((command, future))
        self._start_drain()
        return future

    async def send(self, command: Command) -> None:
        await self.enqueue(command)

    async def join(self) -> None:
        while self._running and self._drain_task is not None:
            await asyncio.shield(self._drain_task)

    async def close(self) -> None:
        if self._drain_task and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        while self._queue:
            command, future = self._queue.popleft()
            if not future.done():
                future.cancel()
        self._running = False

    def _start_drain(self) -> None:
        if self._running:
            return
        self._running = True
        self._drain_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        try:
            while self._queue:
                command, future = self._queue.popleft()
                try:
                    await self._transmit(command)
                finally:
                    if not future.done():
                        future.set_result(None)
                await asyncio.sleep(self._settle_delay)
        finally:
            self._running = False

    async def _transmit(self, command: Command) -> None:
        if not self._connection.is_connected:
            self._dropped += 1
            self._log.error(f"Not connected - {command.label} skipped")
            return

        data = command.encode()
        await asyncio.sleep(self._settle_delay)
        try:
            await self._connection.write(data)
        except Exception as exc:
            self._dropped += 1
            logger.debug("Write of %r failed", data, exc_info=True)
            self._log.error(f"Failed to send {command.label}: {exc}")
            return

        self._transmitted += 1
        self._log.tx(command.describe())
