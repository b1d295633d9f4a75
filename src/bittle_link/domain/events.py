import collections
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from time import time
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)
serial_logger = logging.getLogger("bittle_link.serial")

T = TypeVar("T")


class LogKind(str, Enum):
    TX = "tx"
    RX = "rx"
    INFO = "info"
    ERROR = "error"


@dataclass(frozen=True)
class DomainEvent:
    timestamp: float = field(default_factory=time)


@dataclass(frozen=True)
class LogEntry(DomainEvent):
    kind: LogKind = LogKind.INFO
    message: str = ""

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "kind": self.kind.value, "message": self.message}


@dataclass(frozen=True)
class StepStarted(DomainEvent):
    index: int = 0
    total: int = 0
    label: str = ""

    @property
    def descriptor(self) -> str:
        return f"Step {self.index + 1}/{self.total}: {self.label}"


@dataclass(frozen=True)
class SequenceFinished(DomainEvent):
    outcome: str = ""
    task_ref: str | None = None


class Subscribers(Generic[T]):
    """Synchronous observer list; handlers run in registration order."""

    def __init__(self) -> None:
        self._handlers: list[Callable[[T], None]] = []

    def subscribe(self, handler: Callable[[T], None]) -> Callable[[], None]:
        self._handlers.append(handler)
        return lambda: self.unsubscribe(handler)

    def unsubscribe(self, handler: Callable[[T], None]) -> None:
        self._handlers = [h for h in self._handlers if h is not handler]

    def publish(self, event: T) -> None:
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Subscriber %r failed", handler)

    def __len__(self) -> int:
        return len(self._handlers)


class LogBus(Subscribers[LogEntry]):
    def emit(self, kind: LogKind, message: str) -> LogEntry:
        entry = LogEntry(kind=kind, message=message)
        level = logging.ERROR if kind == LogKind.ERROR else logging.INFO
        serial_logger.log(level, "%s: %s", kind.value.upper(), message)
        self.publish(entry)
        return entry

    def tx(self, message: str) -> LogEntry:
        return self.emit(LogKind.TX, message)

    def rx(self, message: str) -> LogEntry:
        return self.emit(LogKind.RX, message)

    def info(self, message: str) -> LogEntry:
        return self.emit(LogKind.INFO, message)

    def error(self, message: str) -> LogEntry:
        return self.emit(LogKind.ERROR, message)


class LogHistory:
    def __init__(self, max_entries: int = 500) -> None:
        self._entries: collections.deque[LogEntry] = collections.deque(maxlen=max_entries)

    def __call__(self, entry: LogEntry) -> None:
        self._entries.append(entry)

    @property
    def entries(self) -> list[LogEntry]:
        return list(self._entries)

    def tail(self, count: int) -> list[LogEntry]:
        if count <= 0:
            return []
        return list(self._entries)[-count:]

    def clear(self) -> None:
        self._entries.clear()
