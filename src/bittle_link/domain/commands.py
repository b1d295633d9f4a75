from dataclasses import dataclass

from bittle_link.domain.errors import CommandValidationError

DIGITAL_WRITE_HEADER = b"Wd"
LINE_TERMINATOR = b"\n"
MIN_PORT = 0
MAX_PORT = 99

SKILL_OPTIONS = (
    "kup", "ksit", "kstr", "kpu", "kchr", "khi", "kcmh", "kck", "kvtF", "kvtLX",
    "kcrF", "kwkF", "kbk", "kphF", "kkc", "kpd", "kpee", "khg", "khu", "khds",
    "krc", "kscrh", "kdg", "ksnf", "kwh", "knd", "kfiv", "kbf", "kff", "khsk",
    "kgdb", "ktbl", "kbx", "kjmp", "kclup", "klpov", "kang", "kx",
)


@dataclass(frozen=True)
class DigitalWrite:
    port: int
    value: int

    def __post_init__(self) -> None:
        if isinstance(self.port, bool) or not isinstance(self.port, int):
            raise CommandValidationError(f"Invalid port: {self.port!r}. Must be an integer")
        if not MIN_PORT <= self.port <= MAX_PORT:
            raise CommandValidationError(
                f"Invalid port: {self.port}. Must be {MIN_PORT}-{MAX_PORT}"
            )
        if self.value not in (0, 1) or isinstance(self.value, bool):
            raise CommandValidationError(f"Invalid value: {self.value!r}. Must be 0 or 1")

    def encode(self) -> bytes:
        return DIGITAL_WRITE_HEADER + bytes((self.port, self.value))

    def describe(self) -> str:
        return f"Motor {self.port} {'HIGH' if self.value == 1 else 'LOW'}"

    @property
    def label(self) -> str:
        return "DigitalWrite"


@dataclass(frozen=True)
class Skill:
    code: str

    def __post_init__(self) -> None:
        _validate_line(self.code, "skill code")

    def encode(self) -> bytes:
        return self.code.encode("ascii") + LINE_TERMINATOR

    def describe(self) -> str:
        return f"Sending Skill: {self.code}"

    @property
    def label(self) -> str:
        return "Skill"


@dataclass(frozen=True)
class Raw:
    text: str

    def __post_init__(self) -> None:
        _validate_line(self.text, "command")

    def encode(self) -> bytes:
        return self.text.encode("ascii") + LINE_TERMINATOR

    def describe(self) -> str:
        return f"Raw command: {self.text}"

    @property
    def label(self) -> str:
        return "Command"


Command = DigitalWrite | Skill | Raw


def encode(command: Command) -> bytes:
    return command.encode()


def motor_on(port: int) -> DigitalWrite:
    return DigitalWrite(port=port, value=1)


def motor_off(port: int) -> DigitalWrite:
    return DigitalWrite(port=port, value=0)


def is_known_skill(code: str) -> bool:
    return code in SKILL_OPTIONS


def _validate_line(text: str, what: str) -> None:
    if not isinstance(text, str) or not text:
        raise CommandValidationError(f"Empty {what}")
    if not text.isascii():
        raise CommandValidationError(f"Non-ASCII {what}: {text!r}")
    if "\n" in text or "\r" in text:
        raise CommandValidationError(f"Line break in {what}: {text!r}")
