import logging

RESET = "\033[0m"
DIM = "\033[2m"
BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
YELLOW = "\033[33m"
CYAN = "\033[36m"
MAGENTA = "\033[35m"

LEVEL_COLORS = {
    logging.DEBUG: DIM,
    logging.INFO: GREEN,
    logging.WARNING: YELLOW,
    logging.ERROR: RED,
    logging.CRITICAL: RED + BOLD,
}

PLAIN_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"


class ColoredFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno, "")
        level = record.levelname
        time = self.formatTime(record, self.datefmt)
        name = record.name.split(".")[-1]
        msg = record.getMessage()

        if "FORCE STOP" in msg or "Emergency stop" in msg:
            msg = f"{BOLD}{RED}{msg}{RESET}"
        elif "State:" in msg and "->" in msg:
            msg = f"{BOLD}{CYAN}{msg}{RESET}"
        elif msg.startswith("TX:"):
            msg = f"{CYAN}{msg}{RESET}"
        elif msg.startswith("RX:"):
            msg = f"{GREEN}{msg}{RESET}"
        elif msg.startswith("Step ") and "/" in msg:
            msg = f"{BOLD}{MAGENTA}{msg}{RESET}"
        elif record.levelno == logging.DEBUG:
            msg = f"{DIM}{msg}{RESET}"
        elif record.levelno >= logging.WARNING:
            msg = f"{color}{msg}{RESET}"

        formatted = f"{DIM}{time}{RESET} {color}{level:<5}{RESET} {DIM}{name:<12}{RESET} {msg}"
        if record.exc_info:
            formatted += "\n" + self.formatException(record.exc_info)
        return formatted


def configure_logging(verbose: bool = False, log_file: str = "") -> None:
    handler = logging.StreamHandler()
    handler.setFormatter(ColoredFormatter(datefmt="%H:%M:%S"))
    handlers: list[logging.Handler] = [handler]

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
        handlers.append(file_handler)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        handlers=handlers,
        force=True,
    )
