import argparse
import asyncio
import json
import logging
import signal
import sys

from bittle_link.config import SKILL_PRESETS, BittleLinkConfig, load_env_file
from bittle_link.log_format import configure_logging

logger = logging.getLogger("bittle_link")

CLIENT_COMMANDS = (
    "connect", "disconnect", "skill", "raw", "write", "motor-off",
    "reward", "stop", "status", "logs",
)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bittle-link", description="Serial control daemon for the Bittle robot")
    parser.add_argument("--serial-port", help="Serial device or pyserial URL")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")

    subparsers = parser.add_subparsers(dest="command")

    connect_parser = subparsers.add_parser("connect", help="Open the serial link")
    connect_parser.add_argument("device", nargs="?", help="Device to open instead of the configured one")
    subparsers.add_parser("disconnect", help="Close the serial link")

    skill_parser = subparsers.add_parser("skill", help="Send a skill mnemonic")
    skill_source = skill_parser.add_mutually_exclusive_group(required=True)
    skill_source.add_argument("code", nargs="?", help="Skill code, e.g. khi")
    skill_source.add_argument(
        "--preset", choices=tuple(SKILL_PRESETS), help="Send the configured task-creation or overdue skill"
    )

    raw_parser = subparsers.add_parser("raw", help="Send a raw command line")
    raw_parser.add_argument("text", help="Command text, e.g. 'm1 0 180'")

    write_parser = subparsers.add_parser("write", help="Digital write to a port")
    write_parser.add_argument("port", type=int, help="Port 0-99")
    write_parser.add_argument("value", type=int, choices=(0, 1), help="0 or 1")

    subparsers.add_parser("motor-off", help="Force the motor off immediately")

    reward_parser = subparsers.add_parser("reward", help="Run the reward sequence")
    reward_parser.add_argument("--task", help="Task reference for the log")

    subparsers.add_parser("stop", help="Emergency stop the reward sequence")
    subparsers.add_parser("status", help="Query daemon status")

    logs_parser = subparsers.add_parser("logs", help="Show recent serial log entries")
    logs_parser.add_argument("-n", "--count", type=int, default=50)

    subparsers.add_parser("ports", help="List serial ports on this host")
    return parser


def main(argv: list[str] | None = None) -> None:
    load_env_file()
    args = build_parser().parse_args(argv)

    config = BittleLinkConfig()
    if args.serial_port:
        config.serial_port = args.serial_port

    if args.command == "ports":
        from bittle_link.adapters.pyserial_transport import list_serial_ports

        for device in list_serial_ports():
            print(device)
        return

    if args.command in CLIENT_COMMANDS:
        logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
        sys.exit(asyncio.run(_run_client_command(args, config)))

    configure_logging(verbose=args.verbose, log_file=config.log_file)
    asyncio.run(_run_daemon(config))


def _build_payload(args: argparse.Namespace) -> dict | None:
    if args.command == "connect" and args.device:
        return {"port": args.device}
    if args.command == "skill" and args.preset:
        return {"preset": args.preset}
    if args.command == "skill":
        return {"code": args.code}
    if args.command == "raw":
        return {"text": args.text}
    if args.command == "write":
        return {"port": args.port, "value": args.value}
    if args.command == "reward" and args.task:
        return {"task": args.task}
    if args.command == "logs":
        return {"count": args.count}
    return None


async def _run_client_command(args: argparse.Namespace, config: BittleLinkConfig) -> int:
    from bittle_link.adapters.unix_control import UnixSocketControlClient

    client = UnixSocketControlClient(socket_path=config.socket_path)

    try:
        result = await client.send_command(args.command, _build_payload(args))
    except (ConnectionRefusedError, FileNotFoundError):
        print("bittle-link daemon is not running", file=sys.stderr)
        return 1

    if args.command == "logs" and result.get("status") == "ok":
        for entry in result.get("entries", []):
            print(f"{entry['kind'].upper():<5} {entry['message']}")
    else:
        print(json.dumps(result))
    return 0 if result.get("status") == "ok" else 1


async def _run_daemon(config: BittleLinkConfig) -> None:
    from bittle_link.dispatch import ControlDispatcher
    from bittle_link.domain.errors import ConnectFailure
    from bittle_link.factory import create_control, create_link
    from bittle_link.health import has_critical_failures, run_startup_checks

    results = run_startup_checks(config)
    if has_critical_failures(results):
        logger.error("Critical health check failures, aborting startup")
        sys.exit(1)

    link = create_link(config)
    control = create_control(config)
    dispatcher = ControlDispatcher(link)

    shutdown_event = asyncio.Event()
    shutdown_triggered = False

    def handle_signal() -> None:
        nonlocal shutdown_triggered
        if shutdown_triggered:
            logger.warning("Forced exit")
            sys.exit(1)
        shutdown_triggered = True
        logger.info("Shutting down...")
        shutdown_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal)

    if config.auto_connect:
        try:
            await link.connection.connect(config.serial_port or None)
        except ConnectFailure as exc:
            logger.warning("Auto-connect failed: %s", exc)

    await control.start()

    handlers: set[asyncio.Task] = set()

    async def control_loop() -> None:
        async for cmd in control.commands():
            task = asyncio.create_task(dispatcher.handle(cmd))
            handlers.add(task)
            task.add_done_callback(handlers.discard)

    control_task = asyncio.create_task(control_loop())

    try:
        await shutdown_event.wait()
    finally:
        control_task.cancel()
        try:
            await asyncio.wait_for(control_task, timeout=1.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        await link.shutdown()
        await dispatcher.wait_background()
        await control.stop()


if __name__ == "__main__":
    main()
