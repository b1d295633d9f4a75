import asyncio
import json
import logging
import os
from collections.abc import AsyncIterator
from pathlib import Path

from bittle_link.ports.control import ControlCommand

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 5.0
# An emergency stop answers only after the current wait step has elapsed.
RESPONSE_TIMEOUT_SECONDS = 75.0
CLIENT_TIMEOUT_SECONDS = 90.0


class InvalidRequestError(ValueError):
    pass


def parse_request(raw: bytes) -> tuple[str, dict | None]:
    try:
        request = json.loads(raw.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise InvalidRequestError(str(exc)) from exc
    if not isinstance(request, dict):
        raise InvalidRequestError("request must be a JSON object")
    payload = request.get("payload")
    if payload is not None and not isinstance(payload, dict):
        raise InvalidRequestError("payload must be a JSON object")
    return str(request.get("action", "")), payload


def encode_line(message: dict) -> bytes:
    return (json.dumps(message) + "\n").encode()


class UnixSocketControlServer:
    """Newline-delimited JSON over a unix socket.

    Each request becomes a ``ControlCommand`` carrying a reply future; the
    connection stays open until the consumer answers it or
    ``response_timeout`` passes.
    """

    def __init__(
        self,
        socket_path: str = "/tmp/bittle-link.sock",
        response_timeout: float = RESPONSE_TIMEOUT_SECONDS,
    ) -> None:
        self._socket_path = Path(socket_path)
        self._response_timeout = response_timeout
        self._server: asyncio.Server | None = None
        self._pending: asyncio.Queue[ControlCommand] = asyncio.Queue()

    async def start(self) -> None:
        self._socket_path.unlink(missing_ok=True)
        self._server = await asyncio.start_unix_server(self._serve, path=str(self._socket_path))
        os.chmod(self._socket_path, 0o600)
        logger.info("Control socket listening at %s", self._socket_path)

    async def stop(self) -> None:
        server, self._server = self._server, None
        if server is not None:
            server.close()
            await server.wait_closed()
        self._socket_path.unlink(missing_ok=True)

    async def commands(self) -> AsyncIterator[ControlCommand]:
        while True:
            yield await self._pending.get()

    async def _serve(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            raw = await asyncio.wait_for(reader.readline(), timeout=REQUEST_TIMEOUT_SECONDS)
            if not raw.strip():
                return
            try:
                action, payload = parse_request(raw)
            except InvalidRequestError as exc:
                logger.warning("Rejected control request: %s", exc)
                writer.write(encode_line({"status": "error", "error": "invalid request"}))
                await writer.drain()
                return

            command = ControlCommand(
                action=action,
                payload=payload,
                reply=asyncio.get_running_loop().create_future(),
            )
            await self._pending.put(command)
            writer.write(encode_line(await self._await_reply(command)))
            await writer.drain()
        except asyncio.TimeoutError:
            logger.warning("Control client sent no request within %.0fs", REQUEST_TIMEOUT_SECONDS)
        except (ConnectionResetError, BrokenPipeError):
            logger.debug("Control client went away before the reply")
        except Exception:
            logger.exception("Error serving control client")
        finally:
            writer.close()
            await writer.wait_closed()

    async def _await_reply(self, command: ControlCommand) -> dict:
        try:
            return await asyncio.wait_for(asyncio.shield(command.reply), timeout=self._response_timeout)
        except asyncio.TimeoutError:
            logger.warning("No response for '%s' within %.0fs", command.action, self._response_timeout)
            return {"status": "error", "action": command.action, "error": "timed out"}


class UnixSocketControlClient:
    def __init__(
        self,
        socket_path: str = "/tmp/bittle-link.sock",
        timeout: float = CLIENT_TIMEOUT_SECONDS,
    ) -> None:
        self._socket_path = socket_path
        self._timeout = timeout

    async def send_command(self, action: str, payload: dict | None = None) -> dict:
        reader, writer = await asyncio.open_unix_connection(self._socket_path)
        try:
            request: dict = {"action": action}
            if payload:
                request["payload"] = payload
            writer.write(encode_line(request))
            await writer.drain()

            raw = await asyncio.wait_for(reader.readline(), timeout=self._timeout)
            return json.loads(raw.decode())
        finally:
            writer.close()
            await writer.wait_closed()
