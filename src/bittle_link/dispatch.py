import asyncio
import logging

from bittle_link.domain.commands import DigitalWrite, Raw, Skill, is_known_skill
from bittle_link.domain.errors import BittleLinkError
from bittle_link.factory import RobotLink
from bittle_link.ports.control import ControlCommand

logger = logging.getLogger(__name__)


class ControlDispatcher:
    """Maps control-socket actions onto the robot link."""

    def __init__(self, link: RobotLink) -> None:
        self._link = link
        self._background: set[asyncio.Task] = set()

    async def handle(self, command: ControlCommand) -> None:
        try:
            response = await self.dispatch(command.action, command.payload or {})
        except Exception as exc:
            logger.exception("Control action '%s' failed", command.action)
            response = _error(command.action, str(exc))
        command.respond(response)

    async def dispatch(self, action: str, payload: dict) -> dict:
        handler = getattr(self, "_do_" + action.replace("-", "_"), None)
        if handler is None or not action:
            return _error(action, f"unknown action '{action}'")
        try:
            result = await handler(payload)
        except (BittleLinkError, KeyError, TypeError, ValueError) as exc:
            return _error(action, str(exc))
        return {"status": "ok", "action": action, **result}

    async def wait_background(self) -> None:
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def _do_connect(self, payload: dict) -> dict:
        port = payload.get("port") or self._link.config.serial_port or None
        opened = await self._link.connection.connect(port)
        return {"port": opened}

    async def _do_disconnect(self, payload: dict) -> dict:
        if self._link.sequence.active_run is not None:
            await self._link.sequence.abort()
        await self._link.connection.disconnect()
        return {}

    async def _do_skill(self, payload: dict) -> dict:
        if "preset" in payload:
            code = self._link.config.preset_skill(payload["preset"])
        else:
            code = payload["code"]
        await self._link.channel.send(Skill(code))
        return {"code": code, "known": is_known_skill(code), "connected": self._link.connection.is_connected}

    async def _do_raw(self, payload: dict) -> dict:
        await self._link.channel.send(Raw(payload["text"]))
        return {"connected": self._link.connection.is_connected}

    async def _do_write(self, payload: dict) -> dict:
        command = DigitalWrite(port=int(payload["port"]), value=int(payload["value"]))
        await self._link.channel.send(command)
        return {"connected": self._link.connection.is_connected}

    async def _do_motor_off(self, payload: dict) -> dict:
        port = payload.get("port")
        sent = await self._link.sequence.force_stop_motor(None if port is None else int(port))
        return {"sent": sent}

    async def _do_reward(self, payload: dict) -> dict:
        sequence = self._link.sequence
        if sequence.active_run is not None:
            raise BittleLinkError("reward sequence already running")
        if not self._link.connection.is_connected:
            self._link.log.error("Not connected - reward sequence skipped")
            raise BittleLinkError("not connected")
        task = asyncio.create_task(sequence.run(payload.get("task")))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        await asyncio.sleep(0)
        return {"started": True, "profile": self._link.config.reward_profile}

    async def _do_stop(self, payload: dict) -> dict:
        outcome = await self._link.sequence.abort()
        return {"outcome": outcome.value if outcome else None}

    async def _do_status(self, payload: dict) -> dict:
        link = self._link
        outcome = link.sequence.last_outcome
        return {
            "connection": link.connection.state.name,
            "port": link.connection.port_name,
            "sequence": link.sequence.state.name,
            "step": link.sequence.current_step,
            "last_outcome": outcome.value if outcome else None,
            "pending": link.channel.pending,
            "transmitted": link.channel.transmitted,
            "dropped": link.channel.dropped,
            "profile": link.config.reward_profile,
        }

    async def _do_logs(self, payload: dict) -> dict:
        count = int(payload.get("count", 50))
        return {"entries": [entry.to_dict() for entry in self._link.history.tail(count)]}


def _error(action: str, message: str) -> dict:
    return {"status": "error", "action": action, "error": message}
