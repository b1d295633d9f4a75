import logging
from collections.abc import Callable
from dataclasses import dataclass

from bittle_link.config import BittleLinkConfig
from bittle_link.adapters.pyserial_transport import PySerialTransport
from bittle_link.adapters.unix_control import UnixSocketControlServer
from bittle_link.domain.channel import CommandChannel
from bittle_link.domain.connection import ConnectionManager
from bittle_link.domain.events import LogBus, LogHistory
from bittle_link.domain.reward import classic_script, timed_script
from bittle_link.domain.sequence import SequenceController, Step
from bittle_link.ports.control import ControlPort
from bittle_link.ports.transport import SerialTransportPort

logger = logging.getLogger(__name__)


@dataclass
class RobotLink:
    log: LogBus
    history: LogHistory
    connection: ConnectionManager
    channel: CommandChannel
    sequence: SequenceController
    config: BittleLinkConfig

    async def shutdown(self) -> None:
        if self.sequence.active_run is not None:
            await self.sequence.abort()
        elif self.connection.is_connected:
            await self.sequence.force_stop_motor()
        await self.channel.close()
        await self.connection.disconnect()


def reward_script_provider(config: BittleLinkConfig) -> Callable[[], list[Step]]:
    def provide() -> list[Step]:
        if config.reward_profile == "classic":
            return classic_script(
                skill1=config.done_skill1,
                servo_command1=config.servo_command1,
                servo_command2=config.servo_command2,
                skill2=config.done_skill2,
                skill3=config.done_skill3,
                wait_seconds=config.step_wait_seconds,
            )
        return timed_script(
            skill1=config.done_skill1,
            skill2=config.done_skill2,
            motor_seconds=config.done_duration_seconds,
            wait_seconds=config.step_wait_seconds,
        )

    return provide


def create_link(
    config: BittleLinkConfig,
    transport: SerialTransportPort | None = None,
) -> RobotLink:
    log = LogBus()
    history = LogHistory(max_entries=config.log_history_size)
    log.subscribe(history)

    connection = ConnectionManager(transport or PySerialTransport(), log)
    channel = CommandChannel(connection, log, settle_delay=config.settle_delay_seconds)
    sequence = SequenceController(
        channel=channel,
        connection=connection,
        log=log,
        script_provider=reward_script_provider(config),
        motor_port=config.motor_port,
    )
    logger.debug("Link created (profile=%s, settle=%dms)", config.reward_profile, config.settle_delay_ms)
    return RobotLink(
        log=log,
        history=history,
        connection=connection,
        channel=channel,
        sequence=sequence,
        config=config,
    )


def create_control(config: BittleLinkConfig) -> ControlPort:
    return UnixSocketControlServer(socket_path=config.socket_path)
