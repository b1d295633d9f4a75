import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from bittle_link.domain.channel import CommandChannel
from bittle_link.domain.commands import Raw, Skill, motor_off, motor_on
from bittle_link.domain.connection import ConnectionManager
from bittle_link.domain.events import LogBus, SequenceFinished, StepStarted, Subscribers
from bittle_link.domain.state import SequenceState, validate_transition

logger = logging.getLogger(__name__)

MOTOR_PORT = 9


class SequenceOutcome(str, Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


@dataclass(frozen=True)
class SkillStep:
    code: str
    label: str = ""


@dataclass(frozen=True)
class RawStep:
    text: str
    label: str = ""


@dataclass(frozen=True)
class MotorStep:
    on: bool
    label: str = ""


@dataclass(frozen=True)
class WaitStep:
    seconds: float
    label: str = ""


Step = SkillStep | RawStep | MotorStep | WaitStep


def step_label(step: Step) -> str:
    if step.label:
        return step.label
    if isinstance(step, SkillStep):
        return f"Skill {step.code}"
    if isinstance(step, RawStep):
        return f"Command {step.text}"
    if isinstance(step, MotorStep):
        return "Motor ON" if step.on else "Motor OFF"
    return f"Wait {step.seconds:g}s"


@dataclass
class SequenceRun:
    task_ref: str | None
    total_steps: int
    current_step_index: int = 0
    aborted: bool = False
    motor_off_attempted: bool = False
    motor_on_in_flight: bool = False


class SequenceController:
    def __init__(
        self,
        channel: CommandChannel,
        connection: ConnectionManager,
        log: LogBus,
        script_provider: Callable[[], list[Step]],
        motor_port: int = MOTOR_PORT,
    ) -> None:
        self._channel = channel
        self._connection = connection
        self._log = log
        self._script_provider = script_provider
        self._motor_port = motor_port

        self._state = SequenceState.IDLE
        self._run: SequenceRun | None = None
        self._settled = asyncio.Event()
        self._settled.set()
        self._current_step: str | None = None
        self._last_outcome: SequenceOutcome | None = None
        self.events: Subscribers[StepStarted | SequenceFinished] = Subscribers()

    @property
    def state(self) -> SequenceState:
        return self._state

    @property
    def active_run(self) -> SequenceRun | None:
        return self._run

    @property
    def current_step(self) -> str | None:
        return self._current_step

    @property
    def last_outcome(self) -> SequenceOutcome | None:
        return self._last_outcome

    def _transition_to(self, target: SequenceState) -> None:
        validate_transition(self._state, target)
        logger.info("State: %s -> %s", self._state.name, target.name)
        self._state = target

    async def run(self, task_ref: str | None = None) -> SequenceOutcome | None:
        """Execute the reward script once.

        Returns ``None`` without doing anything when a run is already active
        or the link is down, otherwise the outcome of this run.
        """
        if self._run is not None:
            logger.info("Reward sequence already running, ignoring request")
            return None
        if not self._connection.is_connected:
            self._log.error("Not connected - reward sequence skipped")
            return None

        script = list(self._script_provider())
        run = SequenceRun(task_ref=task_ref, total_steps=len(script))
        self._run = run
        self._settled.clear()
        self._transition_to(SequenceState.RUNNING)
        self._log.info(f"Starting reward sequence ({len(script)} steps)")

        outcome = SequenceOutcome.FAILED
        try:
            for index, step in enumerate(script):
                if run.aborted:
                    outcome = SequenceOutcome.ABORTED
                    break
                run.current_step_index = index
                self._announce(StepStarted(index=index, total=len(script), label=step_label(step)))
                await self._execute(step)
            else:
                outcome = SequenceOutcome.ABORTED if run.aborted else SequenceOutcome.COMPLETED
        except Exception as exc:
            logger.exception("Reward sequence failed at step %d", run.current_step_index + 1)
            self._log.error(f"Reward sequence error: {exc}")
            outcome = SequenceOutcome.FAILED
        finally:
            try:
                if outcome != SequenceOutcome.COMPLETED and not run.motor_off_attempted:
                    run.motor_off_attempted = True
                    await self._queued_motor_off()
            finally:
                self._finish(run, outcome)

        return outcome

    async def abort(self) -> SequenceOutcome | None:
        run = self._run
        if run is None:
            return None

        if not run.aborted:
            run.aborted = True
            self._current_step = "EMERGENCY STOP"
            self._log.info("Emergency stop requested")
            if not run.motor_off_attempted:
                # A motor-on still waiting in the channel lands after the direct write,
                # so the run queues its own motor-off behind it.
                run.motor_off_attempted = not run.motor_on_in_flight
                await self.force_stop_motor()

        await self._settled.wait()
        return self._last_outcome

    async def force_stop_motor(self, port: int | None = None) -> bool:
        """Write the motor-off frame directly, ahead of anything queued."""
        command = motor_off(self._motor_port if port is None else port)
        if not self._connection.is_connected:
            self._log.error("Not connected - Force stop skipped")
            return False
        try:
            await self._connection.write(command.encode())
        except Exception as exc:
            logger.warning("Force stop write failed", exc_info=True)
            self._log.error(f"Failed to force stop motor: {exc}")
            return False
        self._log.tx(f"FORCE STOP Motor {command.port}")
        return True

    async def _execute(self, step: Step) -> None:
        if isinstance(step, SkillStep):
            await self._channel.send(Skill(step.code))
        elif isinstance(step, RawStep):
            await self._channel.send(Raw(step.text))
        elif isinstance(step, MotorStep) and step.on:
            run = self._run
            run.motor_on_in_flight = True
            try:
                await self._channel.send(motor_on(self._motor_port))
            finally:
                run.motor_on_in_flight = False
        elif isinstance(step, MotorStep):
            await self._channel.send(motor_off(self._motor_port))
        elif isinstance(step, WaitStep):
            await asyncio.sleep(step.seconds)
        else:
            raise TypeError(f"Unknown step: {step!r}")

    async def _queued_motor_off(self) -> None:
        try:
            await self._channel.send(motor_off(self._motor_port))
        except Exception:
            logger.exception("Failed to turn off motor after sequence error")
            self._log.error("Failed to turn off motor after sequence error")

    def _announce(self, event: StepStarted) -> None:
        self._current_step = event.descriptor
        logger.info("%s", event.descriptor)
        self.events.publish(event)

    def _finish(self, run: SequenceRun, outcome: SequenceOutcome) -> None:
        self._transition_to(SequenceState[outcome.name])
        self._last_outcome = outcome
        self._run = None
        self._current_step = None
        self._transition_to(SequenceState.IDLE)
        if outcome == SequenceOutcome.COMPLETED:
            self._log.info("Reward sequence completed")
        elif outcome == SequenceOutcome.ABORTED:
            self._log.info("Reward sequence aborted")
        else:
            self._log.error("Reward sequence failed")
        self.events.publish(SequenceFinished(outcome=outcome.value, task_ref=run.task_ref))
        self._settled.set()
