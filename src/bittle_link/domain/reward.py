from bittle_link.domain.sequence import MotorStep, RawStep, SkillStep, Step, WaitStep

DEFAULT_STEP_WAIT_SECONDS = 3.0


def classic_script(
    skill1: str,
    servo_command1: str,
    servo_command2: str,
    skill2: str,
    skill3: str,
    wait_seconds: float = DEFAULT_STEP_WAIT_SECONDS,
) -> list[Step]:
    """Eight actions separated by fixed waits, ending with a final wait."""
    wait = WaitStep(wait_seconds, label=f"Waiting {wait_seconds:g}s")
    return [
        SkillStep(skill1, label="Skill #1"),
        wait,
        RawStep(servo_command1, label="Servo Cmd 1"),
        wait,
        MotorStep(True, label="Motor ON"),
        wait,
        RawStep(servo_command2, label="Servo Cmd 2"),
        wait,
        SkillStep(skill2, label="Skill #2"),
        wait,
        SkillStep(skill3, label="Skill #3"),
        wait,
        MotorStep(False, label="Motor OFF"),
        WaitStep(wait_seconds, label=f"Final wait {wait_seconds:g}s"),
    ]


def timed_script(
    skill1: str,
    skill2: str,
    motor_seconds: float,
    wait_seconds: float = DEFAULT_STEP_WAIT_SECONDS,
) -> list[Step]:
    """Motor runs for a configurable duration between two skills."""
    return [
        SkillStep(skill1, label="Skill #1"),
        WaitStep(wait_seconds, label=f"Waiting {wait_seconds:g}s"),
        MotorStep(True, label="Motor ON"),
        WaitStep(motor_seconds, label=f"Motor running {motor_seconds:g}s"),
        SkillStep(skill2, label="Skill #2"),
        MotorStep(False, label="Motor OFF"),
    ]
