import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ENV_FILE_PATH = Path.home() / ".config" / "bittle-link" / "env"

# Skill presets callers can name instead of a code, keyed to the setting holding the code.
SKILL_PRESETS = {"task_creation": "task_creation_skill", "overdue": "overdue_skill"}


class BittleLinkConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BITTLE_")

    serial_port: str = ""
    auto_connect: bool = True
    settle_delay_ms: int = Field(default=50, ge=0)
    motor_port: int = Field(default=9, ge=0, le=99)

    task_creation_skill: str = "khi"
    overdue_skill: str = "kpd"

    reward_profile: Literal["classic", "timed"] = "timed"
    done_skill1: str = "kbx"
    servo_command1: str = "m1 0 180"
    servo_command2: str = "m1 0 180"
    done_skill2: str = "kvtL"
    done_skill3: str = "kup"
    step_wait_seconds: float = Field(default=3.0, ge=0)
    done_duration_seconds: int = Field(default=10, ge=1, le=60)

    socket_path: str = "/tmp/bittle-link.sock"
    log_file: str = "/tmp/bittle-link.log"
    log_history_size: int = Field(default=500, ge=1)

    @property
    def settle_delay_seconds(self) -> float:
        return self.settle_delay_ms / 1000.0

    def preset_skill(self, name: str) -> str:
        if name not in SKILL_PRESETS:
            raise ValueError(f"unknown skill preset '{name}'")
        return getattr(self, SKILL_PRESETS[name])

    def reward_skills(self) -> list[str]:
        if self.reward_profile == "classic":
            return [self.done_skill1, self.done_skill2, self.done_skill3]
        return [self.done_skill1, self.done_skill2]


def load_env_file(path: Path = ENV_FILE_PATH) -> None:
    if not path.exists():
        return
    with open(path) as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            if "=" not in line:
                continue
            key, _, value = line.partition("=")
            key = key.strip()
            value = value.strip().strip("'\"")
            if key not in os.environ:
                os.environ[key] = value
