"""
Models for recurring tasks registered with the host's cron daemon.
"""
import re
from typing import Dict, List
from pydantic import BaseModel, Field, field_validator

# A single cron field: "*", numbers, ranges, lists and steps.
_CRON_FIELD = re.compile(r"^(\*|\d+(-\d+)?)(/\d+)?(,(\*|\d+(-\d+)?)(/\d+)?)*$")

_ENV_NAME = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

_FIELD_BOUNDS = {
    "minute": (0, 59),
    "hour": (0, 23),
    "day_of_month": (1, 31),
    "month": (1, 12),
    "day_of_week": (0, 7),
}

class CronSchedule(BaseModel):
    """
    A five-field cron recurrence expression.
    """
    minute: str = "*"
    hour: str = "*"
    day_of_month: str = "*"
    month: str = "*"
    day_of_week: str = "*"

    @field_validator("minute", "hour", "day_of_month", "month", "day_of_week")
    @classmethod
    def _check_field(cls, value: str, info) -> str:
        value = value.strip()
        if not _CRON_FIELD.match(value):
            raise ValueError(f"invalid cron {info.field_name} field: {value!r}")
        low, high = _FIELD_BOUNDS[info.field_name]
        for number in re.findall(r"(?<![/\d])\d+", value):
            if not low <= int(number) <= high:
                raise ValueError(
                    f"cron {info.field_name} value {number} outside {low}-{high}"
                )
        return value

    @classmethod
    def parse(cls, expression: str) -> "CronSchedule":
        """
        Parses a "m h dom mon dow" expression.
        """
        fields = expression.split()
        if len(fields) != 5:
            raise ValueError(f"cron expression needs 5 fields, got {len(fields)}: {expression!r}")
        return cls(**dict(zip(_FIELD_BOUNDS, fields)))

    def render(self) -> str:
        return " ".join(
            [self.minute, self.hour, self.day_of_month, self.month, self.day_of_week]
        )

class ScheduledTask(BaseModel):
    """
    A recurring command, registered through a generated script.

    The command is kept as an argument list with its secret values already
    resolved; the script is the only place they are written.
    """
    identity: str = Field(min_length=1)
    schedule: CronSchedule
    command: List[str] = Field(min_length=1)
    script_path: str
    log_path: str
    working_dir: str
    environment: Dict[str, str] = {}

    @field_validator("script_path", "log_path", "working_dir")
    @classmethod
    def _absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError(f"path must be absolute: {value!r}")
        if any(c in value for c in "\n\r\t "):
            raise ValueError(f"path must not contain whitespace: {value!r}")
        return value

    @field_validator("environment")
    @classmethod
    def _env_names(cls, value: Dict[str, str]) -> Dict[str, str]:
        for key in value:
            if not _ENV_NAME.match(key):
                raise ValueError(f"invalid environment variable name: {key!r}")
        return value

    def registration_line(self) -> str:
        """
        The cron line for this task. It refers to the script only, so no secret
        value ends up in the crontab.
        """
        return f"{self.schedule.render()} {self.script_path} >> {self.log_path} 2>&1"

    def matches(self, line: str) -> bool:
        """
        Whether an existing registration line belongs to this task.
        """
        return self.identity in line
