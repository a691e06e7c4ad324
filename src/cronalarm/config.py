"""Scheduler configuration."""
import os
from dataclasses import dataclass
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv


@dataclass
class SchedulerConfig:
    """Scheduler settings.

    The scheduler never reads the environment itself; use ``from_env`` to
    build a config from environment variables (and a ``.env`` file).
    """

    # Default timezone for cron schedules; None means the host local zone
    timezone: Optional[str] = None

    # Prefix for generated alarm names: alarm0, alarm1, ...
    name_prefix: str = "alarm"

    # Name of the waiter task
    waiter_name: str = "alarm-waiter"

    def __post_init__(self) -> None:
        if self.timezone:
            try:
                ZoneInfo(self.timezone)
            except (ZoneInfoNotFoundError, ValueError) as e:
                raise ValueError(f"Unknown timezone: {self.timezone}") from e

    @classmethod
    def from_env(cls) -> "SchedulerConfig":
        """Load settings from environment variables."""
        load_dotenv()

        return cls(
            timezone=os.getenv("CRONALARM_TIMEZONE") or None,
            name_prefix=os.getenv("CRONALARM_NAME_PREFIX", "alarm"),
            waiter_name=os.getenv("CRONALARM_WAITER_NAME", "alarm-waiter"),
        )
