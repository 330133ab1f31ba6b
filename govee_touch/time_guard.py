"""
Time-of-day guard for state-changing commands.
"""

from datetime import datetime

from govee_touch.commands import CommandIntent, PowerSet
from govee_touch.errors import ConfigError


class TimeWindowGuard:
    """Allows commands only during ``start_hour <= hour < end_hour``.

    Turning the light off is exempt and always allowed.
    """

    def __init__(self, start_hour: int = 8, end_hour: int = 20):
        if not (0 <= start_hour < end_hour <= 24):
            raise ConfigError(
                f"Invalid allowed hours [{start_hour}, {end_hour}): need 0 <= start < end <= 24"
            )
        self.start_hour = start_hour
        self.end_hour = end_hour

    def is_allowed(self, now: datetime) -> bool:
        return self.start_hour <= now.hour < self.end_hour

    @staticmethod
    def is_exempt(intent: CommandIntent) -> bool:
        return isinstance(intent, PowerSet) and not intent.on

    def permits(self, intent: CommandIntent, now: datetime) -> bool:
        """True when ``intent`` may be dispatched at ``now``."""
        return self.is_exempt(intent) or self.is_allowed(now)

    def describe(self) -> str:
        return f"{self.start_hour:02d}:00-{self.end_hour:02d}:00"
