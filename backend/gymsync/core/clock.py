"""
Injectable time source.
Everything that reads the wall clock or waits goes through a Clock so that
week boundaries, streaks and retry delays can be tested without real time passing.
"""
import asyncio
import time
from datetime import date, datetime


class Clock:
    """Device-local wall clock."""

    def now(self) -> datetime:
        return datetime.now()

    def today(self) -> date:
        return self.now().date()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


system_clock = Clock()
