import asyncio
from datetime import datetime, timezone


class SystemClock:
    """Wall-clock time and real sleeps; swap for a virtual clock in tests."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
