import asyncio
import logging
from typing import Any, Optional

from common.mailbox import Mailbox
from common.timer import IntervalTimer


class ControlLoop:
    """A single-purpose loop owning one timer, one inbox and one stop token.

    Each pass waits on whichever of "timer due", "message in inbox" and
    "stop requested" happens first. Subclasses implement the hooks.
    """

    name = "loop"

    def __init__(self, interval: Optional[float] = None, inbox: Optional[Mailbox] = None):
        self.timer    = IntervalTimer()   # Ticking period, unarmed if interval is None
        self.interval = interval          # Initial period
        self.inbox    = inbox             # Messages from other loops
        self._stop    = asyncio.Event()   # Stop token
        self.log      = logging.getLogger(self.name)

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def stop(self) -> None:
        """Ask the loop to exit. The caller awaits the task running `run()`."""
        self.log.info("Sending stop sign")
        self._stop.set()

    async def run(self) -> None:
        if self.interval is not None:
            self.timer.arm(self.interval)
        await self.on_start()
        try:
            while not self._stop.is_set():
                if self.timer.due():
                    self.timer.expire()
                    await self.on_tick()
                    continue
                message = await self._wait(self.timer.remaining())
                if message is not None:
                    await self.on_message(message)
        finally:
            self.timer.disarm()
            self.log.info("Timer stopped")
            await self.on_stop()
        self.log.info("Received stop sign")

    async def _wait(self, timeout: Optional[float]) -> Optional[Any]:
        if self.inbox is not None:
            return await self.inbox.receive(timeout=timeout, cancel=self._stop)
        try:
            await asyncio.wait_for(self._stop.wait(), timeout)
        except asyncio.TimeoutError:
            pass
        return None

    async def on_start(self) -> None:
        pass

    async def on_tick(self) -> None:
        pass

    async def on_message(self, message: Any) -> None:
        self.log.warning("Unexpected message %r", message)

    async def on_stop(self) -> None:
        pass
