from common.loop import ControlLoop
from common.mailbox import Mailbox
from common.timer import is_valid_interval
from node.messages import IntervalUpdate, SampleRequest


class Trigger(ControlLoop):
    """Adaptive periodic timer driving scheduled measurements.

    Ticks ask the Measurer for a measurement. Interval updates from the
    Analyzer re-arm the timer, dropping the partially elapsed period.
    """

    name = "trigger"

    def __init__(self, interval: float, inbox: Mailbox, measurer: Mailbox, send_timeout: float):
        if not is_valid_interval(interval):
            raise ValueError(f"initial interval must be finite and positive, got {interval!r}")
        super().__init__(interval=interval, inbox=inbox)
        self.measurer     = measurer       # Sample requests go here
        self.send_timeout = send_timeout   # Bound on each sample request

    @property
    def current_interval(self) -> float:
        return self.timer.interval

    async def on_tick(self) -> None:
        self.log.info("Tick. Awaking Measurer")
        if not await self.measurer.try_send(SampleRequest(manual=False), self.send_timeout):
            self.log.warning("Measurement request timed out, Measurer busy")

    async def on_message(self, message) -> None:
        if not isinstance(message, IntervalUpdate):
            await super().on_message(message)
            return
        new_interval = message.interval
        self.log.info("Interval received is %ss, while current interval is: %ss",
                      new_interval, self.timer.interval)
        if not is_valid_interval(new_interval):
            self.log.warning("Ignoring invalid interval %r", new_interval)
            return
        if new_interval == self.timer.interval:
            self.log.info("Timer continues unchanged")
            return
        self.timer.arm(new_interval)
        self.log.info("Old timer stopped. New interval is: %ss", new_interval)
