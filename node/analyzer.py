from typing import Optional

from common.loop import ControlLoop
from common.mailbox import Mailbox
from node.messages import ConfigurationUpdate, IntervalUpdate, Reading
from node.states import Configuration, State


class Analyzer(ControlLoop):
    """State machine mapping water levels to configured states.

    Owns the node configuration and the current state name; nothing else reads
    or writes them. After every analyzed reading the interval of the resulting
    state is sent to the Trigger, even when the state did not change, so a
    configuration replaced between readings reaches the Trigger too.

    Readings received before any configuration are dropped. A configuration
    replacement alone never emits an interval: it takes effect with the next
    reading.
    """

    name = "analyzer"

    def __init__(self, inbox: Mailbox, trigger: Mailbox, send_timeout: float):
        super().__init__(inbox=inbox)
        self.trigger       = trigger        # Interval updates go here
        self.send_timeout  = send_timeout   # Bound on each interval update
        self.configuration: Optional[Configuration] = None
        self.current_state: Optional[str] = None   # None while unknown

    async def on_message(self, message) -> None:
        if isinstance(message, ConfigurationUpdate):
            self.log.info("Configuration received: %r", message.configuration)
            self.update_configuration(message.configuration)
        elif isinstance(message, Reading):
            self.log.info("Measurement received: %s", message.value)
            if self.configuration is None:
                self.log.info("Node configuration not loaded, skipping analysis")
                return
            await self.analyze(message.value)
        else:
            await super().on_message(message)

    def update_configuration(self, configuration: Configuration) -> None:
        self.log.info("Saving node configuration")
        self.configuration = configuration

    def next_state(self, level: float) -> Optional[State]:
        """State the node is in after reading `level`.

        None means no state applies: the current state is kept and no interval
        is emitted.
        """
        config = self.configuration
        current = config.get(self.current_state) if self.current_state is not None else None

        if current is None:
            if self.current_state is None:
                self.log.info("Current state unset. Setting current state")
            else:
                self.log.info("Current state %s not in new configuration. Setting current state",
                              self.current_state)
            state = config.classify(level)
            if state is None:
                self.log.error("Could not find current state for measurement %s, skipping analysis", level)
            return state

        if current is config.default:
            # The default state has no limits of its own to compare against
            state = config.find_band(level)
            if state is None:
                self.log.info("No limits were surpassed. Current state is (still) %s", current.name)
                return current
            return state

        if current.contains(level):
            self.log.info("No limits were surpassed. Current state is (still) %s", current.name)
            return current

        if level >= current.upper_limit:
            self.log.info("Upper limit surpassed")
        else:
            self.log.info("Lower limit surpassed")
        state = config.classify(level)
        if state is None:
            self.log.error("Could not find next state for measurement %s, staying at current state %s",
                           level, current.name)
        return state

    async def analyze(self, level: float) -> None:
        self.log.info("Analyzing measurement")
        state = self.next_state(level)
        if state is not None:
            await self.update_current_state(state)

    async def update_current_state(self, state: State) -> None:
        self.log.info("Current state is %s", state.name)
        self.current_state = state.name
        self.log.info("Sending new current interval (%ss) to Trigger", state.interval)
        if await self.trigger.try_send(IntervalUpdate(state.interval), self.send_timeout):
            self.log.info("Interval update sent")
        else:
            self.log.warning("Interval update timed out")
