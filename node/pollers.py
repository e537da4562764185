from typing import Any, Optional

from common.loop import ControlLoop
from common.mailbox import Mailbox
from node.backend import BackendError, ConfigurationNotFound
from node.messages import ConfigurationUpdate, SampleRequest


class Poller(ControlLoop):
    """Asks the collector something on every tick and forwards a positive answer.

    Failures and send timeouts are logged and wait for the next tick: no retry,
    no backoff.
    """

    what = "data"

    def __init__(self, interval: float, backend, target: Mailbox, send_timeout: float):
        super().__init__(interval=interval)
        self.backend      = backend
        self.target       = target
        self.send_timeout = send_timeout

    async def fetch(self) -> Optional[Any]:
        """Message to forward, or None when there is nothing to forward."""
        raise NotImplementedError

    async def poll(self) -> bool:
        """One poll. True if a message was fetched and delivered."""
        try:
            message = await self.fetch()
        except BackendError as e:
            self.log.error("Could not get %s from server: %s", self.what, e)
            return False
        if message is None:
            return False
        if await self.target.try_send(message, self.send_timeout):
            self.log.info("%s sent", self.what.capitalize())
            return True
        self.log.warning("%s send timed out", self.what.capitalize())
        return False

    async def on_tick(self) -> None:
        self.log.info("Tick. Querying server for %s", self.what)
        await self.poll()


class ConfigWatcher(Poller):
    """Keeps the Analyzer supplied with the node configuration held by the collector."""

    name = "config_watcher"
    what = "node configuration"

    async def on_start(self) -> None:
        self.log.info("Querying server for node configuration")
        await self.poll()

    async def fetch(self) -> Optional[ConfigurationUpdate]:
        try:
            configuration = await self.backend.get_configuration()
        except ConfigurationNotFound:
            self.log.info("Node has no configuration loaded yet")
            return None
        self.log.info("Sending new node configuration: %r", configuration)
        return ConfigurationUpdate(configuration)


class ManualMeasurementTrigger(Poller):
    """Turns operator requests pending on the collector into manual measurements."""

    name = "manual_trigger"
    what = "manual measurement request"

    async def fetch(self) -> Optional[SampleRequest]:
        if not await self.backend.get_manual_request_pending():
            self.log.info("No manual measurement requests pending")
            return None
        self.log.info("Sending manual measurement request to Measurer")
        return SampleRequest(manual=True)
