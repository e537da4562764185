import asyncio
from pathlib import Path
from typing import Optional, Set

from common.loop import ControlLoop
from common.mailbox import Mailbox
from common.utils import photo_name, utc_now
from node.backend import BackendError
from node.camera import CameraError
from node.messages import Measurement, Reading, SampleRequest
from node.sensor import SensorError

PICTURE_NUMBER = 1


class Measurer(ControlLoop):
    """Runs one measurement cycle per sample request, scheduled or manual."""

    name = "measurer"

    def __init__(self, inbox: Mailbox, analyzer: Mailbox, sensor, camera, backend, send_timeout: float):
        super().__init__(inbox=inbox)
        self.analyzer     = analyzer        # Readings go here
        self.sensor       = sensor          # async read_level() -> float
        self.camera       = camera          # async capture(name) -> path
        self.backend      = backend         # Collector client
        self.send_timeout = send_timeout    # Bound on each reading sent to the Analyzer
        self._uploads: Set[asyncio.Task] = set()   # Detached picture uploads

    async def on_message(self, message) -> None:
        if not isinstance(message, SampleRequest):
            await super().on_message(message)
            return
        if message.manual:
            self.log.info("Received alert from ManualTrigger. Requesting measurement")
        else:
            self.log.info("Received alert from Trigger. Requesting measurement")
        await self.sample(message.manual)

    async def sample(self, manual: bool) -> Optional[str]:
        """One measurement cycle. Returns the collector's measurement id, or None if aborted."""
        timestamp = utc_now()

        self.log.info("Taking water level")
        try:
            level = await self.sensor.read_level()
        except SensorError as e:
            self.log.error("Error taking water level: %s. Skipping measurement", e)
            return None

        self.log.info("Sending measurement %s to analyzer", level)
        if await self.analyzer.try_send(Reading(level), self.send_timeout):
            self.log.info("Measurement sent")
        else:
            self.log.warning("Measurement send timed out")

        measurement = Measurement(timestamp=timestamp, value=level, manual=manual)
        self.log.info("Sending measurement (water level: %s) to server", level)
        try:
            measurement_id = await self.backend.post_measurement(measurement)
        except BackendError as e:
            self.log.error("Error sending measurement %s to server: %s. Skipping measurement", level, e)
            return None

        task = asyncio.create_task(self._upload_picture(measurement_id, photo_name(timestamp)))
        self._uploads.add(task)
        task.add_done_callback(self._uploads.discard)
        return measurement_id

    async def _upload_picture(self, measurement_id: str, name: str) -> None:
        self.log.info("Taking picture")
        try:
            path = Path(await self.camera.capture(name))
            image = await asyncio.to_thread(path.read_bytes)
            await self.backend.post_picture(measurement_id, PICTURE_NUMBER, image, path.name)
        except (CameraError, OSError) as e:
            self.log.error("Error taking picture: %s. Skipping picture", e)
        except BackendError as e:
            self.log.error("Error sending picture to server: %s", e)
        else:
            self.log.info("Picture uploaded for measurement %s", measurement_id)

    async def on_stop(self) -> None:
        if self._uploads:
            self.log.info("Waiting for %d picture upload(s)", len(self._uploads))
            await asyncio.gather(*self._uploads, return_exceptions=True)
