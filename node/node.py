import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from dotenv import load_dotenv

from common.loop import ControlLoop
from common.mailbox import Mailbox
from node.analyzer import Analyzer
from node.backend import Backend
from node.camera import Camera, StaticCamera
from node.config import NodeSettings
from node.measurer import Measurer
from node.photocleaner import PhotoCleaner
from node.pollers import ConfigWatcher, ManualMeasurementTrigger
from node.sensor import MockWaterLevel, SensorError, SerialWaterLevel
from node.trigger import Trigger

log = logging.getLogger("node")


class Node:
    """A hydro monitor node: its control loops and the mailboxes joining them.

        ConfigWatcher ---configuration---> Analyzer ---interval---> Trigger
        Measurer      ---reading---------> Analyzer
        Trigger       ---sample now------> Measurer
        ManualTrigger ---sample now------> Measurer
    """

    def __init__(self, settings: NodeSettings, sensor, camera, backend):
        self.settings = settings                                  # Process tunables
        self.backend  = backend                                   # Collector client
        self.sensor   = sensor                                    # Water level source
        self.trigger_inbox  = Mailbox("trigger")                  # Interval updates
        self.measurer_inbox = Mailbox("measurer")                 # Scheduled and manual sample requests
        self.analyzer_inbox = Mailbox("analyzer")                 # Readings and configurations
        self.trigger = Trigger(
            settings.initial_trigger_interval, self.trigger_inbox, self.measurer_inbox,
            settings.measurement_request_send_timeout)
        self.measurer = Measurer(
            self.measurer_inbox, self.analyzer_inbox, sensor, camera, backend,
            settings.measurement_to_analyzer_send_timeout)
        self.analyzer = Analyzer(
            self.analyzer_inbox, self.trigger_inbox, settings.interval_update_timeout)
        self.config_watcher = ConfigWatcher(
            settings.configuration_update_interval, backend, self.analyzer_inbox,
            settings.configuration_update_timeout)
        self.manual_trigger = ManualMeasurementTrigger(
            settings.manual_measurement_poll_interval, backend, self.measurer_inbox,
            settings.manual_measurement_request_send_timeout)
        self.photo_cleaner = PhotoCleaner(
            settings.photo_cleaning_interval, settings.pictures_dir, settings.photo_retention_days)
        self._tasks: List[asyncio.Task] = []

    @property
    def loops(self) -> List[ControlLoop]:
        return [self.analyzer, self.measurer, self.trigger,
                self.config_watcher, self.manual_trigger, self.photo_cleaner]

    def start(self) -> None:
        self._tasks = [asyncio.create_task(loop.run(), name=loop.name) for loop in self.loops]

    async def stop(self) -> None:
        """Stop every loop and wait until all of them have exited."""
        for loop in self.loops:
            loop.stop()
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for loop, result in zip(self.loops, results):
            if isinstance(result, BaseException):
                log.error("%s exited with %r", loop.name, result)
        self._tasks = []
        await self.backend.close()
        self.sensor.close()


def build_node(settings: NodeSettings, mock_sensor: bool = False,
               mock_camera: Optional[str] = None) -> Node:
    """Node with real or mock collaborators. Raises SensorError if the sensor link cannot be opened."""
    if mock_sensor:
        sensor = MockWaterLevel(settings.measurements)
    else:
        sensor = SerialWaterLevel(settings.serial_port, settings.baud, settings.water_sensor_distance)
    if mock_camera:
        camera = StaticCamera(mock_camera)
    else:
        camera = Camera(settings.pictures_dir, settings.camera_command)
    return Node(settings, sensor, camera, Backend(settings))


async def serve(node: Node) -> None:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    node.start()
    log.info("Awaiting signal")
    await stop.wait()
    log.info("Signal received. Stopping workers")
    await node.stop()


def main(argv: Optional[List[str]] = None) -> int:
    # Parse command-line arguments
    parser = argparse.ArgumentParser(description="Hydro monitor field node")
    parser.add_argument("--env-file", default=".env", help="dotenv file with node settings")
    parser.add_argument("--mock-sensor", action="store_true",
                        help="replay MEASUREMENTS instead of reading the serial sensor")
    parser.add_argument("--mock-camera", metavar="IMAGE",
                        help="upload IMAGE instead of capturing pictures")
    parser.add_argument("--log-level", default="INFO")
    args = parser.parse_args(argv)

    logging.basicConfig(level=args.log_level.upper(),
                        format="%(asctime)s [%(name)s] %(levelname)s %(message)s")
    if not load_dotenv(args.env_file):
        log.info("No .env file found")
    settings = NodeSettings.from_env()
    log.info("Env config: %s", settings)

    try:
        node = build_node(settings, args.mock_sensor, args.mock_camera)
    except SensorError as e:
        log.critical("%s", e)
        return 1
    asyncio.run(serve(node))
    return 0


if __name__ == "__main__":
    sys.exit(main())
