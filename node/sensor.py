import asyncio
import itertools
import logging
import threading
import time
from typing import Iterable

import serial

log = logging.getLogger(__name__)

REQUEST_MEASUREMENT = b"\x01"
BOOT_DELAY_S = 2.0    # The microcontroller resets every time the port is opened


class SensorError(Exception):
    """The water level could not be read."""


class SerialWaterLevel:
    """Water level from a distance sensor behind a microcontroller on a serial port.

    The microcontroller answers a single request byte with the measured distance
    in cm as a newline-terminated decimal. The water level is the sensor's
    height above the river bed minus that distance.
    """

    def __init__(self, port: str, baud: int, sensor_distance: float, read_timeout: float = 5.0):
        self.sensor_distance = sensor_distance
        self._lock = threading.Lock()
        try:
            self._serial = serial.Serial(port, baud, timeout=read_timeout)
        except (serial.SerialException, ValueError) as e:
            raise SensorError(f"Error opening serial port {port}: {e}") from e
        time.sleep(BOOT_DELAY_S)

    def _read_distance(self) -> float:
        with self._lock:
            try:
                self._serial.write(REQUEST_MEASUREMENT)
                raw = self._serial.readline()
            except serial.SerialException as e:
                raise SensorError(f"Error talking to serial port: {e}") from e
        log.info("Data received is: %r", raw)
        if not raw.endswith(b"\n"):
            raise SensorError(f"Incomplete reading from sensor: {raw!r}")
        text = raw.decode("ascii", errors="replace").strip()
        try:
            return float(text)
        except ValueError as e:
            raise SensorError(f"Failed to convert {text!r} to float") from e

    async def read_level(self) -> float:
        distance = await asyncio.to_thread(self._read_distance)
        level = self.sensor_distance - distance
        log.info("Resulting water level: %.2f - %.2f = %.2f", self.sensor_distance, distance, level)
        return level

    def close(self) -> None:
        self._serial.close()


class MockWaterLevel:
    """Replays a fixed list of readings, wrapping around at the end."""

    def __init__(self, readings: Iterable[float]):
        readings = list(readings)
        if not readings:
            raise ValueError("MockWaterLevel needs at least one reading")
        self._readings = itertools.cycle(readings)

    async def read_level(self) -> float:
        level = next(self._readings)
        log.info("Mock water level: %.2f", level)
        return level

    def close(self) -> None:
        pass
