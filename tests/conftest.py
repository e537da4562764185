"""Shared fakes and helpers for the hydro node test suite."""

import asyncio
import os
import sys
import time
from contextlib import suppress
from pathlib import Path

import pytest

# Ensure project root is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from node.backend import BackendError, ConfigurationNotFound
from node.camera import CameraError
from node.sensor import SensorError
from node.states import Configuration, State


async def settle(delay: float = 0.01):
    """Let background tasks run."""
    await asyncio.sleep(delay)


class Drain:
    """Background receiver recording (monotonic time, message) for each delivery."""

    def __init__(self, mailbox):
        self.mailbox = mailbox
        self.received = []
        self._task = None

    @property
    def messages(self):
        return [m for _, m in self.received]

    async def _run(self):
        while True:
            message = await self.mailbox.receive()
            self.received.append((time.monotonic(), message))

    async def __aenter__(self):
        self._task = asyncio.create_task(self._run())
        await asyncio.sleep(0)
        return self

    async def __aexit__(self, *exc):
        # Let a receive that was already handed a message record it
        await settle()
        self._task.cancel()
        with suppress(asyncio.CancelledError):
            await self._task


class FakeSensor:
    def __init__(self, readings=(30.0,), fail=False):
        self.readings = list(readings)
        self.fail = fail
        self.calls = 0
        self.closed = False

    async def read_level(self):
        self.calls += 1
        if self.fail:
            raise SensorError("no answer from sensor")
        return self.readings[(self.calls - 1) % len(self.readings)]

    def close(self):
        self.closed = True


class FakeCamera:
    def __init__(self, directory: Path, fail=False):
        self.directory = directory
        self.fail = fail
        self.names = []

    async def capture(self, name):
        self.names.append(name)
        if self.fail:
            raise CameraError("camera unplugged")
        path = self.directory / name
        path.write_bytes(b"jpeg:" + name.encode())
        return path


class FakeBackend:
    def __init__(self, configuration=None, fail_measurements=False, fail_pictures=False):
        self.configuration = configuration
        self.config_error = None
        self.manual_pending = 0
        self.manual_error = None
        self.fail_measurements = fail_measurements
        self.fail_pictures = fail_pictures
        self.measurements = []
        self.pictures = []
        self.closed = False

    async def get_configuration(self):
        if self.config_error is not None:
            raise self.config_error
        if self.configuration is None:
            raise ConfigurationNotFound("no configuration")
        return self.configuration

    async def post_measurement(self, measurement):
        if self.fail_measurements:
            raise BackendError("collector down")
        self.measurements.append(measurement)
        return f"reading-{len(self.measurements)}"

    async def post_picture(self, measurement_id, picture_number, image, filename="picture.jpeg"):
        if self.fail_pictures:
            raise BackendError("collector down")
        self.pictures.append((measurement_id, picture_number, image, filename))

    async def get_manual_request_pending(self):
        if self.manual_error is not None:
            raise self.manual_error
        if self.manual_pending > 0:
            self.manual_pending -= 1
            return True
        return False

    async def close(self):
        self.closed = True


@pytest.fixture
def low_and_default():
    """Configuration from the reference scenarios: low [0, 50) every 60 s, default every 10 s."""
    return Configuration([
        State("low", lower_limit=0.0, upper_limit=50.0, interval=60),
        State("default", lower_limit=0.0, upper_limit=0.0, interval=10),
    ])


@pytest.fixture
def three_bands():
    """Contiguous low / normal / high bands without a default."""
    return Configuration([
        State("high", lower_limit=150.0, upper_limit=300.0, interval=10, picture_count=2),
        State("low", lower_limit=0.0, upper_limit=50.0, interval=60),
        State("normal", lower_limit=50.0, upper_limit=150.0, interval=30),
    ])
