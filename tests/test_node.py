"""End-to-end tests for a node wired with fake peripherals."""

import asyncio

import pytest
from conftest import FakeBackend, FakeCamera, FakeSensor

from node.config import NodeSettings
from node.node import Node, build_node
from node.sensor import MockWaterLevel, SensorError
from node.states import Configuration, State


@pytest.fixture
def fast_settings(tmp_path):
    return NodeSettings(
        initial_trigger_interval=0.05,
        configuration_update_interval=60,
        manual_measurement_poll_interval=0.05,
        photo_cleaning_interval=1,
        pictures_dir=str(tmp_path),
        interval_update_timeout=0.5,
        configuration_update_timeout=0.5,
        manual_measurement_request_send_timeout=0.5,
        measurement_to_analyzer_send_timeout=0.5,
        measurement_request_send_timeout=0.5,
    )


@pytest.fixture
def fast_low():
    return Configuration([
        State("low", lower_limit=0.0, upper_limit=50.0, interval=0.1),
        State("default", lower_limit=0.0, upper_limit=0.0, interval=0.05),
    ])


async def run_node(node, seconds):
    node.start()
    await asyncio.sleep(seconds)
    await node.stop()
    return node


def test_node_adapts_interval_to_water_level(fast_settings, fast_low, tmp_path):
    backend = FakeBackend(configuration=fast_low)
    sensor = FakeSensor([30.0])
    node = Node(fast_settings, sensor, FakeCamera(tmp_path), backend)

    asyncio.run(run_node(node, 0.4))

    assert node.analyzer.current_state == "low"
    assert node.trigger.current_interval == 0.1
    assert len(backend.measurements) >= 2
    assert all(m.value == 30.0 for m in backend.measurements)
    # Every stored measurement got its picture
    assert len(backend.pictures) == len(backend.measurements)


def test_manual_request_is_measured(fast_settings, fast_low, tmp_path):
    backend = FakeBackend(configuration=fast_low)
    backend.manual_pending = 1
    node = Node(fast_settings, FakeSensor(), FakeCamera(tmp_path), backend)

    asyncio.run(run_node(node, 0.2))

    assert [m for m in backend.measurements if m.manual]


def test_node_without_configuration_keeps_initial_interval(fast_settings, tmp_path):
    backend = FakeBackend(configuration=None)
    node = Node(fast_settings, FakeSensor(), FakeCamera(tmp_path), backend)

    asyncio.run(run_node(node, 0.2))

    assert node.analyzer.current_state is None
    assert node.trigger.current_interval == 0.05
    assert backend.measurements


def test_stop_waits_for_every_loop_and_releases_resources(fast_settings, fast_low, tmp_path):
    backend = FakeBackend(configuration=fast_low)
    sensor = FakeSensor()
    node = Node(fast_settings, sensor, FakeCamera(tmp_path), backend)

    async def scenario():
        node.start()
        tasks = list(node._tasks)
        await asyncio.sleep(0.05)
        await asyncio.wait_for(node.stop(), 2.0)
        return tasks

    tasks = asyncio.run(scenario())
    assert all(task.done() for task in tasks)
    assert all(loop.stopping for loop in node.loops)
    assert backend.closed
    assert sensor.closed


def test_build_node_with_mock_peripherals(tmp_path):
    image = tmp_path / "still.jpeg"
    image.write_bytes(b"jpeg")
    settings = NodeSettings(pictures_dir=str(tmp_path), measurements=[12.5])
    node = build_node(settings, mock_sensor=True, mock_camera=str(image))
    assert isinstance(node.sensor, MockWaterLevel)
    assert {loop.name for loop in node.loops} == {
        "analyzer", "measurer", "trigger", "config_watcher", "manual_trigger", "photo_cleaner"}


def test_build_node_without_serial_port(tmp_path):
    settings = NodeSettings(pictures_dir=str(tmp_path), serial_port=str(tmp_path / "no-such-tty"))
    with pytest.raises(SensorError):
        build_node(settings)
