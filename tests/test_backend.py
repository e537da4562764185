"""Tests for the collector client, run against the mock collector."""

import asyncio
import json
from datetime import datetime, timezone

import pytest
from aiohttp import FormData, web
from aiohttp.test_utils import TestClient, TestServer

from collector.collector import CollectorState, make_app
from collector.config_schema import DEFAULT_STATES
from common import protocol
from node.backend import Backend, BackendError, ConfigurationNotFound
from node.config import NodeSettings
from node.messages import Measurement
from node.states import Configuration, State

NODE = "7"


def settings_for(server) -> NodeSettings:
    return NodeSettings(node_name=NODE, server_url=f"http://{server.host}:{server.port}", http_timeout=2)


def with_collector(state, scenario):
    """Run `scenario(backend, state)` against a live mock collector."""
    async def run():
        async with TestServer(make_app(state)) as server:
            async with Backend(settings_for(server)) as backend:
                return await scenario(backend, state)
    return asyncio.run(run())


@pytest.fixture
def collector_state(tmp_path):
    return CollectorState(tmp_path)


class TestConfiguration:
    def test_default_states_round_trip(self, collector_state):
        async def scenario(backend, state):
            return await backend.get_configuration()

        config = with_collector(collector_state, scenario)
        assert config == DEFAULT_STATES
        assert [s.name for s in config.bands] == ["low", "normal", "high"]
        assert config.get("high").picture_count == 2

    def test_not_found_is_distinct(self, tmp_path):
        async def scenario(backend, state):
            with pytest.raises(ConfigurationNotFound):
                await backend.get_configuration()

        with_collector(CollectorState(tmp_path, default_configuration=None), scenario)

    def test_per_node_configuration(self, tmp_path):
        custom = Configuration([State("only", lower_limit=1.5, upper_limit=9.5, interval=120, picture_count=3)])
        state = CollectorState(tmp_path, default_configuration=None)
        state.configurations[NODE] = custom

        async def scenario(backend, state):
            return await backend.get_configuration()

        assert with_collector(state, scenario) == custom


class TestReadings:
    def test_post_measurement(self, collector_state, tmp_path):
        ts = datetime(2026, 10, 19, 12, 30, 5, tzinfo=timezone.utc)

        async def scenario(backend, state):
            return await backend.post_measurement(Measurement(timestamp=ts, value=123.4, manual=True))

        reading_id = with_collector(collector_state, scenario)
        [line] = (tmp_path / f"{NODE}.jsonl").read_text().splitlines()
        stored = json.loads(line)
        assert stored == {
            "timestamp": "2026-10-19T12:30:05+00:00",
            "waterLevel": 123.4,
            "manualReading": True,
            "readingId": reading_id,
        }

    def test_post_picture(self, collector_state, tmp_path):
        async def scenario(backend, state):
            await backend.post_picture("abc", 1, b"\xff\xd8jpeg", "shot.jpeg")

        with_collector(collector_state, scenario)
        assert (tmp_path / "pictures" / NODE / "abc_1.jpeg").read_bytes() == b"\xff\xd8jpeg"


def test_manual_request_handed_out_once(collector_state):
    async def scenario(backend, state):
        before = await backend.get_manual_request_pending()
        state.manual_pending[NODE] = True
        return before, await backend.get_manual_request_pending(), await backend.get_manual_request_pending()

    assert with_collector(collector_state, scenario) == (False, True, False)


def test_server_errors_raise_backend_error(tmp_path):
    state = CollectorState(tmp_path, fail_prob=1.0)

    async def scenario(backend, state):
        with pytest.raises(BackendError):
            await backend.get_configuration()
        with pytest.raises(BackendError):
            await backend.get_manual_request_pending()
        with pytest.raises(BackendError):
            await backend.post_measurement(Measurement(datetime.now(timezone.utc), 1.0))
        with pytest.raises(BackendError):
            await backend.post_picture("abc", 1, b"jpeg")

    with_collector(state, scenario)


def test_malformed_body_raises_backend_error():
    async def not_json(request):
        return web.Response(text="<html>maintenance</html>")

    async def scenario():
        app = web.Application()
        app.router.add_get("/api/nodes/{node}/configuration", not_json)
        app.router.add_get("/api/nodes/{node}/manual-reading", not_json)
        async with TestServer(app) as server:
            async with Backend(settings_for(server)) as backend:
                with pytest.raises(BackendError):
                    await backend.get_configuration()
                with pytest.raises(BackendError):
                    await backend.get_manual_request_pending()

    asyncio.run(scenario())


def test_unreachable_collector():
    async def scenario():
        settings = NodeSettings(node_name=NODE, server_url="http://127.0.0.1:9", http_timeout=1)
        async with Backend(settings) as backend:
            with pytest.raises(BackendError):
                await backend.get_configuration()

    asyncio.run(scenario())


def test_configuration_wire_format():
    config = protocol.decode_configuration({
        "low": {"interval": 60, "upperLimit": 50, "lowerLimit": 0, "picturesNum": 1},
        "default": {"interval": 10, "upperLimit": 0, "lowerLimit": 0, "picturesNum": 0},
    })
    assert config.classify(10).name == "low"
    assert config.default.interval == 10
    with pytest.raises(ValueError):
        protocol.decode_configuration({"low": {"upperLimit": 50}})
    with pytest.raises(ValueError):
        protocol.decode_configuration(["low"])


def test_nan_interval_is_rejected():
    with pytest.raises(ValueError):
        protocol.decode_configuration(protocol.loads(
            '{"low": {"interval": NaN, "upperLimit": 50, "lowerLimit": 0, "picturesNum": 1}}'))

    async def nan_configuration(request):
        return web.Response(text='{"low": {"interval": NaN, "upperLimit": 50, "lowerLimit": 0}}',
                            content_type="application/json")

    async def scenario():
        app = web.Application()
        app.router.add_get("/api/nodes/{node}/configuration", nan_configuration)
        async with TestServer(app) as server:
            async with Backend(settings_for(server)) as backend:
                with pytest.raises(BackendError):
                    await backend.get_configuration()

    asyncio.run(scenario())


@pytest.mark.parametrize("picture_number", ["1/../../../../escaped", "first", "0"])
def test_bad_picture_number_is_refused(tmp_path, picture_number):
    data_dir = tmp_path / "data"

    async def scenario():
        async with TestClient(TestServer(make_app(CollectorState(data_dir)))) as client:
            form = FormData()
            form.add_field("pictureNumber", picture_number)
            form.add_field("picture", b"jpeg", filename="shot.jpeg", content_type="image/jpeg")
            resp = await client.post(f"/api/nodes/{NODE}/readings/abc/photos", data=form)
            return resp.status

    assert asyncio.run(scenario()) == 400
    assert list(tmp_path.rglob("*.jpeg")) == []
