import argparse
import json
import logging
import random
import uuid
from pathlib import Path
from typing import Dict, Optional

from aiohttp import web

from collector.config_schema import DEFAULT_STATES
from common import protocol
from node.states import Configuration

log = logging.getLogger("collector")

DATA_DIR = Path(__file__).resolve().parent / "data"


class CollectorState:
    def __init__(self, data_dir: Path, default_configuration: Optional[Configuration] = DEFAULT_STATES,
                 fail_prob: float = 0.0):
        self.data_dir = data_dir
        self.default_configuration = default_configuration
        self.configurations: Dict[str, Configuration] = {}   # Per node overrides
        self.manual_pending: Dict[str, bool] = {}
        self.fail_prob = fail_prob

    def configuration_for(self, node: str) -> Optional[Configuration]:
        return self.configurations.get(node, self.default_configuration)


STATE_KEY = web.AppKey("collector_state", CollectorState)


def _data_path(root: Path, *parts: str) -> Path:
    """`root/parts`, refusing anything that resolves outside `root`."""
    root = root.resolve()
    path = root.joinpath(*parts).resolve()
    if root not in path.parents:
        raise web.HTTPBadRequest(text="invalid node or reading name")
    return path


@web.middleware
async def fault_injection(request: web.Request, handler):
    # Fault injection: random server errors
    state = request.app[STATE_KEY]
    if state.fail_prob > 0 and random.random() < state.fail_prob:
        log.warning("Failing %s %s (fault injection)", request.method, request.path)
        raise web.HTTPServiceUnavailable()
    return await handler(request)


async def get_configuration(request: web.Request) -> web.Response:
    node = request.match_info["node"]
    config = request.app[STATE_KEY].configuration_for(node)
    if config is None:
        raise web.HTTPNotFound(text="Node has no configuration loaded")
    return web.json_response(protocol.encode_configuration(config))


async def put_configuration(request: web.Request) -> web.Response:
    node = request.match_info["node"]
    try:
        config = protocol.decode_configuration(await request.json())
    except ValueError as e:
        raise web.HTTPBadRequest(text=str(e))
    request.app[STATE_KEY].configurations[node] = config
    log.info("Configuration for %s replaced: %r", node, config)
    return web.json_response(protocol.encode_configuration(config))


async def post_reading(request: web.Request) -> web.Response:
    node = request.match_info["node"]
    try:
        msg = await request.json()
        level = float(msg["waterLevel"])
        timestamp = str(msg["timestamp"])
    except (ValueError, KeyError, TypeError) as e:
        raise web.HTTPBadRequest(text=f"malformed reading: {e!r}")
    reading = {
        "timestamp": timestamp,
        "waterLevel": level,
        "manualReading": bool(msg.get("manualReading", False)),
        "readingId": str(uuid.uuid4()),
    }

    # Persist reading
    state = request.app[STATE_KEY]
    state.data_dir.mkdir(parents=True, exist_ok=True)
    logfile = _data_path(state.data_dir, f"{node}.jsonl")
    with logfile.open("a", encoding="utf-8") as f:
        f.write(protocol.dumps(reading) + "\n")
    log.info("Reading %s from %s: %s", reading["readingId"], node, level)
    return web.json_response(reading, status=201)


async def post_picture(request: web.Request) -> web.Response:
    node = request.match_info["node"]
    reading_id = request.match_info["reading"]
    picture_number = None
    image = None
    async for part in await request.multipart():
        if part.name == "pictureNumber":
            picture_number = (await part.text()).strip()
        elif part.name == "picture":
            image = await part.read()
    if image is None or not picture_number:
        raise web.HTTPBadRequest(text="picture and pictureNumber are required")
    try:
        number = int(picture_number)
    except ValueError:
        raise web.HTTPBadRequest(text=f"pictureNumber must be an integer, got {picture_number!r}")
    if number < 1:
        raise web.HTTPBadRequest(text=f"pictureNumber must be positive, got {number}")

    state = request.app[STATE_KEY]
    target = _data_path(state.data_dir, "pictures", node, f"{reading_id}_{number}.jpeg")
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_bytes(image)
    log.info("Picture %d for reading %s from %s (%d bytes)", number, reading_id, node, len(image))
    return web.json_response({"readingId": reading_id, "pictureNumber": number}, status=201)


async def get_manual_reading(request: web.Request) -> web.Response:
    node = request.match_info["node"]
    # A pending request is handed out once
    pending = request.app[STATE_KEY].manual_pending.pop(node, False)
    return web.json_response({"manualReading": pending})


async def request_manual_reading(request: web.Request) -> web.Response:
    node = request.match_info["node"]
    request.app[STATE_KEY].manual_pending[node] = True
    log.info("Manual reading requested for %s", node)
    return web.json_response({"manualReading": True}, status=202)


def make_app(state: CollectorState) -> web.Application:
    app = web.Application(middlewares=[fault_injection])
    app[STATE_KEY] = state
    app.add_routes([
        web.get("/api/nodes/{node}/configuration", get_configuration),
        web.put("/api/nodes/{node}/configuration", put_configuration),
        web.post("/api/nodes/{node}/readings", post_reading),
        web.post("/api/nodes/{node}/readings/{reading}/photos", post_picture),
        web.get("/api/nodes/{node}/manual-reading", get_manual_reading),
        web.post("/api/nodes/{node}/manual-reading", request_manual_reading),
    ])
    return app


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Hydro monitor mock collector")
    parser.add_argument("--port", type=int, default=9000)
    parser.add_argument("--bind", default="0.0.0.0")
    parser.add_argument("--data-dir", default=str(DATA_DIR))
    parser.add_argument("--states", help="JSON file with the states served to every node")
    parser.add_argument("--no-default-states", action="store_true",
                        help="answer 404 until a configuration is PUT for the node")
    parser.add_argument("--fail-prob", type=float, default=0.0)
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s %(message)s")
    default_configuration = DEFAULT_STATES
    if args.no_default_states:
        default_configuration = None
    elif args.states:
        with open(args.states, encoding="utf-8") as f:
            default_configuration = protocol.decode_configuration(json.load(f))

    state = CollectorState(Path(args.data_dir), default_configuration, args.fail_prob)
    print(f"Starting server on {args.bind}:{args.port}")
    web.run_app(make_app(state), host=args.bind, port=args.port)


if __name__ == "__main__":
    main()
