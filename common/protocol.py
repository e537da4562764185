import json
from typing import Any, Dict, Mapping

from common.utils import format_timestamp
from node.messages import Measurement
from node.states import Configuration, State

# JSON shapes exchanged with the collector.
#
#   configuration:  {"<state>": {"interval": 60, "upperLimit": 50.0,
#                                "lowerLimit": 0.0, "picturesNum": 1}, ...}
#   measurement:    {"timestamp": "<RFC 3339>", "waterLevel": 30.0,
#                    "manualReading": false}
#   reading reply:  measurement fields plus "readingId"
#   manual request: {"manualReading": true}

def dumps(obj: Dict[str, Any]) -> str:
    return json.dumps(obj, separators=(",", ":"))

def encode_state(state: State) -> Dict[str, Any]:
    return {
        "interval": state.interval,
        "upperLimit": state.upper_limit,
        "lowerLimit": state.lower_limit,
        "picturesNum": state.picture_count,
    }

def decode_state(name: str, obj: Mapping[str, Any]) -> State:
    if not isinstance(obj, Mapping):
        raise ValueError(f"state {name!r}: expected an object, got {type(obj).__name__}")
    try:
        return State(
            name=name,
            lower_limit=float(obj.get("lowerLimit", 0.0)),
            upper_limit=float(obj.get("upperLimit", 0.0)),
            interval=float(obj["interval"]),
            picture_count=int(obj.get("picturesNum", 1)),
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"state {name!r}: malformed ({e!r})") from e

def encode_configuration(config: Configuration) -> Dict[str, Any]:
    out = {s.name: encode_state(s) for s in config.bands}
    if config.default is not None:
        out[config.default.name] = encode_state(config.default)
    return out

def decode_configuration(obj: Any) -> Configuration:
    """Raises ValueError for anything that is not a map of states."""
    if not isinstance(obj, Mapping):
        raise ValueError(f"configuration: expected an object, got {type(obj).__name__}")
    return Configuration(decode_state(name, value) for name, value in obj.items())

def encode_measurement(m: Measurement) -> Dict[str, Any]:
    return {
        "timestamp": format_timestamp(m.timestamp),
        "waterLevel": m.value,
        "manualReading": m.manual,
    }

def decode_reading_id(obj: Any) -> str:
    if not isinstance(obj, Mapping) or not obj.get("readingId"):
        raise ValueError(f"reading reply without readingId: {obj!r}")
    return str(obj["readingId"])

def decode_manual_request(obj: Any) -> bool:
    if not isinstance(obj, Mapping):
        raise ValueError(f"manual request: expected an object, got {type(obj).__name__}")
    return bool(obj.get("manualReading", False))

def loads(text: str) -> Any:
    """Decode a response body. Raises ValueError when it is not JSON."""
    return json.loads(text)
