import logging
import math
import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

log = logging.getLogger(__name__)

DEFAULT_MEASUREMENTS = [1.0, 3.0, 4.0, 5.0, 6.0]

@dataclass
class NodeSettings:
    node_name: str = "1"                                    # Node identity in backend URLs
    water_sensor_distance: float = 600.0                    # Sensor height above river bed, cm
    initial_trigger_interval: float = 10.0                  # s, until a configuration is loaded
    configuration_update_interval: float = 60.0             # s between configuration polls
    manual_measurement_poll_interval: float = 180.0         # s between manual request polls
    photo_cleaning_interval: float = 72.0                   # h between photo sweeps
    photo_retention_days: float = 7.0                       # Photos older than this are deleted
    pictures_dir: str = "/home/pi/Documents/pictures"
    serial_port: str = "/dev/ttyACM0"
    baud: int = 9600
    camera_command: str = "raspistill"
    server_url: str = "http://localhost:9000"
    get_node_configuration_path: str = "/api/nodes/{node}/configuration"
    post_node_measurement_path: str = "/api/nodes/{node}/readings"
    post_node_picture_path: str = "/api/nodes/{node}/readings/{reading}/photos"
    get_manual_measurement_request_path: str = "/api/nodes/{node}/manual-reading"
    http_timeout: float = 10.0                              # s per backend request
    interval_update_timeout: float = 10.0                   # s, Analyzer -> Trigger
    configuration_update_timeout: float = 10.0              # s, ConfigWatcher -> Analyzer
    manual_measurement_request_send_timeout: float = 10.0   # s, ManualMeasurementTrigger -> Measurer
    measurement_to_analyzer_send_timeout: float = 10.0      # s, Measurer -> Analyzer
    measurement_request_send_timeout: float = 10.0          # s, Trigger -> Measurer
    measurements: List[float] = field(default_factory=lambda: list(DEFAULT_MEASUREMENTS))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "NodeSettings":
        """Settings from environment variables, defaults for anything missing or invalid."""
        env = os.environ if environ is None else environ
        d = cls()
        return cls(
            node_name=_str(env, "NODE_NAME", d.node_name),
            water_sensor_distance=_number(env, "WATER_SENSOR_DISTANCE", d.water_sensor_distance),
            initial_trigger_interval=_number(env, "INITIAL_TRIGGER_INTERVAL", d.initial_trigger_interval),
            configuration_update_interval=_number(env, "CONFIGURATION_UPDATE_INTERVAL", d.configuration_update_interval),
            manual_measurement_poll_interval=_number(env, "MANUAL_MEASUREMENT_POLL_INTERVAL", d.manual_measurement_poll_interval),
            photo_cleaning_interval=_number(env, "PHOTO_CLEANING_INTERVAL", d.photo_cleaning_interval),
            photo_retention_days=_number(env, "PHOTO_RETENTION_DAYS", d.photo_retention_days),
            pictures_dir=_str(env, "PICTURES_DIR", d.pictures_dir),
            serial_port=_str(env, "SERIAL_PORT", d.serial_port),
            baud=int(_number(env, "BAUD", d.baud)),
            camera_command=_str(env, "CAMERA_COMMAND", d.camera_command),
            server_url=_str(env, "SERVER_URL", d.server_url).rstrip("/"),
            get_node_configuration_path=_str(env, "GET_NODE_CONFIGURATION_PATH", d.get_node_configuration_path),
            post_node_measurement_path=_str(env, "POST_NODE_MEASUREMENT_PATH", d.post_node_measurement_path),
            post_node_picture_path=_str(env, "POST_NODE_PICTURE_PATH", d.post_node_picture_path),
            get_manual_measurement_request_path=_str(env, "GET_MANUAL_MEASUREMENT_REQUEST_PATH", d.get_manual_measurement_request_path),
            http_timeout=_number(env, "HTTP_TIMEOUT", d.http_timeout),
            interval_update_timeout=_number(env, "INTERVAL_UPDATE_TIMEOUT", d.interval_update_timeout),
            configuration_update_timeout=_number(env, "CONFIGURATION_UPDATE_TIMEOUT", d.configuration_update_timeout),
            manual_measurement_request_send_timeout=_number(env, "MANUAL_MEASUREMENT_REQUEST_SEND_TIMEOUT", d.manual_measurement_request_send_timeout),
            measurement_to_analyzer_send_timeout=_number(env, "MEASUREMENT_TO_ANALYZER_SEND_TIMEOUT", d.measurement_to_analyzer_send_timeout),
            measurement_request_send_timeout=_number(env, "MEASUREMENT_REQUEST_SEND_TIMEOUT", d.measurement_request_send_timeout),
            measurements=_numbers(env, "MEASUREMENTS", d.measurements),
        )


def _str(env: Mapping[str, str], name: str, default: str) -> str:
    value = env.get(name)
    return default if value is None or value == "" else value

def _number(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        log.warning("Invalid %s=%r; using %s", name, raw, default)
        return default
    if not math.isfinite(value) or value <= 0:
        log.warning("Invalid %s=%r; using %s", name, raw, default)
        return default
    return value

def _numbers(env: Mapping[str, str], name: str, default: List[float]) -> List[float]:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return list(default)
    values = []
    for part in raw.split(","):
        try:
            values.append(float(part))
        except ValueError:
            log.error("Failed to convert %r to float, skipping measurement", part)
    return values or list(default)
