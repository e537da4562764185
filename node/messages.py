from dataclasses import dataclass
from datetime import datetime

from node.states import Configuration

# Payloads exchanged between control loops. Only successful results travel
# through mailboxes, never errors.

@dataclass(frozen=True)
class SampleRequest:
    manual: bool = False

@dataclass(frozen=True)
class Reading:
    value: float

@dataclass(frozen=True)
class IntervalUpdate:
    interval: float

@dataclass(frozen=True)
class ConfigurationUpdate:
    configuration: Configuration

@dataclass(frozen=True)
class Measurement:
    timestamp: datetime
    value: float
    manual: bool = False
