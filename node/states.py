from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple

from common.timer import is_valid_interval

DEFAULT_STATE_NAME = "default"

@dataclass(frozen=True)
class State:
    name: str
    lower_limit: float        # Inclusive
    upper_limit: float        # Exclusive
    interval: float           # Seconds between measurements while in this state
    picture_count: int = 1    # Pictures per measurement

    def __post_init__(self):
        if not is_valid_interval(self.interval):
            raise ValueError(f"state {self.name!r}: interval must be finite and positive, got {self.interval!r}")

    def contains(self, level: float) -> bool:
        # A level equal to the lower limit belongs to this state, not the one below
        return self.lower_limit <= level < self.upper_limit


def _scan_order(state: State):
    return (state.lower_limit, state.upper_limit, state.name)


class Configuration:
    """Immutable set of states known to the node.

    Non-default states are kept in one fixed order (ascending lower limit, then
    upper limit, then name) so overlapping states always classify the same way.
    """

    def __init__(self, states: Iterable[State]):
        bands = []
        default = None
        for state in states:
            if state.name == DEFAULT_STATE_NAME:
                default = state
            else:
                bands.append(state)
        self._bands: Tuple[State, ...] = tuple(sorted(bands, key=_scan_order))
        self._default: Optional[State] = default
        self._by_name = {s.name: s for s in self._bands}
        if default is not None:
            self._by_name[default.name] = default

    @classmethod
    def from_mapping(cls, states: Mapping[str, State]) -> "Configuration":
        return cls(states.values())

    @property
    def bands(self) -> Tuple[State, ...]:
        return self._bands

    @property
    def default(self) -> Optional[State]:
        return self._default

    def has_default(self) -> bool:
        return self._default is not None

    def get(self, name: str) -> Optional[State]:
        return self._by_name.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._by_name

    def __len__(self) -> int:
        return len(self._by_name)

    def find_band(self, level: float) -> Optional[State]:
        """First non-default state containing `level`."""
        for state in self._bands:
            if state.contains(level):
                return state
        return None

    def classify(self, level: float) -> Optional[State]:
        """State for `level`, falling back to default. None if neither applies."""
        return self.find_band(level) or self._default

    def __eq__(self, other) -> bool:
        if not isinstance(other, Configuration):
            return NotImplemented
        return self._bands == other._bands and self._default == other._default

    def __repr__(self) -> str:
        names = [s.name for s in self._bands]
        if self._default is not None:
            names.append(self._default.name)
        return f"Configuration({', '.join(names)})"
