"""
Process Profiles
Optimal angle/distance/speed bands and score weights per welding process.
"""

import yaml
from enum import Enum
from dataclasses import dataclass, field, replace
from typing import Dict, Optional


class ProcessKind(Enum):
    """Welding process variants (A = MIG/MAG, B = TIG, C = stick electrode)."""
    MIG = "mig"
    TIG = "tig"
    STICK = "stick"

    @classmethod
    def parse(cls, value) -> "ProcessKind":
        """Accept an enum member, its value, its name or the letters A/B/C."""
        if isinstance(value, cls):
            return value
        key = str(value).strip().lower()
        aliases = {
            'a': cls.MIG, 'mag': cls.MIG,
            'b': cls.TIG,
            'c': cls.STICK, 'electrode': cls.STICK, 'smaw': cls.STICK,
        }
        if key in aliases:
            return aliases[key]
        for kind in cls:
            if key == kind.value:
                return kind
        raise ValueError(f"Unknown process kind: {value!r}")


# Order in which metrics are weighted, reported and recommended
METRIC_ORDER = ('angle', 'stability', 'speed', 'approach', 'straightness', 'distance')


@dataclass(frozen=True)
class Band:
    """Closed interval [min, max]."""
    min: float
    max: float

    def __post_init__(self):
        if self.min > self.max:
            raise ValueError(f"Band min {self.min} is greater than max {self.max}")

    def contains(self, value: float) -> bool:
        return self.min <= value <= self.max

    def gap(self, value: float) -> float:
        """Distance to whichever bound is violated (0 inside the band)."""
        if value < self.min:
            return self.min - value
        if value > self.max:
            return value - self.max
        return 0.0

    @property
    def midpoint(self) -> float:
        return (self.min + self.max) / 2

    @property
    def width(self) -> float:
        return self.max - self.min


CONSUMABLE_WEIGHTS = {
    'angle': 0.20,
    'stability': 0.15,
    'speed': 0.15,
    'approach': 0.25,
    'straightness': 0.15,
    'distance': 0.10,
}

CONTINUOUS_FEED_WEIGHTS = {
    'angle': 0.25,
    'stability': 0.20,
    'speed': 0.20,
    'approach': 0.10,
    'straightness': 0.15,
    'distance': 0.10,
}


@dataclass(frozen=True)
class ProcessProfile:
    """Immutable optimal bands for one welding process."""
    kind: ProcessKind
    display_name: str
    optimal_angle: Band
    optimal_distance: Band
    optimal_speed: Band
    consumable_electrode: bool = False
    weights: Dict[str, float] = field(default_factory=lambda: dict(CONTINUOUS_FEED_WEIGHTS))

    def normalized_weights(self, metrics=METRIC_ORDER) -> Dict[str, float]:
        """Weights restricted to `metrics` and rescaled to sum to 1."""
        selected = {name: float(self.weights.get(name, 0.0)) for name in metrics}
        total = sum(selected.values())
        if total <= 0:
            return {name: 0.0 for name in selected}
        return {name: w / total for name, w in selected.items()}


DEFAULT_PROFILES: Dict[ProcessKind, ProcessProfile] = {
    ProcessKind.MIG: ProcessProfile(
        kind=ProcessKind.MIG,
        display_name="MIG/MAG",
        optimal_angle=Band(15, 25),
        optimal_distance=Band(15, 25),
        optimal_speed=Band(5, 15),
        weights=dict(CONTINUOUS_FEED_WEIGHTS),
    ),
    ProcessKind.TIG: ProcessProfile(
        kind=ProcessKind.TIG,
        display_name="TIG",
        optimal_angle=Band(10, 20),
        optimal_distance=Band(8, 15),
        optimal_speed=Band(3, 10),
        weights=dict(CONTINUOUS_FEED_WEIGHTS),
    ),
    ProcessKind.STICK: ProcessProfile(
        kind=ProcessKind.STICK,
        display_name="Stick electrode",
        optimal_angle=Band(5, 15),
        optimal_distance=Band(5, 10),
        optimal_speed=Band(0.3, 0.8),
        consumable_electrode=True,
        weights=dict(CONSUMABLE_WEIGHTS),
    ),
}


def _parse_band(data, name: str) -> Band:
    if isinstance(data, dict):
        return Band(float(data['min']), float(data['max']))
    if isinstance(data, (list, tuple)) and len(data) == 2:
        return Band(float(data[0]), float(data[1]))
    raise ValueError(f"Invalid band for {name}: {data!r}")


def load_profiles(profiles_path: Optional[str] = None) -> Dict[ProcessKind, ProcessProfile]:
    """
    Load process profiles.

    Profiles in the YAML file override the built-in defaults field by field;
    processes missing from the file keep their defaults.

    Args:
        profiles_path: Path to a YAML file with a top-level `profiles` mapping

    Returns:
        Mapping ProcessKind -> ProcessProfile
    """
    profiles = dict(DEFAULT_PROFILES)
    if not profiles_path:
        return profiles

    with open(profiles_path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f) or {}

    entries = data.get('profiles', {})
    if not isinstance(entries, dict):
        raise ValueError(f"'profiles' must be a mapping in {profiles_path}")

    for key, entry in entries.items():
        kind = ProcessKind.parse(key)
        base = profiles[kind]
        entry = entry or {}
        overrides = {}
        if 'display_name' in entry:
            overrides['display_name'] = str(entry['display_name'])
        for band_name in ('optimal_angle', 'optimal_distance', 'optimal_speed'):
            if band_name in entry:
                overrides[band_name] = _parse_band(entry[band_name], f"{key}.{band_name}")
        if 'consumable_electrode' in entry:
            overrides['consumable_electrode'] = bool(entry['consumable_electrode'])
        if 'weights' in entry:
            weights = {name: float(w) for name, w in entry['weights'].items()}
            unknown = set(weights) - set(METRIC_ORDER)
            if unknown:
                raise ValueError(f"Unknown weight keys for {key}: {sorted(unknown)}")
            overrides['weights'] = weights
        profiles[kind] = replace(base, **overrides)

    return profiles
