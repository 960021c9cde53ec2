"""
Runtime Settings
The user-facing configuration surface: process, material and feedback toggles.
"""

import yaml
from dataclasses import dataclass, fields
from typing import Optional

from .process_profiles import ProcessKind


@dataclass
class WeldSettings:
    """Mutable session settings. `material` is display-only."""
    process_kind: ProcessKind = ProcessKind.MIG
    material: str = "steel"
    sound_enabled: bool = True
    vibration_enabled: bool = True

    def __post_init__(self):
        self.process_kind = ProcessKind.parse(self.process_kind)

    def toggle_sound(self) -> bool:
        self.sound_enabled = not self.sound_enabled
        return self.sound_enabled

    def toggle_vibration(self) -> bool:
        self.vibration_enabled = not self.vibration_enabled
        return self.vibration_enabled


def load_settings(settings_path: Optional[str] = None, **overrides) -> WeldSettings:
    """
    Build settings from an optional YAML file plus keyword overrides.

    Overrides with value None are ignored so argparse defaults can be passed
    straight through.
    """
    values = {}
    if settings_path:
        with open(settings_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Settings file must contain a mapping: {settings_path}")
        values.update(data)

    values.update({k: v for k, v in overrides.items() if v is not None})

    known = {f.name for f in fields(WeldSettings)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"Unknown settings: {sorted(unknown)}")

    return WeldSettings(**values)
