"""
Event defaults and their YAML overrides.
"""
import os
from typing import Dict, Optional

import yaml

from .errors import InvalidConfiguration


def get_default_settings() -> Dict:
    """Default values applied to new events."""
    return {
        'points_per_win': 3,
        'points_per_loss': 0,
        'players_per_heat': 8,
        'has_third_place_match': False,
        'losers_start_rounds_before_final': None,
    }


def load_settings(path: Optional[str]) -> Dict:
    """Load settings from a YAML file, merging with defaults."""
    defaults = get_default_settings()
    if not path or not os.path.exists(path):
        return defaults
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
        if not data:
            return defaults
        return {**defaults, **{k: v for k, v in data.items() if k in defaults}}


def save_settings(path: str, settings: Dict) -> None:
    validate_settings(settings)
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(settings, f, default_flow_style=False)


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_settings(settings: Dict) -> None:
    """Reject event options of the wrong type before they reach an event."""
    for key in ('points_per_win', 'points_per_loss'):
        if key in settings and not _is_int(settings[key]):
            raise InvalidConfiguration(f"{key} must be an integer, got {settings[key]!r}")

    for key in ('players_per_heat', 'losers_start_rounds_before_final'):
        value = settings.get(key)
        if value is not None and (not _is_int(value) or value < 1):
            raise InvalidConfiguration(f"{key} must be a positive integer, got {value!r}")

    if 'has_third_place_match' in settings and not isinstance(settings['has_third_place_match'], bool):
        raise InvalidConfiguration(
            f"has_third_place_match must be true or false, got {settings['has_third_place_match']!r}")
