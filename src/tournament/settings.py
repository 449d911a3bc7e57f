"""
Tournament settings: defaults merged with an optional YAML file.
"""
import os
from typing import Dict, Optional

import yaml

from .allocation import parse_clock_time
from .errors import ValidationError
from .models import Court


def get_default_settings():
    """Return default settings."""
    return {
        'day_start_time': '09:00',
        'match_duration_minutes': 60,
        'lunch_start_time': None,
        'lunch_duration_minutes': 45,
        'courts': [],
        'format_id': None,
    }


def normalize_settings(data: Optional[Dict]) -> Dict:
    """Merge ``data`` over the defaults and validate the schedule fields."""
    settings = get_default_settings()
    if data:
        if not isinstance(data, dict):
            raise ValidationError('Settings must be a mapping')
        for key, value in data.items():
            if value is not None or key not in settings:
                settings[key] = value

    parse_clock_time(settings['day_start_time'])
    if settings['lunch_start_time']:
        parse_clock_time(settings['lunch_start_time'])
    for key in ('match_duration_minutes', 'lunch_duration_minutes'):
        value = settings[key]
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(f"Setting '{key}' must be a positive integer")

    courts = settings.get('courts') or []
    if not isinstance(courts, list):
        raise ValidationError("Setting 'courts' must be a list")
    settings['courts'] = [Court.from_dict(court).to_dict() for court in courts]
    codes = [court['code'] for court in settings['courts']]
    if len(set(codes)) != len(codes):
        raise ValidationError('Court codes must be unique')
    return settings


def load_settings(path: str) -> Dict:
    """Load settings from a YAML file, merging with defaults."""
    if not os.path.exists(path):
        return get_default_settings()
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return normalize_settings(data)


def courts_from_settings(settings: Dict):
    return [Court.from_dict(court) for court in settings.get('courts') or []]
