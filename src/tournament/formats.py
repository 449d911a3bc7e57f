"""
Tournament format registry.

A format is a declarative list of stages: pool play (round robin inside fixed
size pools), an optional crossover between two pools, and playoffs made of
one or more seeded brackets. Definitions are module constants; callers always
receive deep copies so nothing can mutate the registry.
"""
import copy
import os
from typing import Dict, List, Optional

import yaml

from .elimination import BRACKET_SIZES
from .errors import NotFoundError, ValidationError
from .round_robin import SUPPORTED_POOL_SIZES

STAGE_TYPES = ('pool_play', 'crossover', 'playoffs')
CUMULATIVE_PHASE = 'cumulative'


def _seed_range(start: int, end: int) -> List[int]:
    return list(range(start, end + 1))


def _pools(names: str, size: int) -> List[Dict]:
    return [{'name': name, 'size': size} for name in names]


FORMAT_DEFINITIONS = (
    {
        'id': 'classic_12_3x4_gold8_silver4_v1',
        'name': '12 Teams: 3x4 Pools, Gold 8 + Silver 4',
        'supported_team_counts': [12],
        'min_courts': 3,
        'stages': [
            {'key': 'pool_play_1', 'type': 'pool_play', 'name': 'Pool Play 1', 'pools': _pools('ABC', 4)},
            {'key': 'playoffs', 'type': 'playoffs', 'name': 'Playoffs', 'brackets': [
                {'key': 'gold', 'name': 'Gold', 'type': 'single_elim', 'size': 8,
                 'seeds_from_overall': _seed_range(1, 8)},
                {'key': 'silver', 'name': 'Silver', 'type': 'single_elim', 'size': 4,
                 'seeds_from_overall': _seed_range(9, 12)},
            ]},
        ],
    },
    {
        'id': 'classic_14_mixedpools_crossover_gold8_silver6_v1',
        'name': '14 Teams: Mixed Pools + Crossover, Gold 8 + Silver 6',
        'supported_team_counts': [14],
        'min_courts': 3,
        'stages': [
            {'key': 'pool_play_1', 'type': 'pool_play', 'name': 'Pool Play 1',
             'pools': _pools('AB', 4) + _pools('CD', 3)},
            {'key': 'crossover', 'type': 'crossover', 'name': 'Crossover',
             'from_pools': ['C', 'D'], 'pairing': 'rank_to_rank'},
            {'key': 'playoffs', 'type': 'playoffs', 'name': 'Playoffs', 'brackets': [
                {'key': 'gold', 'name': 'Gold', 'type': 'single_elim', 'size': 8,
                 'seeds_from_overall': _seed_range(1, 8)},
                {'key': 'silver', 'name': 'Silver', 'type': 'single_elim_with_byes', 'size': 6,
                 'seeds_from_overall': _seed_range(9, 14)},
            ]},
        ],
    },
    {
        'id': 'classic_15_5x3_reseed_gold_silver_bronze_v1',
        'name': '15 Teams: 5x3 Pools, Reseeded 5x3 Pools, Gold/Silver/Bronze 5',
        'supported_team_counts': [15],
        'min_courts': 3,
        'stages': [
            {'key': 'pool_play_1', 'type': 'pool_play', 'name': 'Pool Play 1', 'pools': _pools('ABCDE', 3)},
            {'key': 'pool_play_2', 'type': 'pool_play', 'name': 'Pool Play 2', 'pools': _pools('FGHIJ', 3),
             'reseed_from': 'pool_play_1'},
            {'key': 'playoffs', 'type': 'playoffs', 'name': 'Playoffs', 'brackets': [
                {'key': 'gold', 'name': 'Gold', 'type': 'five_team_ops', 'size': 5,
                 'seeds_from_overall': _seed_range(1, 5)},
                {'key': 'silver', 'name': 'Silver', 'type': 'five_team_ops', 'size': 5,
                 'seeds_from_overall': _seed_range(6, 10)},
                {'key': 'bronze', 'name': 'Bronze', 'type': 'five_team_ops', 'size': 5,
                 'seeds_from_overall': _seed_range(11, 15)},
            ]},
        ],
    },
    {
        'id': 'classic_16_4x4_all16_v1',
        'name': '16 Teams: 4x4 Pools + 16-Team Playoffs',
        'supported_team_counts': [16],
        'min_courts': 3,
        'stages': [
            {'key': 'pool_play_1', 'type': 'pool_play', 'name': 'Pool Play 1', 'pools': _pools('ABCD', 4)},
            {'key': 'playoffs', 'type': 'playoffs', 'name': 'Playoffs', 'brackets': [
                {'key': 'all', 'name': 'All', 'type': 'single_elim', 'size': 16,
                 'seeds_from_overall': _seed_range(1, 16)},
            ]},
        ],
    },
)


def list_formats() -> List[Dict]:
    return copy.deepcopy(list(FORMAT_DEFINITIONS))


def get_format(format_id) -> Dict:
    """Return a copy of the registered format, or raise NotFoundError."""
    normalized = str(format_id or '').strip()
    for format_def in FORMAT_DEFINITIONS:
        if format_def['id'] == normalized:
            return copy.deepcopy(format_def)
    raise NotFoundError(f"Unknown tournament format '{format_id}'")


def suggest_formats(team_count, court_count) -> List[Dict]:
    """Formats that support exactly ``team_count`` teams on ``court_count`` courts."""
    try:
        team_count = int(team_count)
        court_count = int(court_count)
    except (TypeError, ValueError):
        return []
    if team_count <= 0 or court_count <= 0:
        return []

    suggestions = []
    for format_def in FORMAT_DEFINITIONS:
        if team_count not in format_def.get('supported_team_counts', []):
            continue
        if court_count < format_def.get('min_courts', 1):
            continue
        if format_def.get('max_courts') and court_count > format_def['max_courts']:
            continue
        suggestions.append(copy.deepcopy(format_def))
    return suggestions


def resolve_stage(format_def: Dict, stage_key: str) -> Dict:
    for stage in format_def.get('stages', []):
        if stage['key'] == stage_key:
            return stage
    raise NotFoundError(f"Format '{format_def.get('id')}' has no stage '{stage_key}'")


def stages_of_type(format_def: Dict, stage_type: str) -> List[Dict]:
    return [stage for stage in format_def.get('stages', []) if stage['type'] == stage_type]


def previous_pool_stage(format_def: Dict, stage_key: str) -> Optional[Dict]:
    """The pool-play stage immediately before ``stage_key``, if any."""
    previous = None
    for stage in format_def.get('stages', []):
        if stage['key'] == stage_key:
            return previous
        if stage['type'] == 'pool_play':
            previous = stage
    raise NotFoundError(f"Format '{format_def.get('id')}' has no stage '{stage_key}'")


def seeding_phase_keys(format_def: Dict) -> List[str]:
    """Stage keys whose matches count towards cumulative standings."""
    return [stage['key'] for stage in format_def.get('stages', []) if stage['type'] != 'playoffs']


def validate_format_definition(format_def) -> Dict:
    """
    Validate a format definition loaded from outside the registry.

    Returns the definition unchanged when valid; raises ValidationError with
    the first problem found otherwise.
    """
    if not isinstance(format_def, dict):
        raise ValidationError('Format definition must be a mapping')
    if not str(format_def.get('id') or '').strip():
        raise ValidationError("Format definition requires an 'id'")
    stages = format_def.get('stages')
    if not isinstance(stages, list) or not stages:
        raise ValidationError(f"Format '{format_def['id']}' must define at least one stage")

    seen_keys = set()
    pool_names_by_stage = {}
    for stage in stages:
        key = stage.get('key') if isinstance(stage, dict) else None
        if not key:
            raise ValidationError('Every stage requires a key')
        if key in seen_keys:
            raise ValidationError(f"Stage key '{key}' is used more than once")
        seen_keys.add(key)

        stage_type = stage.get('type')
        if stage_type not in STAGE_TYPES:
            raise ValidationError(f"Stage '{key}' has unsupported type '{stage_type}'")

        if stage_type == 'pool_play':
            pools = stage.get('pools') or []
            if not pools:
                raise ValidationError(f"Pool stage '{key}' must define pools")
            names = [pool.get('name') for pool in pools]
            if len(set(names)) != len(names) or not all(names):
                raise ValidationError(f"Pool stage '{key}' needs unique pool names")
            for pool in pools:
                if pool.get('size') not in SUPPORTED_POOL_SIZES:
                    raise ValidationError(
                        f"Pool {pool.get('name')} in '{key}' has unsupported size {pool.get('size')}")
            reseed_from = stage.get('reseed_from')
            if reseed_from and reseed_from not in pool_names_by_stage:
                raise ValidationError(f"Stage '{key}' reseeds from unknown stage '{reseed_from}'")
            pool_names_by_stage[key] = {pool['name']: pool['size'] for pool in pools}

        elif stage_type == 'crossover':
            from_pools = stage.get('from_pools') or []
            if len(from_pools) != 2:
                raise ValidationError(f"Crossover stage '{key}' must name exactly two pools")
            known = {}
            for names in pool_names_by_stage.values():
                known.update(names)
            missing = [name for name in from_pools if name not in known]
            if missing:
                raise ValidationError(f"Crossover stage '{key}' references unknown pools {missing}")

        else:
            brackets = stage.get('brackets') or []
            if not brackets:
                raise ValidationError(f"Playoff stage '{key}' must define brackets")
            bracket_keys = set()
            for bracket in brackets:
                bracket_key = bracket.get('key')
                if not bracket_key or bracket_key in bracket_keys:
                    raise ValidationError(f"Playoff stage '{key}' needs unique bracket keys")
                bracket_keys.add(bracket_key)
                allowed_sizes = BRACKET_SIZES.get(bracket.get('type'))
                if allowed_sizes is None:
                    raise ValidationError(f"Bracket '{bracket_key}' has unsupported type '{bracket.get('type')}'")
                if bracket.get('size') not in allowed_sizes:
                    raise ValidationError(
                        f"Bracket '{bracket_key}' of type {bracket['type']} supports sizes {list(allowed_sizes)}")
                seeds = bracket.get('seeds_from_overall') or []
                if len(seeds) != bracket['size'] or len(set(seeds)) != len(seeds):
                    raise ValidationError(
                        f"Bracket '{bracket_key}' needs {bracket['size']} distinct overall seeds")

    return format_def


def load_format_file(path: str) -> Dict:
    """Load and validate a custom format definition from a YAML file."""
    if not os.path.exists(path):
        raise NotFoundError(f'Format file not found: {path}')
    with open(path, 'r', encoding='utf-8') as f:
        data = yaml.safe_load(f)
    return validate_format_definition(data)
