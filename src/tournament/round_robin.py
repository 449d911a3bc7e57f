"""
Fixed round-robin templates for pools of 3 and 4 teams.

Positions are 1-based pool positions: the team at ``pool.team_ids[0]`` is
position 1. Reordering a pool therefore changes who plays whom and who refs.
"""
from collections import namedtuple
from typing import Dict, List, Sequence

from .errors import ValidationError

TemplateBlock = namedtuple('TemplateBlock', ['team_a', 'team_b', 'ref', 'bye'])

# Every pairing exactly once; each team refs 1-2 times.
ROUND_ROBIN_TEMPLATES = {
    3: (
        TemplateBlock(1, 3, 2, None),
        TemplateBlock(2, 3, 1, None),
        TemplateBlock(1, 2, 3, None),
    ),
    4: (
        TemplateBlock(1, 3, 2, 4),
        TemplateBlock(2, 4, 1, 3),
        TemplateBlock(1, 4, 3, 2),
        TemplateBlock(2, 3, 1, 4),
        TemplateBlock(3, 4, 2, 1),
        TemplateBlock(1, 2, 4, 3),
    ),
}

SUPPORTED_POOL_SIZES = tuple(sorted(ROUND_ROBIN_TEMPLATES))


def template_for_size(pool_size: int) -> Sequence[TemplateBlock]:
    template = ROUND_ROBIN_TEMPLATES.get(pool_size)
    if template is None:
        raise ValidationError(
            f'Unsupported pool size {pool_size}: round-robin templates exist for sizes '
            f'{", ".join(str(size) for size in SUPPORTED_POOL_SIZES)}'
        )
    return template


def round_robin_match_count(pool_size: int) -> int:
    return pool_size * (pool_size - 1) // 2


def generate_round_robin_matches(ordered_team_ids: List[str], pool_size: int) -> List[Dict]:
    """
    Expand a pool's template into concrete match plans.

    Returns list of dicts with:
    - match_index: 1-based block order inside the pool
    - team_a_id / team_b_id
    - ref_team_ids: list with the refereeing team
    - bye_team_id: team sitting out this block (pools of 4 only)
    - off_team_ids: every pool team not playing in this block
    """
    template = template_for_size(pool_size)
    if len(ordered_team_ids) != pool_size:
        raise ValidationError(f'Pool requires {pool_size} teams but received {len(ordered_team_ids)}')
    if len(set(ordered_team_ids)) != len(ordered_team_ids):
        raise ValidationError('Pool contains the same team more than once')

    def at(position):
        return ordered_team_ids[position - 1] if position else None

    matches = []
    for match_index, block in enumerate(template, start=1):
        playing = {block.team_a, block.team_b}
        matches.append({
            'match_index': match_index,
            'team_a_id': at(block.team_a),
            'team_b_id': at(block.team_b),
            'ref_team_ids': [at(block.ref)],
            'bye_team_id': at(block.bye),
            'off_team_ids': [at(pos) for pos in range(1, pool_size + 1) if pos not in playing],
        })
    return matches
