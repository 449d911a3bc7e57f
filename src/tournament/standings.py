"""
Pool and overall standings from finalized match results.

Ranking: matches won -> set percentage -> point differential -> head-to-head
(only when exactly two teams are still tied) -> order index -> team id.
A valid manual override replaces the computed order verbatim.
"""
import functools
import logging
from typing import Dict, Iterable, List, Optional

from .errors import ValidationError
from .models import Match, Pool, Team

logger = logging.getLogger(__name__)

SET_PCT_DECIMALS = 4


def _new_entry(team_id: str, team: Optional[Team]) -> Dict:
    return {
        'team_id': team_id,
        'name': team.name if team else team_id,
        'short_name': team.short_name if team else None,
        'seed': team.seed if team else None,
        'order_index': team.order_index if team else None,
        'matches_played': 0,
        'matches_won': 0,
        'matches_lost': 0,
        'sets_won': 0,
        'sets_lost': 0,
        'sets_played': 0,
        'set_pct': 0.0,
        'points_for': 0,
        'points_against': 0,
        'point_diff': 0,
        'rank': None,
    }


def accumulate_team_stats(team_ids: Iterable[str], teams_by_id: Dict[str, Team],
                          matches: Iterable[Match], require_both: bool = True) -> Dict[str, Dict]:
    """Sum finalized results for ``team_ids``. Non-final matches are ignored."""
    stats = {team_id: _new_entry(team_id, teams_by_id.get(team_id)) for team_id in team_ids}

    for match in matches:
        if not match.is_final:
            continue
        in_a = match.team_a_id in stats
        in_b = match.team_b_id in stats
        if require_both and not (in_a and in_b):
            continue
        result = match.result
        sides = (
            (match.team_a_id, in_a, result.sets_won_a, result.sets_won_b, result.points_for_a, result.points_against_a),
            (match.team_b_id, in_b, result.sets_won_b, result.sets_won_a, result.points_for_b, result.points_against_b),
        )
        for team_id, included, sets_won, sets_lost, points_for, points_against in sides:
            if not included:
                continue
            entry = stats[team_id]
            entry['matches_played'] += 1
            if result.winner_team_id == team_id:
                entry['matches_won'] += 1
            else:
                entry['matches_lost'] += 1
            entry['sets_won'] += sets_won
            entry['sets_lost'] += sets_lost
            entry['points_for'] += points_for
            entry['points_against'] += points_against

    for entry in stats.values():
        entry['sets_played'] = entry['sets_won'] + entry['sets_lost']
        entry['set_pct'] = round(entry['sets_won'] / entry['sets_played'], SET_PCT_DECIMALS) if entry['sets_played'] else 0.0
        entry['point_diff'] = entry['points_for'] - entry['points_against']
    return stats


def _compare_primary(left: Dict, right: Dict) -> int:
    """Negative when ``left`` ranks ahead of ``right``."""
    if left['matches_won'] != right['matches_won']:
        return right['matches_won'] - left['matches_won']

    # Exact set percentage comparison without floats.
    left_ratio = left['sets_won'] * max(right['sets_played'], 1)
    right_ratio = right['sets_won'] * max(left['sets_played'], 1)
    if left_ratio != right_ratio:
        return right_ratio - left_ratio

    return right['point_diff'] - left['point_diff']


def _fallback_key(entry: Dict):
    order_index = entry['order_index']
    return (order_index is None, order_index if order_index is not None else 0, entry['team_id'])


def _compare_entries(left: Dict, right: Dict) -> int:
    primary = _compare_primary(left, right)
    if primary:
        return primary
    left_key, right_key = _fallback_key(left), _fallback_key(right)
    return (left_key > right_key) - (left_key < right_key)


def _head_to_head_winner(team_x: str, team_y: str, matches: Iterable[Match]) -> Optional[str]:
    wins = {team_x: 0, team_y: 0}
    for match in matches:
        if not match.is_final or {match.team_a_id, match.team_b_id} != {team_x, team_y}:
            continue
        wins[match.result.winner_team_id] += 1
    if wins[team_x] == wins[team_y]:
        return None
    return team_x if wins[team_x] > wins[team_y] else team_y


def rank_entries(entries: List[Dict], matches: List[Match]) -> List[Dict]:
    """Sort stat entries and assign 1-based ranks."""
    ordered = sorted(entries, key=functools.cmp_to_key(_compare_entries))

    index = 0
    while index < len(ordered):
        group_end = index + 1
        while group_end < len(ordered) and _compare_primary(ordered[index], ordered[group_end]) == 0:
            group_end += 1
        if group_end - index == 2:
            first, second = ordered[index], ordered[index + 1]
            winner = _head_to_head_winner(first['team_id'], second['team_id'], matches)
            if winner == second['team_id']:
                ordered[index], ordered[index + 1] = second, first
        index = group_end

    for rank, entry in enumerate(ordered, start=1):
        entry['rank'] = rank
        entry['overridden'] = False
    return ordered


def validate_override_order(order, expected_team_ids: Iterable[str], label: str = 'Override order') -> List[str]:
    """Raise ValidationError unless ``order`` is a permutation of ``expected_team_ids``."""
    expected = list(expected_team_ids)
    if not isinstance(order, list) or any(not isinstance(team_id, str) for team_id in order):
        raise ValidationError(f'{label} must be a list of team ids')
    if len(order) != len(expected) or len(set(order)) != len(order) or set(order) != set(expected):
        raise ValidationError(f'{label} must be a permutation of the teams being ranked')
    return list(order)


def apply_override(entries: List[Dict], order: List[str]) -> List[Dict]:
    by_id = {entry['team_id']: entry for entry in entries}
    ordered = [by_id[team_id] for team_id in order]
    for rank, entry in enumerate(ordered, start=1):
        entry['rank'] = rank
        entry['overridden'] = True
    return ordered


def _apply_stored_override(entries: List[Dict], order, label: str) -> List[Dict]:
    if not order:
        return entries
    try:
        validate_override_order(order, [entry['team_id'] for entry in entries], label)
    except ValidationError as e:
        logger.warning(f'Ignoring stale standings override: {e.message}')
        return entries
    return apply_override(entries, order)


def compute_pool_standings(pools: List[Pool], teams_by_id: Dict[str, Team], matches: List[Match],
                           pool_orders: Optional[Dict[str, List[str]]] = None) -> List[Dict]:
    """
    Standings per pool, counting only matches played between that pool's teams.

    Returns: [{'pool_id', 'pool_name', 'overridden', 'teams': [entries]}, ...]
    """
    pool_orders = pool_orders or {}
    standings = []
    for pool in sorted(pools, key=lambda p: p.name):
        pool_matches = [m for m in matches if m.stage_key == pool.stage_key and m.pool_name == pool.name]
        stats = accumulate_team_stats(pool.team_ids, teams_by_id, pool_matches)
        entries = rank_entries(list(stats.values()), pool_matches)
        entries = _apply_stored_override(entries, pool_orders.get(pool.name), f'Pool {pool.name} order')
        standings.append({
            'pool_id': pool.pool_id,
            'pool_name': pool.name,
            'overridden': any(entry['overridden'] for entry in entries),
            'teams': entries,
        })
    return standings


def compute_overall_standings(team_ids: List[str], teams_by_id: Dict[str, Team], matches: List[Match],
                              overall_order: Optional[List[str]] = None) -> List[Dict]:
    stats = accumulate_team_stats(team_ids, teams_by_id, matches, require_both=False)
    entries = rank_entries(list(stats.values()), matches)
    return _apply_stored_override(entries, overall_order, 'Overall order')


def compute_standings_bundle(teams: List[Team], pools: List[Pool], matches: List[Match],
                             overrides: Optional[Dict] = None) -> Dict:
    """
    Pool and overall standings for one phase.

    ``matches`` should already be limited to the phase's stages;
    ``overrides`` is ``{'pool_order': {pool_name: [...]}, 'overall_order': [...]}``.
    """
    overrides = overrides or {}
    teams_by_id = {team.team_id: team for team in teams}
    return {
        'pools': compute_pool_standings(pools, teams_by_id, matches, overrides.get('pool_order')),
        'overall': compute_overall_standings([team.team_id for team in teams], teams_by_id, matches,
                                             overrides.get('overall_order')),
    }


def pool_is_complete(pool: Pool, matches: List[Match]) -> bool:
    """All round-robin matches of ``pool`` exist and are final."""
    pool_matches = [m for m in matches if m.stage_key == pool.stage_key and m.pool_name == pool.name]
    expected = pool.required_team_count * (pool.required_team_count - 1) // 2
    return len(pool_matches) >= expected and all(m.is_final for m in pool_matches)


def has_valid_override(pool: Pool, order) -> bool:
    """True when ``order`` is a complete manual ranking of the pool's teams."""
    if not order:
        return False
    try:
        validate_override_order(order, pool.team_ids)
    except ValidationError:
        return False
    return True
