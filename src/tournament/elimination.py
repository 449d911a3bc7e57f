"""
Single elimination bracket templates and playoff seeding.

A bracket plan is a list of match plan dicts that do not reference teams
directly: round-one slots carry bracket seeds, later slots point at the match
whose winner (or loser) fills them. Seeds are turned into team ids with
``apply_seed_assignments`` once overall standings are known.
"""
import math
from typing import Dict, List

from .errors import ValidationError
from .models import BracketSeed

BRACKET_SIZES = {
    'single_elim': (4, 8, 16),
    'single_elim_with_byes': (6,),
    'five_team_ops': (5,),
}


def get_round_name(teams_in_round: int, total_teams: int) -> str:
    """Get the name of a round based on number of teams."""
    if teams_in_round == 2:
        return "Final"
    elif teams_in_round == 4:
        return "Semifinal"
    elif teams_in_round == 8:
        return "Quarterfinal"
    elif teams_in_round == 16:
        return "Round of 16"
    else:
        return f"Round of {teams_in_round}"


def _generate_bracket_order(bracket_size: int) -> List[int]:
    """
    Generate the standard tournament bracket order.
    This ensures that if all higher seeds win, they meet in the proper rounds.

    For 8 teams: [1, 8, 4, 5, 2, 7, 3, 6]
    This gives matchups: 1v8, 4v5, 2v7, 3v6
    """
    if bracket_size == 2:
        return [1, 2]

    half_size = bracket_size // 2
    upper_half = _generate_bracket_order(half_size)
    lower_half = [bracket_size + 1 - seed for seed in upper_half]

    result = []
    for u, l in zip(upper_half, lower_half):
        result.extend([u, l])
    return result


def _local_key(round_no: int, match_no: int) -> str:
    return f"R{round_no}:M{match_no}"


def _match_plan(bracket_key: str, round_no: int, match_no: int, round_name: str, **slots) -> Dict:
    plan = {
        'bracket': bracket_key,
        'bracket_round': f"R{round_no}",
        'round': round_no,
        'round_name': round_name,
        'bracket_match_key': f"{bracket_key}:{_local_key(round_no, match_no)}",
        'seed_a': None,
        'seed_b': None,
        'team_a_from_match_key': None,
        'team_a_from_slot': None,
        'team_b_from_match_key': None,
        'team_b_from_slot': None,
        'ref_from_match_key': None,
        'ref_from_slot': None,
        'ref_seed': None,
    }
    for name, value in slots.items():
        if name.endswith('_match_key') and value:
            value = f"{bracket_key}:{value}"
        plan[name] = value
    return plan


def build_power_of_two_bracket(bracket_key: str, size: int) -> List[Dict]:
    """
    Standard single elimination for 4, 8 or 16 seeds.

    Later-round matches take the winners of the two feeding matches; the loser
    of the first feeding match refs.
    """
    if size not in BRACKET_SIZES['single_elim']:
        raise ValidationError(f"Single elimination supports sizes {list(BRACKET_SIZES['single_elim'])}, got {size}")

    plans = []
    order = _generate_bracket_order(size)
    first_round_name = get_round_name(size, size)
    for match_no, index in enumerate(range(0, size, 2), start=1):
        plans.append(_match_plan(bracket_key, 1, match_no, first_round_name,
                                 seed_a=order[index], seed_b=order[index + 1]))

    total_rounds = int(math.log2(size))
    for round_no in range(2, total_rounds + 1):
        teams_in_round = size // (2 ** (round_no - 1))
        for match_no in range(1, teams_in_round // 2 + 1):
            feeder_a = _local_key(round_no - 1, 2 * match_no - 1)
            feeder_b = _local_key(round_no - 1, 2 * match_no)
            plans.append(_match_plan(
                bracket_key, round_no, match_no, get_round_name(teams_in_round, size),
                team_a_from_match_key=feeder_a, team_a_from_slot='winner',
                team_b_from_match_key=feeder_b, team_b_from_slot='winner',
                ref_from_match_key=feeder_a, ref_from_slot='loser',
            ))
    return plans


def build_six_team_bracket(bracket_key: str) -> List[Dict]:
    """Seeds 1 and 2 bye into the semifinals against W(4v5) and W(3v6)."""
    return [
        _match_plan(bracket_key, 1, 1, 'Quarterfinal', seed_a=4, seed_b=5, ref_seed=2),
        _match_plan(bracket_key, 1, 2, 'Quarterfinal', seed_a=3, seed_b=6, ref_seed=1),
        _match_plan(bracket_key, 2, 1, 'Semifinal', seed_a=1,
                    team_b_from_match_key='R1:M1', team_b_from_slot='winner',
                    ref_from_match_key='R1:M2', ref_from_slot='loser'),
        _match_plan(bracket_key, 2, 2, 'Semifinal', seed_a=2,
                    team_b_from_match_key='R1:M2', team_b_from_slot='winner',
                    ref_from_match_key='R1:M1', ref_from_slot='loser'),
        _match_plan(bracket_key, 3, 1, 'Final',
                    team_a_from_match_key='R2:M1', team_a_from_slot='winner',
                    team_b_from_match_key='R2:M2', team_b_from_slot='winner',
                    ref_from_match_key='R2:M1', ref_from_slot='loser'),
    ]


def build_five_team_ops_bracket(bracket_key: str) -> List[Dict]:
    """4v5 and 2v3 open; seed 1 meets W(4v5); the final is W(1vW45) vs W(2v3)."""
    return [
        _match_plan(bracket_key, 1, 1, 'Round 1', seed_a=4, seed_b=5),
        _match_plan(bracket_key, 1, 2, 'Round 1', seed_a=2, seed_b=3, ref_seed=1),
        _match_plan(bracket_key, 2, 1, 'Round 2', seed_a=1,
                    team_b_from_match_key='R1:M1', team_b_from_slot='winner',
                    ref_from_match_key='R1:M2', ref_from_slot='loser'),
        _match_plan(bracket_key, 3, 1, 'Final',
                    team_a_from_match_key='R2:M1', team_a_from_slot='winner',
                    team_b_from_match_key='R1:M2', team_b_from_slot='winner',
                    ref_from_match_key='R2:M1', ref_from_slot='loser'),
    ]


def build_bracket_plan(bracket_def: Dict) -> List[Dict]:
    """Dispatch a bracket definition (``key``, ``type``, ``size``) to its template."""
    bracket_type = bracket_def.get('type')
    bracket_key = bracket_def.get('key')
    size = bracket_def.get('size')
    if bracket_type not in BRACKET_SIZES:
        raise ValidationError(f"Unsupported bracket type '{bracket_type}'")
    if size not in BRACKET_SIZES[bracket_type]:
        raise ValidationError(f"Bracket type {bracket_type} supports sizes {list(BRACKET_SIZES[bracket_type])}")

    if bracket_type == 'single_elim':
        return build_power_of_two_bracket(bracket_key, size)
    elif bracket_type == 'single_elim_with_byes':
        return build_six_team_bracket(bracket_key)
    return build_five_team_ops_bracket(bracket_key)


def build_seed_assignments(overall_standings: List[Dict], bracket_defs: List[Dict]) -> Dict[str, List[BracketSeed]]:
    """
    Map overall ranks onto bracket seeds.

    ``seeds_from_overall`` lists the overall ranks feeding each bracket, in
    bracket-seed order: the first entry becomes bracket seed 1.
    """
    team_by_rank = {entry['rank']: entry['team_id'] for entry in overall_standings}
    assignments = {}
    for bracket_def in bracket_defs:
        seeds = []
        for bracket_seed, overall_rank in enumerate(bracket_def['seeds_from_overall'], start=1):
            team_id = team_by_rank.get(overall_rank)
            if team_id is None:
                raise ValidationError(
                    f"Overall standings have no team at rank {overall_rank} for bracket {bracket_def.get('name') or bracket_def['key']}")
            seeds.append(BracketSeed(bracket_def['key'], bracket_seed, team_id, overall_rank))
        assignments[bracket_def['key']] = seeds
    return assignments


def apply_seed_assignments(plans: List[Dict], seeds: List[BracketSeed]) -> List[Dict]:
    """Fill seeded slots and seed-based refs with team ids."""
    team_by_seed = {seed.bracket_seed: seed.team_id for seed in seeds}
    resolved = []
    for plan in plans:
        plan = dict(plan)
        plan['team_a_id'] = team_by_seed.get(plan['seed_a']) if plan['seed_a'] else None
        plan['team_b_id'] = team_by_seed.get(plan['seed_b']) if plan['seed_b'] else None
        ref_team = team_by_seed.get(plan['ref_seed']) if plan['ref_seed'] else None
        plan['ref_team_ids'] = [ref_team] if ref_team else []
        resolved.append(plan)
    return resolved


def build_bracket_view(matches) -> Dict[str, Dict]:
    """
    Group bracket matches for display.

    Returns {bracket: {'seeds': {seed: team_id}, 'rounds': {'R1': [match dicts], ...}}}
    """
    view = {}
    for match in sorted(matches, key=lambda m: (m.bracket or '', m.round or 0, m.bracket_match_key or '')):
        if not match.is_bracket_match:
            continue
        bracket = view.setdefault(match.bracket, {'seeds': {}, 'rounds': {}})
        bracket['rounds'].setdefault(match.bracket_round, []).append(match.to_dict())
        for seed_key, team_key in (('seed_a', 'team_a_id'), ('seed_b', 'team_b_id')):
            if getattr(match, seed_key):
                bracket['seeds'][getattr(match, seed_key)] = getattr(match, team_key)
    return view
