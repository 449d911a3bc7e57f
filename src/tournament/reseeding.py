"""
Reseeding a pool-play stage from the placements of the previous one.

Target pool j (in name order) takes the tier-t finisher of source pool
(j + t - 1) mod N, so every target pool draws each tier from a different
source pool. Teams that already met are then split up by greedy same-tier
swaps between target pools; whatever rematches remain are reported on the
pools as ``rematch_warnings``.
"""
import copy
import logging
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from .errors import ValidationError
from .models import Match, Pool, Team
from .pools import instantiate_pools
from .standings import compute_pool_standings, pool_is_complete, validate_override_order

logger = logging.getLogger(__name__)

MAX_SWAP_ATTEMPTS = 50
SWAP_TIERS = (3, 2, 1)


def pair_key(team_x: str, team_y: str) -> FrozenSet[str]:
    return frozenset((team_x, team_y))


def build_rotation_mapping(source_names: List[str], target_names: List[str], tiers: int) -> Dict[str, List[Tuple[str, int]]]:
    """
    Returns {target_name: [(source_name, tier), ...]} with tiers 1..``tiers``.
    """
    if len(source_names) != len(target_names):
        raise ValidationError(
            f'Reseeding needs as many target pools as source pools ({len(target_names)} vs {len(source_names)})')
    count = len(source_names)
    return {
        target: [(source_names[(index + tier - 1) % count], tier) for tier in range(1, tiers + 1)]
        for index, target in enumerate(target_names)
    }


def collect_played_pairs(matches: List[Match]) -> Set[FrozenSet[str]]:
    """Pairs of teams that met in a finalized match."""
    return {pair_key(m.team_a_id, m.team_b_id) for m in matches
            if m.is_final and m.team_a_id and m.team_b_id}


def compute_source_placements(source_pools: List[Pool], teams_by_id: Dict[str, Team], matches: List[Match],
                              pool_orders: Optional[Dict[str, List[str]]] = None) -> Dict[str, List[str]]:
    """
    Finishing order of every source pool.

    Uses computed standings once every source pool is fully finalized;
    before that, every pool needs a valid manual order. Raises
    ValidationError listing what is missing otherwise.
    """
    pool_orders = pool_orders or {}
    missing = []
    for pool in sorted(source_pools, key=lambda p: p.name):
        if len(pool.team_ids) != pool.required_team_count:
            missing.append(f'Pool {pool.name} must have exactly {pool.required_team_count} teams')
    if not source_pools:
        missing.append('Source stage has no pools')
    if missing:
        raise ValidationError('Cannot reseed: ' + '; '.join(missing), details={'missing': missing})

    if all(pool_is_complete(pool, matches) for pool in source_pools):
        standings = compute_pool_standings(source_pools, teams_by_id, matches, pool_orders)
        return {entry['pool_name']: [team['team_id'] for team in entry['teams']] for entry in standings}

    placements = {}
    for pool in sorted(source_pools, key=lambda p: p.name):
        order = pool_orders.get(pool.name)
        try:
            placements[pool.name] = validate_override_order(order, pool.team_ids, f'Pool {pool.name} order')
        except ValidationError:
            missing.append(f'Pool {pool.name} needs all matches finalized or a complete standings override')

    if missing:
        raise ValidationError('Cannot reseed: ' + '; '.join(missing), details={'missing': missing})
    return placements


def build_initial_state(mapping: Dict[str, List[Tuple[str, int]]],
                        placements: Dict[str, List[str]]) -> Dict[str, List[Dict]]:
    state = {}
    for target, sources in mapping.items():
        entries = []
        for slot_index, (source, tier) in enumerate(sources):
            finishers = placements.get(source) or []
            if len(finishers) < tier:
                raise ValidationError(f'Pool {source} has no team at place {tier}')
            entries.append({'slot_index': slot_index, 'tier': tier, 'source_pool': source,
                            'team_id': finishers[tier - 1]})
        state[target] = entries
    return state


def find_rematches(team_ids: List[str], played_pairs: Set[FrozenSet[str]]) -> List[Dict]:
    conflicts = []
    for index, team_x in enumerate(team_ids):
        for team_y in team_ids[index + 1:]:
            if pair_key(team_x, team_y) in played_pairs:
                conflicts.append({'team_a_id': team_x, 'team_b_id': team_y})
    return conflicts


def evaluate_state(state: Dict[str, List[Dict]], played_pairs: Set[FrozenSet[str]]) -> Tuple[Dict[str, List[Dict]], int]:
    warnings = {}
    for target, entries in state.items():
        ordered = sorted(entries, key=lambda e: e['slot_index'])
        warnings[target] = find_rematches([entry['team_id'] for entry in ordered], played_pairs)
    return warnings, sum(len(items) for items in warnings.values())


def swap_tier(state: Dict[str, List[Dict]], pool_x: str, pool_y: str, tier: int) -> Optional[Dict[str, List[Dict]]]:
    """Copy of ``state`` with the tier-``tier`` teams of two pools exchanged."""
    candidate = copy.deepcopy(state)
    entry_x = next((e for e in candidate[pool_x] if e['tier'] == tier), None)
    entry_y = next((e for e in candidate[pool_y] if e['tier'] == tier), None)
    if entry_x is None or entry_y is None:
        return None
    entry_x['team_id'], entry_y['team_id'] = entry_y['team_id'], entry_x['team_id']
    return candidate


def resolve_rematches(state: Dict[str, List[Dict]], played_pairs: Set[FrozenSet[str]],
                      max_attempts: int = MAX_SWAP_ATTEMPTS) -> Dict:
    """
    Greedy rematch avoidance.

    For each tier (lowest finishers first), repeatedly try swapping that
    tier between a conflicted pool and every other pool, keeping the first
    swap that lowers the total conflict count. Stops after ``max_attempts``
    candidate swaps.

    Returns {'state', 'warnings', 'total_conflicts', 'attempts'}
    """
    current = copy.deepcopy(state)
    warnings, total = evaluate_state(current, played_pairs)
    names = sorted(current)
    attempts = 0

    for tier in SWAP_TIERS:
        improved = True
        while improved and attempts < max_attempts and total:
            improved = False
            for name in names:
                if not warnings[name]:
                    continue
                for other in names:
                    if other == name:
                        continue
                    if attempts >= max_attempts:
                        break
                    attempts += 1
                    candidate = swap_tier(current, name, other, tier)
                    if candidate is None:
                        continue
                    candidate_warnings, candidate_total = evaluate_state(candidate, played_pairs)
                    if candidate_total < total:
                        current, warnings, total = candidate, candidate_warnings, candidate_total
                        improved = True
                        break
                if improved:
                    break

    return {'state': current, 'warnings': warnings, 'total_conflicts': total, 'attempts': attempts}


def reseed_stage_pools(target_stage: Dict, source_pools: List[Pool], teams_by_id: Dict[str, Team],
                       source_matches: List[Match], active_courts: List[str],
                       existing_pools: Optional[List[Pool]] = None,
                       pool_orders: Optional[Dict[str, List[str]]] = None,
                       id_factory=None) -> Dict:
    """
    Build the pools of ``target_stage`` from ``source_pools`` placements.

    Returns {'pools': [Pool], 'total_rematches': int, 'attempts': int}
    """
    placements = compute_source_placements(source_pools, teams_by_id, source_matches, pool_orders)
    source_names = sorted(pool.name for pool in source_pools)
    target_defs = target_stage['pools']
    sizes = {pool_def['size'] for pool_def in target_defs}
    if len(sizes) != 1:
        raise ValidationError(f"Stage '{target_stage['key']}' pools must share one size to be reseeded")
    tiers = sizes.pop()
    if any(pool.required_team_count < tiers for pool in source_pools):
        raise ValidationError(f'Source pools must have at least {tiers} teams to reseed')

    target_names = sorted(pool_def['name'] for pool_def in target_defs)
    mapping = build_rotation_mapping(source_names, target_names, tiers)
    state = build_initial_state(mapping, placements)
    outcome = resolve_rematches(state, collect_played_pairs(source_matches))

    pools = instantiate_pools(target_stage, active_courts, existing_pools, id_factory)
    for pool in pools:
        entries = sorted(outcome['state'][pool.name], key=lambda e: e['slot_index'])
        pool.team_ids = [entry['team_id'] for entry in entries]
        pool.rematch_warnings = outcome['warnings'][pool.name]

    if outcome['total_conflicts']:
        logger.warning(f"Reseeded {target_stage['key']} with {outcome['total_conflicts']} unavoidable rematches")
    else:
        logger.info(f"Reseeded {target_stage['key']} without rematches after {outcome['attempts']} swap attempts")
    return {'pools': pools, 'total_rematches': outcome['total_conflicts'], 'attempts': outcome['attempts']}
