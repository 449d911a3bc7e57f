"""
Pool membership management: instantiation from a format stage, serpentine
auto-fill, manual edits, whole-pool swaps and two-pass patch plans.

Every function works on copies and returns new Pool objects, so a rejected
edit leaves the caller's pools untouched.
"""
import copy
import logging
from typing import Callable, Dict, List, Optional

from .errors import CapacityError, ConflictError, DuplicateMembershipError, NotFoundError, ValidationError
from .models import Pool, Team

logger = logging.getLogger(__name__)


def _copy_pools(pools: List[Pool]) -> List[Pool]:
    return [copy.deepcopy(pool) for pool in pools]


def _find_pool(pools: List[Pool], pool_id: str) -> Pool:
    for pool in pools:
        if pool.pool_id == pool_id:
            return pool
    raise NotFoundError(f'Pool {pool_id} not found')


def order_teams(teams: List[Team]) -> List[Team]:
    """Roster order used for seeding: ``order_index`` first, then team id."""
    return sorted(teams, key=lambda t: (t.order_index is None, t.order_index or 0, t.team_id))


def assign_home_courts(pools: List[Pool], active_courts: List[str]) -> List[Pool]:
    """Pool i gets ``active_courts[i % len(active_courts)]`` in pool-name order."""
    if not active_courts:
        raise ValidationError('At least one active court is required to assign home courts')
    assigned = _copy_pools(pools)
    for index, pool in enumerate(sorted(assigned, key=lambda p: p.name)):
        pool.home_court = active_courts[index % len(active_courts)]
    return assigned


def instantiate_pools(stage_def: Dict, active_courts: List[str], existing_pools: Optional[List[Pool]] = None,
                      id_factory: Optional[Callable[[], str]] = None, clear_team_ids: bool = True) -> List[Pool]:
    """
    Create the pools of a pool-play stage.

    Pools that already exist for the stage keep their ids (matched by name);
    their teams are cleared when ``clear_team_ids`` is set or when the pool's
    capacity shrank below its current membership.
    """
    existing_by_name = {pool.name: pool for pool in existing_pools or [] if pool.stage_key == stage_def['key']}
    pools = []
    for index, pool_def in enumerate(stage_def['pools']):
        existing = existing_by_name.get(pool_def['name'])
        team_ids = [] if clear_team_ids or existing is None else list(existing.team_ids)
        if len(team_ids) > pool_def['size']:
            team_ids = []
        if existing is not None:
            pool_id = existing.pool_id
        elif id_factory is not None:
            pool_id = id_factory()
        else:
            pool_id = f"{stage_def['key']}:{pool_def['name']}"
        pools.append(Pool(pool_id, stage_def['key'], pool_def['name'], pool_def['size'], team_ids))
    return assign_home_courts(pools, active_courts)


def build_serpentine_assignments(team_ids: List[str], pools: List[Pool]) -> Dict[str, List[str]]:
    """
    Snake draft across pools in name order: A B C C B A A B C ...

    The direction flips at each end, so the end pool takes two teams in a row.
    Full pools are skipped, which keeps mixed capacities (4/4/3/3) balanced.
    """
    ordered_pools = sorted(pools, key=lambda p: p.name)
    capacity = sum(pool.required_team_count for pool in ordered_pools)
    if len(team_ids) > capacity:
        raise ValidationError(f'{len(team_ids)} teams do not fit in pools with total capacity {capacity}')

    assignments = {pool.name: [] for pool in ordered_pools}
    order = list(range(len(ordered_pools)))
    sweep = 0
    remaining = list(team_ids)
    while remaining:
        indexes = order if sweep % 2 == 0 else list(reversed(order))
        for index in indexes:
            pool = ordered_pools[index]
            if not remaining:
                break
            if len(assignments[pool.name]) >= pool.required_team_count:
                continue
            assignments[pool.name].append(remaining.pop(0))
        sweep += 1
    return assignments


def autofill_pools(pools: List[Pool], teams: List[Team], force: bool = False) -> List[Pool]:
    """Fill a stage's pools from the roster, overwriting only when ``force`` is set."""
    if not pools:
        raise ValidationError('No pools to fill; initialize the stage first')
    if any(pool.team_ids for pool in pools) and not force:
        raise ConflictError('Pools already have teams assigned; re-run with force to overwrite')

    team_ids = [team.team_id for team in order_teams(teams)]
    assignments = build_serpentine_assignments(team_ids, pools)
    filled = _copy_pools(pools)
    for pool in filled:
        pool.team_ids = assignments[pool.name]
        pool.rematch_warnings = []
    logger.info(f'Auto-filled {len(filled)} pools with {len(team_ids)} teams')
    return filled


def validate_stage_membership(pools: List[Pool]) -> None:
    """Capacity and single-membership checks for the pools of one stage."""
    seen = {}
    for pool in pools:
        if len(pool.team_ids) > pool.required_team_count:
            raise CapacityError(f'Pool {pool.name} can include at most {pool.required_team_count} teams')
        if len(set(pool.team_ids)) != len(pool.team_ids):
            raise ValidationError(f'Pool {pool.name} lists the same team more than once')
        for team_id in pool.team_ids:
            other = seen.get((pool.stage_key, team_id))
            if other is not None and other != pool.name:
                raise DuplicateMembershipError(
                    f'Team {team_id} cannot appear in both pool {other} and pool {pool.name}')
            seen[(pool.stage_key, team_id)] = pool.name


def set_pool_teams(pools: List[Pool], pool_id: str, team_ids: List[str], known_team_ids) -> List[Pool]:
    """Replace one pool's ordered team list after validating capacity and membership."""
    if not isinstance(team_ids, list) or any(not isinstance(team_id, str) for team_id in team_ids):
        raise ValidationError('team_ids must be a list of team ids')

    updated = _copy_pools(pools)
    target = _find_pool(updated, pool_id)
    if len(team_ids) > target.required_team_count:
        raise CapacityError(f'Pool {target.name} can include at most {target.required_team_count} teams')
    if len(set(team_ids)) != len(team_ids):
        raise ValidationError('team_ids cannot contain duplicates')
    unknown = [team_id for team_id in team_ids if team_id not in known_team_ids]
    if unknown:
        raise ValidationError(f'Unknown teams: {", ".join(unknown)}')

    for pool in updated:
        if pool is target or pool.stage_key != target.stage_key:
            continue
        conflicts = [team_id for team_id in team_ids if team_id in pool.team_ids]
        if conflicts:
            raise DuplicateMembershipError(
                f'A team cannot appear in multiple {target.stage_key} pools: '
                f'{", ".join(conflicts)} already in pool {pool.name}')

    target.team_ids = list(team_ids)
    return updated


def move_team(pools: List[Pool], team_id: str, target_pool_id: Optional[str],
              over_team_id: Optional[str] = None) -> List[Pool]:
    """
    Drag-style move within one stage.

    - target_pool_id None: return the team to the unassigned bank.
    - over_team_id inside the same pool: swap their positions.
    - over_team_id in another pool: straight swap of the two teams.
    - otherwise: append to the target pool if it has room.
    """
    updated = _copy_pools(pools)
    source = next((pool for pool in updated if team_id in pool.team_ids), None)

    if target_pool_id is None:
        if source is not None:
            source.team_ids.remove(team_id)
        return updated

    target = _find_pool(updated, target_pool_id)
    if source is not None and source.stage_key != target.stage_key:
        raise ValidationError('Teams can only be moved between pools of the same stage')

    if over_team_id is not None and over_team_id != team_id:
        if over_team_id not in target.team_ids:
            raise ValidationError(f'Team {over_team_id} is not in pool {target.name}')
        over_index = target.team_ids.index(over_team_id)
        if source is target:
            team_index = target.team_ids.index(team_id)
            target.team_ids[team_index], target.team_ids[over_index] = over_team_id, team_id
        elif source is not None:
            source.team_ids[source.team_ids.index(team_id)] = over_team_id
            target.team_ids[over_index] = team_id
        else:
            if target.is_full:
                raise CapacityError(f'Pool {target.name} can include at most {target.required_team_count} teams')
            target.team_ids.insert(over_index, team_id)
    elif source is not target:
        if target.is_full:
            raise CapacityError(f'Pool {target.name} can include at most {target.required_team_count} teams')
        if source is not None:
            source.team_ids.remove(team_id)
        target.team_ids.append(team_id)

    validate_stage_membership([pool for pool in updated if pool.stage_key == target.stage_key])
    return updated


def swap_pools(pools: List[Pool], source_pool_id: str, target_pool_id: str) -> List[Pool]:
    """Exchange the full team lists of two full pools of equal capacity."""
    updated = _copy_pools(pools)
    source = _find_pool(updated, source_pool_id)
    target = _find_pool(updated, target_pool_id)
    if source is target:
        return updated
    if source.stage_key != target.stage_key:
        raise ValidationError('Only pools of the same stage can be swapped')
    if source.required_team_count != target.required_team_count:
        raise ValidationError(
            f'Pools {source.name} and {target.name} have different sizes '
            f'({source.required_team_count} and {target.required_team_count}) and cannot be swapped')
    size = source.required_team_count
    if len(source.team_ids) != size or len(target.team_ids) != size:
        raise ValidationError(f'Both pools must have exactly {size} teams to swap all {size} at once')
    source.team_ids, target.team_ids = target.team_ids, source.team_ids
    return updated


def collect_changed_pool_ids(previous: List[Pool], current: List[Pool]) -> List[str]:
    previous_by_id = {pool.pool_id: pool.team_ids for pool in previous}
    return [pool.pool_id for pool in current if previous_by_id.get(pool.pool_id) != pool.team_ids]


def build_two_pass_patch_plan(previous: List[Pool], current: List[Pool], pool_ids: List[str]) -> Dict[str, List]:
    """
    Split a multi-pool change into writes that never break membership rules.

    Pass one strips departing teams from pools that lose them (keeping only
    retained teams); pass two writes the final lists. A single-pool change or
    a pure reorder needs no first pass.

    Returns {'pass_one': [(pool_id, team_ids)], 'pass_two': [(pool_id, team_ids)]}
    """
    previous_by_id = {pool.pool_id: pool for pool in previous}
    current_by_id = {pool.pool_id: pool for pool in current}
    pass_two = [(pool_id, list(current_by_id[pool_id].team_ids)) for pool_id in pool_ids]

    pass_one = []
    if len(pool_ids) > 1:
        for pool_id in pool_ids:
            before = previous_by_id[pool_id].team_ids
            after = set(current_by_id[pool_id].team_ids)
            retained = [team_id for team_id in before if team_id in after]
            if len(retained) != len(before):
                pass_one.append((pool_id, retained))

    return {'pass_one': pass_one, 'pass_two': pass_two}


def apply_patch_plan(pools: List[Pool], plan: Dict[str, List]) -> List[Pool]:
    """Apply a two-pass plan, checking the membership rules after every write."""
    updated = _copy_pools(pools)
    for pass_name in ('pass_one', 'pass_two'):
        for pool_id, team_ids in plan[pass_name]:
            _find_pool(updated, pool_id).team_ids = list(team_ids)
            stage_key = _find_pool(updated, pool_id).stage_key
            validate_stage_membership([pool for pool in updated if pool.stage_key == stage_key])
    return updated
