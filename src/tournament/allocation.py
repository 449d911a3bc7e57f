"""
Court and round-block allocation for pool stages and playoffs.

A round-block is one time slot in which every active court hosts at most one
match. Round-blocks map to clock times through the schedule settings
(day start, match duration, optional lunch break).
"""
import datetime
import logging
import math
import uuid
from typing import Callable, Dict, List, Optional, Tuple

from .errors import ValidationError
from .models import Court, Match, Pool
from .pools import validate_stage_membership
from .round_robin import generate_round_robin_matches

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


def parse_clock_time(value) -> int:
    """'HH:MM' -> minutes since midnight."""
    try:
        parsed = datetime.datetime.strptime(str(value).strip(), '%H:%M').time()
    except ValueError:
        raise ValidationError(f"Invalid clock time '{value}', expected HH:MM")
    return parsed.hour * 60 + parsed.minute


def format_clock_time(minutes: int) -> str:
    minutes = int(minutes) % MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def resolve_round_block_start_minutes(round_block: int, schedule_settings: Dict) -> Optional[int]:
    """
    Start time (minutes since midnight) of ``round_block``.

    Blocks run back to back from ``day_start_time``. The first block that
    would start at or overlap ``lunch_start_time`` is pushed to the end of
    lunch, and every later block follows it.
    """
    if not round_block or round_block < 1:
        return None
    duration = schedule_settings['match_duration_minutes']
    cursor = parse_clock_time(schedule_settings['day_start_time'])
    lunch_start = schedule_settings.get('lunch_start_time')
    lunch_start = parse_clock_time(lunch_start) if lunch_start else None
    lunch_duration = schedule_settings.get('lunch_duration_minutes') or 0

    lunch_applied = False
    for block_index in range(round_block):
        if not lunch_applied and lunch_start is not None and cursor + duration > lunch_start:
            cursor = max(cursor, lunch_start + lunch_duration)
            lunch_applied = True
        if block_index < round_block - 1:
            cursor += duration
    return cursor


def schedule_stage_matches(pool_plans: List[Tuple[Pool, List[Dict]]], active_courts: List[str],
                           start_round_block: int = 1) -> List[Dict]:
    """
    Place each pool's round-robin plans on courts and round-blocks.

    When every pool has its own home court the pools run in lockstep: match
    index i of every pool happens in block ``start + i - 1``. Pools sharing a
    court instead take consecutive blocks on that court.
    """
    if not active_courts:
        raise ValidationError('At least one active court is required')

    courts_by_pool = {}
    for pool, _ in pool_plans:
        if not pool.home_court:
            raise ValidationError(f'Pool {pool.name} has no court assignment')
        courts_by_pool[pool.name] = pool.home_court
    distinct_courts = len(set(courts_by_pool.values())) == len(courts_by_pool)

    scheduled = []
    next_block_by_court = {}
    for pool, plans in sorted(pool_plans, key=lambda item: item[0].name):
        court = courts_by_pool[pool.name]
        for plan in sorted(plans, key=lambda p: p['match_index']):
            if distinct_courts:
                round_block = start_round_block + plan['match_index'] - 1
            else:
                round_block = next_block_by_court.get(court, start_round_block)
                next_block_by_court[court] = round_block + 1
            scheduled.append(dict(plan, pool_id=pool.pool_id, pool_name=pool.name,
                                  court=court, round_block=round_block))

    scheduled.sort(key=lambda m: (m['round_block'], m['court'], m['pool_name']))
    return scheduled


def schedule_playoff_matches(plans: List[Dict], active_courts: List[str], start_round_block: int = 1) -> List[Dict]:
    """
    Place bracket match plans round by round.

    Within a round, matches are ordered by bracket name and then by bracket
    match key, and dealt onto the active courts; every ``len(active_courts)``
    matches open a new round-block.
    """
    if not active_courts:
        raise ValidationError('At least one active court is required')

    by_round = {}
    for plan in plans:
        by_round.setdefault(plan['round'], []).append(plan)

    scheduled = []
    cursor = start_round_block
    for round_no in sorted(by_round):
        round_plans = sorted(by_round[round_no], key=lambda p: (p['bracket'], p['bracket_match_key']))
        for index, plan in enumerate(round_plans):
            scheduled.append(dict(plan, round_block=cursor + index // len(active_courts),
                                  court=active_courts[index % len(active_courts)]))
        cursor += math.ceil(len(round_plans) / len(active_courts))
    return scheduled


class AllocationManager:
    """Turns pool and bracket plans into concrete Match records on this tournament's courts."""

    def __init__(self, courts: List[Court], schedule_settings: Dict,
                 id_factory: Optional[Callable[[], str]] = None):
        self.courts = courts
        self.settings = schedule_settings
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)
        self.active_courts = [court.code for court in courts if court.enabled]
        self._facility_by_court = {court.code: court.facility for court in courts}

    def _parse_time(self, time_str):
        return datetime.datetime.strptime(time_str, '%H:%M').time()

    def _datetime_from_time(self, time_obj, base_date=None):
        base_date = base_date or datetime.date.today()
        return datetime.datetime.combine(base_date, time_obj)

    def facility_for(self, court_code: Optional[str]) -> Optional[str]:
        return self._facility_by_court.get(court_code)

    def validate_pools(self, pools: List[Pool]) -> None:
        if not self.active_courts:
            raise ValidationError('At least one active court is required')
        if not pools:
            raise ValidationError('Stage has no pools; initialize pools first')
        validate_stage_membership(pools)
        for pool in pools:
            if len(pool.team_ids) != pool.required_team_count:
                raise ValidationError(
                    f'Pool {pool.name} requires {pool.required_team_count} teams but has {len(pool.team_ids)}')
            if not pool.home_court:
                raise ValidationError(f'Pool {pool.name} has no court assignment')
            if pool.home_court not in self.active_courts:
                raise ValidationError(f'Pool {pool.name} home court {pool.home_court} is not an active court')

    def allocate_pool_stage(self, stage_key: str, pools: List[Pool], start_round_block: int = 1) -> List[Match]:
        """Round-robin every pool of a stage and schedule the result."""
        self.validate_pools(pools)
        pool_plans = [(pool, generate_round_robin_matches(pool.team_ids, pool.required_team_count))
                      for pool in pools]
        scheduled = schedule_stage_matches(pool_plans, self.active_courts, start_round_block)

        matches = []
        for plan in scheduled:
            matches.append(Match(
                self.id_factory(), stage_key,
                pool_id=plan['pool_id'],
                pool_name=plan['pool_name'],
                round_block=plan['round_block'],
                court=plan['court'],
                facility=self.facility_for(plan['court']),
                team_a_id=plan['team_a_id'],
                team_b_id=plan['team_b_id'],
                ref_team_ids=plan['ref_team_ids'],
                bye_team_id=plan['bye_team_id'],
            ))
        logger.info(f'Allocated {len(matches)} {stage_key} matches across {len(pools)} pools')
        return matches

    def allocate_playoffs(self, stage_key: str, plans: List[Dict], start_round_block: int = 1) -> List[Match]:
        scheduled = schedule_playoff_matches(plans, self.active_courts, start_round_block)
        matches = []
        for plan in scheduled:
            matches.append(Match(
                self.id_factory(), stage_key,
                bracket=plan['bracket'],
                bracket_round=plan['bracket_round'],
                round=plan['round'],
                bracket_match_key=plan['bracket_match_key'],
                seed_a=plan['seed_a'],
                seed_b=plan['seed_b'],
                round_block=plan['round_block'],
                court=plan['court'],
                facility=self.facility_for(plan['court']),
                team_a_id=plan.get('team_a_id'),
                team_b_id=plan.get('team_b_id'),
                ref_team_ids=plan.get('ref_team_ids') or [],
                team_a_from_match_key=plan['team_a_from_match_key'],
                team_a_from_slot=plan['team_a_from_slot'],
                team_b_from_match_key=plan['team_b_from_match_key'],
                team_b_from_slot=plan['team_b_from_slot'],
                ref_from_match_key=plan['ref_from_match_key'],
                ref_from_slot=plan['ref_from_slot'],
            ))
        logger.info(f'Allocated {len(matches)} playoff matches starting at round-block {start_round_block}')
        return matches

    def get_schedule_output(self, matches: List[Match], team_names: Optional[Dict[str, str]] = None,
                            base_date: Optional[datetime.date] = None) -> Dict[str, List[Dict]]:
        """
        Court-by-court grid with clock times.

        Returns {court: [{'match_id', 'round_block', 'start_time', 'end_time',
                          'teams', 'ref', 'stage_key'}, ...]}
        """
        team_names = team_names or {}
        duration = datetime.timedelta(minutes=self.settings['match_duration_minutes'])
        output = {court: [] for court in self.active_courts}
        for match in sorted(matches, key=lambda m: (m.round_block or 0, m.court or '')):
            start_minutes = resolve_round_block_start_minutes(match.round_block, self.settings)
            if start_minutes is None or match.court is None:
                continue
            start = self._datetime_from_time(self._parse_time(format_clock_time(start_minutes)), base_date)
            output.setdefault(match.court, []).append({
                'match_id': match.match_id,
                'stage_key': match.stage_key,
                'round_block': match.round_block,
                'start_time': start.strftime('%H:%M'),
                'end_time': (start + duration).strftime('%H:%M'),
                'teams': [team_names.get(team_id, team_id) if team_id else 'TBD'
                          for team_id in (match.team_a_id, match.team_b_id)],
                'ref': [team_names.get(team_id, team_id) for team_id in match.ref_team_ids],
            })
        return output
