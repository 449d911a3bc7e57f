"""
The schedule plan: one slot per scheduled match, plus crossover placeholder
slots and the lunch break.

Crossover slots exist before their matches do. They name participants by
pool rank (``RankRef``) until both source pools have every round-robin match
finalized or carry a valid standings override; then they resolve to teams, link to (or create) their matches, and
stay linked through a stable ``slot_id``. Syncing is idempotent.
"""
import logging
import uuid
from typing import Callable, Dict, List, Optional

from .allocation import parse_clock_time, resolve_round_block_start_minutes
from .models import Match, Pool, RankRef, ScheduleSlot, TeamRef, Tournament
from .round_robin import round_robin_match_count
from .standings import compute_pool_standings, has_valid_override, pool_is_complete

logger = logging.getLogger(__name__)

LUNCH_SLOT_ID = 'lunch:main'
LUNCH_STAGE_KEY = 'lunch'

# Referees for the three rank-to-rank pairings of two 3-team pools, run on two courts.
CROSSOVER_REF_TABLE = {
    3: (('left', 3), ('right', 3), ('right', 2)),
}


def slot_status(participants, match: Optional[Match]) -> str:
    resolved = len(participants) >= 2 and all(isinstance(p, TeamRef) for p in participants)
    if not resolved:
        return 'scheduled_tbd'
    return match.status if match is not None else 'scheduled'


def create_slot_from_match(match: Match, schedule_settings: Dict) -> ScheduleSlot:
    participants = [TeamRef(team_id) for team_id in (match.team_a_id, match.team_b_id) if team_id]
    return ScheduleSlot(
        slot_id=match.planned_slot_id or f"match:{match.match_id}",
        stage_key=match.stage_key,
        round_block=match.round_block,
        time_index=resolve_round_block_start_minutes(match.round_block, schedule_settings),
        court_id=match.court,
        facility_id=match.facility,
        kind='match',
        participants=participants,
        ref=TeamRef(match.ref_team_ids[0]) if match.ref_team_ids else None,
        bye_refs=[TeamRef(match.bye_team_id)] if match.bye_team_id else [],
        match_id=match.match_id,
        status=slot_status(participants, match),
    )


def _idle_refs(left: str, right: str, pairing_count: int, busy: set) -> List[RankRef]:
    """Rank refs not playing in a block, ordered by rank then left pool first."""
    idle = []
    for rank in range(1, pairing_count + 1):
        for pool_name in (left, right):
            ref = RankRef(pool_name, rank)
            if ref not in busy:
                idle.append(ref)
    return idle


def build_crossover_slots(stage_def: Dict, source_pools: List[Pool], source_matches: List[Match],
                          active_courts: List[str], schedule_settings: Dict,
                          facility_by_court: Optional[Dict[str, str]] = None,
                          pool_orders: Optional[Dict[str, List[str]]] = None) -> Dict:
    """
    Placeholder slots for a rank-to-rank crossover between two pools.

    Returns {'slots': [...], 'ready': bool, 'source_pools': [left, right]}.
    ``ready`` is true once each pool has all round-robin matches final or a
    valid manual order in ``pool_orders``.
    """
    facility_by_court = facility_by_court or {}
    pool_orders = pool_orders or {}
    left_name, right_name = stage_def['from_pools']
    pools_by_name = {pool.name: pool for pool in source_pools}
    left_pool = pools_by_name.get(left_name)
    right_pool = pools_by_name.get(right_name)
    if left_pool is None or right_pool is None:
        return {'slots': [], 'ready': False, 'source_pools': []}

    pairing_count = min(left_pool.required_team_count, right_pool.required_team_count)
    pool_matches = {
        pool.name: [m for m in source_matches if m.stage_key == pool.stage_key and m.pool_name == pool.name]
        for pool in (left_pool, right_pool)
    }
    ready = all(
        pool_is_complete(pool, source_matches) or has_valid_override(pool, pool_orders.get(pool.name))
        for pool in (left_pool, right_pool)
    )

    source_courts = list(dict.fromkeys(
        court for court in (left_pool.home_court, right_pool.home_court) if court))
    courts = source_courts or list(active_courts) or [None]
    max_source_block = max((m.round_block or 0 for matches in pool_matches.values() for m in matches), default=0)
    start_block = max_source_block + 1 if max_source_block else max(
        round_robin_match_count(left_pool.required_team_count),
        round_robin_match_count(right_pool.required_team_count)) + 1

    placements = [(start_block + index // len(courts), courts[index % len(courts)]) for index in range(pairing_count)]
    table = CROSSOVER_REF_TABLE.get(pairing_count) if len(courts) == 2 else None

    def pairing_refs(index):
        return {RankRef(left_name, index + 1), RankRef(right_name, index + 1)}

    blocks = {}
    for index, (round_block, _) in enumerate(placements):
        blocks.setdefault(round_block, []).append(index)

    refs = {}
    idle_by_block = {}
    for round_block, indexes in blocks.items():
        busy = set().union(*(pairing_refs(index) for index in indexes))
        idle = _idle_refs(left_name, right_name, pairing_count, busy)
        idle_by_block[round_block] = idle
        candidates = sorted(idle, key=lambda r: -r.rank)
        for index in indexes:
            if table is not None:
                side, rank = table[index]
                refs[index] = RankRef(left_name if side == 'left' else right_name, rank)
            else:
                used = set(refs.values())
                refs[index] = next((c for c in candidates if c not in used), None)

    slots = []
    for index, (round_block, court) in enumerate(placements):
        bye_refs = []
        # Teams sitting out the block are listed once, on the block's last slot.
        if index == blocks[round_block][-1]:
            block_refs = {refs[i] for i in blocks[round_block]}
            bye_refs = [ref for ref in idle_by_block[round_block] if ref not in block_refs]
        slots.append(ScheduleSlot(
            slot_id=f"crossover:{left_name}:{right_name}:{index + 1}",
            stage_key=stage_def['key'],
            round_block=round_block,
            time_index=resolve_round_block_start_minutes(round_block, schedule_settings),
            court_id=court,
            facility_id=facility_by_court.get(court),
            kind='match',
            participants=[RankRef(left_name, index + 1), RankRef(right_name, index + 1)],
            ref=refs[index],
            bye_refs=bye_refs,
            status='scheduled_tbd',
        ))
    return {'slots': slots, 'ready': ready, 'source_pools': [left_pool, right_pool]}


def _resolve_ref(ref, team_by_rank: Dict) -> object:
    if isinstance(ref, RankRef):
        team_id = team_by_rank.get(ref.key())
        return TeamRef(team_id, ref) if team_id else ref
    return ref


def resolve_crossover_slots(slots: List[ScheduleSlot], pool_standings: List[Dict]) -> List[ScheduleSlot]:
    """Replace rank references with the teams currently holding those ranks."""
    team_by_rank = {}
    for pool in pool_standings:
        for entry in pool['teams']:
            team_by_rank[(pool['pool_name'], entry['rank'])] = entry['team_id']

    resolved = []
    for slot in slots:
        participants = [_resolve_ref(p, team_by_rank) for p in slot.participants]
        resolved.append(ScheduleSlot(
            slot.slot_id, slot.stage_key, slot.round_block, slot.time_index, slot.court_id,
            facility_id=slot.facility_id,
            kind=slot.kind,
            participants=participants,
            ref=_resolve_ref(slot.ref, team_by_rank),
            bye_refs=[_resolve_ref(ref, team_by_rank) for ref in slot.bye_refs],
            status=slot_status(participants, None),
        ))
    return resolved


def link_crossover_slots(slots: List[ScheduleSlot], stage_matches: List[Match]) -> List[ScheduleSlot]:
    """
    Attach existing matches to their slots.

    Matches are found by ``planned_slot_id``; legacy matches without one are
    matched by (round-block, court) and get ``planned_slot_id`` backfilled.
    Unresolved slots keep their rank placeholders while the linked match is
    still scheduled; once it has started they show the teams playing it.
    """
    by_slot_id = {match.planned_slot_id: match for match in stage_matches if match.planned_slot_id}
    fallback = {}
    for match in stage_matches:
        if not match.planned_slot_id and match.round_block and match.court:
            fallback.setdefault((match.round_block, match.court), []).append(match)

    for slot in slots:
        match = by_slot_id.get(slot.slot_id)
        if match is None:
            queue = fallback.get((slot.round_block, slot.court_id))
            if queue:
                match = queue.pop(0)
                match.planned_slot_id = slot.slot_id
                logger.info(f'Backfilled planned slot {slot.slot_id} on match {match.match_id}')
        if match is None:
            continue

        slot.match_id = match.match_id
        if match.status == 'scheduled':
            slot.status = slot_status(slot.participants, match)
            continue
        if not slot.is_resolved:
            rank_refs = [p for p in slot.participants if isinstance(p, RankRef)]
            linked = [TeamRef(team_id, rank_refs[i] if i < len(rank_refs) else None)
                      for i, team_id in enumerate((match.team_a_id, match.team_b_id)) if team_id]
            if linked:
                slot.participants = linked
        if match.ref_team_ids and not isinstance(slot.ref, TeamRef):
            slot.ref = TeamRef(match.ref_team_ids[0], slot.ref if isinstance(slot.ref, RankRef) else None)
        slot.status = slot_status(slot.participants, match)
    return slots


def create_missing_crossover_matches(slots: List[ScheduleSlot], stage_matches: List[Match],
                                     stage_key: str, id_factory: Callable[[], str]) -> Dict[str, List]:
    """
    Create matches for resolved slots, and refresh unplayed linked matches
    whose resolved participants changed.

    Returns {'created': [Match], 'updated_match_ids': [...]}
    """
    by_id = {match.match_id: match for match in stage_matches}
    created = []
    updated_ids = []
    for slot in slots:
        if slot.kind != 'match' or not slot.is_resolved or len(slot.participants) < 2:
            continue
        team_a_id, team_b_id = slot.participants[0].team_id, slot.participants[1].team_id
        ref_team_ids = [slot.ref.team_id] if isinstance(slot.ref, TeamRef) else []

        match = by_id.get(slot.match_id) if slot.match_id else None
        if match is None:
            match = Match(
                id_factory(), stage_key,
                round_block=slot.round_block,
                court=slot.court_id,
                facility=slot.facility_id,
                team_a_id=team_a_id,
                team_b_id=team_b_id,
                ref_team_ids=ref_team_ids,
                planned_slot_id=slot.slot_id,
            )
            created.append(match)
            slot.match_id = match.match_id
        elif (match.team_a_id, match.team_b_id) != (team_a_id, team_b_id) and match.status == 'scheduled':
            match.team_a_id, match.team_b_id = team_a_id, team_b_id
            match.ref_team_ids = ref_team_ids
            updated_ids.append(match.match_id)
        slot.status = slot_status(slot.participants, match)
    return {'created': created, 'updated_match_ids': updated_ids}


def build_lunch_slot(schedule_settings: Dict) -> Optional[ScheduleSlot]:
    lunch_start = schedule_settings.get('lunch_start_time')
    if not lunch_start or not schedule_settings.get('lunch_duration_minutes'):
        return None
    return ScheduleSlot(LUNCH_SLOT_ID, LUNCH_STAGE_KEY, None, parse_clock_time(lunch_start), None, kind='lunch')


def _slot_sort_key(slot: ScheduleSlot):
    if slot.time_index is not None:
        time_key = slot.time_index
    elif slot.round_block is not None:
        time_key = slot.round_block * 100
    else:
        time_key = float('inf')
    round_key = slot.round_block if slot.round_block is not None else float('inf')
    return (time_key, round_key, slot.court_id or '', slot.slot_id)


def serialize_slots(slots: List[ScheduleSlot]) -> List[Dict]:
    return [slot.to_dict() for slot in sorted(slots, key=lambda s: s.slot_id)]


class SchedulePlanSync:
    def __init__(self, slots, created_match_ids, updated_match_ids, schedule_changed):
        self.slots = slots
        self.created_match_ids = created_match_ids
        self.updated_match_ids = updated_match_ids
        self.schedule_changed = schedule_changed

    def to_dict(self):
        return {
            'slots': [slot.to_dict() for slot in self.slots],
            'created_match_ids': list(self.created_match_ids),
            'updated_match_ids': list(self.updated_match_ids),
            'schedule_changed': self.schedule_changed,
        }


def sync_schedule_plan(tournament: Tournament, format_def: Optional[Dict], active_courts: List[str],
                       schedule_settings: Dict, facility_by_court: Optional[Dict[str, str]] = None,
                       id_factory: Optional[Callable[[], str]] = None) -> SchedulePlanSync:
    """
    Rebuild ``tournament.schedule_plan`` and create any crossover matches
    that became resolvable. Mutates ``tournament`` (plan and matches).
    """
    id_factory = id_factory or (lambda: uuid.uuid4().hex)
    previous = serialize_slots(tournament.schedule_plan)

    crossover_stage = None
    if format_def:
        crossover_stage = next((s for s in format_def['stages'] if s['type'] == 'crossover'), None)

    crossover_slots = []
    created_ids = []
    updated_ids = []
    if crossover_stage is not None:
        source_stage_keys = [s['key'] for s in format_def['stages'] if s['type'] == 'pool_play']
        source_pools = [p for p in tournament.pools if p.stage_key in source_stage_keys]
        source_stage_key = next((p.stage_key for p in source_pools
                                 if p.name in crossover_stage['from_pools']), None)
        pool_orders = tournament.standings_overrides.get(source_stage_key, {}).get('pool_order') or {}
        bundle = build_crossover_slots(crossover_stage, source_pools, tournament.matches, active_courts,
                                       schedule_settings, facility_by_court, pool_orders)
        crossover_slots = bundle['slots']
        stage_matches = tournament.matches_for_stage(crossover_stage['key'])
        if bundle['ready']:
            pool_standings = compute_pool_standings(bundle['source_pools'], tournament.teams_by_id(),
                                                    tournament.matches, pool_orders)
            crossover_slots = resolve_crossover_slots(crossover_slots, pool_standings)
        crossover_slots = link_crossover_slots(crossover_slots, stage_matches)
        if bundle['ready']:
            outcome = create_missing_crossover_matches(crossover_slots, stage_matches,
                                                       crossover_stage['key'], id_factory)
            tournament.matches.extend(outcome['created'])
            created_ids = [match.match_id for match in outcome['created']]
            updated_ids = outcome['updated_match_ids']

    crossover_key = crossover_stage['key'] if crossover_stage else None
    linked_ids = {slot.match_id for slot in crossover_slots if slot.match_id}
    slots = [create_slot_from_match(match, schedule_settings) for match in tournament.matches
             if match.stage_key != crossover_key or match.match_id not in linked_ids]
    slots.extend(crossover_slots)
    lunch = build_lunch_slot(schedule_settings)
    if lunch is not None:
        slots.append(lunch)
    slots.sort(key=_slot_sort_key)

    tournament.schedule_plan = slots
    changed = serialize_slots(slots) != previous
    if created_ids:
        logger.info(f'Created {len(created_ids)} crossover matches')
    return SchedulePlanSync(slots, created_ids, updated_ids, changed)
