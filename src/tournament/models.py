"""
Entities of the tournament engine.

Plain classes with explicit fields. ``from_dict`` is the boundary where loosely
typed payloads (YAML documents, JSON bodies) are validated; core logic only
ever sees these objects.
"""
import copy
from typing import Dict, List, Optional

from .errors import ValidationError

MATCH_STATUSES = ('scheduled', 'live', 'ended', 'final')
SOURCE_SLOTS = ('winner', 'loser')


def normalize_court_code(value) -> str:
    return str(value or '').strip().upper()


def _require_text(data: Dict, key: str, label: str) -> str:
    value = data.get(key)
    if value is None or not str(value).strip():
        raise ValidationError(f"{label} requires '{key}'")
    return str(value).strip()


def _optional_int(data: Dict, key: str, label: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{label} field '{key}' must be an integer")
    return value


class Team:
    def __init__(self, team_id, name, short_name=None, order_index=None, seed=None):
        self.team_id = team_id
        self.name = name
        self.short_name = short_name
        self.order_index = order_index
        self.seed = seed

    @property
    def display_name(self):
        return self.short_name or self.name

    def to_dict(self):
        return {
            'team_id': self.team_id,
            'name': self.name,
            'short_name': self.short_name,
            'order_index': self.order_index,
            'seed': self.seed,
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError('Team entry must be a mapping')
        return cls(
            team_id=_require_text(data, 'team_id', 'Team'),
            name=_require_text(data, 'name', 'Team'),
            short_name=data.get('short_name'),
            order_index=_optional_int(data, 'order_index', 'Team'),
            seed=_optional_int(data, 'seed', 'Team'),
        )

    def __repr__(self):
        return f"Team(team_id={self.team_id}, name={self.name}, order_index={self.order_index})"


class Court:
    def __init__(self, code, facility=None, name=None, enabled=True):
        self.code = normalize_court_code(code)
        self.facility = facility
        self.name = name or self.code
        self.enabled = enabled

    def to_dict(self):
        return {'code': self.code, 'facility': self.facility, 'name': self.name, 'enabled': self.enabled}

    @classmethod
    def from_dict(cls, data):
        if isinstance(data, str):
            return cls(code=data)
        if not isinstance(data, dict):
            raise ValidationError('Court entry must be a code or a mapping')
        return cls(
            code=_require_text(data, 'code', 'Court'),
            facility=data.get('facility'),
            name=data.get('name'),
            enabled=bool(data.get('enabled', True)),
        )

    def __repr__(self):
        return f"Court(code={self.code}, facility={self.facility}, enabled={self.enabled})"


class Pool:
    def __init__(self, pool_id, stage_key, name, required_team_count, team_ids=None,
                 home_court=None, rematch_warnings=None):
        self.pool_id = pool_id
        self.stage_key = stage_key
        self.name = name
        self.required_team_count = required_team_count
        self.team_ids = list(team_ids or [])
        self.home_court = home_court
        self.rematch_warnings = list(rematch_warnings or [])

    @property
    def is_full(self):
        return len(self.team_ids) >= self.required_team_count

    def to_dict(self):
        return {
            'pool_id': self.pool_id,
            'stage_key': self.stage_key,
            'name': self.name,
            'required_team_count': self.required_team_count,
            'team_ids': list(self.team_ids),
            'home_court': self.home_court,
            'rematch_warnings': copy.deepcopy(self.rematch_warnings),
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError('Pool entry must be a mapping')
        required = _optional_int(data, 'required_team_count', 'Pool')
        if required is None:
            raise ValidationError("Pool requires 'required_team_count'")
        team_ids = data.get('team_ids') or []
        if not isinstance(team_ids, list):
            raise ValidationError("Pool field 'team_ids' must be a list")
        return cls(
            pool_id=_require_text(data, 'pool_id', 'Pool'),
            stage_key=_require_text(data, 'stage_key', 'Pool'),
            name=_require_text(data, 'name', 'Pool'),
            required_team_count=required,
            team_ids=[str(team_id) for team_id in team_ids],
            home_court=data.get('home_court'),
            rematch_warnings=data.get('rematch_warnings'),
        )

    def __repr__(self):
        return f"Pool(name={self.name}, stage_key={self.stage_key}, team_ids={self.team_ids})"


class MatchResult:
    def __init__(self, winner_team_id, loser_team_id, sets_won_a, sets_won_b, sets_played,
                 points_for_a, points_against_a, points_for_b, points_against_b, set_scores):
        self.winner_team_id = winner_team_id
        self.loser_team_id = loser_team_id
        self.sets_won_a = sets_won_a
        self.sets_won_b = sets_won_b
        self.sets_played = sets_played
        self.points_for_a = points_for_a
        self.points_against_a = points_against_a
        self.points_for_b = points_for_b
        self.points_against_b = points_against_b
        self.set_scores = set_scores

    def to_dict(self):
        return {
            'winner_team_id': self.winner_team_id,
            'loser_team_id': self.loser_team_id,
            'sets_won_a': self.sets_won_a,
            'sets_won_b': self.sets_won_b,
            'sets_played': self.sets_played,
            'points_for_a': self.points_for_a,
            'points_against_a': self.points_against_a,
            'points_for_b': self.points_for_b,
            'points_against_b': self.points_against_b,
            'set_scores': [dict(score) for score in self.set_scores],
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError('Match result must be a mapping')
        return cls(
            winner_team_id=data.get('winner_team_id'),
            loser_team_id=data.get('loser_team_id'),
            sets_won_a=data.get('sets_won_a', 0),
            sets_won_b=data.get('sets_won_b', 0),
            sets_played=data.get('sets_played', 0),
            points_for_a=data.get('points_for_a', 0),
            points_against_a=data.get('points_against_a', 0),
            points_for_b=data.get('points_for_b', 0),
            points_against_b=data.get('points_against_b', 0),
            set_scores=[dict(score) for score in data.get('set_scores') or []],
        )

    def __eq__(self, other):
        return isinstance(other, MatchResult) and self.to_dict() == other.to_dict()

    def __repr__(self):
        return (f"MatchResult(winner={self.winner_team_id}, "
                f"sets={self.sets_won_a}-{self.sets_won_b}, "
                f"points={self.points_for_a}-{self.points_for_b})")


class Match:
    FIELDS = (
        'match_id', 'stage_key', 'pool_id', 'pool_name', 'bracket', 'bracket_round', 'round',
        'bracket_match_key', 'seed_a', 'seed_b', 'round_block', 'court', 'facility',
        'team_a_id', 'team_b_id', 'ref_team_ids', 'bye_team_id',
        'team_a_from_match_key', 'team_a_from_slot', 'team_b_from_match_key', 'team_b_from_slot',
        'ref_from_match_key', 'ref_from_slot', 'refs_suggested', 'refs_manual', 'planned_slot_id',
        'status', 'started_at', 'ended_at', 'finalized_at', 'finalized_by',
    )

    def __init__(self, match_id, stage_key, result=None, **fields):
        unknown = set(fields) - set(self.FIELDS)
        if unknown:
            raise TypeError(f"Unknown match fields: {sorted(unknown)}")
        self.match_id = match_id
        self.stage_key = stage_key
        for name in self.FIELDS[2:]:
            setattr(self, name, fields.get(name))
        self.ref_team_ids = list(self.ref_team_ids or [])
        self.refs_suggested = bool(self.refs_suggested)
        self.refs_manual = bool(self.refs_manual)
        self.status = self.status or 'scheduled'
        self.result = result

    @property
    def is_bracket_match(self):
        return bool(self.bracket and self.bracket_match_key)

    @property
    def is_final(self):
        return self.status == 'final' and self.result is not None

    def participants(self):
        return [team_id for team_id in (self.team_a_id, self.team_b_id) if team_id]

    def to_dict(self):
        data = {name: getattr(self, name) for name in self.FIELDS}
        data['ref_team_ids'] = list(self.ref_team_ids)
        data['result'] = self.result.to_dict() if self.result else None
        return data

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError('Match entry must be a mapping')
        status = data.get('status') or 'scheduled'
        if status not in MATCH_STATUSES:
            raise ValidationError(f"Unknown match status '{status}'")
        for slot_key in ('team_a_from_slot', 'team_b_from_slot', 'ref_from_slot'):
            slot = data.get(slot_key)
            if slot is not None and slot not in SOURCE_SLOTS:
                raise ValidationError(f"Match field '{slot_key}' must be one of {SOURCE_SLOTS}")
        fields = {name: data.get(name) for name in cls.FIELDS[2:]}
        fields['status'] = status
        match = cls(_require_text(data, 'match_id', 'Match'), _require_text(data, 'stage_key', 'Match'), **fields)
        match.result = MatchResult.from_dict(data['result']) if data.get('result') else None
        if match.status == 'final' and match.result is None:
            raise ValidationError(f"Match {match.match_id} is final but has no result")
        return match

    def __repr__(self):
        label = self.bracket_match_key or self.pool_name or self.stage_key
        return f"Match(match_id={self.match_id}, {label}, {self.team_a_id} vs {self.team_b_id}, status={self.status})"


class BracketSeed:
    def __init__(self, bracket, bracket_seed, team_id, overall_rank):
        self.bracket = bracket
        self.bracket_seed = bracket_seed
        self.team_id = team_id
        self.overall_rank = overall_rank

    def to_dict(self):
        return {
            'bracket': self.bracket,
            'bracket_seed': self.bracket_seed,
            'team_id': self.team_id,
            'overall_rank': self.overall_rank,
        }

    def __repr__(self):
        return f"BracketSeed({self.bracket} #{self.bracket_seed}: {self.team_id}, overall={self.overall_rank})"


class RankRef:
    """Placeholder for "whoever finishes at ``rank`` in ``pool_name``"."""
    kind = 'rank_ref'

    def __init__(self, pool_name, rank):
        self.pool_name = pool_name
        self.rank = rank

    @property
    def label(self):
        return f"Pool {self.pool_name} rank #{self.rank}"

    def key(self):
        return (self.pool_name, self.rank)

    def to_dict(self):
        return {'type': self.kind, 'pool_name': self.pool_name, 'rank': self.rank}

    def __eq__(self, other):
        return isinstance(other, RankRef) and self.key() == other.key()

    def __hash__(self):
        return hash(self.key())

    def __repr__(self):
        return f"RankRef({self.pool_name}#{self.rank})"


class TeamRef:
    """A concrete team, optionally remembering the rank reference it resolved from."""
    kind = 'team_ref'

    def __init__(self, team_id, source_rank_ref=None):
        self.team_id = team_id
        self.source_rank_ref = source_rank_ref

    def to_dict(self):
        return {
            'type': self.kind,
            'team_id': self.team_id,
            'source_rank_ref': self.source_rank_ref.to_dict() if self.source_rank_ref else None,
        }

    def __eq__(self, other):
        return (isinstance(other, TeamRef) and self.team_id == other.team_id
                and self.source_rank_ref == other.source_rank_ref)

    def __hash__(self):
        return hash((self.team_id, self.source_rank_ref))

    def __repr__(self):
        return f"TeamRef({self.team_id})"


def participant_from_dict(data):
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValidationError('Slot participant must be a mapping')
    kind = data.get('type')
    if kind == RankRef.kind:
        rank = _optional_int(data, 'rank', 'Rank reference')
        if rank is None or rank < 1:
            raise ValidationError('Rank reference requires a positive rank')
        return RankRef(_require_text(data, 'pool_name', 'Rank reference'), rank)
    if kind == TeamRef.kind:
        return TeamRef(_require_text(data, 'team_id', 'Team reference'),
                       participant_from_dict(data.get('source_rank_ref')))
    raise ValidationError(f"Unknown slot participant type '{kind}'")


class ScheduleSlot:
    def __init__(self, slot_id, stage_key, round_block, time_index, court_id, facility_id=None,
                 kind='match', participants=None, ref=None, bye_refs=None, match_id=None, status=None):
        self.slot_id = slot_id
        self.stage_key = stage_key
        self.round_block = round_block
        self.time_index = time_index
        self.court_id = court_id
        self.facility_id = facility_id
        self.kind = kind
        self.participants = list(participants or [])
        self.ref = ref
        self.bye_refs = list(bye_refs or [])
        self.match_id = match_id
        self.status = status

    @property
    def is_resolved(self):
        return bool(self.participants) and all(isinstance(p, TeamRef) for p in self.participants)

    def sort_key(self):
        return (self.time_index, self.round_block, self.court_id or '', self.slot_id)

    def to_dict(self):
        return {
            'slot_id': self.slot_id,
            'stage_key': self.stage_key,
            'round_block': self.round_block,
            'time_index': self.time_index,
            'court_id': self.court_id,
            'facility_id': self.facility_id,
            'kind': self.kind,
            'participants': [participant.to_dict() for participant in self.participants],
            'ref': self.ref.to_dict() if self.ref else None,
            'bye_refs': [ref.to_dict() for ref in self.bye_refs],
            'match_id': self.match_id,
            'status': self.status,
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError('Schedule slot must be a mapping')
        return cls(
            slot_id=_require_text(data, 'slot_id', 'Schedule slot'),
            stage_key=data.get('stage_key'),
            round_block=data.get('round_block'),
            time_index=data.get('time_index'),
            court_id=data.get('court_id'),
            facility_id=data.get('facility_id'),
            kind=data.get('kind') or 'match',
            participants=[participant_from_dict(p) for p in data.get('participants') or []],
            ref=participant_from_dict(data.get('ref')),
            bye_refs=[participant_from_dict(p) for p in data.get('bye_refs') or []],
            match_id=data.get('match_id'),
            status=data.get('status'),
        )

    def __repr__(self):
        return f"ScheduleSlot({self.slot_id}, block={self.round_block}, court={self.court_id}, status={self.status})"


class Tournament:
    """The aggregate persisted as one document."""

    def __init__(self, tournament_id, name, code, format_id, settings=None, teams=None, pools=None,
                 matches=None, standings_overrides=None, schedule_plan=None):
        self.tournament_id = tournament_id
        self.name = name
        self.code = code
        self.format_id = format_id
        self.settings = settings or {}
        self.teams: List[Team] = list(teams or [])
        self.pools: List[Pool] = list(pools or [])
        self.matches: List[Match] = list(matches or [])
        self.standings_overrides = standings_overrides or {}
        self.schedule_plan: List[ScheduleSlot] = list(schedule_plan or [])

    def teams_by_id(self) -> Dict[str, Team]:
        return {team.team_id: team for team in self.teams}

    def pools_for_stage(self, stage_key) -> List[Pool]:
        return sorted((pool for pool in self.pools if pool.stage_key == stage_key), key=lambda p: p.name)

    def matches_for_stage(self, stage_key) -> List[Match]:
        return [match for match in self.matches if match.stage_key == stage_key]

    def find_match(self, match_id) -> Optional[Match]:
        return next((match for match in self.matches if match.match_id == match_id), None)

    def find_pool(self, pool_id) -> Optional[Pool]:
        return next((pool for pool in self.pools if pool.pool_id == pool_id), None)

    def to_dict(self):
        return {
            'tournament_id': self.tournament_id,
            'name': self.name,
            'code': self.code,
            'format_id': self.format_id,
            'settings': copy.deepcopy(self.settings),
            'teams': [team.to_dict() for team in self.teams],
            'pools': [pool.to_dict() for pool in self.pools],
            'matches': [match.to_dict() for match in self.matches],
            'standings_overrides': copy.deepcopy(self.standings_overrides),
            'schedule_plan': [slot.to_dict() for slot in self.schedule_plan],
        }

    @classmethod
    def from_dict(cls, data):
        if not isinstance(data, dict):
            raise ValidationError('Tournament document must be a mapping')
        teams = [Team.from_dict(item) for item in data.get('teams') or []]
        team_ids = [team.team_id for team in teams]
        if len(set(team_ids)) != len(team_ids):
            raise ValidationError('Team ids must be unique within a tournament')
        return cls(
            tournament_id=_require_text(data, 'tournament_id', 'Tournament'),
            name=data.get('name') or '',
            code=data.get('code') or '',
            format_id=data.get('format_id'),
            settings=data.get('settings') or {},
            teams=teams,
            pools=[Pool.from_dict(item) for item in data.get('pools') or []],
            matches=[Match.from_dict(item) for item in data.get('matches') or []],
            standings_overrides=data.get('standings_overrides') or {},
            schedule_plan=[ScheduleSlot.from_dict(item) for item in data.get('schedule_plan') or []],
        )

    def __repr__(self):
        return f"Tournament(tournament_id={self.tournament_id}, name={self.name}, format_id={self.format_id})"
