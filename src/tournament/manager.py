"""
TournamentManager: every engine operation as one all-or-nothing transaction.

Each mutating method loads the tournament under its lock, validates, applies
the change to the in-memory document and saves it. Any error raised before
the save leaves the stored document untouched. Notifications and scoreboard
name syncs are sent only after the save succeeds.
"""
import contextlib
import logging
import uuid
from typing import Callable, Dict, List, Optional

from . import lifecycle
from .allocation import AllocationManager, format_clock_time
from .elimination import apply_seed_assignments, build_bracket_plan, build_bracket_view, build_seed_assignments
from .errors import ConflictError, NotFoundError, ValidationError
from .formats import (CUMULATIVE_PHASE, get_format, previous_pool_stage, resolve_stage, seeding_phase_keys,
                      stages_of_type)
from .models import Match, Pool, Team, Tournament
from .notifications import (MATCH_FINALIZED, MATCH_STATUS_UPDATED, MATCH_UNFINALIZED, MATCHES_GENERATED,
                            PLAYOFFS_BRACKET_UPDATED, POOLS_UPDATED, SCHEDULE_PLAN_UPDATED, Notifier)
from .pools import (apply_patch_plan, autofill_pools, build_two_pass_patch_plan, collect_changed_pool_ids,
                    instantiate_pools, move_team, set_pool_teams, swap_pools)
from .progression import recompute_bracket_progression, sync_scoreboard_names
from .reseeding import reseed_stage_pools
from .schedule_plan import sync_schedule_plan
from .settings import courts_from_settings, normalize_settings
from .standings import compute_standings_bundle, validate_override_order
from .store import TournamentStore

logger = logging.getLogger(__name__)


class TournamentManager:
    def __init__(self, store: TournamentStore, notifier: Optional[Notifier] = None,
                 scoreboard_sync: Optional[Callable] = None, id_factory: Optional[Callable[[], str]] = None):
        self.store = store
        self.notifier = notifier or Notifier()
        self.scoreboard_sync = scoreboard_sync
        self.id_factory = id_factory or (lambda: uuid.uuid4().hex)

    # ------------------------------------------------------------------ helpers

    @contextlib.contextmanager
    def _mutation(self, tournament_id: str):
        """
        Yields (tournament, events, renamed). Events are ``(type, data)``
        pairs and renamed is a list of match ids whose scoreboards need new
        names; both are delivered after the document is saved.
        """
        events = []
        renamed = []
        with self.store.transaction(tournament_id) as tournament:
            yield tournament, events, renamed
        self.notifier.emit_all(tournament.code, events)
        if renamed:
            matches = [tournament.find_match(match_id) for match_id in dict.fromkeys(renamed)]
            sync_scoreboard_names(self.scoreboard_sync, [m for m in matches if m is not None],
                                  tournament.teams_by_id())

    def _format(self, tournament: Tournament) -> Dict:
        if not tournament.format_id:
            raise ValidationError('Tournament has no format; choose a format first')
        return get_format(tournament.format_id)

    def _settings(self, tournament: Tournament) -> Dict:
        return normalize_settings(tournament.settings)

    def _allocator(self, tournament: Tournament) -> AllocationManager:
        settings = self._settings(tournament)
        return AllocationManager(courts_from_settings(settings), settings, self.id_factory)

    def _active_courts(self, tournament: Tournament) -> List[str]:
        active = self._allocator(tournament).active_courts
        if not active:
            raise ValidationError('At least one active court is required')
        return active

    def _stage(self, format_def: Dict, stage_key: str, stage_type: str) -> Dict:
        stage = resolve_stage(format_def, stage_key)
        if stage['type'] != stage_type:
            raise ValidationError(f"Stage '{stage_key}' is not a {stage_type} stage")
        return stage

    def _match(self, tournament: Tournament, match_id: str) -> Match:
        match = tournament.find_match(match_id)
        if match is None:
            raise NotFoundError(f'Match {match_id} not found')
        return match

    def _ensure_pools_editable(self, tournament: Tournament, stage_key: str) -> None:
        if tournament.matches_for_stage(stage_key):
            raise ConflictError(f'Pools of {stage_key} are locked once its matches are generated')

    def _drop_stage_matches(self, tournament: Tournament, stage_key: str) -> List[str]:
        dropped = [match.match_id for match in tournament.matches_for_stage(stage_key)]
        if dropped:
            tournament.matches = [match for match in tournament.matches if match.stage_key != stage_key]
            logger.info(f'Deleted {len(dropped)} {stage_key} matches of tournament {tournament.tournament_id}')
        return dropped

    def _replace_stage_pools(self, tournament: Tournament, stage_key: str, pools) -> None:
        tournament.pools = [pool for pool in tournament.pools if pool.stage_key != stage_key] + list(pools)

    def _next_round_block(self, tournament: Tournament, format_def: Dict, stage_key: str) -> int:
        """First round-block after every stage that precedes ``stage_key``."""
        earlier = []
        for stage in format_def['stages']:
            if stage['key'] == stage_key:
                break
            earlier.append(stage['key'])
        blocks = [m.round_block or 0 for m in tournament.matches if m.stage_key in earlier]
        blocks += [s.round_block or 0 for s in tournament.schedule_plan if s.stage_key in earlier]
        return max(blocks, default=0) + 1

    def _sync_plan(self, tournament: Tournament, events: List, format_def: Optional[Dict] = None):
        if format_def is None and tournament.format_id:
            format_def = get_format(tournament.format_id)
        settings = self._settings(tournament)
        allocator = self._allocator(tournament)
        facility_by_court = {court.code: court.facility for court in allocator.courts}
        sync = sync_schedule_plan(tournament, format_def, allocator.active_courts, settings,
                                  facility_by_court, self.id_factory)
        if sync.created_match_ids:
            stage_key = tournament.find_match(sync.created_match_ids[0]).stage_key
            events.append((MATCHES_GENERATED, {'stage_key': stage_key, 'match_ids': sync.created_match_ids}))
        if sync.schedule_changed:
            events.append((SCHEDULE_PLAN_UPDATED, {'slot_count': len(sync.slots)}))
        return sync

    def _cascade(self, tournament: Tournament, match: Match, events: List, renamed: List) -> Dict:
        if not match.is_bracket_match:
            return {'updated_match_ids': [], 'cleared_match_ids': []}
        progression = recompute_bracket_progression(tournament.matches, tournament.teams_by_id(),
                                                    bracket=match.bracket)
        renamed.extend(progression.renamed_match_ids)
        if progression.affected_match_ids:
            events.append((PLAYOFFS_BRACKET_UPDATED, dict(progression.to_dict(), bracket=match.bracket)))
        for match_id in progression.cleared_match_ids:
            events.append((MATCH_STATUS_UPDATED, {'match_id': match_id, 'status': 'scheduled'}))
        return progression.to_dict()

    def _phase_scope(self, tournament: Tournament, format_def: Dict, phase: str):
        """(teams, pools, matches) that a standings phase ranks."""
        if phase == CUMULATIVE_PHASE:
            stage_keys = seeding_phase_keys(format_def)
            pools = [pool for pool in tournament.pools if pool.stage_key in stage_keys]
            matches = [match for match in tournament.matches if match.stage_key in stage_keys]
            return list(tournament.teams), pools, matches

        stage = resolve_stage(format_def, phase)
        if stage['type'] == 'playoffs':
            raise ValidationError('Standings are not computed for the playoff stage')
        pools = tournament.pools_for_stage(phase)
        matches = tournament.matches_for_stage(phase)
        if pools:
            team_ids = {team_id for pool in pools for team_id in pool.team_ids}
        else:
            team_ids = {team_id for match in matches for team_id in match.participants()}
        return [team for team in tournament.teams if team.team_id in team_ids], pools, matches

    # ------------------------------------------------------------ tournaments

    def create_tournament(self, name: str, format_id: Optional[str] = None, settings: Optional[Dict] = None,
                          teams: Optional[List[Dict]] = None) -> Dict:
        if format_id:
            get_format(format_id)
        settings = normalize_settings(settings)
        settings['format_id'] = format_id
        tournament = self.store.create(name, format_id, settings)
        if teams:
            self.set_roster(tournament.tournament_id, teams)
            tournament = self.store.load(tournament.tournament_id)
        return tournament.to_dict()

    def get_tournament(self, tournament_id: str) -> Dict:
        return self.store.load(tournament_id).to_dict()

    def set_roster(self, tournament_id: str, teams: List[Dict]) -> List[Dict]:
        """Replace the roster. Rejected once any match exists."""
        if not isinstance(teams, list):
            raise ValidationError('teams must be a list')
        parsed = [Team.from_dict(item) for item in teams]
        team_ids = [team.team_id for team in parsed]
        if len(set(team_ids)) != len(team_ids):
            raise ValidationError('Team ids must be unique within a tournament')

        with self._mutation(tournament_id) as (tournament, events, _):
            if tournament.matches:
                raise ConflictError('The roster cannot be replaced once matches exist')
            for index, team in enumerate(parsed, start=1):
                if team.order_index is None:
                    team.order_index = index
            tournament.teams = parsed
            known = set(team_ids)
            pools_changed = False
            for pool in tournament.pools:
                kept = [team_id for team_id in pool.team_ids if team_id in known]
                if kept != pool.team_ids:
                    pool.team_ids = kept
                    pools_changed = True
            if pools_changed:
                events.append((POOLS_UPDATED, {'reason': 'roster'}))
            return [team.to_dict() for team in tournament.teams]

    def update_settings(self, tournament_id: str, settings: Dict) -> Dict:
        with self._mutation(tournament_id) as (tournament, events, _):
            merged = dict(tournament.settings)
            merged.update(settings or {})
            tournament.settings = normalize_settings(merged)
            tournament.settings['format_id'] = tournament.format_id
            self._sync_plan(tournament, events)
            return dict(tournament.settings)

    def apply_format(self, tournament_id: str, format_id: str, force: bool = False) -> Dict:
        """Switch formats. Existing pools and matches are discarded only with ``force``."""
        format_def = get_format(format_id)
        with self._mutation(tournament_id) as (tournament, events, _):
            if tournament.format_id == format_def['id']:
                return tournament.to_dict()
            if (tournament.matches or tournament.pools) and not force:
                raise ConflictError('Pools or matches already exist; re-run with force to replace the format')
            tournament.format_id = format_def['id']
            tournament.settings['format_id'] = format_def['id']
            tournament.pools = []
            tournament.matches = []
            tournament.standings_overrides = {}
            events.append((POOLS_UPDATED, {'reason': 'format'}))
            self._sync_plan(tournament, events, format_def)
            return tournament.to_dict()

    # ------------------------------------------------------------------ pools

    def init_pools(self, tournament_id: str, stage_key: str, force: bool = False) -> List[Dict]:
        """
        Create (or re-create) the pools of a pool-play stage from the format.

        A stage that already has matches is only re-initialised with
        ``force``, which deletes those matches.
        """
        with self._mutation(tournament_id) as (tournament, events, _):
            format_def = self._format(tournament)
            stage = self._stage(format_def, stage_key, 'pool_play')
            if tournament.matches_for_stage(stage_key):
                if not force:
                    raise ConflictError(
                        f'{stage_key} already has matches; re-run with force to delete them and re-create pools')
                self._drop_stage_matches(tournament, stage_key)
            pools = instantiate_pools(stage, self._active_courts(tournament), tournament.pools,
                                      self.id_factory, clear_team_ids=False)
            self._replace_stage_pools(tournament, stage_key, pools)
            events.append((POOLS_UPDATED, {'stage_key': stage_key}))
            self._sync_plan(tournament, events, format_def)
            return [pool.to_dict() for pool in tournament.pools_for_stage(stage_key)]

    def autofill_pools(self, tournament_id: str, stage_key: str, force: bool = False) -> List[Dict]:
        with self._mutation(tournament_id) as (tournament, events, _):
            self._stage(self._format(tournament), stage_key, 'pool_play')
            self._ensure_pools_editable(tournament, stage_key)
            pools = autofill_pools(tournament.pools_for_stage(stage_key), tournament.teams, force)
            self._replace_stage_pools(tournament, stage_key, pools)
            events.append((POOLS_UPDATED, {'stage_key': stage_key}))
            self._sync_plan(tournament, events)
            return [pool.to_dict() for pool in tournament.pools_for_stage(stage_key)]

    def set_pool_teams(self, tournament_id: str, pool_id: str, team_ids: List[str]) -> Dict:
        with self._mutation(tournament_id) as (tournament, events, _):
            pool = tournament.find_pool(pool_id)
            if pool is None:
                raise NotFoundError(f'Pool {pool_id} not found')
            self._ensure_pools_editable(tournament, pool.stage_key)
            tournament.pools = set_pool_teams(tournament.pools, pool_id, team_ids, tournament.teams_by_id())
            events.append((POOLS_UPDATED, {'stage_key': pool.stage_key, 'pool_ids': [pool_id]}))
            self._sync_plan(tournament, events)
            return tournament.find_pool(pool_id).to_dict()

    def set_stage_pools(self, tournament_id: str, stage_key: str, assignments: Dict[str, List[str]]) -> List[Dict]:
        """
        Replace several pools of a stage at once, e.g. after dragging teams
        between them. Applied as a two-pass plan so no intermediate write
        puts a team in two pools.
        """
        if not isinstance(assignments, dict):
            raise ValidationError('assignments must map pool ids to team id lists')
        with self._mutation(tournament_id) as (tournament, events, _):
            self._ensure_pools_editable(tournament, stage_key)
            previous = tournament.pools_for_stage(stage_key)
            known = tournament.teams_by_id()
            for pool_id, team_ids in assignments.items():
                if not any(pool.pool_id == pool_id for pool in previous):
                    raise NotFoundError(f'Pool {pool_id} not found in {stage_key}')
                unknown = [team_id for team_id in team_ids or [] if team_id not in known]
                if unknown:
                    raise ValidationError(f'Unknown teams: {", ".join(unknown)}')
            staged = []
            for pool in previous:
                replacement = assignments.get(pool.pool_id)
                clone = Pool.from_dict(pool.to_dict())
                if replacement is not None:
                    clone.team_ids = list(replacement)
                staged.append(clone)
            changed = collect_changed_pool_ids(previous, staged)
            if changed:
                plan = build_two_pass_patch_plan(previous, staged, changed)
                updated = apply_patch_plan(previous, plan)
                self._replace_stage_pools(tournament, stage_key, updated)
                events.append((POOLS_UPDATED, {'stage_key': stage_key, 'pool_ids': changed}))
                self._sync_plan(tournament, events)
            return [pool.to_dict() for pool in tournament.pools_for_stage(stage_key)]

    def move_team(self, tournament_id: str, stage_key: str, team_id: str, target_pool_id: Optional[str],
                  over_team_id: Optional[str] = None) -> List[Dict]:
        with self._mutation(tournament_id) as (tournament, events, _):
            if team_id not in tournament.teams_by_id():
                raise NotFoundError(f'Team {team_id} not found')
            self._ensure_pools_editable(tournament, stage_key)
            stage_pools = tournament.pools_for_stage(stage_key)
            if target_pool_id is not None and not any(p.pool_id == target_pool_id for p in stage_pools):
                raise NotFoundError(f'Pool {target_pool_id} not found in {stage_key}')
            updated = move_team(stage_pools, team_id, target_pool_id, over_team_id)
            changed = collect_changed_pool_ids(stage_pools, updated)
            self._replace_stage_pools(tournament, stage_key, updated)
            if changed:
                events.append((POOLS_UPDATED, {'stage_key': stage_key, 'pool_ids': changed}))
                self._sync_plan(tournament, events)
            return [pool.to_dict() for pool in tournament.pools_for_stage(stage_key)]

    def swap_pools(self, tournament_id: str, source_pool_id: str, target_pool_id: str) -> List[Dict]:
        with self._mutation(tournament_id) as (tournament, events, _):
            source = tournament.find_pool(source_pool_id)
            if source is None:
                raise NotFoundError(f'Pool {source_pool_id} not found')
            self._ensure_pools_editable(tournament, source.stage_key)
            tournament.pools = swap_pools(tournament.pools, source_pool_id, target_pool_id)
            events.append((POOLS_UPDATED, {'stage_key': source.stage_key,
                                           'pool_ids': [source_pool_id, target_pool_id]}))
            self._sync_plan(tournament, events)
            return [pool.to_dict() for pool in tournament.pools_for_stage(source.stage_key)]

    def reseed_stage(self, tournament_id: str, stage_key: str, force: bool = False) -> Dict:
        """Fill a ``reseed_from`` stage from the previous stage's placements."""
        with self._mutation(tournament_id) as (tournament, events, _):
            format_def = self._format(tournament)
            stage = self._stage(format_def, stage_key, 'pool_play')
            source_key = stage.get('reseed_from')
            if not source_key:
                raise ValidationError(f"Stage '{stage_key}' is not reseeded from another stage")
            if tournament.matches_for_stage(stage_key):
                if not force:
                    raise ConflictError(f'{stage_key} already has matches; re-run with force to reseed')
                self._drop_stage_matches(tournament, stage_key)

            overrides = tournament.standings_overrides.get(source_key, {})
            outcome = reseed_stage_pools(
                stage, tournament.pools_for_stage(source_key), tournament.teams_by_id(),
                tournament.matches_for_stage(source_key), self._active_courts(tournament),
                existing_pools=tournament.pools, pool_orders=overrides.get('pool_order'),
                id_factory=self.id_factory)
            self._replace_stage_pools(tournament, stage_key, outcome['pools'])
            events.append((POOLS_UPDATED, {'stage_key': stage_key}))
            self._sync_plan(tournament, events, format_def)
            return {
                'pools': [pool.to_dict() for pool in tournament.pools_for_stage(stage_key)],
                'total_rematches': outcome['total_rematches'],
                'attempts': outcome['attempts'],
            }

    # ---------------------------------------------------------------- matches

    def generate_stage_matches(self, tournament_id: str, stage_key: str, force: bool = False) -> List[Dict]:
        """Round-robin matches for every pool of a pool-play stage."""
        with self._mutation(tournament_id) as (tournament, events, _):
            format_def = self._format(tournament)
            stage = self._stage(format_def, stage_key, 'pool_play')
            if tournament.matches_for_stage(stage_key):
                if not force:
                    raise ConflictError(f'{stage_key} matches already exist; re-run with force to regenerate')
                self._drop_stage_matches(tournament, stage_key)

            previous = previous_pool_stage(format_def, stage_key)
            if previous is not None and stage.get('reseed_from') and not tournament.pools_for_stage(stage_key):
                raise ValidationError(f"Reseed {stage_key} from {previous['key']} before generating its matches")

            start = self._next_round_block(tournament, format_def, stage_key)
            matches = self._allocator(tournament).allocate_pool_stage(
                stage_key, tournament.pools_for_stage(stage_key), start)
            tournament.matches.extend(matches)
            events.append((MATCHES_GENERATED, {'stage_key': stage_key,
                                               'match_ids': [match.match_id for match in matches]}))
            self._sync_plan(tournament, events, format_def)
            return [match.to_dict() for match in matches]

    def update_match_status(self, tournament_id: str, match_id: str, status: str) -> Dict:
        with self._mutation(tournament_id) as (tournament, events, _):
            match = self._match(tournament, match_id)
            if lifecycle.update_match_status(match, status):
                events.append((MATCH_STATUS_UPDATED, {'match_id': match_id, 'status': match.status}))
                self._sync_plan(tournament, events)
            return match.to_dict()

    def finalize_match(self, tournament_id: str, match_id: str, sets, actor: Optional[str] = None,
                       override: bool = False) -> Dict:
        """Record the result, then cascade it through the bracket and schedule plan."""
        with self._mutation(tournament_id) as (tournament, events, renamed):
            match = self._match(tournament, match_id)
            lifecycle.finalize_match(match, sets, actor=actor, override=override)
            events.append((MATCH_FINALIZED, {'match_id': match_id, 'result': match.result.to_dict()}))
            progression = self._cascade(tournament, match, events, renamed)
            sync = self._sync_plan(tournament, events)
            return {'match': match.to_dict(), 'progression': progression,
                    'created_match_ids': sync.created_match_ids}

    def unfinalize_match(self, tournament_id: str, match_id: str) -> Dict:
        with self._mutation(tournament_id) as (tournament, events, renamed):
            match = self._match(tournament, match_id)
            lifecycle.unfinalize_match(match)
            events.append((MATCH_UNFINALIZED, {'match_id': match_id}))
            progression = self._cascade(tournament, match, events, renamed)
            self._sync_plan(tournament, events)
            return {'match': match.to_dict(), 'progression': progression}

    def set_match_refs(self, tournament_id: str, match_id: str, ref_team_ids: List[str]) -> Dict:
        with self._mutation(tournament_id) as (tournament, events, _):
            match = self._match(tournament, match_id)
            lifecycle.set_match_refs(match, ref_team_ids, tournament.teams_by_id())
            self._sync_plan(tournament, events)
            return match.to_dict()

    # -------------------------------------------------------------- standings

    def get_standings(self, tournament_id: str, phase: str) -> Dict:
        tournament = self.store.load(tournament_id)
        format_def = self._format(tournament)
        teams, pools, matches = self._phase_scope(tournament, format_def, phase)
        bundle = compute_standings_bundle(teams, pools, matches, tournament.standings_overrides.get(phase))
        bundle['phase'] = phase
        return bundle

    def set_standings_override(self, tournament_id: str, phase: str, order: List[str],
                               pool_name: Optional[str] = None) -> Dict:
        """Store a manual pool order (``pool_name`` given) or overall order for a phase."""
        with self._mutation(tournament_id) as (tournament, events, _):
            format_def = self._format(tournament)
            teams, pools, _matches = self._phase_scope(tournament, format_def, phase)
            overrides = tournament.standings_overrides.setdefault(phase, {})
            if pool_name is not None:
                pool = next((pool for pool in pools if pool.name == pool_name), None)
                if pool is None:
                    raise NotFoundError(f'Pool {pool_name} not found in {phase}')
                order = validate_override_order(order, pool.team_ids, f'Pool {pool_name} order')
                overrides.setdefault('pool_order', {})[pool_name] = order
            else:
                order = validate_override_order(order, [team.team_id for team in teams], 'Overall order')
                overrides['overall_order'] = order
            self._sync_plan(tournament, events, format_def)
            return dict(overrides)

    def clear_standings_override(self, tournament_id: str, phase: str, pool_name: Optional[str] = None) -> Dict:
        with self._mutation(tournament_id) as (tournament, events, _):
            overrides = tournament.standings_overrides.get(phase, {})
            if pool_name is not None:
                overrides.get('pool_order', {}).pop(pool_name, None)
                if not overrides.get('pool_order'):
                    overrides.pop('pool_order', None)
            else:
                overrides.pop('overall_order', None)
            if overrides:
                tournament.standings_overrides[phase] = overrides
            else:
                tournament.standings_overrides.pop(phase, None)
            self._sync_plan(tournament, events)
            return dict(overrides)

    # --------------------------------------------------------------- playoffs

    def _check_seeding_complete(self, tournament: Tournament, format_def: Dict) -> None:
        overall_order = tournament.standings_overrides.get(CUMULATIVE_PHASE, {}).get('overall_order')
        if overall_order:
            try:
                validate_override_order(overall_order, [team.team_id for team in tournament.teams])
                return
            except ValidationError:
                logger.warning('Ignoring stale cumulative overall override while seeding playoffs')

        missing = []
        for stage in format_def['stages']:
            if stage['type'] == 'playoffs':
                continue
            stage_matches = tournament.matches_for_stage(stage['key'])
            if not stage_matches:
                missing.append(f"{stage['key']} has no matches")
                continue
            pending = [match for match in stage_matches if not match.is_final]
            if pending:
                missing.append(f"{stage['key']} has {len(pending)} unfinished matches")
        if missing:
            raise ValidationError('Cannot seed playoffs: ' + '; '.join(missing), details={'missing': missing})

    def generate_playoffs(self, tournament_id: str, force: bool = False) -> Dict:
        """Seed every bracket from cumulative overall standings and schedule it."""
        with self._mutation(tournament_id) as (tournament, events, renamed):
            format_def = self._format(tournament)
            playoff_stages = stages_of_type(format_def, 'playoffs')
            if not playoff_stages:
                raise ValidationError(f"Format '{format_def['id']}' has no playoff stage")
            stage = playoff_stages[0]
            if tournament.matches_for_stage(stage['key']):
                if not force:
                    raise ConflictError('Playoff matches already exist; re-run with force to regenerate')
                self._drop_stage_matches(tournament, stage['key'])

            self._check_seeding_complete(tournament, format_def)
            teams, pools, matches = self._phase_scope(tournament, format_def, CUMULATIVE_PHASE)
            overall = compute_standings_bundle(teams, pools, matches,
                                               tournament.standings_overrides.get(CUMULATIVE_PHASE))['overall']
            seeds = build_seed_assignments(overall, stage['brackets'])

            plans = []
            for bracket_def in stage['brackets']:
                plans.extend(apply_seed_assignments(build_bracket_plan(bracket_def), seeds[bracket_def['key']]))
            start = self._next_round_block(tournament, format_def, stage['key'])
            created = self._allocator(tournament).allocate_playoffs(stage['key'], plans, start)
            tournament.matches.extend(created)
            progression = recompute_bracket_progression(tournament.matches, tournament.teams_by_id())
            renamed.extend(progression.renamed_match_ids)

            events.append((MATCHES_GENERATED, {'stage_key': stage['key'],
                                               'match_ids': [match.match_id for match in created]}))
            events.append((PLAYOFFS_BRACKET_UPDATED, {'brackets': [b['key'] for b in stage['brackets']]}))
            self._sync_plan(tournament, events, format_def)
            return {
                'seeds': {key: [seed.to_dict() for seed in bracket_seeds] for key, bracket_seeds in seeds.items()},
                'match_ids': [match.match_id for match in created],
            }

    def get_bracket_view(self, tournament_id: str) -> Dict:
        tournament = self.store.load(tournament_id)
        view = build_bracket_view(tournament.matches)
        names = {team.team_id: team.display_name for team in tournament.teams}
        for bracket in view.values():
            bracket['seed_names'] = {seed: names.get(team_id) for seed, team_id in bracket['seeds'].items()}
        return view

    # --------------------------------------------------------------- schedule

    def sync_schedule_plan(self, tournament_id: str) -> Dict:
        with self._mutation(tournament_id) as (tournament, events, _):
            return self._sync_plan(tournament, events).to_dict()

    def get_schedule_plan(self, tournament_id: str) -> List[Dict]:
        """Stored plan slots, each with a formatted ``start_time``."""
        tournament = self.store.load(tournament_id)
        slots = []
        for slot in tournament.schedule_plan:
            data = slot.to_dict()
            data['start_time'] = format_clock_time(slot.time_index) if slot.time_index is not None else None
            slots.append(data)
        return slots

    def get_schedule(self, tournament_id: str) -> Dict:
        """Court-by-court grid of the scheduled matches with clock times."""
        tournament = self.store.load(tournament_id)
        names = {team.team_id: team.display_name for team in tournament.teams}
        return self._allocator(tournament).get_schedule_output(tournament.matches, names)
