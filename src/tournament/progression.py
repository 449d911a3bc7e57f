"""
Bracket progression: fill dependent match slots from upstream results and
invalidate downstream results when an upstream outcome changes.

The pass walks the bracket dependency graph in topological order, so a
cleared match is seen as unresolved by everything that depends on it within
the same pass. Running the pass twice yields no further changes.
"""
import heapq
import logging
from typing import Callable, Dict, List, Optional

from .errors import ValidationError
from .models import Match, Team

logger = logging.getLogger(__name__)

DEPENDENCY_FIELDS = (
    ('team_a_from_match_key', 'team_a_from_slot'),
    ('team_b_from_match_key', 'team_b_from_slot'),
    ('ref_from_match_key', 'ref_from_slot'),
)


class ProgressionResult:
    def __init__(self):
        self.updated_match_ids: List[str] = []
        self.cleared_match_ids: List[str] = []
        self.renamed_match_ids: List[str] = []

    @property
    def affected_match_ids(self) -> List[str]:
        return list(dict.fromkeys(self.updated_match_ids + self.cleared_match_ids))

    def to_dict(self):
        return {'updated_match_ids': list(self.updated_match_ids),
                'cleared_match_ids': list(self.cleared_match_ids)}

    def __repr__(self):
        return f"ProgressionResult(updated={self.updated_match_ids}, cleared={self.cleared_match_ids})"


def resolve_source_team(source: Optional[Match], slot: Optional[str]) -> Optional[str]:
    """Winner or loser of ``source``, or None while it has no final result."""
    if source is None or not source.is_final:
        return None
    if slot == 'loser':
        return source.result.loser_team_id
    return source.result.winner_team_id


def order_by_dependencies(matches: List[Match]) -> List[Match]:
    """
    Topological order of bracket matches; ties broken by round, round-block,
    court, then key.
    """
    by_key = {match.bracket_match_key: match for match in matches}
    dependents: Dict[str, List[str]] = {key: [] for key in by_key}
    pending: Dict[str, int] = {key: 0 for key in by_key}
    for match in matches:
        sources = {getattr(match, key_field) for key_field, _ in DEPENDENCY_FIELDS}
        for source_key in sources:
            if source_key and source_key in by_key:
                dependents[source_key].append(match.bracket_match_key)
                pending[match.bracket_match_key] += 1

    def sort_key(key):
        match = by_key[key]
        return (match.round or 0, match.round_block or 0, match.court or '', key)

    ready = [sort_key(key) for key, count in pending.items() if count == 0]
    heapq.heapify(ready)
    ordered = []
    while ready:
        key = heapq.heappop(ready)[-1]
        ordered.append(by_key[key])
        for dependent in dependents[key]:
            pending[dependent] -= 1
            if pending[dependent] == 0:
                heapq.heappush(ready, sort_key(dependent))

    if len(ordered) != len(matches):
        stuck = sorted(key for key, count in pending.items() if count > 0)
        raise ValidationError(f'Bracket dependencies contain a cycle: {", ".join(stuck)}')
    return ordered


def _clear_result(match: Match) -> None:
    match.result = None
    match.status = 'scheduled'
    match.finalized_at = None
    match.finalized_by = None


def sync_scoreboard_names(scoreboard_sync: Optional[Callable], matches: List[Match],
                          teams_by_id: Dict[str, Team]) -> None:
    """Push new participant names to linked scoreboards; failures are logged, never raised."""
    if scoreboard_sync is None:
        return
    for match in matches:
        names = []
        for team_id in (match.team_a_id, match.team_b_id):
            team = teams_by_id.get(team_id) if team_id else None
            names.append(team.display_name if team else 'TBD')
        try:
            scoreboard_sync(match, names[0], names[1], reset_state=True)
        except Exception:
            logger.warning(f'Scoreboard sync failed for match {match.match_id}', exc_info=True)


def recompute_bracket_progression(matches: List[Match], teams_by_id: Optional[Dict[str, Team]] = None,
                                  bracket: Optional[str] = None,
                                  scoreboard_sync: Optional[Callable] = None) -> ProgressionResult:
    """
    Re-resolve every dependent slot of the bracket matches in ``matches``.

    Mutates the given Match objects in place. When a match's participants
    change, any result it held is cleared (and that clearing cascades to its
    own dependents). Suggested referees are applied only when no referee was
    set manually.
    """
    result = ProgressionResult()
    all_bracket_matches = [match for match in matches if match.is_bracket_match]
    by_key = {match.bracket_match_key: match for match in all_bracket_matches}
    selected = [match for match in all_bracket_matches if bracket is None or match.bracket == bracket]

    renamed = []
    for match in order_by_dependencies(selected):
        touched = False
        next_a = match.team_a_id
        next_b = match.team_b_id
        if match.team_a_from_match_key:
            next_a = resolve_source_team(by_key.get(match.team_a_from_match_key), match.team_a_from_slot)
        if match.team_b_from_match_key:
            next_b = resolve_source_team(by_key.get(match.team_b_from_match_key), match.team_b_from_slot)

        if (next_a, next_b) != (match.team_a_id, match.team_b_id):
            match.team_a_id, match.team_b_id = next_a, next_b
            touched = True
            renamed.append(match)
            result.renamed_match_ids.append(match.match_id)
            if match.result is not None:
                _clear_result(match)
                result.cleared_match_ids.append(match.match_id)
            elif match.status != 'scheduled':
                match.status = 'scheduled'

        if (match.ref_from_match_key and not match.refs_manual
                and (not match.ref_team_ids or match.refs_suggested)):
            suggested = resolve_source_team(by_key.get(match.ref_from_match_key), match.ref_from_slot)
            if suggested in match.participants():
                suggested = None
            next_refs = [suggested] if suggested else []
            if next_refs != match.ref_team_ids:
                match.ref_team_ids = next_refs
                match.refs_suggested = bool(suggested)
                touched = True

        if touched:
            result.updated_match_ids.append(match.match_id)

    if result.updated_match_ids:
        logger.info(f'Bracket progression updated {len(result.updated_match_ids)} matches, '
                    f'cleared {len(result.cleared_match_ids)}')
    sync_scoreboard_names(scoreboard_sync, renamed, teams_by_id or {})
    return result
