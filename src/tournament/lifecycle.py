"""
Match status transitions, finalize and unfinalize.

scheduled -> live -> ended -> final. ``final`` is reached only through
``finalize_match`` and left only through ``unfinalize_match``.
"""
import datetime
import logging
from typing import Iterable, List, Optional

from .errors import ConflictError, ValidationError
from .models import MATCH_STATUSES, Match
from .results import compute_match_result

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = ('scheduled', 'live', 'ended')


def _timestamp(now: Optional[datetime.datetime] = None) -> str:
    return (now or datetime.datetime.now(datetime.timezone.utc)).isoformat()


def update_match_status(match: Match, status: str, now: Optional[datetime.datetime] = None) -> bool:
    """Move a match between non-final statuses. Returns True when it changed."""
    status = str(status or '').strip().lower()
    if status not in MATCH_STATUSES:
        raise ValidationError(f"Invalid status '{status}'")
    if status == 'final':
        raise ValidationError('Use finalize to set final status')
    if match.status == 'final':
        raise ConflictError('Use unfinalize to clear a finalized result')
    if match.status == status:
        return False

    match.status = status
    if status == 'live' and not match.started_at:
        match.started_at = _timestamp(now)
    elif status == 'ended':
        match.ended_at = _timestamp(now)
    return True


def finalize_match(match: Match, sets, actor: Optional[str] = None, override: bool = False,
                   now: Optional[datetime.datetime] = None) -> Match:
    """
    Record the final result of a match.

    The result is computed before anything is written, so an invalid score
    leaves the match untouched.

    Raises:
        ConflictError: already final, or not yet ended, without ``override``.
        IncompleteResultError / ValidationError: from result evaluation.
    """
    if match.status == 'final' and not override:
        raise ConflictError('Match is already finalized; pass override to re-finalize')
    if match.status not in ('ended', 'final') and not override:
        raise ConflictError('Match must be ended before finalizing')

    result = compute_match_result(match.team_a_id, match.team_b_id, sets)

    stamp = _timestamp(now)
    match.result = result
    match.status = 'final'
    match.ended_at = match.ended_at or stamp
    match.finalized_at = stamp
    match.finalized_by = actor
    logger.info(f'Finalized match {match.match_id}: winner {result.winner_team_id}')
    return match


def unfinalize_match(match: Match) -> Match:
    """Clear a final result and return the match to ``scheduled``."""
    if match.status != 'final':
        raise ConflictError('Only finalized matches can be unfinalized')
    match.result = None
    match.status = 'scheduled'
    match.finalized_at = None
    match.finalized_by = None
    logger.info(f'Unfinalized match {match.match_id}')
    return match


def set_match_refs(match: Match, ref_team_ids: List[str], known_team_ids: Iterable[str]) -> Match:
    """Manually assign referees. A manual assignment is never overwritten by suggestions."""
    if not isinstance(ref_team_ids, list) or any(not isinstance(team_id, str) for team_id in ref_team_ids):
        raise ValidationError('ref_team_ids must be a list of team ids')
    known = set(known_team_ids)
    unknown = [team_id for team_id in ref_team_ids if team_id not in known]
    if unknown:
        raise ValidationError(f'ref_team_ids must belong to this tournament: {", ".join(unknown)}')
    playing = [team_id for team_id in ref_team_ids if team_id in match.participants()]
    if playing:
        raise ValidationError(f'Team {playing[0]} cannot referee its own match')

    match.ref_team_ids = list(dict.fromkeys(ref_team_ids))
    match.refs_suggested = False
    match.refs_manual = True
    return match
