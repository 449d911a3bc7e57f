"""
Best-of-3 set/match result evaluation.
"""
from typing import List, Optional, Tuple

from .errors import IncompleteResultError, ValidationError
from .models import MatchResult

SETS_TO_WIN = 2
MIN_SETS = 2
MAX_SETS = 3


def normalize_set_scores(sets) -> List[Tuple[int, int]]:
    """Accept ``[[25, 20], ...]`` or ``[{'a': 25, 'b': 20}, ...]`` and return score pairs."""
    if not isinstance(sets, (list, tuple)):
        raise ValidationError('Set scores must be a list')

    normalized = []
    for index, set_score in enumerate(sets, start=1):
        if isinstance(set_score, dict):
            pair = (set_score.get('a'), set_score.get('b'))
        elif isinstance(set_score, (list, tuple)) and len(set_score) == 2:
            pair = tuple(set_score)
        else:
            raise ValidationError(f'Set {index} must have exactly two scores')
        for score in pair:
            if isinstance(score, bool) or not isinstance(score, int):
                raise ValidationError(f'Set {index} scores must be integers')
            if score < 0:
                raise ValidationError(f'Set {index} scores cannot be negative')
        normalized.append(pair)
    return normalized


def determine_winner(sets) -> Tuple[Optional[int], Tuple[int, int]]:
    """Determine the leader from partial set scores. Returns (winner_index, set_wins).

    Lenient: unfinished or tied sets are skipped, so this is suitable for live
    previews. Use ``compute_match_result`` to finalize.
    """
    if not sets:
        return None, (0, 0)

    wins = [0, 0]
    for set_score in sets:
        if len(set_score) >= 2 and set_score[0] is not None and set_score[1] is not None:
            if set_score[0] > set_score[1]:
                wins[0] += 1
            elif set_score[1] > set_score[0]:
                wins[1] += 1

    if wins[0] >= SETS_TO_WIN:
        return 0, tuple(wins)
    elif wins[1] >= SETS_TO_WIN:
        return 1, tuple(wins)
    return None, tuple(wins)


def compute_match_result(team_a_id, team_b_id, sets) -> MatchResult:
    """
    Evaluate a completed best-of-3 match.

    The match must consist of 2 or 3 sets, no set may be tied, and the winner
    must reach exactly two set wins on the last recorded set.

    Raises:
        ValidationError: teams missing or scores malformed.
        IncompleteResultError: the sets do not resolve to a best-of-3 winner.
    """
    if not team_a_id or not team_b_id:
        raise ValidationError('Both teams must be assigned before a result can be recorded')

    scores = normalize_set_scores(sets)
    if not MIN_SETS <= len(scores) <= MAX_SETS:
        raise IncompleteResultError(f'A best-of-3 match needs {MIN_SETS} or {MAX_SETS} sets, got {len(scores)}')

    sets_won_a = 0
    sets_won_b = 0
    for set_no, (score_a, score_b) in enumerate(scores, start=1):
        if sets_won_a == SETS_TO_WIN or sets_won_b == SETS_TO_WIN:
            raise IncompleteResultError(f'Set {set_no} was recorded after the match was already decided')
        if score_a == score_b:
            raise IncompleteResultError(f'Set {set_no} ended in a tie and cannot be finalized')
        if score_a > score_b:
            sets_won_a += 1
        else:
            sets_won_b += 1

    if SETS_TO_WIN not in (sets_won_a, sets_won_b):
        raise IncompleteResultError('Incomplete best-of-3: no team reached two set wins')

    points_for_a = sum(score_a for score_a, _ in scores)
    points_for_b = sum(score_b for _, score_b in scores)
    a_won = sets_won_a == SETS_TO_WIN

    return MatchResult(
        winner_team_id=team_a_id if a_won else team_b_id,
        loser_team_id=team_b_id if a_won else team_a_id,
        sets_won_a=sets_won_a,
        sets_won_b=sets_won_b,
        sets_played=len(scores),
        points_for_a=points_for_a,
        points_against_a=points_for_b,
        points_for_b=points_for_b,
        points_against_b=points_for_a,
        set_scores=[{'set_no': set_no, 'a': a, 'b': b} for set_no, (a, b) in enumerate(scores, start=1)],
    )
