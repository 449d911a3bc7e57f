"""
Unit tests for match status transitions and finalization.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tournament.errors import ConflictError, IncompleteResultError, ValidationError
from tournament.lifecycle import finalize_match, set_match_refs, unfinalize_match, update_match_status
from tournament.models import Match

THREE_SETS = [[25, 20], [18, 25], [15, 10]]


def pool_match(status='scheduled'):
    return Match('m1', 'pool_play_1', pool_name='A', team_a_id='t1', team_b_id='t2',
                 ref_team_ids=['t3'], status=status)


class TestStatus:
    """Tests for update_match_status."""

    def test_going_live_stamps_start(self):
        """The first switch to live records started_at."""
        match = pool_match()
        assert update_match_status(match, 'live') is True
        assert match.status == 'live'
        assert match.started_at

    def test_same_status_is_noop(self):
        """Repeating the current status changes nothing."""
        assert update_match_status(pool_match('live'), 'live') is False

    def test_status_is_normalized(self):
        """Case and whitespace are ignored."""
        match = pool_match()
        update_match_status(match, ' Ended ')
        assert match.status == 'ended'
        assert match.ended_at

    def test_unknown_status(self):
        """Only known statuses are accepted."""
        with pytest.raises(ValidationError):
            update_match_status(pool_match(), 'paused')

    def test_final_needs_finalize(self):
        """final is not reachable through status updates."""
        with pytest.raises(ValidationError, match='finalize'):
            update_match_status(pool_match(), 'final')

    def test_final_match_is_locked(self):
        """A finalized match must be unfinalized first."""
        match = finalize_match(pool_match('ended'), THREE_SETS)
        with pytest.raises(ConflictError):
            update_match_status(match, 'live')


class TestFinalize:
    """Tests for finalize_match and unfinalize_match."""

    def test_finalize_records_result(self):
        """A 2-1 match stores sets, points and the actor."""
        match = finalize_match(pool_match('ended'), THREE_SETS, actor='desk')
        assert match.status == 'final'
        assert match.result.winner_team_id == 't1'
        assert match.result.loser_team_id == 't2'
        assert (match.result.sets_won_a, match.result.sets_won_b) == (2, 1)
        assert (match.result.points_for_a, match.result.points_for_b) == (58, 55)
        assert match.finalized_by == 'desk'
        assert match.finalized_at

    def test_must_be_ended(self):
        """Live matches cannot be finalized without override."""
        with pytest.raises(ConflictError, match='ended'):
            finalize_match(pool_match('live'), THREE_SETS)
        assert finalize_match(pool_match('live'), THREE_SETS, override=True).status == 'final'

    def test_refinalize_requires_override(self):
        """A second finalize is a conflict unless overridden."""
        match = finalize_match(pool_match('ended'), THREE_SETS)
        with pytest.raises(ConflictError):
            finalize_match(match, [[20, 25], [20, 25]])
        finalize_match(match, [[20, 25], [20, 25]], override=True)
        assert match.result.winner_team_id == 't2'

    def test_invalid_score_leaves_match_untouched(self):
        """A rejected result writes nothing."""
        match = pool_match('ended')
        with pytest.raises(IncompleteResultError):
            finalize_match(match, [[25, 20]])
        assert match.status == 'ended'
        assert match.result is None

    def test_unfinalize_reverses_finalize(self):
        """Unfinalize returns the match to scheduled without a result."""
        match = finalize_match(pool_match('ended'), THREE_SETS, actor='desk')
        unfinalize_match(match)
        assert match.status == 'scheduled'
        assert match.result is None
        assert match.finalized_at is None
        assert match.finalized_by is None

    def test_unfinalize_requires_final(self):
        """Only final matches can be unfinalized."""
        with pytest.raises(ConflictError):
            unfinalize_match(pool_match('ended'))


class TestRefs:
    """Tests for set_match_refs."""

    def test_manual_refs(self):
        """Manual refs are stored once and marked as not suggested."""
        match = pool_match()
        match.refs_suggested = True
        set_match_refs(match, ['t4', 't4'], ['t1', 't2', 't3', 't4'])
        assert match.ref_team_ids == ['t4']
        assert match.refs_suggested is False
        assert match.refs_manual is True

    def test_player_cannot_ref_own_match(self):
        """A participant is not a valid referee."""
        with pytest.raises(ValidationError, match='own match'):
            set_match_refs(pool_match(), ['t1'], ['t1', 't2', 't3'])

    def test_unknown_ref(self):
        """Referees must belong to the tournament."""
        with pytest.raises(ValidationError):
            set_match_refs(pool_match(), ['zz'], ['t1', 't2'])
