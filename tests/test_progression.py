"""
Unit tests for bracket progression and cascading invalidation.
"""
import logging
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import A_WINS, B_WINS, make_teams
from tournament.allocation import AllocationManager
from tournament.elimination import apply_seed_assignments, build_bracket_plan
from tournament.errors import ValidationError
from tournament.lifecycle import finalize_match, set_match_refs, unfinalize_match
from tournament.models import BracketSeed, Court, Match
from tournament.progression import order_by_dependencies, recompute_bracket_progression, resolve_source_team
from tournament.settings import get_default_settings

TEAMS = {team.team_id: team for team in make_teams(4)}


def four_team_bracket(key='gold'):
    """Semifinals t1 v t4 and t2 v t3 feeding a final."""
    plans = build_bracket_plan({'key': key, 'type': 'single_elim', 'size': 4})
    plans = apply_seed_assignments(plans, [BracketSeed(key, n, f't{n}', n) for n in range(1, 5)])
    manager = AllocationManager([Court('SRC-1'), Court('SRC-2')], get_default_settings())
    matches = manager.allocate_playoffs('playoffs', plans)
    return matches, {match.bracket_match_key: match for match in matches}


def finish(match, sets):
    match.status = 'ended'
    return finalize_match(match, sets)


class TestResolveSource:
    """Tests for resolve_source_team."""

    def test_unfinished_source_resolves_to_nothing(self):
        """A scheduled source has no winner yet."""
        assert resolve_source_team(Match('m1', 'playoffs', team_a_id='t1', team_b_id='t2'), 'winner') is None
        assert resolve_source_team(None, 'winner') is None

    def test_winner_and_loser(self):
        """Slots pick the right side of the result."""
        match = finish(Match('m1', 'playoffs', team_a_id='t1', team_b_id='t2', status='ended'), B_WINS)
        assert resolve_source_team(match, 'winner') == 't2'
        assert resolve_source_team(match, 'loser') == 't1'


class TestRecompute:
    """Tests for recompute_bracket_progression."""

    def test_winners_fill_final_and_loser_refs(self):
        """Semifinal winners play the final; the first semifinal loser refs."""
        matches, by_key = four_team_bracket()
        finish(by_key['gold:R1:M1'], A_WINS)
        finish(by_key['gold:R1:M2'], B_WINS)
        result = recompute_bracket_progression(matches, TEAMS)

        final = by_key['gold:R2:M1']
        assert (final.team_a_id, final.team_b_id) == ('t1', 't3')
        assert final.ref_team_ids == ['t4']
        assert final.refs_suggested is True
        assert result.updated_match_ids == [final.match_id]
        assert result.cleared_match_ids == []

    def test_partial_resolution(self):
        """One finished semifinal fills one side only."""
        matches, by_key = four_team_bracket()
        finish(by_key['gold:R1:M2'], A_WINS)
        recompute_bracket_progression(matches, TEAMS)
        final = by_key['gold:R2:M1']
        assert (final.team_a_id, final.team_b_id) == (None, 't2')
        assert final.ref_team_ids == []

    def test_second_pass_changes_nothing(self):
        """Progression is idempotent."""
        matches, by_key = four_team_bracket()
        finish(by_key['gold:R1:M1'], A_WINS)
        finish(by_key['gold:R1:M2'], B_WINS)
        recompute_bracket_progression(matches, TEAMS)
        again = recompute_bracket_progression(matches, TEAMS)
        assert again.updated_match_ids == []
        assert again.cleared_match_ids == []

    def test_changed_winner_clears_downstream_result(self):
        """Correcting a semifinal invalidates the final that was already played."""
        matches, by_key = four_team_bracket()
        semi = by_key['gold:R1:M1']
        final = by_key['gold:R2:M1']
        finish(semi, A_WINS)
        finish(by_key['gold:R1:M2'], B_WINS)
        recompute_bracket_progression(matches, TEAMS)
        finish(final, A_WINS)

        unfinalize_match(semi)
        finalize_match(semi, B_WINS, override=True)
        result = recompute_bracket_progression(matches, TEAMS)

        assert (final.team_a_id, final.team_b_id) == ('t4', 't3')
        assert final.result is None
        assert final.status == 'scheduled'
        assert final.ref_team_ids == ['t1']
        assert result.cleared_match_ids == [final.match_id]
        assert result.renamed_match_ids == [final.match_id]

    def test_unfinalized_source_empties_slot(self):
        """Removing a semifinal result empties the dependent side."""
        matches, by_key = four_team_bracket()
        semi = by_key['gold:R1:M1']
        finish(semi, A_WINS)
        recompute_bracket_progression(matches, TEAMS)
        unfinalize_match(semi)
        recompute_bracket_progression(matches, TEAMS)
        assert by_key['gold:R2:M1'].team_a_id is None

    def test_manual_refs_are_kept(self):
        """A manually assigned referee is never replaced by a suggestion."""
        matches, by_key = four_team_bracket()
        final = by_key['gold:R2:M1']
        final.ref_team_ids = ['t2']
        final.refs_suggested = False
        finish(by_key['gold:R1:M1'], A_WINS)
        recompute_bracket_progression(matches, TEAMS)
        assert final.ref_team_ids == ['t2']

    def test_manually_cleared_refs_stay_empty(self):
        """Clearing refs by hand is a manual assignment too."""
        matches, by_key = four_team_bracket()
        final = by_key['gold:R2:M1']
        set_match_refs(final, [], TEAMS)
        finish(by_key['gold:R1:M1'], A_WINS)
        result = recompute_bracket_progression(matches, TEAMS)
        assert final.team_a_id == 't1'
        assert final.ref_team_ids == []
        assert final.refs_manual is True
        assert result.updated_match_ids == [final.match_id]

    def test_bracket_filter(self):
        """Only the named bracket is recomputed."""
        gold, gold_keys = four_team_bracket('gold')
        silver, silver_keys = four_team_bracket('silver')
        finish(gold_keys['gold:R1:M1'], A_WINS)
        finish(silver_keys['silver:R1:M1'], A_WINS)
        recompute_bracket_progression(gold + silver, TEAMS, bracket='silver')
        assert silver_keys['silver:R2:M1'].team_a_id == 't1'
        assert gold_keys['gold:R2:M1'].team_a_id is None

    def test_cycle_rejected(self):
        """Two matches feeding each other cannot be ordered."""
        matches = [
            Match('m1', 'playoffs', bracket='gold', bracket_match_key='gold:R1:M1',
                  team_a_from_match_key='gold:R1:M2', team_a_from_slot='winner'),
            Match('m2', 'playoffs', bracket='gold', bracket_match_key='gold:R1:M2',
                  team_a_from_match_key='gold:R1:M1', team_a_from_slot='winner'),
        ]
        with pytest.raises(ValidationError, match='cycle'):
            order_by_dependencies(matches)


class TestScoreboardSync:
    """Tests for scoreboard name pushes."""

    def test_renamed_matches_are_pushed(self):
        """Each renamed match is sent with display names and a reset."""
        calls = []
        matches, by_key = four_team_bracket()
        finish(by_key['gold:R1:M1'], A_WINS)
        recompute_bracket_progression(matches, TEAMS,
                                      scoreboard_sync=lambda match, a, b, reset_state: calls.append(
                                          (match.bracket_match_key, a, b, reset_state)))
        assert calls == [('gold:R2:M1', 'T1', 'TBD', True)]

    def test_sync_failure_is_logged(self, caplog):
        """A failing scoreboard never fails the progression."""
        def broken(*args, **kwargs):
            raise RuntimeError('scoreboard offline')

        matches, by_key = four_team_bracket()
        finish(by_key['gold:R1:M1'], A_WINS)
        with caplog.at_level(logging.WARNING):
            result = recompute_bracket_progression(matches, TEAMS, scoreboard_sync=broken)
        assert by_key['gold:R2:M1'].team_a_id == 't1'
        assert result.updated_match_ids
        assert 'Scoreboard sync failed' in caplog.text
