"""
Unit tests for reseeding a pool stage from previous placements.
"""
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import A_WINS, final_match
from tournament.errors import ValidationError
from tournament.formats import get_format, resolve_stage
from tournament.models import Pool, Team
from tournament.reseeding import (build_initial_state, build_rotation_mapping, collect_played_pairs,
                                  compute_source_placements, pair_key, reseed_stage_pools, resolve_rematches)

FORMAT = get_format('classic_15_5x3_reseed_gold_silver_bronze_v1')
COURTS = ['SRC-1', 'SRC-2', 'SRC-3']
NAMES = 'ABCDE'


def source_pools():
    return [Pool(f'pool_play_1:{name}', 'pool_play_1', name, 3, [f'{name.lower()}{i}' for i in (1, 2, 3)])
            for name in NAMES]


def teams_by_id():
    return {team_id: Team(team_id, team_id.upper()) for pool in source_pools() for team_id in pool.team_ids}


def finished_pool_matches():
    """Every pool finishes x1, x2, x3."""
    matches = []
    for name in NAMES:
        prefix = name.lower()
        for a, b in ((1, 2), (1, 3), (2, 3)):
            matches.append(final_match(f'{prefix}{a}{b}', f'{prefix}{a}', f'{prefix}{b}', A_WINS, pool_name=name))
    return matches


def straight_orders():
    return {name: [f'{name.lower()}{i}' for i in (1, 2, 3)] for name in NAMES}


class TestRotation:
    """Tests for the tier rotation."""

    def test_each_tier_from_a_different_pool(self):
        """Target j takes tier t from source (j + t - 1) mod N."""
        mapping = build_rotation_mapping(list(NAMES), list('FGHIJ'), 3)
        assert mapping['F'] == [('A', 1), ('B', 2), ('C', 3)]
        assert mapping['I'] == [('D', 1), ('E', 2), ('A', 3)]
        assert mapping['J'] == [('E', 1), ('A', 2), ('B', 3)]

    def test_pool_count_mismatch(self):
        """Source and target pool counts must agree."""
        with pytest.raises(ValidationError):
            build_rotation_mapping(['A', 'B'], ['F'], 3)

    def test_initial_state_picks_finishers(self):
        """Each slot holds the finisher at its tier."""
        state = build_initial_state(build_rotation_mapping(list(NAMES), list('FGHIJ'), 3), straight_orders())
        assert [entry['team_id'] for entry in state['F']] == ['a1', 'b2', 'c3']

    def test_played_pairs_only_count_final_matches(self):
        """Scheduled matches are not rematches."""
        matches = finished_pool_matches()[:1]
        assert collect_played_pairs(matches) == {pair_key('a1', 'a2')}


class TestPlacements:
    """Tests for compute_source_placements."""

    def test_finished_pools_use_standings(self):
        """Complete pools rank by results."""
        placements = compute_source_placements(source_pools(), teams_by_id(), finished_pool_matches())
        assert placements['C'] == ['c1', 'c2', 'c3']

    def test_unfinished_pools_need_overrides(self):
        """Without results every pool needs a manual order."""
        with pytest.raises(ValidationError) as excinfo:
            compute_source_placements(source_pools(), teams_by_id(), [], {'A': ['a3', 'a2', 'a1']})
        assert len(excinfo.value.details['missing']) == 4

    def test_overrides_cover_unfinished_pools(self):
        """Complete manual orders are used as-is."""
        orders = dict(straight_orders(), A=['a3', 'a2', 'a1'])
        placements = compute_source_placements(source_pools(), teams_by_id(), [], orders)
        assert placements['A'] == ['a3', 'a2', 'a1']

    def test_short_pool_rejected(self):
        """Source pools must be full."""
        pools = source_pools()
        pools[0].team_ids = ['a1', 'a2']
        with pytest.raises(ValidationError, match='exactly 3 teams'):
            compute_source_placements(pools, teams_by_id(), finished_pool_matches())


class TestRematchAvoidance:
    """Tests for the greedy swap search."""

    def state(self):
        return build_initial_state(build_rotation_mapping(list(NAMES), list('FGHIJ'), 3), straight_orders())

    def test_rotation_alone_avoids_pool_rematches(self):
        """Teams from one source pool never share a target pool."""
        outcome = resolve_rematches(self.state(), collect_played_pairs(finished_pool_matches()))
        assert outcome['total_conflicts'] == 0
        assert outcome['attempts'] == 0

    def test_conflict_is_swapped_away(self):
        """a1 already played b2, so pool F trades its second-tier team."""
        played = collect_played_pairs(finished_pool_matches()) | {pair_key('a1', 'b2')}
        outcome = resolve_rematches(self.state(), played)
        assert outcome['total_conflicts'] == 0
        assert [entry['team_id'] for entry in outcome['state']['F']] == ['a1', 'd2', 'c3']
        assert [entry['team_id'] for entry in outcome['state']['H']] == ['c1', 'b2', 'e3']
        assert outcome['attempts'] == 6

    def test_attempt_cap_leaves_warnings(self):
        """With no attempts allowed the rematch is reported."""
        outcome = resolve_rematches(self.state(), {pair_key('a1', 'b2')}, max_attempts=0)
        assert outcome['total_conflicts'] == 1
        assert outcome['warnings']['F'] == [{'team_a_id': 'a1', 'team_b_id': 'b2'}]


class TestReseedStage:
    """Tests for reseed_stage_pools."""

    def test_builds_target_pools(self):
        """pool_play_2 pools are filled and given home courts."""
        stage = resolve_stage(FORMAT, 'pool_play_2')
        result = reseed_stage_pools(stage, source_pools(), teams_by_id(), finished_pool_matches(), COURTS)
        pools = {pool.name: pool for pool in result['pools']}
        assert sorted(pools) == list('FGHIJ')
        assert pools['G'].team_ids == ['b1', 'c2', 'd3']
        assert pools['G'].pool_id == 'pool_play_2:G'
        assert pools['F'].home_court == 'SRC-1'
        assert pools['I'].home_court == 'SRC-1'
        assert all(pool.rematch_warnings == [] for pool in result['pools'])
        assert result['total_rematches'] == 0

    def test_every_team_placed_once(self):
        """All fifteen teams appear exactly once."""
        stage = resolve_stage(FORMAT, 'pool_play_2')
        result = reseed_stage_pools(stage, source_pools(), teams_by_id(), finished_pool_matches(), COURTS)
        placed = [team_id for pool in result['pools'] for team_id in pool.team_ids]
        assert sorted(placed) == sorted(teams_by_id())

    def test_existing_pool_ids_kept(self):
        """Reseeding again keeps the target pools' ids."""
        stage = resolve_stage(FORMAT, 'pool_play_2')
        existing = [Pool('keep-f', 'pool_play_2', 'F', 3)]
        result = reseed_stage_pools(stage, source_pools(), teams_by_id(), finished_pool_matches(), COURTS,
                                    existing_pools=existing)
        assert result['pools'][0].pool_id == 'keep-f'
