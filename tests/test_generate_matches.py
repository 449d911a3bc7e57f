"""
Unit tests for the command line schedule preview.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from conftest import make_teams
from generate_matches import build_preview, load_roster, main
from tournament.errors import ValidationError


def write_roster(tmp_path, data):
    path = tmp_path / 'teams.yaml'
    path.write_text(yaml.dump(data, default_flow_style=False))
    return str(path)


class TestLoadRoster:
    """Tests for reading roster files."""

    def test_list_of_names(self, tmp_path):
        """Plain names get generated ids in file order."""
        teams = load_roster(write_roster(tmp_path, ['Aces', 'Blocks', 'Diggers']))
        assert [(t.team_id, t.name, t.order_index) for t in teams] == [
            ('t1', 'Aces', 1), ('t2', 'Blocks', 2), ('t3', 'Diggers', 3)]

    def test_mapping_with_teams(self, tmp_path):
        """A ``teams`` key with full entries is accepted."""
        teams = load_roster(write_roster(tmp_path, {'teams': [
            {'team_id': 'nn', 'name': 'Net Ninjas', 'short_name': 'NN', 'order_index': 5}]}))
        assert teams[0].display_name == 'NN'
        assert teams[0].order_index == 5

    def test_empty_roster(self, tmp_path):
        """A file without teams is rejected."""
        with pytest.raises(ValidationError):
            load_roster(write_roster(tmp_path, {'teams': []}))


class TestBuildPreview:
    """Tests for build_preview."""

    def test_suggested_format(self):
        """12 teams on three courts preview the 12-team format."""
        preview = build_preview(make_teams(12), ['SRC-1', 'SRC-2', 'SRC-3'])
        assert preview['format']['id'] == 'classic_12_3x4_gold8_silver4_v1'
        assert [pool.team_ids for pool in preview['pools']][0] == ['t1', 't6', 't7', 't12']
        assert len(preview['matches']) == 18
        assert preview['schedule']['SRC-1'][0]['teams'] == ['T1', 'T7']

    def test_explicit_format(self):
        """A named format is used even when others would be suggested."""
        preview = build_preview(make_teams(16), ['SRC-1', 'SRC-2', 'SRC-3', 'SRC-4'],
                                format_id='classic_16_4x4_all16_v1')
        assert len(preview['pools']) == 4
        assert len(preview['matches']) == 24

    def test_no_matching_format(self):
        """Team counts without a format are reported."""
        with pytest.raises(ValidationError, match='No format supports 11 teams'):
            build_preview(make_teams(11), ['SRC-1', 'SRC-2', 'SRC-3'])

    def test_courts_required(self):
        """Without courts nothing can be scheduled."""
        with pytest.raises(ValidationError, match='court'):
            build_preview(make_teams(12), [])


class TestMain:
    """Tests for the CLI entry point."""

    def test_prints_schedule(self, tmp_path, capsys):
        """A valid roster prints pools and court listings."""
        roster = write_roster(tmp_path, [f'Team {i}' for i in range(1, 13)])
        assert main([roster, '--courts', 'SRC-1,SRC-2,SRC-3']) == 0
        out = capsys.readouterr().out
        assert 'Pool A (court SRC-1): Team 1, Team 6, Team 7, Team 12' in out
        assert 'Court SRC-2' in out
        assert 'Total matches: 18' in out

    def test_error_exit_code(self, tmp_path, capsys):
        """Errors are printed to stderr with exit code 1."""
        assert main([str(tmp_path / 'missing.yaml'), '--courts', 'SRC-1']) == 1
        assert 'Error:' in capsys.readouterr().err
