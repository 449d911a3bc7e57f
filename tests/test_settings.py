"""
Unit tests for settings loading and validation.
"""
import pytest
import sys
import os
import yaml

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tournament.errors import ValidationError
from tournament.settings import courts_from_settings, get_default_settings, load_settings, normalize_settings


class TestNormalize:
    """Tests for normalize_settings."""

    def test_defaults(self):
        """Empty input yields the defaults."""
        assert normalize_settings(None) == get_default_settings()

    def test_none_values_keep_defaults(self):
        """Explicit nulls do not erase defaults."""
        assert normalize_settings({'day_start_time': None})['day_start_time'] == '09:00'

    def test_courts_are_normalized(self):
        """Court codes are upper-cased and filled in."""
        settings = normalize_settings({'courts': ['src-1', {'code': 'vc-1', 'facility': 'VC', 'enabled': False}]})
        assert settings['courts'] == [
            {'code': 'SRC-1', 'facility': None, 'name': 'SRC-1', 'enabled': True},
            {'code': 'VC-1', 'facility': 'VC', 'name': 'VC-1', 'enabled': False},
        ]

    def test_duplicate_courts(self):
        """Court codes must be unique."""
        with pytest.raises(ValidationError):
            normalize_settings({'courts': ['SRC-1', 'src-1']})

    def test_bad_times_and_durations(self):
        """Clock times and durations are validated."""
        with pytest.raises(ValidationError):
            normalize_settings({'day_start_time': 'noon'})
        with pytest.raises(ValidationError):
            normalize_settings({'match_duration_minutes': 0})
        with pytest.raises(ValidationError):
            normalize_settings({'lunch_start_time': '25:00'})

    def test_not_a_mapping(self):
        """Settings must be a mapping."""
        with pytest.raises(ValidationError):
            normalize_settings(['courts'])


class TestLoad:
    """Tests for load_settings and courts_from_settings."""

    def test_missing_file_gives_defaults(self, tmp_path):
        """A missing file is not an error."""
        assert load_settings(str(tmp_path / 'missing.yaml')) == get_default_settings()

    def test_yaml_file_merges_over_defaults(self, tmp_path):
        """Values from YAML override the defaults."""
        path = tmp_path / 'settings.yaml'
        path.write_text(yaml.dump({'match_duration_minutes': 45, 'courts': ['SRC-1']}))
        settings = load_settings(str(path))
        assert settings['match_duration_minutes'] == 45
        assert settings['day_start_time'] == '09:00'
        assert [court.code for court in courts_from_settings(settings)] == ['SRC-1']
