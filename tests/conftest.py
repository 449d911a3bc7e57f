"""
Shared pytest fixtures for the tournament engine tests.

Running tests:
    pytest tests/
"""
import itertools
import pytest
import sys
import os

# Add src directory to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from tournament.manager import TournamentManager
from tournament.models import Court, Match, Pool, Team
from tournament.notifications import Notifier
from tournament.store import TournamentStore


def make_teams(count):
    """Teams t1..tN with roster order 1..N."""
    return [Team(f"t{i}", f"Team {i}", short_name=f"T{i}", order_index=i) for i in range(1, count + 1)]


def roster_payload(count):
    return [team.to_dict() for team in make_teams(count)]


def court_settings(count):
    return {'courts': [{'code': f'SRC-{i}', 'facility': 'SRC'} for i in range(1, count + 1)]}


def final_match(match_id, team_a, team_b, sets, stage_key='pool_play_1', pool_name='A', **fields):
    """A finalized pool match built through the real result evaluator."""
    from tournament.lifecycle import finalize_match
    match = Match(match_id, stage_key, pool_name=pool_name, team_a_id=team_a, team_b_id=team_b,
                  status='ended', **fields)
    return finalize_match(match, sets)


A_WINS = [[25, 20], [25, 20]]
B_WINS = [[20, 25], [20, 25]]


@pytest.fixture
def teams12():
    return make_teams(12)


@pytest.fixture
def three_courts():
    return [Court('SRC-1', 'SRC'), Court('SRC-2', 'SRC'), Court('SRC-3', 'SRC')]


@pytest.fixture
def pool_of_three():
    return Pool('pool_play_1:A', 'pool_play_1', 'A', 3, ['t1', 't2', 't3'], home_court='SRC-1')


@pytest.fixture
def pool_of_four():
    return Pool('pool_play_1:A', 'pool_play_1', 'A', 4, ['t1', 't2', 't3', 't4'], home_court='SRC-1')


@pytest.fixture
def id_factory():
    """Deterministic ids: m1, m2, ..."""
    counter = itertools.count(1)
    return lambda: f"m{next(counter)}"


@pytest.fixture
def store(tmp_path):
    return TournamentStore(str(tmp_path))


@pytest.fixture
def events():
    return []


@pytest.fixture
def manager(store, events, id_factory):
    return TournamentManager(store, notifier=Notifier(events.append), id_factory=id_factory)


@pytest.fixture
def client(tmp_path, monkeypatch):
    """Flask test client writing into a temporary data directory."""
    import app as app_module
    monkeypatch.setattr(app_module, 'DATA_DIR', str(tmp_path))
    app_module.app.config['TESTING'] = True
    with app_module.app.test_client() as client:
        yield client
