"""
Flask JSON API for the volleyball tournament engine.
"""
import os

from flask import Flask, jsonify, request

from tournament.errors import TournamentError, ValidationError
from tournament.formats import list_formats, suggest_formats
from tournament.manager import TournamentManager
from tournament.notifications import Notifier
from tournament.store import TournamentStore

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('TOURNAMENT_DATA_DIR', os.path.join(BASE_DIR, 'data'))


def _log_event(event):
    app.logger.info(f"Event {event['type']} for {event['tournament_code']}")


def get_manager() -> TournamentManager:
    """Manager bound to the current DATA_DIR."""
    return TournamentManager(TournamentStore(DATA_DIR), notifier=Notifier(_log_event))


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Request body must be a JSON object')
    return data


def _flag(data: dict, key: str) -> bool:
    value = data.get(key, False)
    if isinstance(value, str):
        return value.strip().lower() in ('1', 'true', 'yes')
    return bool(value)


@app.errorhandler(TournamentError)
def handle_tournament_error(error):
    if error.status_code >= 500:
        app.logger.error(f'{error.code}: {error.message}')
    else:
        app.logger.warning(f'{request.method} {request.path} rejected ({error.code}): {error.message}')
    return jsonify(error.to_dict()), error.status_code


@app.route('/api/formats', methods=['GET'])
def api_formats():
    """All formats, or the ones suggested for ?team_count=&court_count=."""
    team_count = request.args.get('team_count')
    court_count = request.args.get('court_count')
    if team_count is not None or court_count is not None:
        return jsonify({'formats': suggest_formats(team_count, court_count)})
    return jsonify({'formats': list_formats()})


@app.route('/api/tournaments', methods=['GET'])
def api_list_tournaments():
    return jsonify({'tournaments': get_manager().store.list_ids()})


@app.route('/api/tournaments', methods=['POST'])
def api_create_tournament():
    data = _json_body()
    tournament = get_manager().create_tournament(
        data.get('name'), data.get('format_id'), data.get('settings'), data.get('teams'))
    app.logger.info(f"Created tournament {tournament['tournament_id']}")
    return jsonify(tournament), 201


@app.route('/api/tournaments/<tournament_id>', methods=['GET'])
def api_get_tournament(tournament_id):
    return jsonify(get_manager().get_tournament(tournament_id))


@app.route('/api/tournaments/<tournament_id>/teams', methods=['PUT'])
def api_set_roster(tournament_id):
    data = _json_body()
    return jsonify({'teams': get_manager().set_roster(tournament_id, data.get('teams'))})


@app.route('/api/tournaments/<tournament_id>/settings', methods=['PUT'])
def api_update_settings(tournament_id):
    return jsonify({'settings': get_manager().update_settings(tournament_id, _json_body())})


@app.route('/api/tournaments/<tournament_id>/format', methods=['POST'])
def api_apply_format(tournament_id):
    data = _json_body()
    return jsonify(get_manager().apply_format(tournament_id, data.get('format_id'), _flag(data, 'force')))


@app.route('/api/tournaments/<tournament_id>/stages/<stage_key>/pools/init', methods=['POST'])
def api_init_pools(tournament_id, stage_key):
    data = _json_body()
    return jsonify({'pools': get_manager().init_pools(tournament_id, stage_key, _flag(data, 'force'))})


@app.route('/api/tournaments/<tournament_id>/stages/<stage_key>/pools/autofill', methods=['POST'])
def api_autofill_pools(tournament_id, stage_key):
    data = _json_body()
    return jsonify({'pools': get_manager().autofill_pools(tournament_id, stage_key, _flag(data, 'force'))})


@app.route('/api/tournaments/<tournament_id>/stages/<stage_key>/pools', methods=['PUT'])
def api_set_stage_pools(tournament_id, stage_key):
    data = _json_body()
    return jsonify({'pools': get_manager().set_stage_pools(tournament_id, stage_key, data.get('assignments'))})


@app.route('/api/tournaments/<tournament_id>/stages/<stage_key>/pools/move', methods=['POST'])
def api_move_team(tournament_id, stage_key):
    data = _json_body()
    pools = get_manager().move_team(tournament_id, stage_key, data.get('team_id'),
                                    data.get('target_pool_id'), data.get('over_team_id'))
    return jsonify({'pools': pools})


@app.route('/api/tournaments/<tournament_id>/pools/<pool_id>/teams', methods=['PUT'])
def api_set_pool_teams(tournament_id, pool_id):
    data = _json_body()
    return jsonify(get_manager().set_pool_teams(tournament_id, pool_id, data.get('team_ids')))


@app.route('/api/tournaments/<tournament_id>/pools/swap', methods=['POST'])
def api_swap_pools(tournament_id):
    data = _json_body()
    pools = get_manager().swap_pools(tournament_id, data.get('source_pool_id'), data.get('target_pool_id'))
    return jsonify({'pools': pools})


@app.route('/api/tournaments/<tournament_id>/stages/<stage_key>/reseed', methods=['POST'])
def api_reseed_stage(tournament_id, stage_key):
    data = _json_body()
    return jsonify(get_manager().reseed_stage(tournament_id, stage_key, _flag(data, 'force')))


@app.route('/api/tournaments/<tournament_id>/stages/<stage_key>/matches/generate', methods=['POST'])
def api_generate_stage_matches(tournament_id, stage_key):
    data = _json_body()
    matches = get_manager().generate_stage_matches(tournament_id, stage_key, _flag(data, 'force'))
    return jsonify({'matches': matches}), 201


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/status', methods=['POST'])
def api_update_match_status(tournament_id, match_id):
    data = _json_body()
    return jsonify(get_manager().update_match_status(tournament_id, match_id, data.get('status')))


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/finalize', methods=['POST'])
def api_finalize_match(tournament_id, match_id):
    data = _json_body()
    outcome = get_manager().finalize_match(tournament_id, match_id, data.get('sets'),
                                           actor=data.get('actor'), override=_flag(data, 'override'))
    return jsonify(outcome)


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/unfinalize', methods=['POST'])
def api_unfinalize_match(tournament_id, match_id):
    return jsonify(get_manager().unfinalize_match(tournament_id, match_id))


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/refs', methods=['PUT'])
def api_set_match_refs(tournament_id, match_id):
    data = _json_body()
    return jsonify(get_manager().set_match_refs(tournament_id, match_id, data.get('ref_team_ids')))


@app.route('/api/tournaments/<tournament_id>/standings', methods=['GET'])
def api_get_standings(tournament_id):
    phase = request.args.get('phase', 'pool_play_1')
    return jsonify(get_manager().get_standings(tournament_id, phase))


@app.route('/api/tournaments/<tournament_id>/standings/<phase>/override', methods=['PUT'])
def api_set_standings_override(tournament_id, phase):
    data = _json_body()
    overrides = get_manager().set_standings_override(tournament_id, phase, data.get('order'),
                                                     pool_name=data.get('pool_name'))
    return jsonify({'overrides': overrides})


@app.route('/api/tournaments/<tournament_id>/standings/<phase>/override', methods=['DELETE'])
def api_clear_standings_override(tournament_id, phase):
    overrides = get_manager().clear_standings_override(tournament_id, phase, request.args.get('pool_name'))
    return jsonify({'overrides': overrides})


@app.route('/api/tournaments/<tournament_id>/playoffs/generate', methods=['POST'])
def api_generate_playoffs(tournament_id):
    data = _json_body()
    return jsonify(get_manager().generate_playoffs(tournament_id, _flag(data, 'force'))), 201


@app.route('/api/tournaments/<tournament_id>/playoffs/bracket', methods=['GET'])
def api_bracket_view(tournament_id):
    return jsonify({'brackets': get_manager().get_bracket_view(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/schedule-plan/sync', methods=['POST'])
def api_sync_schedule_plan(tournament_id):
    return jsonify(get_manager().sync_schedule_plan(tournament_id))


@app.route('/api/tournaments/<tournament_id>/schedule-plan', methods=['GET'])
def api_get_schedule_plan(tournament_id):
    return jsonify({'slots': get_manager().get_schedule_plan(tournament_id)})


@app.route('/api/tournaments/<tournament_id>/schedule', methods=['GET'])
def api_get_schedule(tournament_id):
    return jsonify({'schedule': get_manager().get_schedule(tournament_id)})


if __name__ == '__main__':
    app.run(debug=True, port=5000)
