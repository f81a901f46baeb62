"""
Flask web application exposing the bracket engine as a JSON API.
"""
import os

from flask import Flask, request, jsonify

from engine import service
from engine.errors import BracketError, ConflictError, ConsistencyError, NotFound, ValidationError
from engine.models import Event, Registration, EVENT_FORMATS, GROUPS
from engine.settings import load_settings, save_settings, validate_settings
from storage import YamlRepository

app = Flask(__name__)

BASE_DIR = os.path.dirname(os.path.dirname(__file__))
DATA_DIR = os.environ.get('BRACKET_DATA_DIR', os.path.join(BASE_DIR, 'data'))
SETTINGS_FILENAME = 'settings.yaml'


def get_repository() -> YamlRepository:
    return YamlRepository(DATA_DIR)


def get_settings() -> dict:
    return load_settings(os.path.join(DATA_DIR, SETTINGS_FILENAME))


def _json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


@app.errorhandler(BracketError)
def handle_bracket_error(error):
    """Map engine errors to HTTP responses."""
    if isinstance(error, NotFound):
        status = 404
    elif isinstance(error, ValidationError):
        status = 400
    elif isinstance(error, ConflictError):
        status = 409
    else:
        status = 500

    if isinstance(error, ConsistencyError):
        app.logger.error(f'Match graph inconsistency: {error}')
    else:
        app.logger.warning(f'{request.method} {request.path} rejected: {error}')
    return jsonify({'error': str(error), 'type': type(error).__name__}), status


@app.route('/api/events', methods=['POST'])
def api_create_event():
    """API endpoint to create an event, filling unset options from settings."""
    data = _json_body()
    name = data.get('name')
    name = name.strip() if isinstance(name, str) else ''
    event_format = data.get('format', GROUPS)
    if not name:
        return jsonify({'error': 'Missing event name'}), 400
    if event_format not in EVENT_FORMATS:
        return jsonify({'error': f'Unknown format: {event_format}'}), 400

    settings = get_settings()
    options = {key: data.get(key, default) for key, default in settings.items()}
    validate_settings(options)
    event = Event(name=name, format=event_format, **options)

    repository = get_repository()
    with repository.transaction():
        repository.add_event(event)
    return jsonify(event.to_dict()), 201


@app.route('/api/events/<event_id>/registrations', methods=['POST'])
def api_create_registration(event_id):
    """API endpoint to register a player or team for an event."""
    data = _json_body()
    repository = get_repository()
    with repository.transaction():
        repository.get_event(event_id)
        registration = repository.add_registration(Registration(event_id=event_id, name=data.get('name')))
    return jsonify(registration.to_dict()), 201


@app.route('/api/events/<event_id>/matches')
def api_event_matches(event_id):
    """API endpoint listing the matches of an event in bracket order."""
    repository = get_repository().refresh()
    repository.get_event(event_id)
    matches = sorted(repository.list_matches(event_id), key=lambda m: m.sort_key())
    round_names = service.label_rounds(matches)
    return jsonify({'matches': [{**m.to_dict(), 'round_name': round_names[m.id]} for m in matches]})


@app.route('/api/events/<event_id>/generate-bracket', methods=['POST'])
def api_generate_bracket(event_id):
    """API endpoint to generate the bracket of an elimination event."""
    data = _json_body()
    seeds = data.get('seeds')
    if seeds is not None and not isinstance(seeds, list):
        return jsonify({'error': 'seeds must be a list'}), 400

    result = service.generate_bracket(get_repository(), event_id, seeds=seeds)
    return jsonify({
        'message': 'Bracket generated successfully',
        'total_rounds': result['total_rounds'],
        'bracket_size': result['bracket_size'],
        'match_count': result['match_count'],
        'matches': [m.to_dict() for m in result['matches']],
    }), 201


@app.route('/api/events/<event_id>/bracket', methods=['DELETE'])
def api_clear_bracket(event_id):
    """API endpoint to delete a bracket so it can be regenerated."""
    deleted = service.clear_bracket(get_repository(), event_id)
    return jsonify({'success': True, 'deleted': deleted})


@app.route('/api/events/<event_id>/generate-heats', methods=['POST'])
def api_generate_heats(event_id):
    """API endpoint to split the registrations of a test event into heats."""
    data = _json_body()
    players_per_heat = data.get('players_per_heat')
    if players_per_heat is not None and (isinstance(players_per_heat, bool) or not isinstance(players_per_heat, int) or players_per_heat < 1):
        return jsonify({'error': 'players_per_heat must be a positive integer'}), 400

    result = service.generate_heats(
        get_repository(),
        event_id,
        players_per_heat=players_per_heat,
        shuffle=bool(data.get('shuffle', True)),
    )
    return jsonify(result), 201


@app.route('/api/events/<event_id>/heats', methods=['DELETE'])
def api_clear_heats(event_id):
    """API endpoint to unassign registrations and delete all heats."""
    deleted = service.clear_heats(get_repository(), event_id)
    return jsonify({'success': True, 'deleted': deleted})


@app.route('/api/events/<event_id>/groups', methods=['POST'])
def api_create_group(event_id):
    """API endpoint to create a round-robin group."""
    data = _json_body()
    registration_ids = data.get('registration_ids')
    if not isinstance(registration_ids, list) or not all(isinstance(r, str) for r in registration_ids):
        return jsonify({'error': 'registration_ids must be a list of ids'}), 400

    result = service.create_group(get_repository(), event_id, registration_ids)
    return jsonify({'group': result['group'].to_dict(), 'match_count': result['match_count']}), 201


@app.route('/api/events/<event_id>/standings')
def api_standings(event_id):
    """API endpoint returning standings, optionally for a single group."""
    repository = get_repository().refresh()
    repository.get_event(event_id)
    standings = service.get_standings(repository, event_id, request.args.get('group_id'))
    return jsonify({'standings': [
        {**r.to_dict(), 'rank': rank, 'set_difference': r.set_difference}
        for rank, r in enumerate(standings, start=1)
    ]})


@app.route('/api/matches/<match_id>/complete', methods=['POST'])
def api_complete_match(match_id):
    """API endpoint to record a match result and advance the bracket."""
    data = _json_body()
    winner_id = data.get('winner_id')
    if not winner_id:
        return jsonify({'error': 'Missing winner_id'}), 400

    affected = service.complete_match(get_repository(), match_id, winner_id, data.get('sets'))
    return jsonify({'success': True, **affected.to_dict()})


@app.route('/api/matches/<match_id>/reset', methods=['POST'])
def api_reset_match(match_id):
    """API endpoint to undo a match result."""
    affected = service.reset_match(get_repository(), match_id)
    return jsonify({'success': True, **affected.to_dict()})


@app.route('/api/settings', methods=['GET', 'POST'])
def api_settings():
    """API endpoint to read or update the defaults applied to new events."""
    if request.method == 'GET':
        return jsonify(get_settings())

    data = _json_body()
    settings = get_settings()
    settings.update({key: data[key] for key in settings if key in data})
    save_settings(os.path.join(DATA_DIR, SETTINGS_FILENAME), settings)
    app.logger.info(f'Settings updated: {sorted(k for k in data if k in settings)}')
    return jsonify(settings)


if __name__ == '__main__':
    app.run(debug=os.environ.get('FLASK_DEBUG') == '1')
