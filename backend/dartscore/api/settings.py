import json
from flask import Blueprint, jsonify, request, current_app
from dartscore import db, socketio
from dartscore.api.matches import admin_required, handle_match_error
from dartscore.models import Setting
from dartscore.services.match import InvalidInput, MatchError
from dartscore.services.match.validator import SUPPORTED_STARTING_SCORES


settings = Blueprint('settings', __name__)
settings.register_error_handler(MatchError, handle_match_error)

RULE_FLAGS = ('double_in', 'double_out', 'master_out')


def _broadcast(payload):
    socketio.emit('settingsUpdated', payload, namespace='/ws')


def _clean_game_defaults(value):
    if not isinstance(value, dict):
        raise InvalidInput('game_defaults must be an object keyed by game mode')
    cleaned = {}
    for mode, rules in value.items():
        if not isinstance(rules, dict):
            raise InvalidInput(f'Defaults for {mode} must be an object')
        entry = {}
        if 'starting_score' in rules:
            try:
                start = int(rules['starting_score'])
            except (TypeError, ValueError):
                start = None
            if start not in SUPPORTED_STARTING_SCORES:
                raise InvalidInput(f"starting_score must be one of {', '.join(map(str, SUPPORTED_STARTING_SCORES))}")
            entry['starting_score'] = start
        for flag in RULE_FLAGS:
            if flag in rules:
                entry[flag] = bool(rules[flag])
        cleaned[str(mode).lower()] = entry
    return cleaned


@settings.route('/settings', methods=['GET'])
def get_settings():
    return jsonify(Setting.current().to_dict())


@settings.route('/settings', methods=['PUT'])
@admin_required
def update_settings():
    data = request.get_json(silent=True) or {}

    interval = None
    if data.get('refresh_interval') is not None:
        try:
            interval = int(data['refresh_interval'])
        except (TypeError, ValueError):
            interval = 0
        if interval < 1000 or interval > 60000:
            raise InvalidInput('Refresh interval must be between 1000 and 60000 ms')
    game_defaults = None
    if data.get('game_defaults') is not None:
        game_defaults = _clean_game_defaults(data['game_defaults'])

    row = Setting.current()
    if interval is not None:
        row.refresh_interval = interval
    if game_defaults is not None:
        merged = row.defaults
        for mode, entry in game_defaults.items():
            merged[mode] = {**merged.get(mode, {}), **entry}
        row.game_defaults = json.dumps(merged)
    if data.get('checkout_suggestions') is not None:
        row.checkout_suggestions = bool(data['checkout_suggestions'])

    db.session.commit()
    payload = row.to_dict()
    current_app.logger.info(f"[settings] updated refresh={row.refresh_interval} "
                            f"checkout={row.checkout_suggestions} modes={sorted(payload['game_defaults'])}")
    _broadcast(payload)
    return jsonify(payload)


@settings.route('/settings/reset', methods=['POST'])
@admin_required
def reset_settings():
    row = Setting.current()
    row.reset()
    db.session.commit()
    payload = row.to_dict()
    current_app.logger.info("[settings] reset to defaults")
    _broadcast(payload)
    return jsonify(payload)
