from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from functools import wraps
from dartscore import db, get_registry
from dartscore.models import Player, Match, MatchSummary, GameLog, Setting
from dartscore.services.match import (
    AlreadyInProgress,
    InvalidInput,
    InvalidTransition,
    MatchError,
    NotFound,
    NotYourTurn,
    PersistenceError,
    TurnComplete,
)
from dartscore.services.match.validator import segment_score


matches = Blueprint('matches', __name__)

_STATUS_BY_ERROR = {
    InvalidInput: 400,
    NotFound: 404,
    InvalidTransition: 409,
    NotYourTurn: 409,
    TurnComplete: 409,
    AlreadyInProgress: 409,
    PersistenceError: 503,
}


@matches.errorhandler(MatchError)
def handle_match_error(exc):
    status = _STATUS_BY_ERROR.get(type(exc), 400)
    current_app.logger.info(f"[api-error] path={request.path} code={exc.code} status={status} msg={exc}")
    return jsonify({'error': str(exc), 'code': exc.code}), status


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            return jsonify({'error': 'Admin privileges required', 'code': 'forbidden'}), 403
        return view(*args, **kwargs)
    return wrapper


def _body():
    return request.get_json(silent=True) or {}


def _require(data, *keys):
    missing = [k for k in keys if data.get(k) is None]
    if missing:
        raise InvalidInput(f"Missing field(s): {', '.join(missing)}")


def _manager(board_id):
    manager = get_registry().peek(board_id)
    if manager is None:
        raise NotFound(f'No match on board {board_id}')
    return manager


def _performed_by():
    return current_user.username if current_user.is_authenticated else 'system'


# ---- players ----

@matches.route('/players', methods=['GET'])
def list_players():
    players = Player.query.order_by(Player.id).all()
    return jsonify([p.to_dict() for p in players])


@matches.route('/players', methods=['POST'])
def create_player():
    data = _body()
    name = (data.get('name') or '').strip()
    if not name:
        raise InvalidInput('Player name is required')
    player = Player(name=name, nickname=data.get('nickname'))
    db.session.add(player)
    db.session.commit()
    return jsonify(player.to_dict()), 201


# ---- match lifecycle ----

@matches.route('/boards/<string:board_id>/match', methods=['POST'])
def create_match(board_id):
    data = _body()
    _require(data, 'players')
    if not isinstance(data['players'], list):
        raise InvalidInput('players must be a list of player ids')
    entries = []
    for item in data['players']:
        player_id = item.get('id') if isinstance(item, dict) else item
        try:
            player = db.session.get(Player, int(player_id))
        except (TypeError, ValueError):
            player = None
        if player is None:
            raise NotFound(f'Player with id {player_id} not found')
        entries.append({'id': player.id, 'name': player.name, 'nickname': player.nickname})

    mode = str(data.get('mode') or 'x01')
    requested = data.get('settings') or {}
    if not isinstance(requested, dict):
        raise InvalidInput('settings must be an object')
    # stored defaults for the mode, overridden per match by the request
    match_settings = {**Setting.current().match_defaults(mode), **requested}

    snapshot = get_registry().get(board_id).create_match(
        board_id,
        entries,
        mode=mode,
        legs_to_win=data.get('legs_to_win') or current_app.config.get('DEFAULT_LEGS_TO_WIN', 3),
        settings=match_settings,
    )
    current_app.logger.info(f"[api] board={board_id} created match={snapshot['id']}")
    return jsonify(snapshot), 201


@matches.route('/boards/<string:board_id>/match', methods=['GET'])
def get_match(board_id):
    snapshot = _manager(board_id).get_match()
    if snapshot is None:
        raise NotFound(f'No match on board {board_id}')
    return jsonify(snapshot)


@matches.route('/boards/<string:board_id>/match/warmup/start', methods=['POST'])
def start_warmup(board_id):
    return jsonify(_manager(board_id).start_warmup())


@matches.route('/boards/<string:board_id>/match/warmup/end', methods=['POST'])
def end_warmup(board_id):
    return jsonify(_manager(board_id).end_warmup())


@matches.route('/boards/<string:board_id>/match/bullshot', methods=['POST'])
def record_bull_shot(board_id):
    data = _body()
    _require(data, 'player_id', 'coordinates')
    result = _manager(board_id).record_bull_shot(data['player_id'], data.get('segment') or 'MISS',
                                                 data['coordinates'])
    return jsonify(result.to_dict()), 201


@matches.route('/boards/<string:board_id>/match/bullshot/winner', methods=['POST'])
def set_bull_winner(board_id):
    data = _body()
    _require(data, 'player_id')
    return jsonify(_manager(board_id).set_bull_winner(data['player_id']))


@matches.route('/boards/<string:board_id>/match/throws', methods=['POST'])
def process_throw(board_id):
    data = _body()
    _require(data, 'player_id', 'segment')
    score = data.get('score')
    if score is None:
        score = segment_score(data['segment'])
        if score is None:
            raise InvalidInput(f"Unknown segment: {data['segment']}")
    manager = _manager(board_id)
    outcome = manager.process_throw(data['player_id'], data['segment'], score, data.get('coordinates'))
    payload = outcome.to_dict()
    payload['match'] = manager.get_match()
    return jsonify(payload), 201


# ---- admin ----

@matches.route('/boards/<string:board_id>/match/throws/<string:throw_id>', methods=['PUT'])
@admin_required
def correct_throw(board_id, throw_id):
    data = _body()
    _require(data, 'segment')
    score = data.get('score')
    if score is None:
        score = segment_score(data['segment'])
        if score is None:
            raise InvalidInput(f"Unknown segment: {data['segment']}")
    manager = _manager(board_id)
    outcome = manager.correct_throw(throw_id, data['segment'], score, performed_by=_performed_by())
    payload = outcome.to_dict()
    payload['match'] = manager.get_match()
    return jsonify(payload)


@matches.route('/boards/<string:board_id>/match/switch', methods=['POST'])
@admin_required
def manual_player_switch(board_id):
    return jsonify(_manager(board_id).manual_player_switch(performed_by=_performed_by()))


@matches.route('/boards/<string:board_id>/match/active-player', methods=['PUT'])
@admin_required
def set_active_player(board_id):
    data = _body()
    _require(data, 'player_id')
    return jsonify(_manager(board_id).set_active_player(data['player_id'], performed_by=_performed_by()))


@matches.route('/boards/<string:board_id>/match/score', methods=['PUT'])
@admin_required
def override_score(board_id):
    data = _body()
    _require(data, 'player_id', 'score')
    return jsonify(_manager(board_id).override_score(data['player_id'], data['score'],
                                                     performed_by=_performed_by()))


@matches.route('/boards/<string:board_id>/match/leg', methods=['PUT'])
@admin_required
def force_leg_winner(board_id):
    data = _body()
    _require(data, 'winner_id')
    return jsonify(_manager(board_id).force_leg_winner(data['winner_id'], performed_by=_performed_by()))


@matches.route('/boards/<string:board_id>/match/end', methods=['POST'])
@admin_required
def end_match(board_id):
    data = _body()
    return jsonify(_manager(board_id).end_match(data.get('winner_id'), performed_by=_performed_by()))


@matches.route('/boards/<string:board_id>/match/cancel', methods=['POST'])
@admin_required
def cancel_match(board_id):
    return jsonify(_manager(board_id).cancel_match(performed_by=_performed_by()))


@matches.route('/boards/<string:board_id>/match/load', methods=['POST'])
@admin_required
def load_match(board_id):
    data = _body()
    _require(data, 'match_id')
    try:
        match_id = int(data['match_id'])
    except (TypeError, ValueError):
        raise InvalidInput('match_id must be an integer')
    return jsonify(get_registry().load_match(board_id, match_id))


@matches.route('/boards/<string:board_id>', methods=['DELETE'])
@admin_required
def release_board(board_id):
    get_registry().release(board_id)
    return jsonify({'released': board_id})


# ---- history ----

@matches.route('/matches/<int:match_id>/summaries', methods=['GET'])
def get_summaries(match_id):
    if db.session.get(Match, match_id) is None:
        raise NotFound(f'Match with id {match_id} not found')
    rows = MatchSummary.query.filter_by(match_id=match_id).order_by(MatchSummary.player_id).all()
    return jsonify([s.to_dict() for s in rows])


@matches.route('/matches/<int:match_id>/logs', methods=['GET'])
def get_logs(match_id):
    if db.session.get(Match, match_id) is None:
        raise NotFound(f'Match with id {match_id} not found')
    rows = GameLog.query.filter_by(match_id=match_id).order_by(GameLog.id).all()
    return jsonify([log.to_dict() for log in rows])
