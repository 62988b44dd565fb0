from flask_socketio import join_room, leave_room, emit
from flask import current_app
from dartscore import socketio, get_registry
from dartscore.services.match import InvalidInput, MatchError, MatchEvent
from dartscore.services.match.events import MATCH_STATE_CHANGED
from dartscore.services.match.validator import segment_score


def board_room(board_id) -> str:
    return f"board:{board_id}"


class SocketIONotifier:
    """Fans engine events out to everyone watching the board's room."""

    def __init__(self, server, namespace: str = '/ws') -> None:
        self.server = server
        self.namespace = namespace

    def publish(self, event: MatchEvent) -> None:
        self.server.emit(event.name, event.to_dict(), to=board_room(event.board_id), namespace=self.namespace)


def _snapshot(board_id):
    manager = get_registry().peek(board_id)
    return manager.get_match() if manager is not None else None


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_board(data):
    board_id = (data or {}).get('board_id')
    if not board_id:
        emit('error', {'message': 'board_id is required', 'code': 'invalid_input'})
        return
    room = board_room(board_id)
    join_room(room)
    emit('joined', {'room': room})
    snapshot = _snapshot(board_id)
    if snapshot is not None:
        event = MatchEvent(name=MATCH_STATE_CHANGED, board_id=str(board_id),
                           match_id=snapshot.get('id'), payload=snapshot)
        emit(MATCH_STATE_CHANGED, event.to_dict())


def handle_leave_board(data):
    board_id = (data or {}).get('board_id')
    if not board_id:
        emit('error', {'message': 'board_id is required', 'code': 'invalid_input'})
        return
    room = board_room(board_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_get_match_state(data):
    board_id = (data or {}).get('board_id')
    if not board_id:
        emit('error', {'message': 'board_id is required', 'code': 'invalid_input'})
        return
    emit('match_state', {'board_id': str(board_id), 'match': _snapshot(board_id)})


def handle_board_throw(data):
    """Throw detected by board hardware; same path as a manual HTTP throw."""
    data = data or {}
    board_id = data.get('board_id')
    manager = get_registry().peek(board_id) if board_id else None
    if manager is None:
        emit('error', {'message': f'No match on board {board_id}', 'code': 'not_found'})
        return
    score = data.get('score')
    if score is None:
        score = segment_score(data.get('segment') or '')
    try:
        if score is None:
            raise InvalidInput(f"Unknown segment: {data.get('segment')}")
        outcome = manager.process_throw(data.get('player_id'), data.get('segment'), score,
                                        data.get('coordinates'))
    except MatchError as exc:
        current_app.logger.info(f"[board_throw] board={board_id} rejected code={exc.code} msg={exc}")
        emit('error', {'message': str(exc), 'code': exc.code})
        return
    emit('throw_ack', outcome.to_dict())


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = {
        'connect': handle_connect,
        'join_board': handle_join_board,
        'leave_board': handle_leave_board,
        'get_match_state': handle_get_match_state,
        'board_throw': handle_board_throw,
        'ping': handle_ping,
    }
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for name, handler in handlers.items():
            socketio.on_event(name, handler, namespace=namespace)
