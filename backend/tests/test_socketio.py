def _names(received):
    return [pkt['name'] for pkt in received]


def _start_match(client, player_ids, board='b1'):
    client.post(f'/api/boards/{board}/match', json={'players': player_ids})
    client.post(f'/api/boards/{board}/match/warmup/start')
    client.post(f'/api/boards/{board}/match/warmup/end')
    client.post(f'/api/boards/{board}/match/bullshot/winner', json={'player_id': player_ids[0]})


def test_socket_connect_and_join(sio_client):
    # Ensure we are connected to /ws
    if not sio_client.is_connected('/ws'):
        sio_client.connect(namespace='/ws')
    assert sio_client.is_connected('/ws')

    sio_client.emit('join_board', {'board_id': 'b1'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert 'connected' in _names(received)
    assert 'joined' in _names(received)
    # no match on the board yet, so no state is pushed
    assert 'matchStateChanged' not in _names(received)


def test_join_requires_board_id(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('join_board', {}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert _names(received) == ['error']


def test_join_pushes_current_match_state(sio_client, client, players):
    _start_match(client, players)
    sio_client.get_received('/ws')
    sio_client.emit('join_board', {'board_id': 'b1'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    state = next(pkt for pkt in received if pkt['name'] == 'matchStateChanged')
    payload = state['args'][0]
    assert payload['board_id'] == 'b1'
    assert payload['payload']['state'] == 'active'


def test_http_throws_are_broadcast_to_board_room(sio_client, client, players):
    _start_match(client, players)
    sio_client.emit('join_board', {'board_id': 'b1'}, namespace='/ws')
    sio_client.get_received('/ws')

    client.post('/api/boards/b1/match/throws', json={'player_id': players[0], 'segment': 'T20'})
    received = sio_client.get_received('/ws')
    names = _names(received)
    assert names.index('throwProcessed') < names.index('matchStateChanged')
    processed = next(pkt for pkt in received if pkt['name'] == 'throwProcessed')
    assert processed['args'][0]['payload']['throw']['remaining'] == 441


def test_board_throw_uses_the_same_turn_rules(sio_client, client, players):
    _start_match(client, players)
    sio_client.emit('join_board', {'board_id': 'b1'}, namespace='/ws')
    sio_client.get_received('/ws')

    sio_client.emit('board_throw', {'board_id': 'b1', 'player_id': players[0], 'segment': 'D20'},
                    namespace='/ws')
    received = sio_client.get_received('/ws')
    assert 'throw_ack' in _names(received)
    assert 'throwProcessed' in _names(received)
    assert client.get('/api/boards/b1/match').get_json()['players'][0]['score'] == 461

    sio_client.emit('board_throw', {'board_id': 'b1', 'player_id': players[1], 'segment': 'T20'},
                    namespace='/ws')
    received = sio_client.get_received('/ws')
    errors = [pkt['args'][0] for pkt in received if pkt['name'] == 'error']
    assert errors and errors[0]['code'] == 'not_your_turn'


def test_board_throw_without_match(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('board_throw', {'board_id': 'empty', 'player_id': 1, 'segment': 'T20'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['name'] == 'error'
    assert received[0]['args'][0]['code'] == 'not_found'


def test_get_match_state_and_leave(sio_client, client, players):
    sio_client.get_received('/ws')
    sio_client.emit('get_match_state', {'board_id': 'b1'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['name'] == 'match_state'
    assert received[0]['args'][0]['match'] is None

    _start_match(client, players)
    sio_client.emit('get_match_state', {'board_id': 'b1'}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['args'][0]['match']['state'] == 'active'

    sio_client.emit('join_board', {'board_id': 'b1'}, namespace='/ws')
    sio_client.emit('leave_board', {'board_id': 'b1'}, namespace='/ws')
    sio_client.get_received('/ws')
    client.post('/api/boards/b1/match/throws', json={'player_id': players[0], 'segment': 'T20'})
    assert sio_client.get_received('/ws') == []


def test_ping_pong(sio_client):
    sio_client.get_received('/ws')
    sio_client.emit('ping', {'n': 1}, namespace='/ws')
    received = sio_client.get_received('/ws')
    assert received[0]['name'] == 'pong'
    assert received[0]['args'][0] == {'n': 1}


def test_settings_changes_are_broadcast(sio_client, admin_client):
    sio_client.get_received('/ws')
    admin_client.put('/api/settings', json={'refresh_interval': 3000})
    received = sio_client.get_received('/ws')
    update = next(pkt for pkt in received if pkt['name'] == 'settingsUpdated')
    assert update['args'][0]['refresh_interval'] == 3000
