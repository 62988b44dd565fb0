import pytest

from dartscore.services.match import (
    AlreadyInProgress,
    BoardRegistry,
    InMemoryMatchStore,
    NotFound,
    QueueNotifier,
)


PLAYERS = [{'id': 1, 'name': 'Alice'}, {'id': 2, 'name': 'Bob'}]


@pytest.fixture()
def registry():
    reg = BoardRegistry(InMemoryMatchStore(), QueueNotifier(), autosave_interval=0)
    yield reg
    for board in reg.boards:
        reg.get(board).close()


def start_on(registry, board):
    manager = registry.get(board)
    manager.create_match(board, PLAYERS, legs_to_win=1)
    manager.start_warmup()
    manager.end_warmup()
    manager.set_bull_winner(1)
    return manager


def test_managers_are_per_board(registry):
    assert registry.get('b1') is registry.get('b1')
    assert registry.get('b1') is not registry.get('b2')
    assert registry.peek('b3') is None
    assert registry.boards == ['b1', 'b2']
    assert registry.get('b1').board_id == 'b1'


def test_live_match_cannot_be_loaded_on_a_second_board(registry):
    b1 = start_on(registry, 'b1')
    match_id = b1.get_match()['id']

    with pytest.raises(AlreadyInProgress):
        registry.load_match('b2', match_id)

    assert not registry.get('b2').has_live_match
    b1.process_throw(1, 'T20', 60)
    assert b1.get_match()['players'][0]['score'] == 441
    assert registry.store.load_match(match_id)['board_id'] == 'b1'


def test_same_board_can_reload_its_own_match(registry):
    b1 = start_on(registry, 'b1')
    match_id = b1.get_match()['id']
    b1.process_throw(1, 'T20', 60)
    reloaded = registry.load_match('b1', match_id)
    assert reloaded['players'][0]['score'] == 441


def test_loaded_match_moves_to_the_new_board(registry):
    b1 = start_on(registry, 'b1')
    match_id = b1.get_match()['id']
    b1.process_throw(1, 'T20', 60)
    registry.notifier.drain()

    # a fresh process: nothing holds the match, so any board may resume it
    other = BoardRegistry(registry.store, QueueNotifier(), autosave_interval=0)
    loaded = other.load_match('b2', match_id)
    assert loaded['board_id'] == 'b2'
    assert registry.store.load_match(match_id)['board_id'] == 'b2'

    other.get('b2').process_throw(1, 'T20', 60)
    events = other.notifier.drain()
    assert events and {e.board_id for e in events} == {'b2'}


def test_finished_match_can_be_viewed_on_another_board(registry):
    b1 = start_on(registry, 'b1')
    match_id = b1.get_match()['id']
    b1.cancel_match()

    loaded = registry.load_match('b2', match_id)
    assert loaded['state'] == 'canceled'
    assert loaded['board_id'] == 'b2'
    # the stored record keeps the board it was played on
    assert registry.store.load_match(match_id)['board_id'] == 'b1'


def test_unknown_match_is_not_found(registry):
    with pytest.raises(NotFound):
        registry.load_match('b1', 404)


def test_release(registry):
    start_on(registry, 'b1')
    with pytest.raises(AlreadyInProgress):
        registry.release('b1')
    registry.get('b1').cancel_match()
    registry.release('b1')
    assert registry.peek('b1') is None
    with pytest.raises(NotFound):
        registry.release('b1')
