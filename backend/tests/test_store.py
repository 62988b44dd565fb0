import pytest

from dartscore import db
from dartscore.models import GameLog, Match, MatchPlayer, MatchSummary, Throw
from dartscore.services.match import MatchManager, PersistenceError, QueueNotifier
from dartscore.services.match.store import SqlMatchStore
from dartscore.services.match.validator import segment_score


@pytest.fixture()
def sql_store(flask_app):
    return SqlMatchStore(flask_app)


@pytest.fixture()
def sql_manager(sql_store, players):
    manager = MatchManager(store=sql_store, notifier=QueueNotifier(), autosave_interval=0)
    manager.create_match('board-7', [{'id': pid, 'name': f'P{pid}'} for pid in players], legs_to_win=1)
    manager.start_warmup()
    manager.end_warmup()
    manager.set_bull_winner(players[0])
    yield manager
    manager.close()


def _throw(manager, player_id, segment):
    return manager.process_throw(player_id, segment, segment_score(segment))


def test_snapshot_round_trips_through_database(sql_manager, sql_store, players):
    for segment in ('T20', 'T20', 'S1'):
        _throw(sql_manager, players[0], segment)
    snapshot = sql_manager.get_match()

    assert sql_store.load_match(snapshot['id']) == snapshot

    record = db.session.get(Match, snapshot['id'])
    assert record.board_id == 'board-7'
    assert record.status == 'active'
    rows = MatchPlayer.query.filter_by(match_id=record.id).order_by(MatchPlayer.position).all()
    assert [r.score for r in rows] == [380, 501]
    assert [r.is_active for r in rows] == [False, True]
    assert Throw.query.filter_by(match_id=record.id).count() == 3


def test_loaded_match_resumes_on_another_manager(sql_manager, sql_store, players):
    _throw(sql_manager, players[0], 'T20')
    match_id = sql_manager.get_match()['id']

    other = MatchManager(store=sql_store, autosave_interval=0)
    loaded = other.load_match(match_id)
    assert loaded['players'][0]['score'] == 441
    _throw(other, players[0], 'T20')
    assert other.get_match()['players'][0]['score'] == 381


def test_rebuild_from_rows_without_snapshot_json(sql_manager, sql_store, players):
    for segment in ('T20', 'S5', 'S1'):
        _throw(sql_manager, players[0], segment)
    match_id = sql_manager.get_match()['id']
    record = db.session.get(Match, match_id)
    record.scores = None
    db.session.commit()

    rebuilt = sql_store.load_match(match_id)
    assert rebuilt['state'] == 'active'
    first = rebuilt['players'][0]
    assert first['score'] == 435
    assert [t['segment'] for t in first['history']] == ['T20', 'S5', 'S1']

    other = MatchManager(store=sql_store, autosave_interval=0)
    loaded = other.load_match(match_id)
    assert loaded['players'][1]['is_active']


def test_corrected_throw_is_updated_in_place(sql_manager, players):
    for segment in ('T20', 'T20', 'T20'):
        _throw(sql_manager, players[0], segment)
    throw_id = sql_manager.get_match()['players'][0]['history'][1]['id']
    sql_manager.correct_throw(throw_id, 'T19', 57, performed_by='admin')

    row = db.session.get(Throw, throw_id)
    assert row.segment == 'T19'
    assert row.corrected
    assert Throw.query.count() == 3
    log = GameLog.query.order_by(GameLog.id.desc()).first()
    assert log.action == 'throw_corrected'
    assert log.performed_by == 'admin'


def test_summaries_are_upserted(sql_manager, sql_store, players):
    sql_manager.override_score(players[0], 40)
    _throw(sql_manager, players[0], 'D20')
    match_id = sql_manager.get_match()['id']

    assert MatchSummary.query.filter_by(match_id=match_id).count() == 2
    sql_store.generate_summaries(match_id)
    summaries = MatchSummary.query.filter_by(match_id=match_id).all()
    assert len(summaries) == 2
    winner = next(s for s in summaries if s.player_id == players[0])
    assert winner.legs_won == 1
    assert winner.highest_checkout == 40
    assert winner.to_dict()['player_name'] == 'Alice'
    assert db.session.get(Match, match_id).winner_id == players[0]


def test_autosave_stamps_last_autosave(sql_manager):
    match_id = sql_manager.get_match()['id']
    assert db.session.get(Match, match_id).last_autosave is None
    sql_manager.autosave()
    assert db.session.get(Match, match_id).last_autosave is not None


def test_database_errors_become_persistence_errors(sql_store):
    with pytest.raises(PersistenceError):
        sql_store.save_throw(1, {
            'id': 'broken', 'player_id': None, 'leg': 1, 'round': 1, 'throw_index': 1,
            'sequence': 1, 'segment': 'S1', 'score': 1, 'score_before': 501,
            'turn_start': 501, 'remaining': 500,
        })
    # the session is usable again after the rollback
    sql_store.log_action(None, 'health_check', 'after failure')
    assert GameLog.query.filter_by(action='health_check').count() == 1


def test_unknown_match_loads_as_none(sql_store):
    assert sql_store.load_match(404) is None
