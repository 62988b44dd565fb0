import os
import sys
import pytest

# Ensure the backend root (containing the `dartscore` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from dartscore import create_app, db, socketio
from dartscore.services.match import InMemoryMatchStore, MatchManager, QueueNotifier


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    # No background autosave workers in tests
    AUTOSAVE_INTERVAL_SEC = 0
    TIMER_HEARTBEAT_SEC = 1
    MIN_PLAYERS = 2
    DEFAULT_LEGS_TO_WIN = 1
    LOG_LEVEL = 'DEBUG'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import dartscore.models  # noqa: F401
        db.create_all()
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def players(flask_app):
    from dartscore.models import Player
    alice = Player(name='Alice')
    bob = Player(name='Bob', nickname='The Hammer')
    db.session.add_all([alice, bob])
    db.session.commit()
    return [alice.id, bob.id]


@pytest.fixture()
def admin_client(flask_app):
    from dartscore.models import User
    admin = User(username='admin', is_admin=True)
    admin.set_password('password')
    db.session.add(admin)
    db.session.commit()
    test_client = flask_app.test_client()
    res = test_client.post('/login', json={'username': 'admin', 'password': 'password'})
    assert res.status_code == 200
    return test_client


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    if test_client.is_connected('/ws'):
        test_client.disconnect(namespace='/ws')


# ---- engine fixtures (no Flask involved) ----

@pytest.fixture()
def store():
    return InMemoryMatchStore()


@pytest.fixture()
def notifier():
    return QueueNotifier()


@pytest.fixture()
def manager(store, notifier):
    engine = MatchManager(store=store, notifier=notifier, autosave_interval=0)
    yield engine
    engine.close()


@pytest.fixture()
def start_match(manager):
    """Create a match and drive it through warmup and bull-off into play."""
    def _start(players=None, legs_to_win=1, starter=1, mode='x01', settings=None):
        players = players or [{'id': 1, 'name': 'Alice'}, {'id': 2, 'name': 'Bob'}]
        manager.create_match('board-1', players, mode=mode, legs_to_win=legs_to_win, settings=settings)
        manager.start_warmup()
        manager.end_warmup()
        return manager.set_bull_winner(starter)
    return _start
