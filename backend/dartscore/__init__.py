from flask import Flask, jsonify, current_app
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import logging
import os
import click
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def get_registry(app=None):
    """The per-board match registry of the given (or current) app."""
    app = app or current_app
    return app.extensions['match_registry']


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    logging.getLogger('dartscore').setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from dartscore.main import main
    flask_app.register_blueprint(main)

    from dartscore.api.matches import matches
    flask_app.register_blueprint(matches, url_prefix='/api')

    from dartscore.api.settings import settings
    flask_app.register_blueprint(settings, url_prefix='/api')

    from dartscore.socketio_events import register_socketio_handlers, SocketIONotifier
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    # One state machine per board, sharing the SQL store and the socket notifier
    from dartscore.services.match import BoardRegistry
    from dartscore.services.match.store import SqlMatchStore
    flask_app.extensions['match_registry'] = BoardRegistry(
        store=SqlMatchStore(flask_app),
        notifier=SocketIONotifier(socketio),
        autosave_interval=flask_app.config.get('AUTOSAVE_INTERVAL_SEC', 30),
        spawn=socketio.start_background_task,
        sleep=socketio.sleep,
        heartbeat=flask_app.config.get('TIMER_HEARTBEAT_SEC', 1),
        min_players=flask_app.config.get('MIN_PLAYERS', 2),
    )

    from dartscore.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required', 'code': 'unauthorized'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from dartscore.models import User, Player
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            admin = User(username=os.environ.get('ADMIN_USERNAME', 'admin'), is_admin=True)
            admin.set_password(os.environ.get('ADMIN_PASSWORD', 'password'))
            db.session.add(admin)

            for name in ['Player 1', 'Player 2']:
                db.session.add(Player(name=name))

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
