from dartscore import db
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime, timezone
import json


def _utcnow():
    return datetime.now(timezone.utc)


def _load_json(value, default=None):
    if not value:
        return default
    return json.loads(value)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
            'is_admin': self.is_admin,
        }


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    nickname = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'nickname': self.nickname,
        }


class Match(db.Model):
    __tablename__ = 'dart_match'
    id = db.Column(db.Integer, primary_key=True)
    board_id = db.Column(db.String(64), nullable=False, index=True)
    game_type = db.Column(db.String(32), nullable=False, default='x01')
    status = db.Column(db.String(32), nullable=False, default='pending')  # pending, warmup, bullshot, active, completed, canceled
    legs_to_win = db.Column(db.Integer, nullable=False, default=3)
    current_leg = db.Column(db.Integer, nullable=False, default=1)
    settings = db.Column(db.Text, nullable=True)  # JSON-encoded match settings
    scores = db.Column(db.Text, nullable=True)  # JSON-encoded full match snapshot
    winner_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    last_autosave = db.Column(db.DateTime(timezone=True), nullable=True)

    players = db.relationship('MatchPlayer', back_populates='match', order_by='MatchPlayer.position',
                              cascade='all, delete-orphan')
    throws = db.relationship('Throw', back_populates='match', lazy='dynamic', cascade='all, delete-orphan')

    @property
    def snapshot(self):
        return _load_json(self.scores)

    def to_dict(self):
        return {
            'id': self.id,
            'board_id': self.board_id,
            'game_type': self.game_type,
            'status': self.status,
            'legs_to_win': self.legs_to_win,
            'current_leg': self.current_leg,
            'settings': _load_json(self.settings, {}),
            'winner_id': self.winner_id,
            'players': [mp.to_dict() for mp in self.players],
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
            'last_autosave': self.last_autosave.isoformat() if self.last_autosave else None,
        }


class MatchPlayer(db.Model):
    __tablename__ = 'match_player'
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('dart_match.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    position = db.Column(db.Integer, nullable=False)
    score = db.Column(db.Integer, nullable=False)
    legs_won = db.Column(db.Integer, default=0, nullable=False)
    is_active = db.Column(db.Boolean, default=False, nullable=False)

    match = db.relationship('Match', back_populates='players')
    player = db.relationship('Player')

    __table_args__ = (db.UniqueConstraint('match_id', 'player_id', name='uq_match_player'),)

    def to_dict(self):
        return {
            'player_id': self.player_id,
            'name': self.player.name if self.player else None,
            'position': self.position,
            'score': self.score,
            'legs_won': self.legs_won,
            'is_active': self.is_active,
        }


class Throw(db.Model):
    __tablename__ = 'dart_throw'
    id = db.Column(db.String(32), primary_key=True)  # engine-assigned hex id
    match_id = db.Column(db.Integer, db.ForeignKey('dart_match.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    leg = db.Column(db.Integer, nullable=False)
    round = db.Column(db.Integer, nullable=False)
    throw_index = db.Column(db.Integer, nullable=False)
    sequence = db.Column(db.Integer, nullable=False)
    segment = db.Column(db.String(16), nullable=False)
    score = db.Column(db.Integer, nullable=False)
    score_before = db.Column(db.Integer, nullable=False)
    turn_start = db.Column(db.Integer, nullable=False)
    remaining = db.Column(db.Integer, nullable=False)
    bust = db.Column(db.Boolean, default=False, nullable=False)
    game_shot = db.Column(db.Boolean, default=False, nullable=False)
    corrected = db.Column(db.Boolean, default=False, nullable=False)
    coordinates = db.Column(db.Text, nullable=True)  # JSON-encoded [x, y]
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    match = db.relationship('Match', back_populates='throws')

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'player_id': self.player_id,
            'leg': self.leg,
            'round': self.round,
            'throw_index': self.throw_index,
            'sequence': self.sequence,
            'segment': self.segment,
            'score': self.score,
            'score_before': self.score_before,
            'turn_start': self.turn_start,
            'remaining': self.remaining,
            'bust': self.bust,
            'game_shot': self.game_shot,
            'corrected': self.corrected,
            'coordinates': _load_json(self.coordinates),
        }


class MatchSummary(db.Model):
    __tablename__ = 'match_summary'
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('dart_match.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    legs_played = db.Column(db.Integer, default=0, nullable=False)
    legs_won = db.Column(db.Integer, default=0, nullable=False)
    average = db.Column(db.Float, default=0.0, nullable=False)
    first_nine_average = db.Column(db.Float, default=0.0, nullable=False)
    checkout_percentage = db.Column(db.Float, default=0.0, nullable=False)
    checkout_attempts = db.Column(db.Integer, default=0, nullable=False)
    checkout_successes = db.Column(db.Integer, default=0, nullable=False)
    highest_checkout = db.Column(db.Integer, default=0, nullable=False)
    ton_plus = db.Column(db.Integer, default=0, nullable=False)
    ton_forty_plus = db.Column(db.Integer, default=0, nullable=False)
    ton_eighty = db.Column(db.Integer, default=0, nullable=False)
    total_darts = db.Column(db.Integer, default=0, nullable=False)
    darts_per_leg = db.Column(db.Float, default=0.0, nullable=False)

    player = db.relationship('Player')

    __table_args__ = (db.UniqueConstraint('match_id', 'player_id', name='uq_match_summary_player'),)

    def to_dict(self):
        return {
            'match_id': self.match_id,
            'player_id': self.player_id,
            'player_name': self.player.name if self.player else None,
            'legs_played': self.legs_played,
            'legs_won': self.legs_won,
            'average': self.average,
            'first_nine_average': self.first_nine_average,
            'checkout_percentage': self.checkout_percentage,
            'checkout_attempts': self.checkout_attempts,
            'checkout_successes': self.checkout_successes,
            'highest_checkout': self.highest_checkout,
            'ton_plus': self.ton_plus,
            'ton_forty_plus': self.ton_forty_plus,
            'ton_eighty': self.ton_eighty,
            'total_darts': self.total_darts,
            'darts_per_leg': self.darts_per_leg,
        }


class GameLog(db.Model):
    __tablename__ = 'game_log'
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('dart_match.id'), nullable=True, index=True)
    action = db.Column(db.String(64), nullable=False)
    details = db.Column(db.Text, nullable=True)
    performed_by = db.Column(db.String(64), nullable=False, default='system')
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'match_id': self.match_id,
            'action': self.action,
            'details': self.details,
            'performed_by': self.performed_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


DEFAULT_GAME_DEFAULTS = {
    'x01': {
        'starting_score': 501,
        'double_in': False,
        'double_out': True,
        'master_out': False,
    },
}
DEFAULT_REFRESH_INTERVAL = 5000


class Setting(db.Model):
    """Application-wide settings; a single row with id 1."""
    __tablename__ = 'setting'
    id = db.Column(db.Integer, primary_key=True)
    game_defaults = db.Column(db.Text, nullable=True)  # JSON: mode -> rule defaults
    refresh_interval = db.Column(db.Integer, nullable=False, default=DEFAULT_REFRESH_INTERVAL)
    checkout_suggestions = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @classmethod
    def current(cls):
        settings = db.session.get(cls, 1)
        if settings is None:
            settings = cls(id=1)
            settings.reset()
            db.session.add(settings)
            db.session.commit()
        return settings

    def reset(self):
        self.game_defaults = json.dumps(DEFAULT_GAME_DEFAULTS)
        self.refresh_interval = DEFAULT_REFRESH_INTERVAL
        self.checkout_suggestions = True

    @property
    def defaults(self):
        return _load_json(self.game_defaults, {})

    def match_defaults(self, mode):
        """Rule defaults for a new match in ``mode``; numbered modes use the x01 entry."""
        defaults = self.defaults
        mode = str(mode or 'x01').lower()
        entry = defaults.get(mode)
        if entry is None and mode.isdigit():
            entry = defaults.get('x01')
        merged = dict(entry or {})
        merged['checkout_suggestions'] = self.checkout_suggestions
        return merged

    def to_dict(self):
        return {
            'game_defaults': self.defaults,
            'refresh_interval': self.refresh_interval,
            'checkout_suggestions': self.checkout_suggestions,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }
