from processmaster import db, bcrypt
from flask_login import UserMixin
import json
import math
import time


class Instructor(UserMixin, db.Model):
    __tablename__ = 'instructor'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)
    sessions = db.relationship('GameSession', back_populates='host', lazy='dynamic')

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


def generate_session_id(now=None):
    """Time-based session token (epoch ms), bumped until unused."""
    candidate = int((time.time() if now is None else now) * 1000)
    while db.session.get(GameSession, str(candidate)) is not None:
        candidate += 1
    return str(candidate)


class GameSession(db.Model):
    __tablename__ = 'game_session'
    id = db.Column(db.String(32), primary_key=True)
    host_id = db.Column(db.Integer, db.ForeignKey('instructor.id'), nullable=False)
    playlist = db.Column(db.Text, nullable=False)  # JSON-encoded list of playlist entries
    current_level_index = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(32), nullable=False, default='setup')
    # Absolute epoch seconds; clients derive the countdown from end_time
    start_time = db.Column(db.Float, nullable=True)
    end_time = db.Column(db.Float, nullable=True)
    version = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.Float, nullable=False, default=time.time)

    host = db.relationship('Instructor', back_populates='sessions')
    players = db.relationship('Player', back_populates='session', order_by='Player.id')
    scores = db.relationship('Score', back_populates='session', lazy='dynamic')

    # Commits compare the stored version; the state machine assigns the new one
    __mapper_args__ = {'version_id_col': version, 'version_id_generator': False}

    def __init__(self, **kwargs):
        kwargs.setdefault('status', 'setup')
        kwargs.setdefault('current_level_index', 0)
        kwargs.setdefault('version', 0)
        kwargs.setdefault('playlist', '[]')
        super(GameSession, self).__init__(**kwargs)

    def get_playlist(self):
        try:
            return json.loads(self.playlist or '[]')
        except ValueError:
            return []

    def set_playlist(self, entries):
        self.playlist = json.dumps(entries)

    @property
    def current_round(self):
        entries = self.get_playlist()
        idx = self.current_level_index or 0
        if 0 <= idx < len(entries):
            return entries[idx]
        return None

    def remaining_seconds(self, now=None):
        if self.status != 'playing' or self.end_time is None:
            return None
        now = time.time() if now is None else now
        return max(0, math.ceil(self.end_time - now))

    def submitted_nicknames(self, round_index=None):
        idx = self.current_level_index if round_index is None else round_index
        rows = Score.query.with_entities(Score.nickname).filter_by(session_id=self.id, round_index=idx).distinct()
        return {nickname for (nickname,) in rows}

    def to_dict(self, now=None, include_players=True):
        now = time.time() if now is None else now
        entries = self.get_playlist()
        payload = {
            'id': self.id,
            'host_id': self.host_id,
            'status': self.status,
            'version': self.version,
            'current_level_index': self.current_level_index,
            'total_rounds': len(entries),
            'playlist': entries,
            'current_round': self.current_round,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'server_time': now,
            'remaining_seconds': self.remaining_seconds(now),
        }
        if include_players:
            submitted = self.submitted_nicknames()
            players_serialized = []
            for p in self.players:
                pd = p.to_dict()
                pd['has_submitted_current'] = p.nickname in submitted
                players_serialized.append(pd)
            payload['players'] = players_serialized
            payload['submitted_count'] = len(submitted)
        return payload


class Player(db.Model):
    __tablename__ = 'player'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(32), db.ForeignKey('game_session.id'), nullable=False, index=True)
    nickname = db.Column(db.String(64), nullable=False)
    avatar = db.Column(db.String(16), nullable=False)
    player_token = db.Column(db.String(32), nullable=False)
    joined_at = db.Column(db.Float, nullable=False, default=time.time)
    session = db.relationship('GameSession', back_populates='players')

    __table_args__ = (
        db.UniqueConstraint('session_id', 'nickname', name='uq_player_session_nickname'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'nickname': self.nickname,
            'avatar': self.avatar,
            'joined_at': self.joined_at,
        }


class Score(db.Model):
    """One round submission; append-only."""
    __tablename__ = 'score'
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(32), db.ForeignKey('game_session.id'), nullable=False, index=True)
    nickname = db.Column(db.String(64), nullable=False)
    avatar = db.Column(db.String(16), nullable=False)
    level_id = db.Column(db.String(64), nullable=False)
    round_index = db.Column(db.Integer, nullable=False)
    score = db.Column(db.Integer, nullable=False, default=0)
    correct_count = db.Column(db.Integer, nullable=False, default=0)
    time_taken = db.Column(db.Integer, nullable=False, default=0)
    seconds_remaining = db.Column(db.Integer, nullable=False, default=0)
    forced = db.Column(db.Boolean, nullable=False, default=False)
    timestamp = db.Column(db.Float, nullable=False, default=time.time)
    session = db.relationship('GameSession', back_populates='scores')

    __table_args__ = (
        db.UniqueConstraint('session_id', 'nickname', 'round_index', name='uq_score_session_player_round'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'session_id': self.session_id,
            'nickname': self.nickname,
            'avatar': self.avatar,
            'level_id': self.level_id,
            'round_index': self.round_index,
            'score': self.score,
            'correct_count': self.correct_count,
            'time_taken': self.time_taken,
            'seconds_remaining': self.seconds_remaining,
            'forced': self.forced,
            'timestamp': self.timestamp,
        }


class CustomLevel(db.Model):
    __tablename__ = 'custom_level'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(200), nullable=False)
    correct_order = db.Column(db.Text, nullable=False)  # JSON-encoded list of {id, content}
    author_id = db.Column(db.Integer, db.ForeignKey('instructor.id'), nullable=True)
    created_at = db.Column(db.Float, nullable=False, default=time.time)

    @property
    def level_id(self):
        return f'custom_{self.id}'

    def to_level(self):
        return {
            'id': self.level_id,
            'title': self.title,
            'correct_order': json.loads(self.correct_order or '[]'),
            'custom': True,
            'created_at': self.created_at,
        }
