from wordmatrix import db
import json
import random
import string
import time

LOBBY = 'lobby'
ROUND_ACTIVE = 'round_active'
SCORING = 'scoring'
GAME_OVER = 'game_over'
PHASES = (LOBBY, ROUND_ACTIVE, SCORING, GAME_OVER)


def now_ms():
    return int(time.time() * 1000)


def generate_room_code(length=6):
    """Generate a unique, short room code."""
    while True:
        code = ''.join(random.choices(string.ascii_uppercase + string.digits, k=length))
        if not Room.query.filter_by(code=code).first():
            return code


class Room(db.Model):
    __tablename__ = 'room'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(8), unique=True, index=True, nullable=False)
    host_token_hash = db.Column(db.String(128), nullable=True)
    game_mode = db.Column(db.String(16), nullable=False, default='letters')
    total_rounds = db.Column(db.Integer, nullable=False, default=10)
    round_duration = db.Column(db.Integer, nullable=False, default=15)
    current_round = db.Column(db.Integer, nullable=False, default=0)
    phase = db.Column(db.String(16), nullable=False, default=LOBBY)  # lobby, round_active, scoring, game_over
    created_at = db.Column(db.Float, nullable=False, default=time.time)
    players = db.relationship('Player', back_populates='room', order_by='Player.id', lazy='dynamic')
    rounds = db.relationship('Round', back_populates='room', order_by='Round.number', lazy='dynamic')

    def __init__(self, **kwargs):
        super(Room, self).__init__(**kwargs)
        if not self.code:
            self.code = generate_room_code()

    def to_dict(self):
        return {
            'code': self.code,
            'mode': self.game_mode,
            'rounds': self.total_rounds,
            'roundDuration': self.round_duration,
            'currentRound': self.current_round,
            'phase': self.phase,
        }


class Player(db.Model):
    __tablename__ = 'player'
    __table_args__ = (db.UniqueConstraint('room_id', 'session_id', name='uq_player_room_session'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    session_id = db.Column(db.String(64), nullable=False)
    display_name = db.Column(db.String(64), nullable=False)
    # Points are kept in hundredths so increments stay exact and atomic.
    total_cents = db.Column(db.Integer, nullable=False, default=0)
    last_round_cents = db.Column(db.Integer, nullable=False, default=0)
    last_words = db.Column(db.Text, nullable=True)  # JSON-encoded list of words
    joined_at_ms = db.Column(db.BigInteger, nullable=False, default=now_ms)
    active = db.Column(db.Boolean, nullable=False, default=True)
    room = db.relationship('Room', back_populates='players')

    @property
    def total_points(self):
        return round((self.total_cents or 0) / 100.0, 2)

    @property
    def last_round_points(self):
        return round((self.last_round_cents or 0) / 100.0, 2)

    @property
    def last_words_list(self):
        try:
            return json.loads(self.last_words) if self.last_words else []
        except ValueError:
            return []

    def to_dict(self):
        return {
            'sessionId': self.session_id,
            'displayName': self.display_name,
            'totalPoints': self.total_points,
            'lastWords': self.last_words_list,
            'lastRoundPoints': self.last_round_points,
            'joinedAt': self.joined_at_ms,
            'active': self.active,
        }


class Round(db.Model):
    __tablename__ = 'round'
    __table_args__ = (db.UniqueConstraint('room_id', 'number', name='uq_round_room_number'),)
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('room.id'), nullable=False, index=True)
    number = db.Column(db.Integer, nullable=False)
    prompt = db.Column(db.Text, nullable=False)  # JSON-encoded prompt
    started_at_ms = db.Column(db.BigInteger, nullable=False)
    duration_sec = db.Column(db.Integer, nullable=False)
    room = db.relationship('Room', back_populates='rounds')
    submissions = db.relationship('Submission', back_populates='round', lazy='dynamic')

    @property
    def prompt_data(self):
        return json.loads(self.prompt)

    def closes_at_ms(self, grace_sec=0):
        return self.started_at_ms + int((self.duration_sec + grace_sec) * 1000)


class Submission(db.Model):
    __tablename__ = 'submission'
    # slot is '' when a player gets one word per round, otherwise the word itself.
    __table_args__ = (db.UniqueConstraint('round_id', 'session_id', 'slot', name='uq_submission_slot'),)
    id = db.Column(db.Integer, primary_key=True)
    round_id = db.Column(db.Integer, db.ForeignKey('round.id'), nullable=False, index=True)
    player_id = db.Column(db.Integer, db.ForeignKey('player.id'), nullable=False)
    session_id = db.Column(db.String(64), nullable=False)
    display_name = db.Column(db.String(64), nullable=False)
    word = db.Column(db.String(64), nullable=False)
    slot = db.Column(db.String(64), nullable=False, default='')
    submitted_at_ms = db.Column(db.BigInteger, nullable=False)
    round = db.relationship('Round', back_populates='submissions')


class GameResult(db.Model):
    __tablename__ = 'game_result'
    id = db.Column(db.Integer, primary_key=True)
    room_code = db.Column(db.String(8), nullable=False, index=True)
    display_name = db.Column(db.String(64), nullable=False)
    total_points = db.Column(db.Float, nullable=False)
    rounds_played = db.Column(db.Integer, nullable=False)
    completed_at = db.Column(db.Float, nullable=False, default=time.time)

    def to_dict(self):
        return {
            'roomCode': self.room_code,
            'displayName': self.display_name,
            'totalPoints': self.total_points,
            'roundsPlayed': self.rounds_played,
            'completedAt': self.completed_at,
        }
