"""Authoritative room state, persisted through SQLAlchemy.

Every operation that decides game flow is a single conditional UPDATE or a
guarded INSERT, so concurrent callers cannot both win: the phase columns are
compare-and-set, submissions rely on a unique constraint and point totals are
incremented in SQL.
"""

import functools
import json
import logging
import secrets
import time

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from wordmatrix import bcrypt, db
from wordmatrix.errors import AlreadySubmitted, NotFound, StoreUnavailable, Unauthorized
from wordmatrix.models import GAME_OVER, GameResult, LOBBY, Player, ROUND_ACTIVE, Room, Round, SCORING, Submission
from .scoring import SubmissionView

logger = logging.getLogger(__name__)


def generate_host_credential():
    return secrets.token_hex(6).upper()


def _retrying(fn):
    @functools.wraps(fn)
    def wrapper(self, *args, **kwargs):
        attempts = max(1, int(self.retries))
        for attempt in range(1, attempts + 1):
            try:
                return fn(self, *args, **kwargs)
            except OperationalError as exc:
                db.session.rollback()
                if attempt >= attempts:
                    logger.error('[store] %s failed after %d attempts: %s', fn.__name__, attempt, exc)
                    raise StoreUnavailable('Room state is temporarily unavailable') from exc
                delay = min(attempt * self.backoff_ms, 2000) / 1000.0
                logger.warning('[store] %s attempt %d failed, retrying in %.2fs', fn.__name__, attempt, delay)
                time.sleep(delay)
    return wrapper


class RoomStore:
    def __init__(self, retries=3, backoff_ms=50):
        self.retries = retries
        self.backoff_ms = backoff_ms

    # ---- rooms ----

    @_retrying
    def create_room(self, game_mode, total_rounds, round_duration):
        credential = generate_host_credential()
        room = Room(
            game_mode=game_mode,
            total_rounds=total_rounds,
            round_duration=round_duration,
            host_token_hash=bcrypt.generate_password_hash(credential).decode('utf-8'),
        )
        db.session.add(room)
        db.session.commit()
        return room, credential

    @_retrying
    def get_room(self, code):
        code = (code or '').strip().upper()
        if not code:
            return None
        return Room.query.filter_by(code=code).populate_existing().first()

    def require_room(self, code):
        room = self.get_room(code)
        if room is None:
            raise NotFound('Room does not exist')
        return room

    def check_host(self, room, credential):
        if not room.host_token_hash:
            raise NotFound('Room does not exist')
        if not credential or not bcrypt.check_password_hash(room.host_token_hash, str(credential)):
            raise Unauthorized('Invalid host code')

    @_retrying
    def update_settings(self, room, total_rounds, round_duration):
        updated = Room.query.filter_by(id=room.id, phase=LOBBY).update(
            {Room.total_rounds: total_rounds, Room.round_duration: round_duration},
            synchronize_session=False,
        )
        db.session.commit()
        return updated == 1

    @_retrying
    def transition_phase(self, room, round_number, from_phase, to_phase, **values):
        """Move ``room`` from ``from_phase`` to ``to_phase`` if it is still on ``round_number``."""
        changes = {Room.phase: to_phase}
        for key, value in values.items():
            changes[getattr(Room, key)] = value
        updated = Room.query.filter_by(id=room.id, phase=from_phase, current_round=round_number).update(
            changes, synchronize_session=False,
        )
        db.session.commit()
        return updated == 1

    def finish_game(self, room, last_round):
        """Close the room after scoring ``last_round``; the round index moves past the end."""
        return self.transition_phase(room, last_round, SCORING, GAME_OVER, current_round=room.total_rounds + 1)

    # ---- players ----

    @_retrying
    def upsert_player(self, room, session_id, display_name, joined_at_ms):
        player = Player.query.filter_by(room_id=room.id, session_id=session_id).first()
        if player is None:
            player = Player(
                room_id=room.id,
                session_id=session_id,
                display_name=display_name,
                joined_at_ms=joined_at_ms,
            )
            db.session.add(player)
        else:
            player.display_name = display_name
            player.active = True
        try:
            db.session.commit()
        except IntegrityError:
            # Same session joined twice at once; the other insert won.
            db.session.rollback()
            player = Player.query.filter_by(room_id=room.id, session_id=session_id).first()
        return player

    @_retrying
    def get_player(self, room, session_id):
        return Player.query.filter_by(room_id=room.id, session_id=session_id).populate_existing().first()

    @_retrying
    def deactivate_player(self, room, session_id):
        player = Player.query.filter_by(room_id=room.id, session_id=session_id).first()
        if player is None:
            return None
        player.active = False
        db.session.commit()
        return player

    @_retrying
    def active_players(self, room):
        return Player.query.filter_by(room_id=room.id, active=True).order_by(Player.id).all()

    @_retrying
    def all_players(self, room):
        return Player.query.filter_by(room_id=room.id).order_by(Player.id).populate_existing().all()

    # ---- rounds ----

    @_retrying
    def begin_round(self, room, number, prompt, started_at_ms, duration_sec, from_phase):
        """Record round ``number`` and make it current, in one transaction.

        Returns ``None`` when the room is no longer at ``number - 1`` in
        ``from_phase``.
        """
        updated = Room.query.filter_by(id=room.id, phase=from_phase, current_round=number - 1).update(
            {Room.current_round: number, Room.phase: ROUND_ACTIVE},
            synchronize_session=False,
        )
        if updated != 1:
            db.session.rollback()
            return None
        rnd = Round(
            room_id=room.id,
            number=number,
            prompt=json.dumps(prompt),
            started_at_ms=started_at_ms,
            duration_sec=duration_sec,
        )
        db.session.add(rnd)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            return None
        return rnd

    @_retrying
    def get_round(self, room, number):
        return Round.query.filter_by(room_id=room.id, number=number).first()

    # ---- submissions ----

    @_retrying
    def record_submission(self, rnd, player, word, slot, submitted_at_ms):
        sub = Submission(
            round_id=rnd.id,
            player_id=player.id,
            session_id=player.session_id,
            display_name=player.display_name,
            word=word,
            slot=slot,
            submitted_at_ms=submitted_at_ms,
        )
        db.session.add(sub)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise AlreadySubmitted('Already submitted for this round')
        return sub

    @_retrying
    def submission_count(self, rnd, session_id):
        return Submission.query.filter_by(round_id=rnd.id, session_id=session_id).count()

    @_retrying
    def submission_snapshot(self, rnd, until_ms=None):
        query = Submission.query.filter_by(round_id=rnd.id)
        if until_ms is not None:
            query = query.filter(Submission.submitted_at_ms <= until_ms)
        rows = query.order_by(Submission.submitted_at_ms, Submission.id).all()
        return [
            SubmissionView(
                session_id=s.session_id,
                display_name=s.display_name,
                word=s.word,
                submitted_at_ms=s.submitted_at_ms,
                seq=s.id,
            )
            for s in rows
        ]

    # ---- points ----

    @_retrying
    def reset_round_points(self, room):
        Player.query.filter_by(room_id=room.id).update(
            {Player.last_round_cents: 0, Player.last_words: None},
            synchronize_session=False,
        )
        db.session.commit()

    @_retrying
    def apply_round_points(self, room, session_id, delta_cents, words):
        try:
            updated = Player.query.filter_by(room_id=room.id, session_id=session_id).update(
                {
                    Player.total_cents: Player.total_cents + delta_cents,
                    Player.last_round_cents: delta_cents,
                    Player.last_words: json.dumps(list(words)),
                },
                synchronize_session=False,
            )
            db.session.commit()
        except OperationalError:
            raise
        except SQLAlchemyError:
            db.session.rollback()
            raise
        return updated == 1

    # ---- archive ----

    @_retrying
    def archive_result(self, room_code, display_name, total_points, rounds_played, completed_at):
        try:
            db.session.add(GameResult(
                room_code=room_code,
                display_name=display_name,
                total_points=total_points,
                rounds_played=rounds_played,
                completed_at=completed_at,
            ))
            db.session.commit()
        except OperationalError:
            raise
        except SQLAlchemyError:
            db.session.rollback()
            raise
