"""Per-room round orchestration.

A room moves LOBBY -> ROUND_ACTIVE(n) -> SCORING(n) -> ROUND_ACTIVE(n+1) or
GAME_OVER. Transitions for one room run under that room's lock and are
confirmed by a compare-and-set in the store before anything is broadcast.
Submissions take the lock only around their insert, so an accepted word is
either in the scoring snapshot or refused with ROUND_CLOSED. A store outage
mid-transition leaves the room where its last compare-and-set put it and
reschedules the step that failed.
"""

import logging
import random
import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from wordmatrix import socketio
from wordmatrix.errors import AlreadySubmitted, InvalidInput, RoundClosed, StoreUnavailable
from wordmatrix.models import GAME_OVER, LOBBY, ROUND_ACTIVE, SCORING, now_ms
from .archive import archive_final_standings
from .broadcast import Broadcaster
from .dictionary import load_dictionary, normalize_word
from .rounds import generate_prompt, round_duration
from .scheduler import RoomTimers
from .scoring import (
    GAME_MODES,
    LETTERS,
    SUBWORD,
    build_leaderboard,
    can_form_from,
    precheck,
    score_round,
    to_cents,
)
from .store import RoomStore

logger = logging.getLogger(__name__)

MAX_WORD_LENGTH = 32
_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')


@dataclass
class SessionContext:
    """Who is acting: the room and the stable session id of the player."""
    room_code: str
    session_id: str
    display_name: Optional[str] = None


def sanitize_display_name(raw, max_length=50) -> str:
    name = _CONTROL_CHARS.sub('', str(raw or ''))
    name = name.replace('<', '').replace('>', '').strip()
    return name[:max_length].strip()


class Orchestrator:
    def __init__(self, app=None):
        self.app = None
        self.store = None
        self.dictionary = None
        self.timers = None
        self.broadcaster = None
        self.clock = now_ms
        self.rng = random.Random()
        self._locks = {}
        self._locks_guard = threading.Lock()
        # (room code, round) -> "scoring" | "scored" while a close is in progress
        self._closing = {}
        if app is not None:
            self.init_app(app)

    def init_app(self, app):
        self.app = app
        cfg = app.config
        self.store = RoomStore(
            retries=cfg.get('STORE_RETRIES', 3),
            backoff_ms=cfg.get('STORE_RETRY_BACKOFF_MS', 50),
        )
        self.dictionary = load_dictionary(cfg.get('DICTIONARY_PATH'))
        if self.dictionary.degraded:
            logger.warning('Dictionary degraded: running on %d fallback words', len(self.dictionary))
        self.timers = RoomTimers(app)
        self.broadcaster = Broadcaster(socketio)
        app.extensions['wordmatrix'] = self

    @property
    def config(self):
        return self.app.config

    @contextmanager
    def _room_lock(self, room_code):
        key = (room_code or '').strip().upper()
        with self._locks_guard:
            lock = self._locks.setdefault(key, threading.RLock())
        with lock:
            yield

    def _publish(self, room_code, event, payload=None):
        self.broadcaster.publish(room_code, event, payload)

    def _publish_members(self, room):
        players = [p.to_dict() for p in self.store.active_players(room)]
        self._publish(room.code, 'memberListChanged', {'roomCode': room.code, 'players': players})
        return players

    def _validate_settings(self, rounds, duration):
        cfg = self.config
        checked = []
        for value, low, high, label in (
            (rounds, cfg.get('MIN_ROUNDS', 1), cfg.get('MAX_ROUNDS', 20), 'rounds'),
            (duration, cfg.get('MIN_ROUND_DURATION_SEC', 10), cfg.get('MAX_ROUND_DURATION_SEC', 60), 'round duration'),
        ):
            if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
                raise InvalidInput(f'Invalid {label}', code='INVALID_SETTINGS')
            try:
                number = int(value)
            except (TypeError, ValueError):
                raise InvalidInput(f'Invalid {label}', code='INVALID_SETTINGS')
            if number < low or number > high:
                raise InvalidInput(f'{label.capitalize()} must be between {low} and {high}', code='INVALID_SETTINGS')
            checked.append(number)
        return tuple(checked)

    # ---- host-facing request/response ----

    def create_room(self, mode=None, rounds=None, duration=None) -> dict:
        cfg = self.config
        mode = (mode or cfg.get('DEFAULT_GAME_MODE', LETTERS)).strip().lower()
        if mode not in GAME_MODES:
            raise InvalidInput(f'Unknown game mode {mode!r}', code='INVALID_MODE')
        rounds, duration = self._validate_settings(
            cfg.get('DEFAULT_ROUNDS', 10) if rounds is None else rounds,
            cfg.get('DEFAULT_ROUND_DURATION_SEC', 15) if duration is None else duration,
        )
        room, credential = self.store.create_room(mode, rounds, duration)
        logger.info('[room-create] room=%s mode=%s rounds=%d duration=%ds', room.code, mode, rounds, duration)
        return {
            'roomCode': room.code,
            'hostCredential': credential,
            'mode': room.game_mode,
            'rounds': room.total_rounds,
            'roundDuration': room.round_duration,
        }

    def room_config(self, room_code) -> dict:
        room = self.store.require_room(room_code)
        payload = room.to_dict()
        payload['exists'] = True
        return payload

    def leaderboard(self, room_code) -> list:
        room = self.store.require_room(room_code)
        return build_leaderboard(self.store.all_players(room), self.config.get('LEADERBOARD_SIZE', 10))

    # ---- player commands ----

    def join(self, ctx: SessionContext, display_name) -> dict:
        name = sanitize_display_name(display_name, self.config.get('DISPLAY_NAME_MAX_LENGTH', 50))
        if not name:
            raise InvalidInput('Invalid username', code='INVALID_USERNAME')
        room = self.store.require_room(ctx.room_code)
        if room.phase == GAME_OVER:
            raise InvalidInput('This game has already ended', code='GAME_OVER')
        player = self.store.upsert_player(room, ctx.session_id, name, self.clock())
        ctx.display_name = name
        logger.info('[join] room=%s session=%s name=%s phase=%s', room.code, ctx.session_id, name, room.phase)
        self._publish_members(room)
        return player.to_dict()

    def leave(self, ctx: SessionContext) -> None:
        room = self.store.get_room(ctx.room_code)
        if room is None:
            return
        if self.store.deactivate_player(room, ctx.session_id) is None:
            return
        logger.info('[leave] room=%s session=%s', room.code, ctx.session_id)
        self._publish_members(room)

    def configure(self, room_code, credential, rounds, duration) -> dict:
        room = self.store.require_room(room_code)
        self.store.check_host(room, credential)
        with self._room_lock(room.code):
            if room.phase != LOBBY:
                raise InvalidInput('Settings can only change in the lobby', code='NOT_IN_LOBBY')
            rounds, duration = self._validate_settings(rounds, duration)
            if not self.store.update_settings(room, rounds, duration):
                raise InvalidInput('Settings can only change in the lobby', code='NOT_IN_LOBBY')
        logger.info('[settings] room=%s rounds=%d duration=%ds', room.code, rounds, duration)
        self._publish(room.code, 'settingsUpdated', {'rounds': rounds, 'roundDuration': duration})
        return room.to_dict()

    def start(self, room_code, credential):
        room = self.store.require_room(room_code)
        self.store.check_host(room, credential)
        with self._room_lock(room.code):
            room = self.store.require_room(room.code)
            if room.phase != LOBBY:
                raise InvalidInput('Game has already started', code='ALREADY_STARTED')
            rnd = self._begin_round(room, 1, from_phase=LOBBY)
        if rnd is None:
            raise InvalidInput('Game has already started', code='ALREADY_STARTED')
        return rnd

    def submit(self, ctx: SessionContext, word) -> dict:
        room = self.store.require_room(ctx.room_code)
        if room.phase != ROUND_ACTIVE:
            raise RoundClosed('Round is not accepting submissions')
        rnd = self.store.get_round(room, room.current_round)
        if rnd is None:
            raise RoundClosed('Round is not accepting submissions')
        submitted_at = self.clock()
        if submitted_at > rnd.closes_at_ms(self.config.get('ROUND_GRACE_SEC', 2)):
            raise RoundClosed('Round is over')

        player = self.store.get_player(room, ctx.session_id)
        if player is None or not player.active:
            raise InvalidInput('Not a member of this room', code='NOT_IN_ROUND')
        if player.joined_at_ms > rnd.started_at_ms:
            raise InvalidInput('Joined after this round started', code='NOT_IN_ROUND')

        w = normalize_word(word)
        reason = precheck(w)
        if reason:
            raise InvalidInput('Word is not acceptable', code=reason)
        if len(w) > MAX_WORD_LENGTH:
            raise InvalidInput('Word is too long', code='TOO_LONG')

        slot = ''
        if room.game_mode == SUBWORD:
            main_word = rnd.prompt_data.get('mainWord', '')
            if not self.dictionary.is_valid(w):
                raise InvalidInput('Not a valid word', code='NOT_IN_DICTIONARY')
            if not can_form_from(w, main_word):
                raise InvalidInput(f'Cannot be made from {main_word}', code='NOT_FORMABLE')
            slot = w

        # The insert and the close compare-and-set exclude each other, so an
        # acknowledged word is always in the scoring snapshot.
        with self._room_lock(room.code):
            current = self.store.get_room(room.code)
            if current is None or current.phase != ROUND_ACTIVE or current.current_round != rnd.number:
                raise RoundClosed('Round is over')
            try:
                self.store.record_submission(rnd, player, w, slot, submitted_at)
            except AlreadySubmitted:
                if slot:
                    raise AlreadySubmitted('You already found that word', code='ALREADY_FOUND')
                raise

        logger.info('[submit] room=%s round=%d session=%s word=%s', room.code, rnd.number, ctx.session_id, w)
        ack = {'word': w, 'roundNumber': rnd.number}
        if room.game_mode == SUBWORD:
            ack['count'] = self.store.submission_count(rnd, ctx.session_id)
        return ack

    # ---- transitions ----

    def _begin_round(self, room, number, from_phase):
        cfg = self.config
        code, total, duration = room.code, room.total_rounds, round_duration(room)
        prompt = generate_prompt(room.game_mode, cfg, self.dictionary, rng=self.rng)
        started_at = self.clock()
        rnd = self.store.begin_round(room, number, prompt, started_at, duration, from_phase)
        if rnd is None:
            logger.info('[round-start-skip] room=%s round=%d no longer expected', code, number)
            return None

        logger.info('[round-start] room=%s round=%d/%d prompt=%s', code, number, total, prompt)
        payload = dict(prompt)
        payload.update({
            'prompt': prompt,
            'roundNumber': number,
            'totalRounds': total,
            'durationSeconds': duration,
            'serverStartTime': started_at,
        })
        self._publish(code, 'roundBegan', payload)
        self.timers.schedule(
            code, ROUND_ACTIVE, number, duration + float(cfg.get('ROUND_GRACE_SEC', 2)),
            self.close_round, code, number,
        )
        return rnd

    def _retry_later(self, room_code, stage, number, fn):
        delay = float(self.config.get('STORE_RECOVERY_SEC', 2))
        token = self.timers.schedule(room_code, stage, number, delay, fn, room_code, number)
        if token is None:
            logger.warning('[retry-unscheduled] room=%s stage=%s round=%d', room_code, stage, number)

    def close_round(self, room_code, number):
        """Close round ``number`` and score it. Stale or repeated calls are ignored.

        A store outage keeps the room in SCORING and schedules another
        attempt: the close itself while the round is unscored, otherwise the
        advance that follows it.
        """
        key = ((room_code or '').strip().upper(), number)
        with self._room_lock(room_code):
            try:
                outcome = self._close_round(room_code, number)
            except StoreUnavailable:
                stage = self._closing.get(key)
                logger.error('[round-close-failed] room=%s round=%d stage=%s store unavailable',
                             room_code, number, stage)
                if stage == 'scored':
                    self._closing.pop(key, None)
                    self._retry_later(key[0], SCORING, number, self.advance)
                else:
                    self._retry_later(key[0], ROUND_ACTIVE, number, self.close_round)
                return None
            self._closing.pop(key, None)
            return outcome

    def _close_round(self, room_code, number):
        cfg = self.config
        room = self.store.get_room(room_code)
        if room is None:
            return None
        key = (room.code, number)
        stage = self._closing.get(key)
        if stage is None:
            if not self.store.transition_phase(room, number, ROUND_ACTIVE, SCORING):
                logger.info('[round-close-skip] room=%s round=%d phase=%s current=%s',
                            room.code, number, room.phase, room.current_round)
                return None
            self._closing[key] = 'scoring'
            logger.info('[round-close] room=%s round=%d', room.code, number)
            self._publish(room.code, 'scoringStarted', {'roundNumber': number})
        elif stage != 'scoring' or room.phase != SCORING or room.current_round != number:
            logger.info('[round-close-skip] room=%s round=%d stage=%s phase=%s', room.code, number, stage, room.phase)
            return None
        else:
            logger.info('[round-close-resume] room=%s round=%d', room.code, number)

        code, total, mode = room.code, room.total_rounds, room.game_mode
        rnd = self.store.get_round(room, number)
        snapshot = self.store.submission_snapshot(rnd, rnd.closes_at_ms(cfg.get('ROUND_GRACE_SEC', 2)))
        outcome = score_round(mode, rnd.prompt_data, snapshot, rnd.started_at_ms, rnd.duration_sec, self.dictionary)
        self._apply_outcome(room, outcome)
        self._closing[key] = 'scored'

        players = self.store.all_players(room)
        top = build_leaderboard(players, cfg.get('LEADERBOARD_SIZE', 10))
        scored = {
            'roundNumber': number,
            'results': [r.to_dict() for r in outcome.results],
            'players': [pr.to_dict() for pr in outcome.players.values()],
            'bestWord': outcome.best_word,
            'mostWords': outcome.most_words,
        }
        if mode == SUBWORD:
            scored['possibleWords'] = outcome.possible_words
        self._publish(code, 'roundScored', scored)
        self._publish(code, 'leaderboardChanged', {'top10': top, 'bestWord': outcome.best_word})
        logger.info('[round-scored] room=%s round=%d submissions=%d best=%s',
                    code, number, len(snapshot), (outcome.best_word or {}).get('word'))

        if number < total:
            self.timers.schedule(
                code, SCORING, number, float(cfg.get('RESULTS_PACING_SEC', 3)),
                self.advance, code, number,
            )
        else:
            self._finish_game(room, number)
        return outcome

    def _apply_outcome(self, room, outcome):
        self.store.reset_round_points(room)
        for session_id, pr in outcome.players.items():
            try:
                self.store.apply_round_points(room, session_id, to_cents(pr.points), pr.words)
            except (StoreUnavailable, SQLAlchemyError):
                logger.exception('[score-apply-failed] room=%s session=%s points=%s',
                                 room.code, session_id, pr.points)

    def advance(self, room_code, number):
        """Leave the results of round ``number``: start the next round, or end the game after the last."""
        try:
            with self._room_lock(room_code):
                room = self.store.get_room(room_code)
                if room is None or room.phase != SCORING or room.current_round != number:
                    logger.info('[advance-skip] room=%s round=%d', room_code, number)
                    return None
                if number >= room.total_rounds:
                    return self._finish_game(room, number)
                return self._begin_round(room, number + 1, from_phase=SCORING)
        except StoreUnavailable:
            logger.error('[advance-failed] room=%s round=%d store unavailable', room_code, number)
            self._retry_later((room_code or '').strip().upper(), SCORING, number, self.advance)
            return None

    def _finish_game(self, room, number):
        code = room.code
        players = self.store.all_players(room)
        top = build_leaderboard(players, self.config.get('LEADERBOARD_SIZE', 10))
        if not self.store.finish_game(room, number):
            logger.info('[game-over-skip] room=%s round=%d', code, number)
            return None
        self.timers.cancel(code)
        self._publish(code, 'gameEnded', {'finalTop10': top})
        logger.info('[game-over] room=%s rounds=%d players=%d', code, number, len(players))
        archive_final_standings(self.store, room, players, completed_at=time.time())
        return top

    def teardown(self, room_code):
        key = (room_code or '').strip().upper()
        self.timers.cancel(key)
        with self._locks_guard:
            self._locks.pop(key, None)
        for closing in [k for k in self._closing if k[0] == key]:
            self._closing.pop(closing, None)
