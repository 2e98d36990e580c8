import pytest
from sqlalchemy.exc import OperationalError

from wordmatrix.errors import AlreadySubmitted, NotFound, StoreUnavailable, Unauthorized
from wordmatrix.models import GAME_OVER, LOBBY, ROUND_ACTIVE, SCORING, GameResult, Player
from wordmatrix.services.games import store as store_module
from wordmatrix.services.games.store import RoomStore, _retrying


@pytest.fixture()
def store(flask_app):
    return RoomStore(retries=3, backoff_ms=0)


@pytest.fixture()
def room(store):
    room, _ = store.create_room('letters', 3, 15)
    return room


def test_create_room_hashes_the_host_credential(store):
    room, credential = store.create_room('subword', 5, 20)
    assert len(room.code) == 6
    assert room.phase == LOBBY
    assert room.current_round == 0
    assert room.host_token_hash and credential not in room.host_token_hash
    store.check_host(room, credential)
    with pytest.raises(Unauthorized):
        store.check_host(room, 'WRONG')
    with pytest.raises(Unauthorized):
        store.check_host(room, None)


def test_room_lookup_is_case_insensitive(store, room):
    assert store.get_room(room.code.lower()).id == room.id
    assert store.get_room('') is None
    with pytest.raises(NotFound):
        store.require_room('NOPE00')


def test_update_settings_only_in_lobby(store, room):
    assert store.update_settings(room, 7, 30)
    assert store.get_room(room.code).total_rounds == 7
    assert store.transition_phase(room, 0, LOBBY, ROUND_ACTIVE)
    assert not store.update_settings(room, 2, 10)


def test_transition_phase_is_compare_and_set(store, room):
    assert not store.transition_phase(room, 0, ROUND_ACTIVE, SCORING)
    assert store.transition_phase(room, 0, LOBBY, SCORING)
    assert not store.transition_phase(room, 0, LOBBY, SCORING)
    assert store.get_room(room.code).phase == SCORING


def test_begin_round_requires_the_previous_round(store, room):
    rnd = store.begin_round(room, 1, {'kind': 'letters', 'letters': ['E']}, 1000, 15, LOBBY)
    assert rnd.number == 1
    assert rnd.prompt_data == {'kind': 'letters', 'letters': ['E']}
    assert rnd.closes_at_ms(2) == 1000 + 17000
    fresh = store.get_room(room.code)
    assert (fresh.phase, fresh.current_round) == (ROUND_ACTIVE, 1)
    # a second caller racing to start the same round loses
    assert store.begin_round(room, 1, {'kind': 'letters', 'letters': ['A']}, 1000, 15, LOBBY) is None
    assert store.begin_round(room, 3, {'kind': 'letters', 'letters': ['A']}, 1000, 15, ROUND_ACTIVE) is None


def test_finish_game_only_from_the_last_scoring_phase(store, room):
    assert not store.finish_game(room, 0)
    assert store.transition_phase(room, 0, LOBBY, SCORING)
    assert store.finish_game(room, 0)
    fresh = store.get_room(room.code)
    assert (fresh.phase, fresh.current_round) == (GAME_OVER, 4)


def test_upsert_player_reactivates_on_rejoin(store, room):
    first = store.upsert_player(room, 'sess-1', 'Ann', 10)
    store.deactivate_player(room, 'sess-1')
    assert store.active_players(room) == []
    again = store.upsert_player(room, 'sess-1', 'Annie', 99)
    assert again.id == first.id
    assert again.active
    assert again.display_name == 'Annie'
    assert again.joined_at_ms == 10
    assert Player.query.count() == 1
    assert store.deactivate_player(room, 'missing') is None


def test_record_submission_is_check_and_set(store, room):
    player = store.upsert_player(room, 'sess-1', 'Ann', 0)
    rnd = store.begin_round(room, 1, {'kind': 'letters', 'letters': ['E']}, 0, 15, LOBBY)
    store.record_submission(rnd, player, 'eats', '', 500)
    with pytest.raises(AlreadySubmitted):
        store.record_submission(rnd, player, 'seat', '', 600)
    # a keyed slot lets the same player record several distinct words
    store.record_submission(rnd, player, 'tea', 'tea', 700)
    assert store.submission_count(rnd, 'sess-1') == 2


def test_snapshot_honours_the_deadline(store, room):
    ann = store.upsert_player(room, 'a', 'Ann', 0)
    ben = store.upsert_player(room, 'b', 'Ben', 0)
    rnd = store.begin_round(room, 1, {'kind': 'subword', 'mainWord': 'PAINTERS'}, 0, 15, LOBBY)
    store.record_submission(rnd, ben, 'paint', 'paint', 900)
    store.record_submission(rnd, ann, 'train', 'train', 400)
    store.record_submission(rnd, ann, 'stain', 'stain', 20000)
    snap = store.submission_snapshot(rnd, until_ms=17000)
    assert [(s.session_id, s.word) for s in snap] == [('a', 'train'), ('b', 'paint')]
    assert len(store.submission_snapshot(rnd)) == 3


def test_round_points_accumulate_in_cents(store, room):
    store.upsert_player(room, 'a', 'Ann', 0)
    store.upsert_player(room, 'b', 'Ben', 0)
    assert store.apply_round_points(room, 'a', 1067, ['eats'])
    store.reset_round_points(room)
    assert store.apply_round_points(room, 'a', 827, ['seat'])
    assert not store.apply_round_points(room, 'zzz', 100, [])
    ann, ben = store.all_players(room)
    assert ann.total_points == 18.94
    assert ann.last_round_points == 8.27
    assert ann.last_words_list == ['seat']
    assert ben.total_points == 0
    assert ben.last_words_list == []


def test_archive_result_writes_a_row(store, room):
    store.archive_result(room.code, 'Ann', 12.5, 3, 1234.0)
    row = GameResult.query.one()
    assert row.to_dict() == {
        'roomCode': room.code,
        'displayName': 'Ann',
        'totalPoints': 12.5,
        'roundsPlayed': 3,
        'completedAt': 1234.0,
    }


class _FlakyStore(RoomStore):
    def __init__(self, failures, **kwargs):
        super().__init__(**kwargs)
        self.failures = failures
        self.calls = 0

    @_retrying
    def ping(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError('SELECT 1', {}, Exception('database is locked'))
        return 'pong'


def test_transient_errors_are_retried_with_backoff(flask_app, monkeypatch):
    sleeps = []
    monkeypatch.setattr(store_module.time, 'sleep', sleeps.append)
    flaky = _FlakyStore(failures=2, retries=3, backoff_ms=50)
    assert flaky.ping() == 'pong'
    assert flaky.calls == 3
    assert sleeps == [0.05, 0.1]


def test_exhausted_retries_raise_store_unavailable(flask_app, monkeypatch):
    monkeypatch.setattr(store_module.time, 'sleep', lambda s: None)
    flaky = _FlakyStore(failures=10, retries=3, backoff_ms=50)
    with pytest.raises(StoreUnavailable) as info:
        flaky.ping()
    assert flaky.calls == 3
    assert info.value.code == 'STORE_UNAVAILABLE'
