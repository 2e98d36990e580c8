from types import SimpleNamespace

import pytest

from wordmatrix.services.games.dictionary import Dictionary
from wordmatrix.services.games.scoring import (
    LETTERS,
    SUBWORD,
    SubmissionView,
    build_leaderboard,
    can_form_from,
    contains_all_letters,
    length_bonus_for,
    possible_words,
    precheck,
    round_points,
    score_letters_submission,
    score_round,
    score_subword_submission,
    to_cents,
)

WORDS = Dictionary([
    'eats', 'seat', 'east', 'eat', 'tea', 'teas', 'painters', 'paint',
    'train', 'trains', 'apple', 'peppy', 'pain', 'stain',
])
EATS = ['E', 'A', 'T', 'S']


def _sub(session_id, word, at_ms, seq, name=None):
    return SubmissionView(session_id, name or session_id.title(), word, at_ms, seq)


def test_eats_scores_with_speed_and_time_multiplier():
    b = score_letters_submission('EATS', EATS, WORDS, time_elapsed=5, total_time=15)
    assert b.is_valid
    assert (b.valid_word, b.contains_all, b.length_bonus, b.speed_bonus) == (5, 3, 0, 2)
    assert b.base_points == 10
    assert b.time_multiplier == pytest.approx(1 + (10 / 15) * 0.1)
    assert b.round_points == 10.67


def test_late_letters_word_gets_no_speed_bonus():
    b = score_letters_submission('seat', EATS, WORDS, time_elapsed=10, total_time=15)
    assert b.speed_bonus == 0
    assert b.base_points == 8
    assert b.round_points == 8.27


def test_speed_bonus_boundary_is_inclusive():
    assert score_letters_submission('eats', EATS, WORDS, 7.5, 15).speed_bonus == 2
    assert score_letters_submission('eats', EATS, WORDS, 7.6, 15).speed_bonus == 0


def test_letters_length_bonus_beyond_five():
    b = score_letters_submission('painters', ['P', 'A', 'I', 'N'], WORDS, 15, 15)
    assert b.length_bonus == 3
    assert b.time_multiplier == 1.0
    assert b.round_points == 11.0


def test_word_missing_a_tile_keeps_only_the_dictionary_points():
    b = score_letters_submission('eats', ['E', 'A', 'T', 'X'], WORDS, 1, 15)
    assert not b.is_valid
    assert b.reason == 'MISSING_LETTERS'
    assert b.valid_word == 5
    assert b.round_points == 0


def test_unknown_word_scores_zero():
    b = score_letters_submission('tase', EATS, WORDS, 1, 15)
    assert b.reason == 'NOT_IN_DICTIONARY'
    assert b.valid_word == 0
    assert b.round_points == 0


def test_repeated_tiles_need_one_occurrence_each():
    assert contains_all_letters('eat', ['E', 'E', 'A', 'T'])
    assert contains_all_letters('EATS', ['s', 't'])
    assert not contains_all_letters('eat', ['E', 'S'])


def test_can_form_from_respects_letter_counts():
    assert can_form_from('paint', 'PAINTERS')
    assert not can_form_from('apple', 'PAINTERS')
    assert not can_form_from('peppy', 'apple')
    assert can_form_from('apple', 'applepie')


@pytest.mark.parametrize('length, bonus', [(3, 0), (4, 2), (5, 5), (6, 9), (7, 14), (8, 20), (10, 26)])
def test_subword_length_table(length, bonus):
    assert length_bonus_for(length) == bonus


def test_subword_unique_fast_word():
    b = score_subword_submission('train', 'PAINTERS', WORDS, time_elapsed=3, total_time=15)
    assert b.is_valid
    assert (b.valid_word, b.formable, b.length_bonus, b.speed_bonus, b.uniqueness_bonus) == (5, 5, 5, 3, 10)
    assert b.round_points == 28


def test_subword_not_formable():
    b = score_subword_submission('apple', 'PAINTERS', WORDS, 1, 15)
    assert b.reason == 'NOT_FORMABLE'
    assert b.round_points == 0


@pytest.mark.parametrize('word, reason', [
    ('', 'EMPTY'),
    ('  ', 'EMPTY'),
    ('at', 'TOO_SHORT'),
    ('e4ts', 'NOT_ALPHABETIC'),
    ('café', 'NOT_ALPHABETIC'),
    ('eats', None),
])
def test_precheck(word, reason):
    assert precheck(word) == reason


def test_rounding_is_half_up():
    assert round_points(2.675) == 2.68
    assert round_points(10.665) == 10.67
    assert to_cents(10.67) == 1067
    assert to_cents(0.005) == 1


def test_letters_round_gives_originality_to_earliest_duplicate():
    subs = [
        _sub('bob', 'eats', 1000 + 6000, 2),
        _sub('alice', 'EATS', 1000 + 5000, 1),
        _sub('cara', 'seat', 1000 + 5000, 3),
    ]
    outcome = score_round(LETTERS, {'letters': EATS}, subs, 1000, 15, WORDS)

    by_player = {r.submission.session_id: r for r in outcome.results}
    assert by_player['alice'].is_first_duplicate
    assert by_player['alice'].breakdown.originality_bonus == 5
    assert by_player['alice'].breakdown.round_points == 16.0
    assert by_player['bob'].is_duplicate and not by_player['bob'].is_first_duplicate
    assert by_player['bob'].breakdown.round_points == 10.6
    assert not by_player['cara'].is_duplicate
    assert outcome.best_word['sessionId'] == 'alice'
    assert outcome.most_words is None
    assert outcome.deltas() == {'alice': 16.0, 'cara': 10.67, 'bob': 10.6}


def test_same_timestamp_duplicates_break_ties_on_arrival_order():
    subs = [_sub('bob', 'eats', 5000, 8), _sub('alice', 'eats', 5000, 7)]
    outcome = score_round(LETTERS, {'letters': EATS}, subs, 0, 15, WORDS)
    first = [r.submission.session_id for r in outcome.results if r.is_first_duplicate]
    assert first == ['alice']


def test_subword_round_uniqueness_and_first_finder():
    subs = [
        _sub('alice', 'paint', 2000, 1),
        _sub('bob', 'paint', 4000, 2),
        _sub('alice', 'train', 5000, 3),
    ]
    outcome = score_round(SUBWORD, {'mainWord': 'PAINTERS'}, subs, 0, 15, WORDS)

    alice, bob = outcome.players['alice'], outcome.players['bob']
    assert alice.points == 23 + 25
    assert alice.words == ['paint', 'train']
    assert alice.valid_count == 2
    assert bob.points == 15
    assert outcome.best_word['word'] == 'train'
    assert outcome.most_words == {'count': 2, 'players': ['Alice']}
    assert outcome.possible_words[0] == 'painters'


def test_score_round_is_deterministic_for_a_snapshot():
    subs = [_sub('alice', 'eats', 5000, 1), _sub('bob', 'tea', 9000, 2)]
    first = score_round(LETTERS, {'letters': EATS}, subs, 0, 15, WORDS)
    second = score_round(LETTERS, {'letters': EATS}, list(reversed(subs)), 0, 15, WORDS)
    assert first.deltas() == second.deltas()
    assert [r.to_dict() for r in first.results] == [r.to_dict() for r in second.results]


def test_round_without_valid_words_has_no_best_word():
    outcome = score_round(LETTERS, {'letters': EATS}, [_sub('alice', 'zzzz', 1000, 1)], 0, 15, WORDS)
    assert outcome.best_word is None
    assert outcome.players['alice'].points == 0


def test_possible_words_are_longest_first():
    assert possible_words('PAINTERS', WORDS) == [
        'painters', 'trains', 'paint', 'stain', 'train',
        'east', 'eats', 'pain', 'seat', 'teas', 'eat', 'tea',
    ]
    assert possible_words('PAINTERS', WORDS, limit=2) == ['painters', 'trains']
    assert possible_words('', WORDS) == []


def test_letters_round_lists_no_possible_words():
    outcome = score_round(LETTERS, {'letters': EATS}, [_sub('alice', 'eats', 1000, 1)], 0, 15, WORDS)
    assert outcome.possible_words == []

def test_unknown_mode_is_rejected():
    with pytest.raises(ValueError):
        score_round('chess', {}, [], 0, 15, WORDS)


def _player(session_id, total, words=()):
    return SimpleNamespace(
        session_id=session_id,
        display_name=session_id.title(),
        total_points=total,
        last_round_points=0.0,
        last_words_list=list(words),
    )


def test_leaderboard_sorts_descending_and_keeps_ties_in_join_order():
    players = [_player('ann', 5), _player('ben', 9, ['eats']), _player('cat', 5), _player('dan', 12)]
    rows = build_leaderboard(players)
    assert [r['sessionId'] for r in rows] == ['dan', 'ben', 'ann', 'cat']
    assert [r['rank'] for r in rows] == [1, 2, 3, 4]
    assert rows[1]['lastWord'] == 'eats'
    assert rows[0]['lastWord'] == ''


def test_leaderboard_is_capped():
    players = [_player(f'p{i:02d}', i) for i in range(12)]
    rows = build_leaderboard(players, limit=10)
    assert len(rows) == 10
    assert rows[0]['sessionId'] == 'p11'
