from collections import Counter, OrderedDict
from dataclasses import asdict, dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Sequence

from .dictionary import MIN_WORD_LENGTH, Dictionary, normalize_word

LETTERS = 'letters'
SUBWORD = 'subword'
GAME_MODES = (LETTERS, SUBWORD)

# Variant A (shared letters)
VALID_WORD_POINTS = 5
CONTAINS_ALL_POINTS = 3
LETTERS_LENGTH_FREE = 5
LETTERS_SPEED_POINTS = 2
ORIGINALITY_POINTS = 5
TIME_MULTIPLIER_MAX_BONUS = 0.1

# Variant B (subword extraction)
FORMABLE_POINTS = 5
SUBWORD_SPEED_POINTS = 3
UNIQUENESS_POINTS = 10
FIRST_FINDER_POINTS = 5
SUBWORD_LENGTH_TABLE = {4: 2, 5: 5, 6: 9, 7: 14}


def round_points(value: float) -> float:
    return float(Decimal(str(value)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))


def to_cents(value: float) -> int:
    return int(Decimal(str(value)).scaleb(2).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


@dataclass
class ScoreBreakdown:
    is_valid: bool = False
    reason: Optional[str] = None
    valid_word: int = 0
    contains_all: int = 0
    formable: int = 0
    length_bonus: int = 0
    speed_bonus: int = 0
    originality_bonus: int = 0
    uniqueness_bonus: int = 0
    first_finder_bonus: int = 0
    time_multiplier: float = 1.0
    base_points: int = 0
    round_points: float = 0.0

    def to_dict(self) -> dict:
        d = asdict(self)
        return {_camel(k): v for k, v in d.items()}


def _camel(name: str) -> str:
    head, *rest = name.split('_')
    return head + ''.join(part.title() for part in rest)


@dataclass
class SubmissionView:
    """One recorded submission as seen by the scoring pass."""
    session_id: str
    display_name: str
    word: str
    submitted_at_ms: int
    seq: int


@dataclass
class ScoredSubmission:
    submission: SubmissionView
    breakdown: ScoreBreakdown
    is_duplicate: bool
    is_first_duplicate: bool

    def to_dict(self) -> dict:
        return {
            'sessionId': self.submission.session_id,
            'displayName': self.submission.display_name,
            'word': normalize_word(self.submission.word),
            'roundPoints': self.breakdown.round_points,
            'isValid': self.breakdown.is_valid,
            'reason': self.breakdown.reason,
            'isDuplicate': self.is_duplicate,
            'isFirstDuplicate': self.is_first_duplicate,
            'breakdown': self.breakdown.to_dict(),
        }


@dataclass
class PlayerRound:
    session_id: str
    display_name: str
    points: float = 0.0
    words: List[str] = field(default_factory=list)
    valid_count: int = 0

    def to_dict(self) -> dict:
        return {
            'sessionId': self.session_id,
            'displayName': self.display_name,
            'roundPoints': self.points,
            'words': list(self.words),
            'wordCount': self.valid_count,
        }


@dataclass
class RoundOutcome:
    results: List[ScoredSubmission]
    players: Dict[str, PlayerRound]
    best_word: Optional[dict] = None
    most_words: Optional[dict] = None
    possible_words: List[str] = field(default_factory=list)

    def deltas(self) -> Dict[str, float]:
        return {sid: pr.points for sid, pr in self.players.items()}


def precheck(word: Optional[str]) -> Optional[str]:
    """Reject malformed input before any dictionary lookup."""
    w = normalize_word(word)
    if not w:
        return 'EMPTY'
    if len(w) < MIN_WORD_LENGTH:
        return 'TOO_SHORT'
    if not w.isascii() or not w.isalpha():
        return 'NOT_ALPHABETIC'
    return None


def contains_all_letters(word: str, letters: Iterable[str]) -> bool:
    """Every required letter appears at least once.

    Repeated required letters are satisfied by a single occurrence.
    """
    w = normalize_word(word)
    return all(letter.lower() in w for letter in letters)


def can_form_from(word: str, main_word: str) -> bool:
    available = Counter(normalize_word(main_word))
    for ch in normalize_word(word):
        if available[ch] <= 0:
            return False
        available[ch] -= 1
    return True


POSSIBLE_WORDS_LIMIT = 50


def possible_words(main_word: str, dictionary: Dictionary, limit: int = POSSIBLE_WORDS_LIMIT) -> List[str]:
    """Dictionary words that can be built from ``main_word``, longest first."""
    found = [w for w in dictionary if len(w) >= MIN_WORD_LENGTH and can_form_from(w, main_word)]
    found.sort(key=lambda w: (-len(w), w))
    return found[:limit]


def length_bonus_for(length: int) -> int:
    if length >= 8:
        return 20 + 3 * (length - 8)
    return SUBWORD_LENGTH_TABLE.get(length, 0)


def score_letters_submission(word, letters, dictionary: Dictionary, time_elapsed, total_time,
                             is_first_duplicate=False) -> ScoreBreakdown:
    breakdown = ScoreBreakdown()
    w = normalize_word(word)

    breakdown.reason = precheck(w)
    if breakdown.reason:
        return breakdown
    if not dictionary.is_valid(w):
        breakdown.reason = 'NOT_IN_DICTIONARY'
        return breakdown
    breakdown.valid_word = VALID_WORD_POINTS

    if not contains_all_letters(w, letters):
        breakdown.reason = 'MISSING_LETTERS'
        return breakdown
    breakdown.contains_all = CONTAINS_ALL_POINTS
    breakdown.is_valid = True

    breakdown.length_bonus = max(0, len(w) - LETTERS_LENGTH_FREE)
    if time_elapsed <= total_time / 2:
        breakdown.speed_bonus = LETTERS_SPEED_POINTS
    if is_first_duplicate:
        breakdown.originality_bonus = ORIGINALITY_POINTS

    breakdown.base_points = (
        breakdown.valid_word
        + breakdown.contains_all
        + breakdown.length_bonus
        + breakdown.speed_bonus
        + breakdown.originality_bonus
    )
    remaining = max(0.0, total_time - time_elapsed)
    breakdown.time_multiplier = 1 + (remaining / total_time) * TIME_MULTIPLIER_MAX_BONUS
    breakdown.round_points = round_points(breakdown.base_points * breakdown.time_multiplier)
    return breakdown


def score_subword_submission(word, main_word, dictionary: Dictionary, time_elapsed, total_time,
                             is_unique=True, is_first_finder=False) -> ScoreBreakdown:
    breakdown = ScoreBreakdown()
    w = normalize_word(word)

    breakdown.reason = precheck(w)
    if breakdown.reason:
        return breakdown
    if not dictionary.is_valid(w):
        breakdown.reason = 'NOT_IN_DICTIONARY'
        return breakdown
    breakdown.valid_word = VALID_WORD_POINTS

    if not can_form_from(w, main_word):
        breakdown.reason = 'NOT_FORMABLE'
        return breakdown
    breakdown.formable = FORMABLE_POINTS
    breakdown.is_valid = True

    breakdown.length_bonus = length_bonus_for(len(w))
    if time_elapsed <= total_time / 4:
        breakdown.speed_bonus = SUBWORD_SPEED_POINTS
    if is_unique:
        breakdown.uniqueness_bonus = UNIQUENESS_POINTS
    if is_first_finder:
        breakdown.first_finder_bonus = FIRST_FINDER_POINTS

    breakdown.base_points = (
        breakdown.valid_word
        + breakdown.formable
        + breakdown.length_bonus
        + breakdown.speed_bonus
        + breakdown.uniqueness_bonus
        + breakdown.first_finder_bonus
    )
    breakdown.round_points = round_points(breakdown.base_points)
    return breakdown


def _arrival(sub: SubmissionView):
    return (sub.submitted_at_ms, sub.seq)


def duplicate_groups(submissions: Iterable[SubmissionView]) -> Dict[str, List[SubmissionView]]:
    """Group submissions by normalised word, earliest first."""
    groups: Dict[str, List[SubmissionView]] = {}
    for sub in sorted(submissions, key=_arrival):
        groups.setdefault(normalize_word(sub.word), []).append(sub)
    return groups


def score_round(mode: str, prompt: dict, submissions: Sequence[SubmissionView], started_at_ms: int,
                duration_sec: float, dictionary: Dictionary) -> RoundOutcome:
    """Score a closed round from its submission snapshot.

    The earliest submitter (by server timestamp, then arrival order) of a
    word submitted by two or more players gets the originality (letters) or
    first-finder (subword) bonus. Nothing here touches the store, so the same
    snapshot always yields the same outcome.
    """
    if mode not in GAME_MODES:
        raise ValueError(f'unknown game mode {mode!r}')

    groups = duplicate_groups(submissions)
    results: List[ScoredSubmission] = []
    players: Dict[str, PlayerRound] = OrderedDict()

    for sub in sorted(submissions, key=_arrival):
        group = groups[normalize_word(sub.word)]
        is_duplicate = len(group) > 1
        is_first = is_duplicate and group[0].seq == sub.seq
        elapsed = max(0.0, (sub.submitted_at_ms - started_at_ms) / 1000.0)

        if mode == LETTERS:
            breakdown = score_letters_submission(
                sub.word, prompt.get('letters', []), dictionary, elapsed, duration_sec,
                is_first_duplicate=is_first,
            )
        else:
            breakdown = score_subword_submission(
                sub.word, prompt.get('mainWord', ''), dictionary, elapsed, duration_sec,
                is_unique=not is_duplicate, is_first_finder=is_first,
            )
        results.append(ScoredSubmission(sub, breakdown, is_duplicate, is_first))

        pr = players.get(sub.session_id)
        if pr is None:
            pr = players[sub.session_id] = PlayerRound(sub.session_id, sub.display_name)
        pr.words.append(normalize_word(sub.word))
        pr.points = round_points(pr.points + breakdown.round_points)
        if breakdown.is_valid:
            pr.valid_count += 1

    return RoundOutcome(
        results=results,
        players=players,
        best_word=_best_word(results),
        most_words=_most_words(players) if mode == SUBWORD else None,
        possible_words=possible_words(prompt.get('mainWord', ''), dictionary) if mode == SUBWORD else [],
    )


def _best_word(results: List[ScoredSubmission]) -> Optional[dict]:
    best = None
    for r in results:
        if r.breakdown.round_points > 0 and (best is None or r.breakdown.round_points > best.breakdown.round_points):
            best = r
    if best is None:
        return None
    word = normalize_word(best.submission.word)
    return {
        'word': word,
        'length': len(word),
        'sessionId': best.submission.session_id,
        'displayName': best.submission.display_name,
        'roundPoints': best.breakdown.round_points,
    }


def _most_words(players: Dict[str, PlayerRound]) -> Optional[dict]:
    top = max((pr.valid_count for pr in players.values()), default=0)
    if top <= 0:
        return None
    return {
        'count': top,
        'players': [pr.display_name for pr in players.values() if pr.valid_count == top],
    }


def build_leaderboard(players, limit: int = 10) -> List[dict]:
    """Rank players by total points, highest first.

    ``players`` must already be in their prior order (join order); the sort is
    stable so tied players keep that order.
    """
    ranked = sorted(players, key=lambda p: -p.total_points)[:limit]
    rows = []
    for idx, p in enumerate(ranked):
        words = p.last_words_list
        rows.append({
            'rank': idx + 1,
            'sessionId': p.session_id,
            'displayName': p.display_name,
            'totalPoints': p.total_points,
            'lastWord': words[0] if words else '',
            'lastWords': words,
            'lastRoundPoints': p.last_round_points,
            'wordCount': len(words),
        })
    return rows
