"""Prompt generation for both round formats."""

import random
from typing import List, Optional

from .scoring import LETTERS, SUBWORD

VOWELS = 'AEIOU'
CONSONANTS = 'BCDFGHJKLMNPQRSTVWXYZ'

# Long words with plenty of shorter words hidden inside them.
MAIN_WORD_POOL = (
    'ELEPHANT', 'COMPUTER', 'KEYBOARD', 'SUNSHINE', 'MOONLIGHT', 'STARLIGHT',
    'BUTTERFLY', 'MOUNTAIN', 'TELEPHONE', 'BUILDING', 'FOUNDATION', 'STRUCTURE',
    'BEAUTIFUL', 'WONDERFUL', 'FANTASTIC', 'EXCELLENT', 'BRILLIANT', 'CREATIVE',
    'STRATEGIC', 'PRACTICAL', 'TECHNICAL', 'MECHANICAL', 'DANGEROUS', 'ADVENTURE',
    'PAINTERS', 'PLANETS', 'RAINBOW', 'DOLPHIN', 'PENGUIN', 'LEOPARD',
    'MONITOR', 'PRINTER', 'SPEAKER', 'CHAPTERS', 'TRAINERS', 'MASTERED',
    'GARDENER', 'STREAMING', 'PARTNERS', 'TEACHERS', 'CRATERS', 'MARINES',
)


def generate_letters(count: int = 4, vowel_bias: float = 0.4, rng: Optional[random.Random] = None) -> List[str]:
    """Draw ``count`` tiles with at least one vowel, in shuffled order."""
    if count < 1:
        raise ValueError('letter count must be at least 1')
    rng = rng or random
    letters = [rng.choice(VOWELS)]
    for _ in range(1, count):
        pool = VOWELS if rng.random() < vowel_bias else CONSONANTS
        letters.append(rng.choice(pool))
    rng.shuffle(letters)
    return letters


def pick_main_word(dictionary=None, min_length: int = 7, rng: Optional[random.Random] = None) -> str:
    rng = rng or random
    candidates = [w for w in MAIN_WORD_POOL if len(w) >= min_length]
    if dictionary is not None and not dictionary.degraded:
        known = [w for w in candidates if w in dictionary]
        candidates = known or candidates
    if not candidates:
        longest = max(len(w) for w in MAIN_WORD_POOL)
        candidates = [w for w in MAIN_WORD_POOL if len(w) == longest]
    return rng.choice(candidates)


def generate_prompt(mode: str, config, dictionary=None, rng: Optional[random.Random] = None) -> dict:
    if mode == LETTERS:
        letters = generate_letters(
            count=int(config.get('LETTER_COUNT', 4)),
            vowel_bias=float(config.get('VOWEL_BIAS', 0.4)),
            rng=rng,
        )
        return {'kind': LETTERS, 'letters': letters}
    if mode == SUBWORD:
        main_word = pick_main_word(dictionary, min_length=int(config.get('SUBWORD_MIN_LENGTH', 7)), rng=rng)
        return {'kind': SUBWORD, 'mainWord': main_word}
    raise ValueError(f'unknown game mode {mode!r}')


def round_duration(room) -> int:
    """Seconds a round of ``room`` accepts submissions, before grace."""
    return int(room.round_duration)
