import json
import logging
import os
import re
from typing import Iterable, Optional

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 3
_ALPHA = re.compile(r'^[a-z]+$')

# Used when the word list cannot be loaded so rooms keep working.
FALLBACK_WORDS = frozenset([
    'cat', 'dog', 'bird', 'fish', 'tree', 'star', 'moon', 'sun',
    'color', 'water', 'earth', 'fire', 'wind', 'stone', 'metal',
    'table', 'chair', 'house', 'phone', 'computer', 'music', 'dance',
    'create', 'destroy', 'build', 'break', 'start', 'finish', 'begin',
    'apple', 'orange', 'banana', 'grape', 'lemon', 'peach', 'melon',
    'eat', 'eats', 'seat', 'east', 'tea', 'ate', 'sat', 'rate', 'late',
])


def normalize_word(word: Optional[str]) -> str:
    return (word or '').strip().lower()


class Dictionary:
    """Read-only set of legal lowercase words."""

    def __init__(self, words: Iterable[str], degraded: bool = False, source: Optional[str] = None):
        self._words = frozenset(normalize_word(w) for w in words if normalize_word(w))
        self.degraded = degraded
        self.source = source

    def __len__(self):
        return len(self._words)

    def __iter__(self):
        return iter(self._words)

    def __contains__(self, word):
        return normalize_word(word) in self._words

    def is_valid(self, word: Optional[str]) -> bool:
        w = normalize_word(word)
        if len(w) < MIN_WORD_LENGTH:
            return False
        if not _ALPHA.match(w):
            return False
        return w in self._words


def _read_words(path: str) -> list:
    with open(path, encoding='utf-8') as fh:
        raw = fh.read()
    if path.endswith('.json'):
        data = json.loads(raw)
        if not isinstance(data, list):
            raise ValueError(f'{path} must contain a JSON array of words')
        return [str(w) for w in data]
    return [line.strip() for line in raw.splitlines() if line.strip() and not line.startswith('#')]


def load_dictionary(path: Optional[str]) -> Dictionary:
    """Load the word list at ``path``.

    Falls back to a small built-in set (``degraded=True``) when the file is
    missing, unreadable or empty.
    """
    if path and os.path.exists(path):
        try:
            words = _read_words(path)
        except (OSError, ValueError) as exc:
            logger.warning('Dictionary %s unreadable (%s); using fallback word set', path, exc)
        else:
            if words:
                dictionary = Dictionary(words, source=path)
                logger.info('Loaded %d words into dictionary from %s', len(dictionary), path)
                return dictionary
            logger.warning('Dictionary %s is empty; using fallback word set', path)
    else:
        logger.warning('Dictionary %s not found; using fallback word set', path)
    return Dictionary(FALLBACK_WORDS, degraded=True, source='fallback')
