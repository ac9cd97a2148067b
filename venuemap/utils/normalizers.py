"""
Text normalizers shared by the classifier, the cache key builders and the
search scoring, so every component compares names the same way.
"""
import re
import unicodedata
from typing import Iterable

_WHITESPACE = re.compile(r"\s+")
_NON_WORD = re.compile(r"[^\w\s&']+")


def normalize_query(text: str) -> str:
    """Lowercase, trim and collapse inner whitespace."""
    return _WHITESPACE.sub(" ", (text or "").strip().lower())


def fold_accents(text: str) -> str:
    """Strip diacritics ('caffè' -> 'caffe')."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_name(text: str) -> str:
    """Accent-folded, lowercased name with punctuation turned into spaces."""
    folded = fold_accents(normalize_query(text))
    return normalize_query(_NON_WORD.sub(" ", folded))


def contains_word(haystack: str, phrase: str) -> bool:
    """Whole-word (or whole-phrase) match on already normalized strings."""
    if not phrase:
        return False
    return re.search(rf"(?<!\w){re.escape(phrase)}(?!\w)", haystack) is not None


def contains_any_word(haystack: str, phrases: Iterable[str]) -> bool:
    return any(contains_word(haystack, phrase) for phrase in phrases)
