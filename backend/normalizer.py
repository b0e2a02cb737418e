"""
Canonical matching keys for free-text task input.

The same key is used to look up learned patterns and to store new ones, so
normalize() must be idempotent: placeholder tokens it emits survive a second pass.
"""
import re
from collections import Counter

DAY_TOKEN = "[DAY]"
TIME_TOKEN = "[TIME]"
NUM_TOKEN = "[NUM]"

MATCH_THRESHOLD = 0.7

_PLACEHOLDER_RE = re.compile(r"(\[(?:DAY|TIME|NUM)\])")
_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_STOPWORD_RE = re.compile(r"\b(?:the|a|an|to|for|by|on|at|in)\b")
_WEEKDAY_RE = re.compile(r"\b(?:monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b")
_RELATIVE_TIME_RE = re.compile(r"\b(?:today|tomorrow|next\s+week)\b")
_DIGITS_RE = re.compile(r"\d+")
_WHITESPACE_RE = re.compile(r"\s+")


def _normalize_segment(segment: str) -> str:
    text = segment.lower()
    text = _PUNCTUATION_RE.sub(" ", text)
    # Numbers first and padded, so "a1" cannot turn into a bare stopword on a second pass
    text = _DIGITS_RE.sub(f" {NUM_TOKEN} ", text)
    text = _STOPWORD_RE.sub(" ", text)
    text = _WEEKDAY_RE.sub(DAY_TOKEN, text)
    return _RELATIVE_TIME_RE.sub(TIME_TOKEN, text)


def normalize(text: str) -> str:
    """Lower-case, strip punctuation and stopwords, replace days/times/numbers with placeholders."""
    parts = _PLACEHOLDER_RE.split(text)
    normalized = "".join(
        part if _PLACEHOLDER_RE.fullmatch(part) else _normalize_segment(part)
        for part in parts
    )
    return _WHITESPACE_RE.sub(" ", normalized).strip()


def tokenize(key: str) -> list[str]:
    return key.split()


def similarity(a: str, b: str) -> float:
    """Share of whitespace tokens two keys have in common, relative to the longer key."""
    tokens_a = tokenize(a)
    tokens_b = tokenize(b)
    longest = max(len(tokens_a), len(tokens_b))
    if longest == 0:
        return 0.0
    common = Counter(tokens_a) & Counter(tokens_b)
    return sum(common.values()) / longest


def patterns_match(a: str, b: str) -> bool:
    return similarity(a, b) >= MATCH_THRESHOLD
