"""Text utilities shared by the local strategies."""

from __future__ import annotations

import re
from collections import Counter
from typing import Dict, Iterable, List

from summarize_this.summarizer.models import KeyTakeaways

ELLIPSIS = "…"
MIN_SENTENCE_CHARS = 10
MIN_KEYWORD_CHARS = 4
MAX_TAKEAWAYS = 5

_SENTENCE_RE = re.compile(r"[^.!?]+(?:[.!?]+|$)")
_WORD_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

POSITIVE_WORDS = frozenset(
    {"good", "great", "excellent", "positive", "success", "benefit", "improve", "growth"}
)
NEGATIVE_WORDS = frozenset(
    {"bad", "poor", "negative", "problem", "issue", "failure", "decline", "risk"}
)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def split_sentences(text: str) -> List[str]:
    """Split on ``[.!?]+`` boundaries, keeping terminators, dropping short fragments."""
    sentences = []
    for match in _SENTENCE_RE.finditer(collapse_whitespace(text)):
        sentence = match.group(0).strip()
        if len(sentence.rstrip(".!?")) >= MIN_SENTENCE_CHARS:
            sentences.append(sentence)
    return sentences


def words(text: str) -> List[str]:
    return [token for token in _WORD_RE.sub("", text.lower()).split() if token]


def word_frequency(text: str) -> Dict[str, float]:
    """Word frequencies normalized by the most frequent word, ignoring short words."""
    counts = Counter(word for word in words(text) if len(word) >= MIN_KEYWORD_CHARS)
    if not counts:
        return {}
    top = max(counts.values())
    return {word: count / top for word, count in counts.items()}


def truncate(text: str, max_length: int) -> str:
    """Cut ``text`` to ``max_length`` characters at a word boundary, appending an ellipsis."""
    if len(text) <= max_length:
        return text
    if max_length <= len(ELLIPSIS):
        return ELLIPSIS[:max_length]
    cut = text[: max_length - len(ELLIPSIS)]
    boundary = cut.rfind(" ")
    if boundary > 0:
        cut = cut[:boundary]
    cut = cut.rstrip(" ,;:.!?")
    if not cut:
        cut = text[: max_length - len(ELLIPSIS)]
    return cut + ELLIPSIS


def fit_sentences(
    ranked: Iterable[int],
    sentences: List[str],
    max_length: int,
    skip_oversized: bool = True,
) -> List[int]:
    """
    Pick sentence indexes, best first, whose space-joined length fits ``max_length``.

    With ``skip_oversized`` a sentence that does not fit is passed over and
    smaller ones further down the ranking are still considered; without it the
    selection is the longest fitting prefix of the ranking (top-K).
    Indexes are returned in original document order.
    """
    chosen: List[int] = []
    used = 0
    for index in ranked:
        extra = len(sentences[index]) + (1 if chosen else 0)
        if used + extra <= max_length:
            chosen.append(index)
            used += extra
        elif not skip_oversized:
            break
    return sorted(chosen)


def analyze_sentiment(text: str) -> str:
    tokens = words(text)
    positive = sum(1 for token in tokens if token in POSITIVE_WORDS)
    negative = sum(1 for token in tokens if token in NEGATIVE_WORDS)
    if positive > negative:
        return "positive"
    if negative > positive:
        return "negative"
    return "neutral"


def extract_takeaways(text: str, frequency: Dict[str, float] | None = None) -> KeyTakeaways:
    frequency = frequency if frequency is not None else word_frequency(text)
    ranked = sorted(frequency.items(), key=lambda item: (-item[1], item[0]))
    return KeyTakeaways(
        points=[word for word, _ in ranked[:MAX_TAKEAWAYS]],
        sentiment=analyze_sentiment(text),
    )
