"""Rule-based extractive summarization using keyword frequency and sentence scoring."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import List

from summarize_this.summarizer.models import SummarizationOptions, SummarizationResult
from summarize_this.summarizer.strategies.base import SummarizationStrategy
from summarize_this.summarizer.text import (
    collapse_whitespace,
    extract_takeaways,
    fit_sentences,
    split_sentences,
    truncate,
    word_frequency,
    words,
)

KEYWORD_WEIGHT = 1.0
POSITION_WEIGHT = 0.5


@dataclass(slots=True)
class ScoredSentence:
    index: int
    text: str
    score: float


def score_sentences(sentences: List[str], frequency: dict) -> List[ScoredSentence]:
    total = len(sentences)
    scored = []
    for index, sentence in enumerate(sentences):
        tokens = words(sentence)
        keyword_score = (
            sum(frequency.get(token, 0.0) for token in tokens) / len(tokens)
            if tokens
            else 0.0
        )
        position_score = 1 - (index / total)
        length_score = min(len(sentence) / 100, 1.0)
        scored.append(
            ScoredSentence(
                index=index,
                text=sentence,
                score=KEYWORD_WEIGHT * keyword_score
                + POSITION_WEIGHT * position_score
                + length_score,
            )
        )
    return scored


class ExtractiveStrategy(SummarizationStrategy):
    name = "extractive"
    confidence = 0.7

    def summarize(self, text: str, options: SummarizationOptions) -> SummarizationResult:
        start = time.perf_counter()
        sentences = split_sentences(text) or [collapse_whitespace(text)]
        frequency = word_frequency(text)
        scored = score_sentences(sentences, frequency)
        ranking = [
            item.index
            for item in sorted(scored, key=lambda item: (-item.score, item.index))
        ]

        chosen = fit_sentences(
            ranking, sentences, options.max_length, skip_oversized=False
        )
        if chosen:
            summary = " ".join(sentences[index] for index in chosen)
        else:
            summary = truncate(sentences[ranking[0]], options.max_length)

        top_keywords = sorted(frequency, key=lambda word: (-frequency[word], word))[:10]
        return SummarizationResult(
            summary=summary,
            confidence=self.confidence,
            method_used=self.name,
            key_takeaways=extract_takeaways(text, frequency),
            processing_ms=int((time.perf_counter() - start) * 1000),
            metadata={
                "sentences_analyzed": len(sentences),
                "sentences_selected": max(len(chosen), 1),
                "top_keywords": top_keywords,
            },
        )
