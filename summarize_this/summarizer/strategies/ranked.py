"""Graph-ranked summarization (TextRank over bag-of-words cosine similarity)."""

from __future__ import annotations

import math
import time
from collections import Counter, defaultdict
from typing import Dict, List

from summarize_this.summarizer.models import SummarizationOptions, SummarizationResult
from summarize_this.summarizer.strategies.base import SummarizationStrategy
from summarize_this.summarizer.text import (
    collapse_whitespace,
    extract_takeaways,
    fit_sentences,
    split_sentences,
    truncate,
    words,
)

DAMPING = 0.85
MAX_ITERATIONS = 100
TOLERANCE = 1e-4

SimilarityGraph = List[Dict[int, float]]


def similarity_graph(sentences: List[str]) -> SimilarityGraph:
    """
    Sparse symmetric cosine-similarity matrix; row ``i`` maps ``j`` to ``w_ij``.

    Only pairs sharing at least one word are visited (via an inverted index),
    which keeps long documents tractable.
    """
    vectors = [Counter(words(sentence)) for sentence in sentences]
    norms = [math.sqrt(sum(c * c for c in vector.values())) for vector in vectors]
    postings: Dict[str, List[int]] = defaultdict(list)
    for index, vector in enumerate(vectors):
        for word in vector:
            postings[word].append(index)

    dots: List[Dict[int, float]] = [defaultdict(float) for _ in sentences]
    for word, members in postings.items():
        for position, i in enumerate(members):
            weight_i = vectors[i][word]
            for j in members[position + 1 :]:
                product = weight_i * vectors[j][word]
                dots[i][j] += product
                dots[j][i] += product

    graph: SimilarityGraph = []
    for i, row in enumerate(dots):
        graph.append(
            {
                j: dot / (norms[i] * norms[j])
                for j, dot in row.items()
                if norms[i] and norms[j]
            }
        )
    return graph


def rank(
    graph: SimilarityGraph,
    damping: float = DAMPING,
    max_iterations: int = MAX_ITERATIONS,
    tolerance: float = TOLERANCE,
) -> tuple[List[float], int]:
    """PageRank-style power iteration; returns scores and iterations performed."""
    size = len(graph)
    scores = [1.0] * size
    out_weight = [sum(row.values()) for row in graph]
    iterations = 0
    for iterations in range(1, max_iterations + 1):
        updated = [1.0 - damping] * size
        for j, row in enumerate(graph):
            if not out_weight[j]:
                continue
            share = damping * scores[j] / out_weight[j]
            for i, weight in row.items():
                updated[i] += share * weight
        delta = max((abs(a - b) for a, b in zip(updated, scores)), default=0.0)
        scores = updated
        if delta < tolerance:
            break
    return scores, iterations


class RankedStrategy(SummarizationStrategy):
    name = "ranked"
    confidence = 0.85

    def summarize(self, text: str, options: SummarizationOptions) -> SummarizationResult:
        start = time.perf_counter()
        sentences = split_sentences(text) or [collapse_whitespace(text)]
        scores, iterations = rank(similarity_graph(sentences))
        ranking = sorted(range(len(sentences)), key=lambda i: (-scores[i], i))

        chosen = fit_sentences(ranking, sentences, options.max_length)
        if chosen:
            summary = " ".join(sentences[index] for index in chosen)
        else:
            summary = truncate(sentences[ranking[0]], options.max_length)

        return SummarizationResult(
            summary=summary,
            confidence=self.confidence,
            method_used=self.name,
            key_takeaways=extract_takeaways(text),
            processing_ms=int((time.perf_counter() - start) * 1000),
            metadata={
                "algorithm": "textrank",
                "iterations": iterations,
                "sentences_analyzed": len(sentences),
                "sentences_selected": max(len(chosen), 1),
                "average_score": round(sum(scores) / len(scores), 4),
            },
        )
