"""Composite strategy merging extractive, ranked and generative partial summaries."""

from __future__ import annotations

import logging
import time
from typing import Dict, List, Optional, Sequence, Tuple

from summarize_this.errors import PipelineError
from summarize_this.summarizer.models import (
    DEGRADED_COMPOSITE,
    SummarizationOptions,
    SummarizationResult,
)
from summarize_this.summarizer.strategies.base import (
    AsyncSummarizationStrategy,
    SummarizationStrategy,
)
from summarize_this.summarizer.text import (
    collapse_whitespace,
    extract_takeaways,
    split_sentences,
    truncate,
)

logger = logging.getLogger(__name__)

PART_SHARE = 0.4
WEIGHTS: Dict[str, float] = {"extractive": 0.3, "ranked": 0.4, "generative": 0.3}


def weighted_round_robin(
    sources: Sequence[Tuple[str, List[str]]], weights: Dict[str, float]
) -> List[str]:
    """
    Interleave units from several sources with smooth weighted round-robin.

    Each round every source with units left gains its weight; the source with
    the highest running credit emits its next unit and pays back the total
    weight of the active sources.
    """
    queues = {name: list(units) for name, units in sources if units}
    order = [name for name, _ in sources if name in queues]
    current = {name: 0.0 for name in order}
    merged: List[str] = []
    while queues:
        active = [name for name in order if name in queues]
        total = sum(weights.get(name, 1.0) for name in active)
        for name in active:
            current[name] += weights.get(name, 1.0)
        pick = max(active, key=lambda name: current[name])
        current[pick] -= total
        merged.append(queues[pick].pop(0))
        if not queues[pick]:
            del queues[pick]
    return merged


def merge_partials(
    sources: Sequence[Tuple[str, str]],
    max_length: int,
    weights: Optional[Dict[str, float]] = None,
) -> str:
    units_by_source = [
        (name, split_sentences(summary) or [collapse_whitespace(summary)])
        for name, summary in sources
        if summary
    ]
    candidates = weighted_round_robin(units_by_source, weights or WEIGHTS)

    seen = set()
    chosen: List[str] = []
    used = 0
    for unit in candidates:
        key = collapse_whitespace(unit).lower()
        if not key or key in seen:
            continue
        seen.add(key)
        extra = len(unit) + (1 if chosen else 0)
        if used + extra <= max_length:
            chosen.append(unit)
            used += extra

    if chosen:
        return " ".join(chosen)
    return truncate(candidates[0], max_length) if candidates else ""


class CompositeStrategy(AsyncSummarizationStrategy):
    name = "composite"
    confidence = 0.9

    def __init__(
        self,
        extractive: SummarizationStrategy,
        ranked: SummarizationStrategy,
        generative: AsyncSummarizationStrategy,
    ):
        self.parts: List[SummarizationStrategy] = [extractive, ranked, generative]

    async def summarize_async(
        self, text: str, options: SummarizationOptions
    ) -> SummarizationResult:
        start = time.perf_counter()
        part_options = options.scaled(PART_SHARE)

        partials: List[SummarizationResult] = []
        failures: List[Dict[str, str]] = []
        last_error: Optional[Exception] = None
        for strategy in self.parts:
            try:
                if isinstance(strategy, AsyncSummarizationStrategy):
                    partial = await strategy.summarize_async(text, part_options)
                else:
                    partial = strategy.summarize(text, part_options)
            except Exception as exc:
                logger.warning(
                    f"[COMPOSITE] Part failed | strategy={strategy.name} | "
                    f"error={exc.__class__.__name__}: {exc}"
                )
                failures.append({"strategy": strategy.name, "error": str(exc)})
                last_error = exc
                continue
            partials.append(partial)

        if not partials:
            if last_error is None:
                raise PipelineError("Composite strategy has no parts to run")
            raise last_error

        generative_failed = any(f["strategy"] == "generative" for f in failures)
        summary = merge_partials(
            [(partial.method_used, partial.summary) for partial in partials],
            options.max_length,
        )

        return SummarizationResult(
            summary=summary,
            confidence=self.confidence,
            method_used=DEGRADED_COMPOSITE if generative_failed else self.name,
            key_takeaways=extract_takeaways(text),
            tokens_used=sum(partial.tokens_used for partial in partials),
            processing_ms=int((time.perf_counter() - start) * 1000),
            metadata={
                "parts": {
                    partial.method_used: {
                        "confidence": partial.confidence,
                        "length": len(partial.summary),
                    }
                    for partial in partials
                },
                "part_max_length": part_options.max_length,
                "failures": failures,
            },
        )
