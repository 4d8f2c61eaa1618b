"""Provider-backed abstractive summarization."""

from __future__ import annotations

import logging
import time

from summarize_this.errors import ProviderError
from summarize_this.providers.pool import ProviderPool
from summarize_this.summarizer.models import SummarizationOptions, SummarizationResult
from summarize_this.summarizer.strategies.base import AsyncSummarizationStrategy
from summarize_this.summarizer.text import collapse_whitespace, extract_takeaways, truncate

logger = logging.getLogger(__name__)

MIN_TOKENS = 16
MAX_TOKENS = 1000

STYLE_INSTRUCTIONS = {
    "concise": "Be brief and direct; keep only the essential points.",
    "balanced": "Balance brevity with enough context to be self-contained.",
    "technical": "Preserve technical terms, figures and precise details.",
}


def max_tokens_for(max_length: int) -> int:
    return max(MIN_TOKENS, min(max_length // 2, MAX_TOKENS))


def build_prompt(text: str, options: SummarizationOptions) -> str:
    """Prompt carrying the style, length, focus and language constraints."""
    lines = [
        f"Summarize the following text in at most {options.max_length} characters.",
        STYLE_INSTRUCTIONS.get(options.style, STYLE_INSTRUCTIONS["concise"]),
        f"Write the summary in the language with code '{options.language}'.",
    ]
    if options.focus_areas:
        lines.append(f"Focus on: {', '.join(options.focus_areas)}.")
    lines.append("Return only the summary text, without preamble.")
    lines.append("")
    lines.append("Text:")
    lines.append(text)
    return "\n".join(lines)


class GenerativeStrategy(AsyncSummarizationStrategy):
    name = "generative"
    confidence = 0.95

    def __init__(self, pool: ProviderPool, provider_name: str = "default"):
        self.pool = pool
        self.provider_name = provider_name

    async def summarize_async(
        self, text: str, options: SummarizationOptions
    ) -> SummarizationResult:
        start = time.perf_counter()
        response = await self.pool.call(
            self.provider_name,
            build_prompt(text, options),
            max_tokens_for(options.max_length),
        )

        content = collapse_whitespace(response.text)
        if not content:
            logger.warning(
                f"[GENERATIVE] Empty content | provider={self.provider_name}"
            )
            raise ProviderError(
                "Provider returned empty content",
                provider=self.provider_name,
                retryable=False,
                kind="upstream_error",
            )

        return SummarizationResult(
            summary=truncate(content, options.max_length),
            confidence=self.confidence,
            method_used=self.name,
            key_takeaways=extract_takeaways(text),
            tokens_used=response.tokens_used,
            processing_ms=int((time.perf_counter() - start) * 1000),
            metadata={
                "provider": self.provider_name,
                "model": response.model,
                "input_tokens": response.input_tokens,
                "output_tokens": response.output_tokens,
            },
        )
