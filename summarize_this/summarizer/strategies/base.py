"""Abstract base class for summarization strategies."""

from __future__ import annotations

from abc import ABC, abstractmethod

from summarize_this.summarizer.models import SummarizationOptions, SummarizationResult


class SummarizationStrategy(ABC):
    name: str
    confidence: float
    requires_provider: bool = False

    @abstractmethod
    def summarize(self, text: str, options: SummarizationOptions) -> SummarizationResult:
        """Produce a summary for the supplied text."""


class AsyncSummarizationStrategy(SummarizationStrategy):
    """Strategy whose work suspends on provider I/O."""

    requires_provider = True

    def summarize(self, text: str, options: SummarizationOptions) -> SummarizationResult:
        raise TypeError(f"{self.name} strategy must be awaited via summarize_async()")

    @abstractmethod
    async def summarize_async(
        self, text: str, options: SummarizationOptions
    ) -> SummarizationResult:
        """Produce a summary, awaiting external providers as needed."""
