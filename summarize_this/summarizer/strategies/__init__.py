"""Summarization strategies."""

from summarize_this.summarizer.strategies.base import (
    AsyncSummarizationStrategy,
    SummarizationStrategy,
)
from summarize_this.summarizer.strategies.composite import CompositeStrategy
from summarize_this.summarizer.strategies.extractive import ExtractiveStrategy
from summarize_this.summarizer.strategies.generative import GenerativeStrategy
from summarize_this.summarizer.strategies.ranked import RankedStrategy

__all__ = [
    "AsyncSummarizationStrategy",
    "CompositeStrategy",
    "ExtractiveStrategy",
    "GenerativeStrategy",
    "RankedStrategy",
    "SummarizationStrategy",
]
