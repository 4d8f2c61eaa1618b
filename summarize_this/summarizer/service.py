"""Strategy registry and dispatch helpers."""

from __future__ import annotations

from typing import Dict, List, Optional
import logging

from summarize_this.errors import ValidationFailed
from summarize_this.providers.pool import ProviderPool
from summarize_this.summarizer.models import SummarizationOptions, SummarizationResult
from summarize_this.summarizer.strategies.base import SummarizationStrategy
from summarize_this.summarizer.strategies.composite import CompositeStrategy
from summarize_this.summarizer.strategies.extractive import ExtractiveStrategy
from summarize_this.summarizer.strategies.generative import GenerativeStrategy
from summarize_this.summarizer.strategies.ranked import RankedStrategy

logger = logging.getLogger(__name__)


class StrategyRegistry:
    """Simple registry allowing strategies to be resolved by name."""

    def __init__(self) -> None:
        self._strategies: Dict[str, SummarizationStrategy] = {}

    def register(self, strategy: SummarizationStrategy) -> None:
        self._strategies[strategy.name] = strategy

    def resolve(self, name: str) -> SummarizationStrategy:
        try:
            return self._strategies[name]
        except KeyError:
            raise ValidationFailed(f"Unknown method: {name}", field="method") from None

    def names(self) -> List[str]:
        return list(self._strategies)

    def requires_provider(self, name: str) -> bool:
        return self.resolve(name).requires_provider

    async def run(
        self, name: str, text: str, options: SummarizationOptions
    ) -> SummarizationResult:
        """Run the named strategy, awaiting it when it suspends on providers."""
        strategy = self.resolve(name)

        # Check if strategy has async summarize method
        if hasattr(strategy, "summarize_async"):
            return await strategy.summarize_async(text, options)
        return strategy.summarize(text, options)


def build_registry(
    pool: Optional[ProviderPool] = None, provider_name: str = "default"
) -> StrategyRegistry:
    """Registry with the four built-in strategies wired to ``pool``."""
    pool = pool if pool is not None else ProviderPool()
    extractive = ExtractiveStrategy()
    ranked = RankedStrategy()
    generative = GenerativeStrategy(pool, provider_name)

    registry = StrategyRegistry()
    for strategy in (
        extractive,
        ranked,
        generative,
        CompositeStrategy(extractive, ranked, generative),
    ):
        registry.register(strategy)
    logger.info(f"Strategies registered: {', '.join(registry.names())}")
    return registry
