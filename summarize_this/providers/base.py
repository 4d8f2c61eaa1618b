"""Provider client contract shared by every external summarization backend."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal

ProviderFailureKind = Literal["rate_limited", "timeout", "invalid_input", "upstream_error"]

RETRYABLE_KINDS = frozenset({"rate_limited", "timeout", "upstream_error"})
BREAKER_KINDS = frozenset({"rate_limited", "timeout", "upstream_error"})


@dataclass(frozen=True, slots=True)
class ProviderResponse:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0
    model: str = ""

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


class ProviderCallError(Exception):
    """Typed failure raised by provider clients."""

    def __init__(self, kind: ProviderFailureKind, message: str = ""):
        super().__init__(message or kind)
        self.kind = kind

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class ProviderClient(ABC):
    """Abstract base class for provider clients."""

    model: str = ""

    @abstractmethod
    async def summarize(
        self, prompt: str, max_tokens: int, timeout: float
    ) -> ProviderResponse:
        """Send a prompt and return the generated text with its token usage."""

    def count_tokens(self, text: str) -> int:
        """Estimate tokens (roughly 4 chars per token)."""
        return len(text) // 4

    async def close(self) -> None:
        return None
