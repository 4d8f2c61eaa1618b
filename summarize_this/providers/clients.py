# summarize_this/providers/clients.py
"""
Concrete provider clients.

Each adapter maps its vendor SDK's failures onto the four provider failure
kinds so the pool and the pipeline never see vendor-specific exceptions.
"""

from typing import Optional
import logging

import httpx

from summarize_this.providers.base import (
    ProviderCallError,
    ProviderClient,
    ProviderResponse,
)

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a professional text summarization assistant. Provide clear, "
    "concise summaries that capture the key points and main ideas."
)


def _status_kind(status_code: int) -> str:
    if status_code == 429:
        return "rate_limited"
    if status_code in (408, 504):
        return "timeout"
    if 400 <= status_code < 500:
        return "invalid_input"
    return "upstream_error"


class OpenAIProvider(ProviderClient):
    """OpenAI API provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: Optional[str] = None,
        temperature: float = 0.3,
    ):
        try:
            from openai import AsyncOpenAI
            import tiktoken
        except ImportError:
            raise ImportError(
                "OpenAI package not installed. Install with: pip install openai tiktoken"
            )

        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.temperature = temperature
        try:
            self.encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            self.encoding = tiktoken.get_encoding("cl100k_base")

    async def summarize(
        self, prompt: str, max_tokens: int, timeout: float
    ) -> ProviderResponse:
        import openai

        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                max_tokens=max_tokens,
                temperature=self.temperature,
                top_p=0.9,
                timeout=timeout,
            )
        except openai.RateLimitError as exc:
            raise ProviderCallError("rate_limited", str(exc)) from exc
        except openai.APITimeoutError as exc:
            raise ProviderCallError("timeout", str(exc)) from exc
        except (openai.BadRequestError, openai.UnprocessableEntityError) as exc:
            raise ProviderCallError("invalid_input", str(exc)) from exc
        except openai.APIError as exc:
            raise ProviderCallError("upstream_error", str(exc)) from exc

        content = response.choices[0].message.content or ""
        usage = response.usage
        return ProviderResponse(
            text=content.strip(),
            input_tokens=usage.prompt_tokens if usage else self.count_tokens(prompt),
            output_tokens=usage.completion_tokens if usage else self.count_tokens(content),
            model=self.model,
        )

    def count_tokens(self, text: str) -> int:
        """Count tokens using tiktoken."""
        return len(self.encoding.encode(text))

    async def close(self) -> None:
        await self.client.close()


class AnthropicProvider(ProviderClient):
    """Anthropic Claude API provider."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-haiku-20240307",
        temperature: float = 0.3,
    ):
        try:
            from anthropic import AsyncAnthropic
        except ImportError:
            raise ImportError(
                "Anthropic package not installed. Install with: pip install anthropic"
            )

        self.client = AsyncAnthropic(api_key=api_key)
        self.model = model
        self.temperature = temperature

    async def summarize(
        self, prompt: str, max_tokens: int, timeout: float
    ) -> ProviderResponse:
        import anthropic

        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=[{"role": "user", "content": prompt}],
                timeout=timeout,
            )
        except anthropic.RateLimitError as exc:
            raise ProviderCallError("rate_limited", str(exc)) from exc
        except anthropic.APITimeoutError as exc:
            raise ProviderCallError("timeout", str(exc)) from exc
        except (anthropic.BadRequestError, anthropic.UnprocessableEntityError) as exc:
            raise ProviderCallError("invalid_input", str(exc)) from exc
        except anthropic.APIError as exc:
            raise ProviderCallError("upstream_error", str(exc)) from exc

        content = "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )
        return ProviderResponse(
            text=content.strip(),
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            model=self.model,
        )

    async def close(self) -> None:
        await self.client.close()


class OllamaProvider(ProviderClient):
    """Ollama local LLM provider."""

    def __init__(
        self,
        model: str = "llama3.2",
        base_url: str = "http://localhost:11434",
        temperature: float = 0.3,
    ):
        """
        Initialize Ollama provider.

        Args:
            model: Ollama model name (e.g., llama3.2, mistral, gemma3:4b)
            base_url: Ollama server URL (default: http://localhost:11434)
            temperature: Generation temperature
        """
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self._client: Optional[httpx.AsyncClient] = None
        logger.info(f"Initialized Ollama provider with model: {model} at {base_url}")

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url)
        return self._client

    async def summarize(
        self, prompt: str, max_tokens: int, timeout: float
    ) -> ProviderResponse:
        payload = {
            "model": self.model,
            "prompt": f"{SYSTEM_PROMPT}\n\n{prompt}",
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "num_predict": max_tokens,
            },
        }

        try:
            response = await self._get_client().post(
                "/api/generate", json=payload, timeout=timeout
            )
            response.raise_for_status()
            result = response.json()
        except httpx.TimeoutException as exc:
            raise ProviderCallError("timeout", str(exc)) from exc
        except httpx.HTTPStatusError as exc:
            raise ProviderCallError(
                _status_kind(exc.response.status_code), str(exc)
            ) from exc
        except (httpx.RequestError, ValueError) as exc:
            raise ProviderCallError("upstream_error", str(exc)) from exc

        content = result.get("response", "")
        return ProviderResponse(
            text=content.strip(),
            input_tokens=result.get("prompt_eval_count") or self.count_tokens(prompt),
            output_tokens=result.get("eval_count") or self.count_tokens(content),
            model=self.model,
        )

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
