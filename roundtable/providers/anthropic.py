"""Anthropic Claude provider using anthropic SDK streaming."""

import logging
import os
import time
from collections.abc import AsyncIterator

import anthropic as anthropic_sdk

from config.config_loader import ModelConfig
from roundtable.providers.base import (
    AIProvider,
    PromptMessage,
    ProviderError,
    StreamChunk,
    TextDelta,
    UsageReport,
    with_idle_timeout,
)

logger = logging.getLogger(__name__)


class AnthropicProvider(AIProvider):
    """Anthropic Claude provider via anthropic SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = anthropic_sdk.AsyncAnthropic(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def stream(self, system: str, messages: list[PromptMessage]) -> AsyncIterator[StreamChunk]:
        start = time.monotonic()
        produced = False
        try:
            async with self._client.messages.stream(
                model=self._config.model,
                max_tokens=self._config.max_tokens,
                system=system,
                messages=[{"role": m.role, "content": m.content} for m in messages],
            ) as stream:
                async for text in with_idle_timeout(stream.text_stream, self._config.timeout_sec, self._config.name):
                    if text:
                        produced = True
                        yield TextDelta(text)
                final = await stream.get_final_message()
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        if not produced:
            raise ProviderError(self._config.name, "Empty response content")

        latency = time.monotonic() - start
        if final.usage:
            logger.info(
                "Anthropic stream: %.2fs, %d in / %d out tokens",
                latency,
                final.usage.input_tokens,
                final.usage.output_tokens,
            )
            yield UsageReport(final.usage.input_tokens, final.usage.output_tokens)
        else:
            logger.info("Anthropic stream: %.2fs, no usage reported", latency)
