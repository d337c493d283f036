"""OpenAI provider using openai SDK streaming chat completions."""

import logging
import os
import time
from collections.abc import AsyncIterator

from openai import AsyncOpenAI

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


class OpenAIProvider(AIProvider):
    """OpenAI provider via openai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = self._make_client(api_key)

    def _make_client(self, api_key: str) -> AsyncOpenAI:
        return AsyncOpenAI(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def stream(self, system: str, messages: list[PromptMessage]) -> AsyncIterator[StreamChunk]:
        start = time.monotonic()
        produced = False
        usage: UsageReport | None = None
        chat = [{"role": "system", "content": system}] if system else []
        chat += [{"role": m.role, "content": m.content} for m in messages]
        try:
            response = await self._client.chat.completions.create(
                model=self._config.model,
                messages=chat,
                max_tokens=self._config.max_tokens,
                stream=True,
                stream_options={"include_usage": True},
            )
            async for chunk in with_idle_timeout(response, self._config.timeout_sec, self._config.name):
                if chunk.choices and chunk.choices[0].delta.content:
                    produced = True
                    yield TextDelta(chunk.choices[0].delta.content)
                if chunk.usage:
                    usage = UsageReport(chunk.usage.prompt_tokens, chunk.usage.completion_tokens)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        if not produced:
            raise ProviderError(self._config.name, "Empty response content")

        logger.info(
            "%s stream: %.2fs, %s",
            self._config.name,
            time.monotonic() - start,
            f"{usage.input_tokens} in / {usage.output_tokens} out tokens" if usage else "no usage reported",
        )
        if usage:
            yield usage
