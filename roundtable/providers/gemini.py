"""Gemini provider using google-genai SDK streaming."""

import logging
import os
import time
from collections.abc import AsyncIterator

from google import genai
from google.genai import types as genai_types

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


class GeminiProvider(AIProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, config: ModelConfig) -> None:
        self._config = config
        api_key = os.environ.get(config.api_key_env, "").strip()
        if not api_key:
            raise ProviderError(config.name, f"Missing API key: {config.api_key_env}")
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return self._config.name

    def model_string(self) -> str:
        return self._config.model

    async def stream(self, system: str, messages: list[PromptMessage]) -> AsyncIterator[StreamChunk]:
        start = time.monotonic()
        produced = False
        usage: UsageReport | None = None
        # Gemini names the assistant side "model"
        contents = [
            genai_types.Content(
                role="model" if m.role == "assistant" else "user",
                parts=[genai_types.Part(text=m.content)],
            )
            for m in messages
        ]
        try:
            response = await self._client.aio.models.generate_content_stream(
                model=self._config.model,
                contents=contents,
                config=genai_types.GenerateContentConfig(
                    system_instruction=system or None,
                    max_output_tokens=self._config.max_tokens,
                ),
            )
            async for chunk in with_idle_timeout(response, self._config.timeout_sec, self._config.name):
                if chunk.text:
                    produced = True
                    yield TextDelta(chunk.text)
                meta = chunk.usage_metadata
                if meta and meta.prompt_token_count is not None:
                    usage = UsageReport(meta.prompt_token_count or 0, meta.candidates_token_count or 0)
        except ProviderError:
            raise
        except Exception as exc:
            raise ProviderError(self._config.name, f"API call failed: {exc}") from exc

        if not produced:
            raise ProviderError(self._config.name, "Empty response text")

        logger.info(
            "Gemini stream: %.2fs, %s",
            time.monotonic() - start,
            f"{usage.input_tokens} in / {usage.output_tokens} out tokens" if usage else "no usage reported",
        )
        if usage:
            yield usage
