"""Abstract base for all AI model providers (the completion capability)."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, replace
from typing import TypeVar

from roundtable.models import TokenUsage

T = TypeVar("T")


class ProviderError(Exception):
    """Raised when a provider call fails."""

    def __init__(self, provider_name: str, message: str) -> None:
        self.provider_name = provider_name
        super().__init__(f"[{provider_name}] {message}")


@dataclass(frozen=True)
class PromptMessage:
    role: str       # "user" or "assistant"
    content: str


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass(frozen=True)
class UsageReport:
    input_tokens: int
    output_tokens: int


StreamChunk = TextDelta | UsageReport


def estimate_tokens(*texts: str) -> int:
    """Rough token estimate (4 characters per token) for providers that report no usage."""
    chars = sum(len(t) for t in texts)
    return -(-chars // 4)


@dataclass(frozen=True)
class Completion:
    """Immutable accumulator folded over one completion attempt's chunks."""

    text: str = ""
    usage: UsageReport | None = None

    def fold(self, chunk: StreamChunk) -> "Completion":
        match chunk:
            case TextDelta(text=text):
                return replace(self, text=self.text + text)
            case UsageReport():
                return replace(self, usage=chunk)
        return self

    def token_usage(self, system: str, messages: list["PromptMessage"]) -> TokenUsage:
        """Reported usage, or a character-based estimate when the provider sent none."""
        if self.usage is not None:
            return TokenUsage(self.usage.input_tokens, self.usage.output_tokens)
        return TokenUsage(
            input_tokens=estimate_tokens(system, *(m.content for m in messages)),
            output_tokens=estimate_tokens(self.text),
        )


async def with_idle_timeout(
    source: AsyncIterable[T],
    timeout_sec: float,
    provider_name: str,
) -> AsyncIterator[T]:
    """Re-yield items from an async iterable, failing if one takes longer than timeout_sec."""
    iterator = source.__aiter__()
    while True:
        try:
            item = await asyncio.wait_for(iterator.__anext__(), timeout=timeout_sec)
        except StopAsyncIteration:
            return
        except TimeoutError as exc:
            raise ProviderError(provider_name, f"Request timed out after {timeout_sec}s") from exc
        yield item


class AIProvider(ABC):
    """Abstract base for all AI model providers."""

    @abstractmethod
    def name(self) -> str:
        """Return the short provider name (e.g. 'gemini', 'claude')."""
        ...

    @abstractmethod
    def model_string(self) -> str:
        """Return the actual model identifier string."""
        ...

    @abstractmethod
    def stream(self, system: str, messages: list[PromptMessage]) -> AsyncIterator[StreamChunk]:
        """Stream a completion for the given conversation.

        Args:
            system: System prompt (persona, style, overrides).
            messages: Alternating user/assistant turns, starting with user.

        Yields:
            TextDelta for each piece of generated text, then at most one
            UsageReport once the provider reports token usage.

        Raises:
            ProviderError: On API failure, idle timeout, or empty response.
        """
        ...
