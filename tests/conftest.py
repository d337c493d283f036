"""Shared pytest fixtures."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

import pytest

from config.config_loader import AppConfig, DefaultsConfig, ModelConfig, PromptsConfig
from roundtable.debate import DebateController
from roundtable.models import Message, Participant, TokenUsage
from roundtable.providers.base import AIProvider, PromptMessage, StreamChunk, TextDelta, UsageReport


@dataclass
class Fail:
    """Scripted failure: stream `partial` first, then raise `error`."""

    error: Exception
    partial: str = ""


class MockProvider(AIProvider):
    """Test double AIProvider that streams scripted replies in small chunks.

    Each stream() call consumes the next script entry; the last entry repeats
    once the script runs out. Entries are reply strings or Fail objects.
    """

    def __init__(
        self,
        provider_name: str = "mock",
        responses: list[str | Fail] | None = None,
        chunk_size: int = 8,
        usage: tuple[int, int] | None = (100, 50),
    ) -> None:
        self._name = provider_name
        self.responses = list(responses or ["Mock response"])
        self.chunk_size = chunk_size
        self.usage = usage
        self.calls: list[tuple[str, list[PromptMessage]]] = []

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def stream(self, system: str, messages: list[PromptMessage]) -> AsyncIterator[StreamChunk]:
        self.calls.append((system, list(messages)))
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        entry = self.responses[index]
        text = entry.partial if isinstance(entry, Fail) else entry
        for start in range(0, len(text), self.chunk_size):
            yield TextDelta(text[start:start + self.chunk_size])
        if isinstance(entry, Fail):
            raise entry.error
        if self.usage is not None:
            yield UsageReport(*self.usage)


def make_message(
    participant: str,
    content: str,
    turn_number: int = 0,
    round_number: int = 1,
    is_agreement: bool = False,
) -> Message:
    return Message(
        id=f"msg_{participant}_{turn_number}",
        participant=participant,
        model=participant,
        turn_number=turn_number,
        round_number=round_number,
        role="strategic-architect",
        content=content,
        usage=TokenUsage(10, 10),
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        is_agreement=is_agreement,
    )


@pytest.fixture
def sample_model_config() -> ModelConfig:
    return ModelConfig(
        name="test_model",
        sdk="test",
        model="test-model-1",
        api_key_env="TEST_API_KEY",
        timeout_sec=30,
        max_tokens=1024,
        base_url=None,
    )


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        initial="Answer this question: {question}",
        reply="{name} ({role}) said:\n{content}",
        respond="Respond to {name}.",
        synthesis=(
            "Question: {question}\n\nTranscript ({turns} turns, {rounds} rounds):\n{transcript}\n"
            "{interjections}\nSynthesize:"
        ),
        personas={
            "strategic-architect": "You are a Strategic Architect.",
            "implementation-specialist": "You are an Implementation Specialist.",
        },
        styles={"cooperative": "Style: cooperative.", "adversarial": "Style: adversarial."},
    )


@pytest.fixture
def sample_defaults_config(tmp_path: Path) -> DefaultsConfig:
    return DefaultsConfig(
        rounds=3,
        output_dir=tmp_path / "output",
        synthesizer="claude",
    )


@pytest.fixture
def sample_app_config(
    sample_defaults_config: DefaultsConfig,
    sample_prompts_config: PromptsConfig,
) -> AppConfig:
    models = {
        "claude": ModelConfig(
            name="claude",
            sdk="anthropic",
            model="claude-opus-4-1",
            api_key_env="ANTHROPIC_API_KEY",
            timeout_sec=60,
            max_tokens=4096,
            display_name="Claude Opus",
            input_per_1k=0.015,
            output_per_1k=0.075,
        ),
        "openai": ModelConfig(
            name="openai",
            sdk="openai",
            model="gpt-4o",
            api_key_env="OPENAI_API_KEY",
            timeout_sec=60,
            max_tokens=4096,
            display_name="GPT-4o",
            input_per_1k=0.0025,
            output_per_1k=0.01,
        ),
    }
    return AppConfig(
        defaults=sample_defaults_config,
        models=models,
        prompts=sample_prompts_config,
        available_providers={"claude", "openai"},
    )


@pytest.fixture
def participants() -> list[Participant]:
    return [
        Participant(name="claude", model="claude", role="strategic-architect"),
        Participant(name="openai", model="openai", role="implementation-specialist"),
    ]


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()


@pytest.fixture
def two_mock_providers() -> dict[str, MockProvider]:
    return {
        "claude": MockProvider("claude", ["Response from A"]),
        "openai": MockProvider("openai", ["Response from B"]),
    }


@pytest.fixture
def controller(sample_app_config: AppConfig, two_mock_providers: dict[str, MockProvider]) -> DebateController:
    return DebateController(sample_app_config, two_mock_providers, retry_delay_sec=0)
