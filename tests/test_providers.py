"""Tests for the provider base helpers and factory: no real API calls."""

import asyncio
import dataclasses

import pytest

from roundtable.providers.base import (
    Completion,
    PromptMessage,
    ProviderError,
    TextDelta,
    UsageReport,
    estimate_tokens,
    with_idle_timeout,
)
from roundtable.providers.factory import build_providers


def test_completion_folds_chunks():
    completion = Completion()
    for chunk in [TextDelta("Use "), TextDelta("REST."), UsageReport(12, 3)]:
        completion = completion.fold(chunk)
    assert completion.text == "Use REST."
    assert completion.usage == UsageReport(12, 3)
    assert completion.token_usage("sys", []).input_tokens == 12


def test_completion_estimates_without_usage():
    completion = Completion(text="x" * 9)
    usage = completion.token_usage("abcd", [PromptMessage("user", "abcd")])
    assert (usage.input_tokens, usage.output_tokens) == (2, 3)


def test_estimate_tokens_rounds_up():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcde") == 2


async def test_idle_timeout_passes_items_through():
    async def source():
        yield 1
        yield 2

    assert [i async for i in with_idle_timeout(source(), 1.0, "mock")] == [1, 2]


async def test_idle_timeout_raises_provider_error():
    async def stalled():
        yield "first"
        await asyncio.sleep(9999)
        yield "never"

    received = []
    with pytest.raises(ProviderError, match="timed out"):
        async for item in with_idle_timeout(stalled(), 0.05, "mock"):
            received.append(item)
    assert received == ["first"]


def test_build_providers_skips_unknown_sdk_and_missing_keys(sample_app_config, monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-test")
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    models = dict(sample_app_config.models)
    models["mystery"] = dataclasses.replace(models["claude"], name="mystery", sdk="carrier-pigeon")
    config = dataclasses.replace(
        sample_app_config, models=models, available_providers={"claude", "openai", "mystery"}
    )

    providers = build_providers(config)

    # openai is listed but its key is gone, so construction fails and it is skipped
    assert set(providers) == {"claude"}
    assert providers["claude"].model_string() == "claude-opus-4-1"
