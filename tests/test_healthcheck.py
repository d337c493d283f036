"""Unit tests for roundtable/healthcheck.py: no real API calls."""

import asyncio

import roundtable.healthcheck as hc
from roundtable.healthcheck import run_health_checks
from roundtable.providers.base import ProviderError

from tests.conftest import Fail, MockProvider


async def test_all_providers_pass():
    """All providers succeed -> all marked ok, no errors."""
    providers = {
        "claude": MockProvider("claude", ["OK"]),
        "gemini": MockProvider("gemini", ["OK"]),
    }

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    assert results["gemini"] == (True, "")
    assert len(providers["claude"].calls) == 1


async def test_one_provider_fails():
    """A provider that raises returns ok=False with the error message."""
    providers = {
        "claude": MockProvider("claude", ["OK"]),
        "grok": MockProvider("grok", [Fail(ProviderError("grok", "403 Forbidden"))]),
    }

    results = await run_health_checks(providers)

    assert results["claude"] == (True, "")
    ok, err = results["grok"]
    assert ok is False
    assert "403" in err


async def test_all_providers_fail():
    """All fail -> all marked False."""
    providers = {
        "openai": MockProvider("openai", [Fail(Exception("openai down"))]),
        "gemini": MockProvider("gemini", [Fail(Exception("gemini down"))]),
    }

    results = await run_health_checks(providers)

    for name in providers:
        ok, err = results[name]
        assert ok is False
        assert name in err


async def test_empty_providers():
    """Empty provider dict returns empty results."""
    results = await run_health_checks({})
    assert results == {}


async def test_timeout_counts_as_failure(monkeypatch):
    """A provider that hangs past the timeout is marked as failed."""

    class HangingProvider(MockProvider):
        async def stream(self, system, messages):
            await asyncio.sleep(9999)
            yield  # pragma: no cover

    monkeypatch.setattr(hc, "_TIMEOUT_SEC", 0.05)

    results = await run_health_checks({"slow": HangingProvider("slow")})

    ok, err = results["slow"]
    assert ok is False
    assert "No response" in err
