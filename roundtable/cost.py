"""Running token and cost totals per participant."""

import copy
import logging
from dataclasses import dataclass

from config.config_loader import ModelConfig
from roundtable.models import CostSnapshot, ParticipantCost

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelRate:
    input_per_1k: float
    output_per_1k: float


# USD per 1K tokens, keyed by model identifier prefix
DEFAULT_RATES: dict[str, ModelRate] = {
    "claude-opus-4": ModelRate(0.015, 0.075),
    "claude-sonnet-4": ModelRate(0.003, 0.015),
    "gpt-5": ModelRate(0.005, 0.015),
    "gpt-4o": ModelRate(0.0025, 0.01),
    "gemini-2.5-pro": ModelRate(0.00125, 0.005),
    "gemini-pro": ModelRate(0.00125, 0.005),
}

SYNTHESIS_KEY = "synthesis"


def rates_from_config(models: dict[str, ModelConfig]) -> dict[str, ModelRate]:
    """Build the rate table keyed by configured model key.

    Explicit pricing in settings.yaml wins; otherwise the longest matching
    DEFAULT_RATES prefix of the model identifier is used.
    """
    rates: dict[str, ModelRate] = {}
    for key, cfg in models.items():
        if cfg.input_per_1k is not None and cfg.output_per_1k is not None:
            rates[key] = ModelRate(cfg.input_per_1k, cfg.output_per_1k)
            continue
        rate = lookup_default_rate(cfg.model)
        if rate is not None:
            rates[key] = rate
    return rates


def lookup_default_rate(model_string: str) -> ModelRate | None:
    matches = [prefix for prefix in DEFAULT_RATES if model_string.startswith(prefix)]
    if not matches:
        return None
    return DEFAULT_RATES[max(matches, key=len)]


def compute_cost(rate: ModelRate, input_tokens: int, output_tokens: int) -> float:
    return round(input_tokens / 1000 * rate.input_per_1k + output_tokens / 1000 * rate.output_per_1k, 6)


class CostAccumulator:
    """Additive per-participant cost map. Never decreases, never resets."""

    def __init__(self, rates: dict[str, ModelRate]) -> None:
        self._rates = dict(rates)
        self._entries: dict[str, ParticipantCost] = {}
        self._warned: set[str] = set()

    def _rate_for(self, model: str) -> ModelRate:
        rate = self._rates.get(model) or lookup_default_rate(model)
        if rate is None:
            if model not in self._warned:
                logger.warning("No pricing for model %s, counting its cost as 0", model)
                self._warned.add(model)
            return ModelRate(0.0, 0.0)
        return rate

    def add(self, participant: str, model: str, input_tokens: int, output_tokens: int) -> CostSnapshot:
        """Add one finalized completion's usage and return the updated snapshot."""
        if input_tokens < 0 or output_tokens < 0:
            raise ValueError(f"Token counts must be non-negative, got {input_tokens}/{output_tokens}")

        entry = self._entries.setdefault(participant, ParticipantCost(model=model))
        entry.input_tokens += input_tokens
        entry.output_tokens += output_tokens
        entry.cost = compute_cost(self._rate_for(model), entry.input_tokens, entry.output_tokens)

        logger.debug(
            "Cost for %s now %d in / %d out tokens, $%.4f",
            participant, entry.input_tokens, entry.output_tokens, entry.cost,
        )
        return self.snapshot()

    def total_cost(self) -> float:
        return round(sum(e.cost for e in self._entries.values()), 6)

    def snapshot(self) -> CostSnapshot:
        entries = copy.deepcopy(self._entries)
        return CostSnapshot(
            by_participant=entries,
            total_input_tokens=sum(e.input_tokens for e in entries.values()),
            total_output_tokens=sum(e.output_tokens for e in entries.values()),
            total_cost=self.total_cost(),
        )
