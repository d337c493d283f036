"""Final synthesis: pick the synthesizer, request one completion, parse it into a Consensus."""

import logging
import re
from dataclasses import dataclass

from config.config_loader import PromptsConfig
from roundtable.errors import SynthesisFailure
from roundtable.models import Consensus, Interjection, Message, Participant, TokenUsage
from roundtable.prompts import synthesis_prompt
from roundtable.providers.base import AIProvider, Completion, PromptMessage, ProviderError

logger = logging.getLogger(__name__)

SYNTHESIS_SYSTEM = (
    "You are a neutral moderator. Summarize the discussion faithfully: report only "
    "agreements and disagreements that are actually present in the transcript."
)

CONFIDENCE_LEVELS = ("high", "medium", "low")

_HEADING = re.compile(r"^\s*#{1,6}\s*(.+?)\s*#*\s*$", re.MULTILINE)
_LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]|[-•*])\s+(.+?)\s*$", re.MULTILINE)
_NONE_ITEM = re.compile(r"^\(?none\b.*\)?\.?$", re.IGNORECASE)

_SECTION_KEYS = {
    "summary": "summary",
    "agreed points": "agreed",
    "points of agreement": "agreed",
    "agreements": "agreed",
    "unresolved disagreements": "disagreements",
    "disagreements": "disagreements",
    "confidence": "confidence",
}


@dataclass(frozen=True)
class SynthesisResult:
    consensus: Consensus
    usage: TokenUsage


def choose_synthesizer(configured: str, available: set[str] | dict, participants: list[Participant]) -> str:
    """Configured synthesizer when its provider is available, else the first participant's model."""
    if configured in available:
        return configured
    fallback = participants[0].model
    logger.warning("Synthesizer %s unavailable, using %s", configured, fallback)
    return fallback


def _sections(text: str) -> dict[str, str]:
    headings = list(_HEADING.finditer(text))
    sections: dict[str, str] = {}
    for i, match in enumerate(headings):
        key = _SECTION_KEYS.get(match.group(1).strip().strip("*:").lower())
        if key is None or key in sections:
            continue
        end = headings[i + 1].start() if i + 1 < len(headings) else len(text)
        sections[key] = text[match.end():end].strip()
    return sections


def _items(block: str) -> tuple[str, ...]:
    items = [i.strip() for i in _LIST_ITEM.findall(block)]
    return tuple(i for i in items if i and not _NONE_ITEM.match(i))


def derived_confidence(messages: list[Message]) -> str:
    """From the share of agreement-tagged messages: >= 0.5 high, >= 0.25 medium, else low."""
    if not messages:
        return "low"
    share = sum(1 for m in messages if m.is_agreement) / len(messages)
    if share >= 0.5:
        return "high"
    if share >= 0.25:
        return "medium"
    return "low"


def parse_consensus(text: str, synthesizer: str, messages: list[Message]) -> Consensus:
    """Read the Summary / Agreed Points / Unresolved Disagreements / Confidence sections.

    When the synthesizer ignored the layout, the whole text becomes the summary
    and its list items the agreed points.
    """
    text = text.strip()
    if not text:
        raise SynthesisFailure(f"Synthesizer {synthesizer} returned empty content")

    sections = _sections(text)
    if not sections:
        return Consensus(
            summary=text,
            agreed_points=_items(text),
            disagreements=(),
            confidence=derived_confidence(messages),
            synthesizer=synthesizer,
        )

    confidence = derived_confidence(messages)
    words = sections.get("confidence", "").lower().split()
    if words and words[0].strip("*_.:") in CONFIDENCE_LEVELS:
        confidence = words[0].strip("*_.:")

    return Consensus(
        summary=sections.get("summary") or text,
        agreed_points=_items(sections.get("agreed", "")),
        disagreements=_items(sections.get("disagreements", "")),
        confidence=confidence,
        synthesizer=synthesizer,
    )


async def synthesize(
    question: str,
    messages: list[Message],
    participants: list[Participant],
    synthesizer: AIProvider,
    prompts: PromptsConfig,
    pending: list[Interjection] | None = None,
) -> SynthesisResult:
    """Run exactly one synthesis request and parse its output.

    Raises:
        SynthesisFailure: If the provider fails or returns empty content.
    """
    prompt = synthesis_prompt(prompts, question, messages, participants, pending)
    conversation = [PromptMessage("user", prompt)]

    logger.info("Running synthesis via %s", synthesizer.name())

    completion = Completion()
    try:
        async for chunk in synthesizer.stream(SYNTHESIS_SYSTEM, conversation):
            completion = completion.fold(chunk)
    except ProviderError as exc:
        raise SynthesisFailure(f"Synthesis via {synthesizer.name()} failed: {exc}") from exc
    except Exception as exc:
        raise SynthesisFailure(f"Synthesis via {synthesizer.name()} failed unexpectedly: {exc}") from exc

    consensus = parse_consensus(completion.text, synthesizer.name(), messages)
    return SynthesisResult(consensus=consensus, usage=completion.token_usage(SYNTHESIS_SYSTEM, conversation))
