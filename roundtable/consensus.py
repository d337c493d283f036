"""Agreement tagging, claim extraction and position comparison.

The keyword heuristics here are deliberately approximate. Their thresholds
are the contract: two claims match when they share at least two salient words,
or when the shared words exceed 30% of the shorter claim's salient words.
Everything sits behind AgreementMatcher so a stronger matcher can replace it
without touching the controller.
"""

import logging
import re
from abc import ABC, abstractmethod

from roundtable.models import ClaimMatch, Message, PositionComparison

logger = logging.getLogger(__name__)

AFFIRMATION_PHRASES = (
    "i agree",
    "that works",
    "good approach",
    "let's go with",
    "i think we're aligned",
    "that covers it",
    "nothing to add",
    "well said",
    "exactly right",
    "perfect",
    "i'm on board",
    "sounds good",
    "that makes sense",
    "i concur",
)

JUDGMENT_MARKERS = (
    "should",
    "recommend",
    "suggest",
    "propose",
    "believe",
    "think",
    "important",
    "critical",
    "essential",
    "agree",
    "disagree",
)

MAX_CLAIMS = 8
_MAX_CANDIDATES = 10
_MIN_SENTENCE_CHARS = 20
_MIN_SHARED_WORDS = 2
_SHARED_FRACTION = 0.3

_LIST_ITEM = re.compile(r"^\s*(?:\d+[.)]|[-•*])\s+(.+?)\s*$", re.MULTILINE)
_SENTENCE_END = re.compile(r"[.!?]+")
_WORD = re.compile(r"[a-z0-9]+(?:['-][a-z0-9]+)*")
_AFFIRMATION = re.compile(r"\b(?:" + "|".join(re.escape(p) for p in AFFIRMATION_PHRASES) + r")\b")


def _normalize(text: str) -> str:
    return text.lower().replace("’", "'")


def salient_words(text: str) -> set[str]:
    """Lower-cased words longer than four characters, punctuation stripped."""
    return {w for w in _WORD.findall(_normalize(text)) if len(w) > 4}


def _clean(claim: str) -> str:
    return claim.strip().strip("*_`").strip()


class AgreementMatcher(ABC):
    """Pluggable strategy for agreement detection and claim matching."""

    @abstractmethod
    def extract_claims(self, text: str) -> list[str]:
        ...

    @abstractmethod
    def claims_match(self, claim_a: str, claim_b: str) -> bool:
        ...

    @abstractmethod
    def affirms(self, text: str, prior_text: str) -> bool:
        """True when text substantively affirms the position in prior_text."""
        ...


class KeywordAgreementMatcher(AgreementMatcher):
    """Phrase and shared-keyword heuristics."""

    def __init__(self, claim_ratio: float = 0.6, max_claims: int = MAX_CLAIMS) -> None:
        self.claim_ratio = claim_ratio
        self.max_claims = max_claims

    def extract_claims(self, text: str) -> list[str]:
        claims: list[str] = []
        for item in _LIST_ITEM.findall(text):
            item = _clean(item)
            if item and item not in claims:
                claims.append(item)

        prose = _LIST_ITEM.sub("", text)
        for sentence in _SENTENCE_END.split(prose):
            sentence = _clean(" ".join(sentence.split()))
            if len(sentence) <= _MIN_SENTENCE_CHARS or len(claims) >= _MAX_CANDIDATES:
                continue
            lowered = sentence.lower()
            if any(marker in lowered for marker in JUDGMENT_MARKERS) and sentence not in claims:
                claims.append(sentence)

        return claims[: self.max_claims]

    def claims_match(self, claim_a: str, claim_b: str) -> bool:
        words_a = salient_words(claim_a)
        words_b = salient_words(claim_b)
        if not words_a or not words_b:
            return False
        shared = len(words_a & words_b)
        return shared >= _MIN_SHARED_WORDS or shared > _SHARED_FRACTION * min(len(words_a), len(words_b))

    def has_affirmation(self, text: str) -> bool:
        return _AFFIRMATION.search(_normalize(text)) is not None

    def affirms(self, text: str, prior_text: str) -> bool:
        if self.has_affirmation(text):
            return True
        claims = self.extract_claims(text)
        prior_claims = self.extract_claims(prior_text)
        if not claims or not prior_claims:
            return False
        matched = sum(1 for c in claims if any(self.claims_match(c, p) for p in prior_claims))
        return matched >= 2 and matched / len(claims) >= self.claim_ratio


def compare_claims(
    matcher: AgreementMatcher,
    participant_a: str,
    claims_a: list[str],
    participant_b: str,
    claims_b: list[str],
) -> PositionComparison:
    """Pairwise O(n*m) comparison of two bounded claim lists."""
    result = PositionComparison(participant_a=participant_a, participant_b=participant_b)
    for claim_a in claims_a:
        match = next((b for b in claims_b if matcher.claims_match(claim_a, b)), None)
        if match is None:
            result.unique_a.append(claim_a)
        else:
            result.agreements.append(ClaimMatch(claim_a, match))
    for claim_b in claims_b:
        if not any(matcher.claims_match(a, claim_b) for a in claims_a):
            result.unique_b.append(claim_b)
    return result


class ConsensusAnalyzer:
    """Runs after every finalized message; also answers position comparisons on demand."""

    def __init__(self, matcher: AgreementMatcher | None = None) -> None:
        self.matcher = matcher or KeywordAgreementMatcher()

    def is_agreement(self, participant: str, content: str, history: list[Message]) -> bool:
        """Tag a new message against the latest message by a different participant."""
        prior = next((m for m in reversed(history) if m.participant != participant), None)
        if prior is None:
            return False
        agreed = self.matcher.affirms(content, prior.content)
        if agreed:
            logger.debug("%s affirms %s (turn %d)", participant, prior.participant, prior.turn_number)
        return agreed

    def sustained_agreement(self, messages: list[Message]) -> bool:
        """Agreement on the last two turns, from two distinct participants."""
        if len(messages) < 2:
            return False
        previous, latest = messages[-2], messages[-1]
        return previous.is_agreement and latest.is_agreement and previous.participant != latest.participant

    def compare_positions(self, messages: list[Message], participant_a: str, participant_b: str) -> PositionComparison:
        text_a = "\n\n".join(m.content for m in messages if m.participant == participant_a)
        text_b = "\n\n".join(m.content for m in messages if m.participant == participant_b)
        return compare_claims(
            self.matcher,
            participant_a,
            self.matcher.extract_claims(text_a),
            participant_b,
            self.matcher.extract_claims(text_b),
        )
