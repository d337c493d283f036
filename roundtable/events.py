"""Stream events emitted by a debate session, in emission order per session."""

from dataclasses import dataclass

from roundtable.models import Consensus, CostSnapshot, DebateStatus, Message


@dataclass(frozen=True)
class DebateEvent:
    """Base class for debate stream events."""

    session_id: str


@dataclass(frozen=True)
class DebateStarted(DebateEvent):
    pass


@dataclass(frozen=True)
class ModelStarted(DebateEvent):
    """Emitted once per completion attempt; a repeat for the same turn means a retry."""

    participant: str
    model_id: str
    display_name: str
    turn_number: int
    round_number: int


@dataclass(frozen=True)
class ModelChunk(DebateEvent):
    participant: str
    model_id: str
    turn_number: int
    content: str


@dataclass(frozen=True)
class ModelCompleted(DebateEvent):
    message: Message


@dataclass(frozen=True)
class AgreementDetected(DebateEvent):
    participants: tuple[str, ...]
    reason: str


@dataclass(frozen=True)
class SynthesisStarted(DebateEvent):
    synthesizer: str


@dataclass(frozen=True)
class SynthesisCompleted(DebateEvent):
    consensus: Consensus


@dataclass(frozen=True)
class CostUpdated(DebateEvent):
    cost: CostSnapshot


@dataclass(frozen=True)
class DebateCompleted(DebateEvent):
    status: DebateStatus            # COMPLETE or USER_ENDED
    consensus: Consensus | None
    cost: CostSnapshot


@dataclass(frozen=True)
class DebateFailed(DebateEvent):
    code: str                       # COMPLETION_FAILURE, SYNTHESIS_FAILURE, FATAL_ERROR
    message: str
