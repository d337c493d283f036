"""Pure dataclasses for the debate session aggregate. No logic, no deps."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class DebateStatus(str, Enum):
    IDLE = "idle"
    STARTING = "starting"
    DEBATING = "debating"
    SYNTHESIZING = "synthesizing"
    COMPLETE = "complete"
    USER_ENDED = "user-ended"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (DebateStatus.COMPLETE, DebateStatus.USER_ENDED, DebateStatus.ERROR)


class DebateStyle(str, Enum):
    COOPERATIVE = "cooperative"
    ADVERSARIAL = "adversarial"
    RED_TEAM = "red_team"
    PANEL = "panel"


class InterjectionType(str, Enum):
    COMMENT = "comment"
    STEER = "steer"
    CHALLENGE = "challenge"
    CLARIFY = "clarify"


@dataclass(frozen=True)
class Participant:
    name: str              # unique within a session
    model: str             # key into the configured models ("claude", "openai", ...)
    role: str              # persona key ("strategic-architect", ...)
    display_name: str = ""


@dataclass(frozen=True)
class TokenUsage:
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class Message:
    id: str
    participant: str
    model: str
    turn_number: int
    round_number: int
    role: str
    content: str
    usage: TokenUsage
    created_at: datetime
    is_agreement: bool = False


@dataclass
class Interjection:
    id: str
    session_id: str
    content: str
    type: InterjectionType
    after_turn: int        # last finalized turn when submitted, -1 before the first
    created_at: datetime
    target_message_id: str | None = None
    acknowledged_by: list[str] = field(default_factory=list)
    deliveries: int = 0
    consumed: bool = False


@dataclass(frozen=True)
class Consensus:
    summary: str
    agreed_points: tuple[str, ...] = ()
    disagreements: tuple[str, ...] = ()
    confidence: str = "medium"      # "high", "medium", "low"
    synthesizer: str = ""


@dataclass
class ParticipantCost:
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cost: float = 0.0


@dataclass
class CostSnapshot:
    by_participant: dict[str, ParticipantCost] = field(default_factory=dict)
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cost: float = 0.0


@dataclass(frozen=True)
class ClaimMatch:
    claim_a: str
    claim_b: str


@dataclass
class PositionComparison:
    participant_a: str
    participant_b: str
    agreements: list[ClaimMatch] = field(default_factory=list)
    unique_a: list[str] = field(default_factory=list)
    unique_b: list[str] = field(default_factory=list)


@dataclass
class TemplateParticipant:
    model: str
    role: str
    display_name: str = ""
    name: str = ""          # defaults to the model key on resolution


@dataclass
class Template:
    id: str
    name: str
    style: DebateStyle
    max_rounds: int
    participants: list[TemplateParticipant]
    description: str = ""
    instruction_overrides: dict[str, str] = field(default_factory=dict)  # participant name -> system prompt
    built_in: bool = False
    use_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None


@dataclass
class Session:
    id: str
    question: str
    style: DebateStyle
    participants: list[Participant]
    max_rounds: int
    created_at: datetime
    status: DebateStatus = DebateStatus.IDLE
    messages: list[Message] = field(default_factory=list)
    consensus: Consensus | None = None
    cost: CostSnapshot = field(default_factory=CostSnapshot)
    instruction_overrides: dict[str, str] = field(default_factory=dict)
    template_id: str | None = None
    error: str | None = None
    ended_at: datetime | None = None

    @property
    def round_count(self) -> int:
        if not self.participants:
            return 0
        return -(-len(self.messages) // len(self.participants))
