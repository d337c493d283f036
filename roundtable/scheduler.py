"""Round-robin turn scheduling over the ordered participant list."""

from dataclasses import dataclass

from roundtable.errors import InvalidConfiguration
from roundtable.interjections import InterjectionQueue
from roundtable.models import Interjection, Participant

MIN_PARTICIPANTS = 2


def validate_participants(participants: list[Participant]) -> None:
    """A debate needs at least two distinct participants."""
    if len(participants) < MIN_PARTICIPANTS:
        raise InvalidConfiguration(
            f"A debate requires at least {MIN_PARTICIPANTS} participants, got {len(participants)}"
        )
    names = [p.name for p in participants]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise InvalidConfiguration(f"Duplicate participant names: {', '.join(duplicates)}")


@dataclass(frozen=True)
class Turn:
    participant: Participant
    turn_number: int
    round_number: int                       # 1-indexed
    interjections: tuple[Interjection, ...] = ()


class TurnScheduler:
    def __init__(self, participants: list[Participant], queue: InterjectionQueue) -> None:
        validate_participants(participants)
        self._participants = list(participants)
        self._queue = queue

    @property
    def participants(self) -> list[Participant]:
        return list(self._participants)

    def participant_for(self, turn_number: int) -> Participant:
        return self._participants[turn_number % len(self._participants)]

    def round_for(self, turn_number: int) -> int:
        return turn_number // len(self._participants) + 1

    def completed_rounds(self, message_count: int) -> int:
        return message_count // len(self._participants)

    def round_limit_reached(self, message_count: int, max_rounds: int) -> bool:
        return message_count >= max_rounds * len(self._participants)

    def next_turn(self, turn_number: int) -> Turn:
        """Hand off turn_number, attaching interjections submitted before it."""
        participant = self.participant_for(turn_number)
        interjections = self._queue.drain(turn_number, participant.name)
        return Turn(
            participant=participant,
            turn_number=turn_number,
            round_number=self.round_for(turn_number),
            interjections=tuple(interjections),
        )
