"""Per-session FIFO of user interjections, drained by the turn scheduler."""

import logging
import uuid
from datetime import datetime, timezone

from roundtable.models import Interjection, InterjectionType

logger = logging.getLogger(__name__)

DEFAULT_HORIZON = 2


class InterjectionQueue:
    """Pending user input for one session.

    An interjection is handed to every turn that drains it until it has been
    delivered `horizon` times; after that it is marked consumed and silently
    stops being delivered. Items are never removed, only marked consumed.
    """

    def __init__(self, session_id: str, horizon: int = DEFAULT_HORIZON) -> None:
        if horizon < 1:
            raise ValueError(f"horizon must be >= 1, got {horizon}")
        self.session_id = session_id
        self.horizon = horizon
        self._items: list[Interjection] = []
        self._delivered: set[tuple[str, int]] = set()   # (interjection id, turn number)

    def enqueue(
        self,
        content: str,
        interjection_type: InterjectionType,
        after_turn: int,
        target_message_id: str | None = None,
    ) -> Interjection:
        interjection = Interjection(
            id=f"interject_{uuid.uuid4().hex[:12]}",
            session_id=self.session_id,
            content=content,
            type=interjection_type,
            after_turn=after_turn,
            created_at=datetime.now(timezone.utc),
            target_message_id=target_message_id,
        )
        self._items.append(interjection)
        logger.info("Interjection %s (%s) queued after turn %d", interjection.id, interjection_type.value, after_turn)
        return interjection

    def drain(self, turn_number: int, participant: str) -> list[Interjection]:
        """Return unconsumed items submitted before turn_number and record the delivery."""
        delivered: list[Interjection] = []
        for item in self._items:
            if item.consumed or item.after_turn >= turn_number:
                continue
            key = (item.id, turn_number)
            if key in self._delivered:
                continue
            self._delivered.add(key)
            item.deliveries += 1
            if participant not in item.acknowledged_by:
                item.acknowledged_by.append(participant)
            if item.deliveries >= self.horizon:
                item.consumed = True
            delivered.append(item)
        if delivered:
            logger.debug("Delivered %d interjection(s) to %s on turn %d", len(delivered), participant, turn_number)
        return delivered

    def pending(self) -> list[Interjection]:
        return [i for i in self._items if not i.consumed]

    def all(self) -> list[Interjection]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)
