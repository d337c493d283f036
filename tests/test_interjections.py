"""Tests for roundtable/interjections.py."""

import pytest

from roundtable.interjections import InterjectionQueue
from roundtable.models import InterjectionType


def test_enqueue_assigns_ids():
    queue = InterjectionQueue("debate_1")
    first = queue.enqueue("focus on cost", InterjectionType.STEER, after_turn=0)
    second = queue.enqueue("why?", InterjectionType.CLARIFY, after_turn=0)
    assert first.id != second.id
    assert first.session_id == "debate_1"
    assert len(queue) == 2


def test_not_delivered_to_turn_in_flight():
    """An item submitted after turn 2 finalized only reaches turn 3 onwards."""
    queue = InterjectionQueue("debate_1")
    queue.enqueue("focus on cost", InterjectionType.STEER, after_turn=2)
    assert queue.drain(2, "claude") == []
    assert [i.content for i in queue.drain(3, "openai")] == ["focus on cost"]


def test_fifo_order():
    queue = InterjectionQueue("debate_1")
    queue.enqueue("first", InterjectionType.COMMENT, after_turn=0)
    queue.enqueue("second", InterjectionType.COMMENT, after_turn=0)
    assert [i.content for i in queue.drain(1, "claude")] == ["first", "second"]


def test_consumed_after_horizon():
    queue = InterjectionQueue("debate_1", horizon=2)
    item = queue.enqueue("focus", InterjectionType.STEER, after_turn=0)

    queue.drain(1, "openai")
    assert queue.pending()[0].deliveries == 1
    queue.drain(2, "claude")

    assert item.consumed
    assert item.acknowledged_by == ["openai", "claude"]
    assert queue.drain(3, "openai") == []
    assert queue.pending() == []
    assert len(queue.all()) == 1


def test_same_turn_drained_twice_counts_once():
    queue = InterjectionQueue("debate_1", horizon=2)
    item = queue.enqueue("focus", InterjectionType.STEER, after_turn=0)
    queue.drain(1, "openai")
    assert queue.drain(1, "openai") == []
    assert item.deliveries == 1


def test_horizon_must_be_positive():
    with pytest.raises(ValueError):
        InterjectionQueue("debate_1", horizon=0)
