"""Wire codec for debate events: camelCase JSON in server-sent-event frames.

Frame layout, one per event:

    id: <seq>
    event: <type>
    data: <json>

Sequence ids increase monotonically per encoder (one encoder per stream).
"""

import json
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from roundtable.errors import ProtocolError
from roundtable.events import (
    AgreementDetected,
    CostUpdated,
    DebateCompleted,
    DebateEvent,
    DebateFailed,
    DebateStarted,
    ModelChunk,
    ModelCompleted,
    ModelStarted,
    SynthesisCompleted,
    SynthesisStarted,
)
from roundtable.models import (
    Consensus,
    CostSnapshot,
    DebateStatus,
    Interjection,
    Message,
    ParticipantCost,
    Participant,
    PositionComparison,
    Session,
    Template,
    TemplateParticipant,
    TokenUsage,
)

EVENT_TYPES = frozenset({
    "debate_start", "model_start", "model_chunk", "model_complete", "agreement_detected",
    "synthesis_start", "synthesis_complete", "cost_update", "debate_complete", "debate_error",
})


def _ms() -> int:
    return int(time.time() * 1000)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


# --- aggregates ---

def message_to_dict(message: Message) -> dict:
    return {
        "id": message.id,
        "participant": message.participant,
        "model": message.model,
        "turnNumber": message.turn_number,
        "roundNumber": message.round_number,
        "role": message.role,
        "content": message.content,
        "isAgreement": message.is_agreement,
        "usage": {"inputTokens": message.usage.input_tokens, "outputTokens": message.usage.output_tokens},
        "createdAt": _iso(message.created_at),
    }


def message_from_dict(data: dict) -> Message:
    usage = data.get("usage") or {}
    return Message(
        id=data["id"],
        participant=data["participant"],
        model=data["model"],
        turn_number=int(data["turnNumber"]),
        round_number=int(data["roundNumber"]),
        role=data["role"],
        content=data["content"],
        usage=TokenUsage(int(usage.get("inputTokens", 0)), int(usage.get("outputTokens", 0))),
        created_at=_parse_dt(data["createdAt"]),
        is_agreement=bool(data.get("isAgreement", False)),
    )


def cost_to_dict(cost: CostSnapshot) -> dict:
    return {
        "byParticipant": {
            name: {
                "model": entry.model,
                "inputTokens": entry.input_tokens,
                "outputTokens": entry.output_tokens,
                "cost": entry.cost,
            }
            for name, entry in cost.by_participant.items()
        },
        "totalInputTokens": cost.total_input_tokens,
        "totalOutputTokens": cost.total_output_tokens,
        "totalCost": cost.total_cost,
    }


def cost_from_dict(data: dict) -> CostSnapshot:
    return CostSnapshot(
        by_participant={
            name: ParticipantCost(
                model=entry["model"],
                input_tokens=int(entry["inputTokens"]),
                output_tokens=int(entry["outputTokens"]),
                cost=float(entry["cost"]),
            )
            for name, entry in (data.get("byParticipant") or {}).items()
        },
        total_input_tokens=int(data.get("totalInputTokens", 0)),
        total_output_tokens=int(data.get("totalOutputTokens", 0)),
        total_cost=float(data.get("totalCost", 0.0)),
    )


def consensus_to_dict(consensus: Consensus | None) -> dict | None:
    if consensus is None:
        return None
    return {
        "summary": consensus.summary,
        "agreedPoints": list(consensus.agreed_points),
        "disagreements": list(consensus.disagreements),
        "confidence": consensus.confidence,
        "synthesizer": consensus.synthesizer,
    }


def consensus_from_dict(data: dict | None) -> Consensus | None:
    if data is None:
        return None
    return Consensus(
        summary=data["summary"],
        agreed_points=tuple(data.get("agreedPoints") or ()),
        disagreements=tuple(data.get("disagreements") or ()),
        confidence=data.get("confidence", "medium"),
        synthesizer=data.get("synthesizer", ""),
    )


def participant_to_dict(participant: Participant) -> dict:
    return {
        "name": participant.name,
        "model": participant.model,
        "role": participant.role,
        "displayName": participant.display_name,
    }


def interjection_to_dict(interjection: Interjection) -> dict:
    return {
        "id": interjection.id,
        "sessionId": interjection.session_id,
        "content": interjection.content,
        "type": interjection.type.value,
        "targetMessageId": interjection.target_message_id,
        "afterTurn": interjection.after_turn,
        "acknowledgedBy": list(interjection.acknowledged_by),
        "deliveries": interjection.deliveries,
        "consumed": interjection.consumed,
        "createdAt": _iso(interjection.created_at),
    }


def session_to_dict(session: Session) -> dict:
    return {
        "id": session.id,
        "question": session.question,
        "style": session.style.value,
        "status": session.status.value,
        "participants": [participant_to_dict(p) for p in session.participants],
        "maxRounds": session.max_rounds,
        "roundCount": session.round_count,
        "messages": [message_to_dict(m) for m in session.messages],
        "consensus": consensus_to_dict(session.consensus),
        "cost": cost_to_dict(session.cost),
        "templateId": session.template_id,
        "error": session.error,
        "createdAt": _iso(session.created_at),
        "endedAt": _iso(session.ended_at),
    }


def comparison_to_dict(comparison: PositionComparison) -> dict:
    return {
        "participantA": comparison.participant_a,
        "participantB": comparison.participant_b,
        "agreements": [{"claimA": m.claim_a, "claimB": m.claim_b} for m in comparison.agreements],
        "uniqueA": list(comparison.unique_a),
        "uniqueB": list(comparison.unique_b),
    }


def template_to_dict(template: Template) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "style": template.style.value,
        "maxRounds": template.max_rounds,
        "participants": [
            {"model": p.model, "role": p.role, "displayName": p.display_name, "name": p.name}
            for p in template.participants
        ],
        "instructionOverrides": dict(template.instruction_overrides),
        "builtIn": template.built_in,
        "useCount": template.use_count,
        "createdAt": _iso(template.created_at),
        "updatedAt": _iso(template.updated_at),
    }


def template_participants_from_list(items: list[dict]) -> list[TemplateParticipant]:
    return [
        TemplateParticipant(
            model=item["model"],
            role=item.get("role", ""),
            display_name=item.get("displayName", ""),
            name=item.get("name", ""),
        )
        for item in items
    ]


# --- events ---

def event_to_dict(event: DebateEvent, timestamp: int | None = None) -> dict:
    match event:
        case DebateStarted(session_id=sid):
            data: dict[str, Any] = {"type": "debate_start", "sessionId": sid}
        case ModelStarted(session_id=sid, participant=p, model_id=mid, display_name=dn, turn_number=t, round_number=r):
            data = {
                "type": "model_start", "sessionId": sid, "participant": p, "modelId": mid,
                "displayName": dn, "turnNumber": t, "roundNumber": r,
            }
        case ModelChunk(session_id=sid, participant=p, model_id=mid, turn_number=t, content=content):
            data = {
                "type": "model_chunk", "sessionId": sid, "participant": p, "modelId": mid,
                "turnNumber": t, "content": content,
            }
        case ModelCompleted(session_id=sid, message=message):
            data = {"type": "model_complete", "sessionId": sid, "message": message_to_dict(message)}
        case AgreementDetected(session_id=sid, participants=participants, reason=reason):
            data = {"type": "agreement_detected", "sessionId": sid, "participants": list(participants), "reason": reason}
        case SynthesisStarted(session_id=sid, synthesizer=synthesizer):
            data = {"type": "synthesis_start", "sessionId": sid, "synthesizer": synthesizer}
        case SynthesisCompleted(session_id=sid, consensus=consensus):
            data = {"type": "synthesis_complete", "sessionId": sid, "consensus": consensus_to_dict(consensus)}
        case CostUpdated(session_id=sid, cost=cost):
            data = {"type": "cost_update", "sessionId": sid, "cost": cost_to_dict(cost)}
        case DebateCompleted(session_id=sid, status=status, consensus=consensus, cost=cost):
            data = {
                "type": "debate_complete", "sessionId": sid, "status": status.value,
                "consensus": consensus_to_dict(consensus), "cost": cost_to_dict(cost),
            }
        case DebateFailed(session_id=sid, code=code, message=message):
            data = {"type": "debate_error", "sessionId": sid, "error": {"code": code, "message": message}}
        case _:
            raise ProtocolError(f"Cannot encode event of type {type(event).__name__}")
    data["timestamp"] = _ms() if timestamp is None else timestamp
    return data


def event_from_dict(data: dict) -> DebateEvent:
    """Rebuild an event from its wire dict. Unknown types and missing keys raise ProtocolError."""
    try:
        sid = data["sessionId"]
        match data.get("type"):
            case "debate_start":
                return DebateStarted(session_id=sid)
            case "model_start":
                return ModelStarted(
                    session_id=sid,
                    participant=data["participant"],
                    model_id=data["modelId"],
                    display_name=data.get("displayName", ""),
                    turn_number=int(data["turnNumber"]),
                    round_number=int(data["roundNumber"]),
                )
            case "model_chunk":
                return ModelChunk(
                    session_id=sid,
                    participant=data["participant"],
                    model_id=data["modelId"],
                    turn_number=int(data["turnNumber"]),
                    content=data["content"],
                )
            case "model_complete":
                return ModelCompleted(session_id=sid, message=message_from_dict(data["message"]))
            case "agreement_detected":
                return AgreementDetected(
                    session_id=sid, participants=tuple(data["participants"]), reason=data.get("reason", "")
                )
            case "synthesis_start":
                return SynthesisStarted(session_id=sid, synthesizer=data["synthesizer"])
            case "synthesis_complete":
                return SynthesisCompleted(session_id=sid, consensus=consensus_from_dict(data["consensus"]))
            case "cost_update":
                return CostUpdated(session_id=sid, cost=cost_from_dict(data["cost"]))
            case "debate_complete":
                return DebateCompleted(
                    session_id=sid,
                    status=DebateStatus(data["status"]),
                    consensus=consensus_from_dict(data.get("consensus")),
                    cost=cost_from_dict(data["cost"]),
                )
            case "debate_error":
                return DebateFailed(session_id=sid, code=data["error"]["code"], message=data["error"]["message"])
            case other:
                raise ProtocolError(f"Unknown event type: {other!r}")
    except (KeyError, TypeError, ValueError) as exc:
        raise ProtocolError(f"Malformed {data.get('type', 'event')} payload: {exc}") from exc


# --- SSE framing ---

class SseEncoder:
    """Turns events into numbered SSE frames. One instance per stream."""

    def __init__(self) -> None:
        self._seq = 0

    def encode(self, event: DebateEvent) -> str:
        self._seq += 1
        data = event_to_dict(event)
        payload = json.dumps(data, separators=(",", ":"), ensure_ascii=False)
        return f"id: {self._seq}\nevent: {data['type']}\ndata: {payload}\n\n"


@dataclass(frozen=True)
class Frame:
    id: int | None
    event: DebateEvent


class SseDecoder:
    """Incremental SSE parser: feed arbitrary byte or text splits, get complete frames back."""

    def __init__(self) -> None:
        self._buffer = b""

    def feed(self, chunk: bytes | str) -> list[Frame]:
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self._buffer += chunk.replace(b"\r\n", b"\n")
        frames: list[Frame] = []
        while b"\n\n" in self._buffer:
            raw, self._buffer = self._buffer.split(b"\n\n", 1)
            frame = self._parse(raw.decode("utf-8"))
            if frame is not None:
                frames.append(frame)
        return frames

    @property
    def pending(self) -> bool:
        return bool(self._buffer.strip())

    def _parse(self, raw: str) -> Frame | None:
        frame_id: int | None = None
        name: str | None = None
        data_lines: list[str] = []
        for line in raw.split("\n"):
            if not line or line.startswith(":"):
                continue
            field, _, value = line.partition(":")
            value = value[1:] if value.startswith(" ") else value
            if field == "id":
                try:
                    frame_id = int(value)
                except ValueError as exc:
                    raise ProtocolError(f"Non-numeric frame id: {value!r}") from exc
            elif field == "event":
                name = value
            elif field == "data":
                data_lines.append(value)

        if name is None and not data_lines:
            return None
        if name not in EVENT_TYPES:
            raise ProtocolError(f"Unknown event type: {name!r}")
        try:
            data = json.loads("\n".join(data_lines))
        except json.JSONDecodeError as exc:
            raise ProtocolError(f"Invalid JSON in {name} frame: {exc}") from exc
        if data.get("type", name) != name:
            raise ProtocolError(f"Frame event {name} does not match payload type {data.get('type')}")
        data.setdefault("type", name)
        return Frame(id=frame_id, event=event_from_dict(data))


class MessageAssembler:
    """Rebuilds messages from model_start / model_chunk / model_complete events.

    A repeated model_start for a turn is a retry: the partial text for that
    turn is discarded.
    """

    def __init__(self) -> None:
        self._partials: dict[int, list[str]] = {}
        self.messages: list[Message] = []

    def partial(self, turn_number: int) -> str:
        return "".join(self._partials.get(turn_number, []))

    def apply(self, event: DebateEvent) -> Message | None:
        match event:
            case ModelStarted(turn_number=turn):
                self._partials[turn] = []
            case ModelChunk(turn_number=turn, content=content):
                self._partials.setdefault(turn, []).append(content)
            case ModelCompleted(message=message):
                self._partials.pop(message.turn_number, None)
                self.messages.append(message)
                return message
        return None
