"""Prompt assembly for debate turns and synthesis."""

from config.config_loader import PromptsConfig
from roundtable.models import DebateStyle, Interjection, InterjectionType, Message, Participant
from roundtable.providers.base import PromptMessage

INTERJECTION_LABELS: dict[InterjectionType, str] = {
    InterjectionType.COMMENT: "User Comment",
    InterjectionType.STEER: "User Direction",
    InterjectionType.CHALLENGE: "User Challenge",
    InterjectionType.CLARIFY: "Clarification Request",
}


def system_prompt(
    prompts: PromptsConfig,
    participant: Participant,
    style: DebateStyle,
    instruction_overrides: dict[str, str] | None = None,
) -> str:
    """Instruction override if present, otherwise the role persona; then the style instruction."""
    override = (instruction_overrides or {}).get(participant.name)
    base = override or prompts.personas.get(participant.role, "")
    parts = [base.strip(), prompts.styles.get(style.value, "").strip()]
    return "\n\n".join(p for p in parts if p)


def interjection_block(interjections: list[Interjection] | tuple[Interjection, ...]) -> str:
    if not interjections:
        return ""
    items = []
    for item in interjections:
        target = " (re: previous message)" if item.target_message_id else ""
        items.append(f"**{INTERJECTION_LABELS[item.type]}{target}:** {item.content}")
    heading = "## User Interjections" if len(interjections) > 1 else "## User Interjection"
    body = "\n\n".join(items)
    return (
        f"---\n{heading}\n\n{body}\n\n"
        "Please acknowledge and address the user's input in your response.\n---"
    )


def _merge(entries: list[PromptMessage]) -> list[PromptMessage]:
    merged: list[PromptMessage] = []
    for entry in entries:
        if merged and merged[-1].role == entry.role:
            merged[-1] = PromptMessage(entry.role, f"{merged[-1].content}\n\n{entry.content}")
        else:
            merged.append(entry)
    return merged


def build_turn_context(
    prompts: PromptsConfig,
    question: str,
    participant: Participant,
    history: list[Message],
    participants: list[Participant],
    interjections: list[Interjection] | tuple[Interjection, ...] = (),
) -> list[PromptMessage]:
    """Conversation for one turn, seen from participant's side.

    Own messages become assistant turns; everyone else's are framed as
    user turns. Consecutive same-role entries are merged so providers always
    receive a strictly alternating list that starts with the user.
    """
    names = {p.name: p.display_name or p.name for p in participants}
    entries = [PromptMessage("user", prompts.initial.format(question=question).strip())]

    for message in history:
        if message.participant == participant.name:
            entries.append(PromptMessage("assistant", message.content))
        else:
            frame = prompts.reply.format(
                name=names.get(message.participant, message.participant),
                role=message.role,
                content=message.content,
            )
            entries.append(PromptMessage("user", frame.strip()))

    block = interjection_block(interjections)
    if block:
        entries.append(PromptMessage("user", block))

    if history:
        previous = history[-1].participant
        entries.append(PromptMessage("user", prompts.respond.format(name=names.get(previous, previous)).strip()))

    return _merge(entries)


def format_transcript(messages: list[Message], participants: list[Participant]) -> str:
    names = {p.name: p.display_name or p.name for p in participants}
    parts = [
        f"**{names.get(m.participant, m.participant)}** ({m.role}, round {m.round_number}):\n{m.content}"
        for m in messages
    ]
    return "\n\n---\n\n".join(parts)


def synthesis_prompt(
    prompts: PromptsConfig,
    question: str,
    messages: list[Message],
    participants: list[Participant],
    pending: list[Interjection] | None = None,
) -> str:
    rounds = -(-len(messages) // len(participants)) if participants else 0
    block = interjection_block(pending or [])
    return prompts.synthesis.format(
        turns=len(messages),
        rounds=rounds,
        question=question,
        transcript=format_transcript(messages, participants),
        interjections=f"\n{block}\n" if block else "",
    )
