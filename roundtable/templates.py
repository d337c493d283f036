"""Debate templates: reusable presets of style, rounds and participants."""

import copy
import dataclasses
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone

from roundtable.errors import InvalidConfiguration, InvalidState, NotFound
from roundtable.models import DebateStyle, Participant, Template, TemplateParticipant
from roundtable.scheduler import MIN_PARTICIPANTS, validate_participants

logger = logging.getLogger(__name__)

MIN_ROUNDS = 1
MAX_ROUNDS = 20

_EDITABLE_FIELDS = frozenset({"name", "description", "style", "max_rounds", "participants", "instruction_overrides"})


def _tp(model: str, role: str) -> TemplateParticipant:
    return TemplateParticipant(model=model, role=role)


BUILT_IN_TEMPLATES: tuple[Template, ...] = (
    Template(
        id="template_code_review",
        name="Code Review",
        description="Two perspectives reviewing code: one focused on quality and maintainability, "
        "one on performance and security.",
        style=DebateStyle.COOPERATIVE,
        max_rounds=3,
        participants=[_tp("claude", "code-quality-expert"), _tp("openai", "security-analyst")],
        instruction_overrides={
            "claude": "You are a code quality expert. Focus on readability, maintainability, SOLID principles "
            "and best practices. Look for code smells and suggest refactoring opportunities.",
            "openai": "You are a security and performance analyst. Focus on potential vulnerabilities, "
            "performance bottlenecks and edge cases. Suggest hardening measures.",
        },
        built_in=True,
    ),
    Template(
        id="template_architecture_decision",
        name="Architecture Decision",
        description="Panel discussion for major architectural decisions with multiple perspectives.",
        style=DebateStyle.PANEL,
        max_rounds=4,
        participants=[
            _tp("claude", "strategic-architect"),
            _tp("openai", "practical-evaluator"),
            _tp("gemini", "innovation-catalyst"),
        ],
        built_in=True,
    ),
    Template(
        id="template_brainstorming",
        name="Brainstorming",
        description="Generate diverse ideas with a creative thinker and a practical evaluator.",
        style=DebateStyle.COOPERATIVE,
        max_rounds=5,
        participants=[_tp("claude", "creative-thinker"), _tp("openai", "practical-evaluator")],
        instruction_overrides={
            "claude": "You are a creative brainstormer. Generate innovative, unconventional ideas. "
            "Build on ideas expansively before narrowing down.",
            "openai": "You are a practical evaluator. Assess feasibility, identify implementation challenges, "
            "and suggest how to make creative ideas actionable.",
        },
        built_in=True,
    ),
    Template(
        id="template_devils_advocate",
        name="Devil's Advocate",
        description="Stress-test ideas with rigorous criticism and defense.",
        style=DebateStyle.ADVERSARIAL,
        max_rounds=4,
        participants=[_tp("claude", "proposer"), _tp("openai", "devils-advocate")],
        instruction_overrides={
            "claude": "You are the proposer defending an idea or approach. Present your position clearly and "
            "defend it against criticism. Acknowledge valid points while explaining why your approach is sound.",
            "openai": "You are the devil's advocate. Challenge every assumption. Find weaknesses, edge cases, "
            "and potential failures. Be thorough but constructive.",
        },
        built_in=True,
    ),
    Template(
        id="template_red_team",
        name="Security Red Team",
        description="Find vulnerabilities and security issues through adversarial analysis.",
        style=DebateStyle.RED_TEAM,
        max_rounds=4,
        participants=[_tp("claude", "security-analyst"), _tp("openai", "implementation-specialist")],
        instruction_overrides={
            "claude": "You are a security red teamer. Find vulnerabilities, attack vectors and security "
            "weaknesses. Think like a malicious attacker.",
            "openai": "You are a security engineer. Respond to identified vulnerabilities with mitigation "
            "strategies, patches and security improvements. Prioritize fixes by severity.",
        },
        built_in=True,
    ),
    Template(
        id="template_ux_review",
        name="UX Review",
        description="Evaluate user experience from technical and user-centric perspectives.",
        style=DebateStyle.COOPERATIVE,
        max_rounds=3,
        participants=[_tp("claude", "ux-advocate"), _tp("openai", "implementation-specialist")],
        instruction_overrides={
            "claude": "You are a UX advocate. Focus on user experience, accessibility, intuitive design, "
            "and the user journey.",
            "openai": "You are a frontend engineer. Consider implementation feasibility, performance "
            "implications and technical constraints while supporting good UX decisions.",
        },
        built_in=True,
    ),
)


def coerce_style(style: DebateStyle | str) -> DebateStyle:
    try:
        return DebateStyle(style)
    except ValueError as exc:
        valid = ", ".join(s.value for s in DebateStyle)
        raise InvalidConfiguration(f"Unknown debate style '{style}', expected one of: {valid}") from exc


def validate_rounds(max_rounds: int) -> None:
    if not MIN_ROUNDS <= max_rounds <= MAX_ROUNDS:
        raise InvalidConfiguration(f"max_rounds must be between {MIN_ROUNDS} and {MAX_ROUNDS}, got {max_rounds}")


def validate_template(template: Template) -> None:
    """Participant-count, round-count and style bounds, checked before a template is accepted."""
    if not template.name.strip():
        raise InvalidConfiguration("Template name is required")
    if len(template.participants) < MIN_PARTICIPANTS:
        raise InvalidConfiguration(
            f"A template requires at least {MIN_PARTICIPANTS} participants, got {len(template.participants)}"
        )
    validate_rounds(template.max_rounds)
    coerce_style(template.style)


@dataclass
class ResolvedTemplate:
    participants: list[Participant]
    style: DebateStyle
    max_rounds: int
    instruction_overrides: dict[str, str] = field(default_factory=dict)


def name_participants(
    entries: list[TemplateParticipant],
    display_names: dict[str, str] | None = None,
) -> list[Participant]:
    """Concrete participants; names default to the model key, repeats get a numeric suffix ("claude-2")."""
    display_names = display_names or {}
    participants: list[Participant] = []
    seen: dict[str, int] = {}
    for tp in entries:
        base = tp.name or tp.model
        seen[base] = seen.get(base, 0) + 1
        name = base if seen[base] == 1 else f"{base}-{seen[base]}"
        participants.append(
            Participant(
                name=name,
                model=tp.model,
                role=tp.role,
                display_name=tp.display_name or display_names.get(tp.model, name),
            )
        )
    validate_participants(participants)
    return participants


def resolve_template(template: Template, display_names: dict[str, str] | None = None) -> ResolvedTemplate:
    """Expand a template into concrete participants plus per-participant instruction overrides."""
    participants = name_participants(template.participants, display_names)
    names = {p.name for p in participants}
    overrides = {k: v for k, v in template.instruction_overrides.items() if k in names}
    return ResolvedTemplate(
        participants=participants,
        style=coerce_style(template.style),
        max_rounds=template.max_rounds,
        instruction_overrides=overrides,
    )


class TemplateStore(ABC):
    """Read/write access to templates, injected into the controller."""

    @abstractmethod
    def list_templates(self) -> list[Template]:
        ...

    @abstractmethod
    def get_template(self, template_id: str) -> Template:
        """Raises NotFound for unknown ids."""
        ...

    @abstractmethod
    def create_template(self, template: Template) -> Template:
        ...

    @abstractmethod
    def update_template(self, template_id: str, **changes) -> Template:
        ...

    @abstractmethod
    def delete_template(self, template_id: str) -> None:
        ...

    @abstractmethod
    def record_use(self, template_id: str) -> None:
        ...

    def search(self, query: str) -> list[Template]:
        """Case-insensitive match on name or description."""
        needle = query.lower()
        return [t for t in self.list_templates() if needle in t.name.lower() or needle in t.description.lower()]

    def popular(self, limit: int = 5) -> list[Template]:
        return sorted(self.list_templates(), key=lambda t: t.use_count, reverse=True)[:limit]


class InMemoryTemplateStore(TemplateStore):
    """Built-in templates (read-only) plus custom templates held in this instance."""

    def __init__(self, built_ins: tuple[Template, ...] | list[Template] = BUILT_IN_TEMPLATES) -> None:
        now = datetime.now(timezone.utc)
        self._templates: dict[str, Template] = {}
        for template in built_ins:
            seeded = copy.deepcopy(template)
            seeded.created_at = seeded.created_at or now
            seeded.updated_at = seeded.updated_at or now
            self._templates[seeded.id] = seeded

    def list_templates(self) -> list[Template]:
        return [copy.deepcopy(t) for t in self._templates.values()]

    def get_template(self, template_id: str) -> Template:
        return copy.deepcopy(self._get(template_id))

    def _get(self, template_id: str) -> Template:
        template = self._templates.get(template_id)
        if template is None:
            raise NotFound(f"Template not found: {template_id}")
        return template

    def create_template(self, template: Template) -> Template:
        now = datetime.now(timezone.utc)
        created = dataclasses.replace(
            copy.deepcopy(template),
            id=f"template_custom_{uuid.uuid4().hex[:12]}",
            style=coerce_style(template.style),
            built_in=False,
            use_count=0,
            created_at=now,
            updated_at=now,
        )
        validate_template(created)
        self._templates[created.id] = created
        logger.info("Created template %s (%s)", created.id, created.name)
        return copy.deepcopy(created)

    def update_template(self, template_id: str, **changes) -> Template:
        current = self._get(template_id)
        if current.built_in:
            raise InvalidState(f"Built-in template {template_id} is read-only")
        unknown = set(changes) - _EDITABLE_FIELDS
        if unknown:
            raise InvalidConfiguration(f"Cannot update template fields: {', '.join(sorted(unknown))}")
        if "style" in changes:
            changes["style"] = coerce_style(changes["style"])
        updated = dataclasses.replace(current, **changes, updated_at=datetime.now(timezone.utc))
        validate_template(updated)
        self._templates[template_id] = updated
        return copy.deepcopy(updated)

    def delete_template(self, template_id: str) -> None:
        if self._get(template_id).built_in:
            raise InvalidState(f"Built-in template {template_id} is read-only")
        del self._templates[template_id]
        logger.info("Deleted template %s", template_id)

    def record_use(self, template_id: str) -> None:
        template = self._get(template_id)
        template.use_count += 1
        template.updated_at = datetime.now(timezone.utc)

