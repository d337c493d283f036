"""Rich console rendering of debate events and markdown transcript save."""

import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

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
from roundtable.models import Consensus, CostSnapshot, Session

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def cost_table(cost: CostSnapshot) -> Table:
    table = Table(title="Cost", show_edge=False)
    table.add_column("Participant")
    table.add_column("Model", style="dim")
    table.add_column("In", justify="right")
    table.add_column("Out", justify="right")
    table.add_column("USD", justify="right")
    for name, entry in cost.by_participant.items():
        table.add_row(name, entry.model, str(entry.input_tokens), str(entry.output_tokens), f"{entry.cost:.4f}")
    table.add_row(
        "[bold]total[/bold]", "", str(cost.total_input_tokens), str(cost.total_output_tokens),
        f"[bold]{cost.total_cost:.4f}[/bold]",
    )
    return table


def print_consensus(consensus: Consensus) -> None:
    """Print the consensus using Rich markdown."""
    console.print(Rule("[bold green]Consensus[/bold green]"))
    console.print(Text(f"Synthesized by: {consensus.synthesizer} | Confidence: {consensus.confidence}", style="dim"))
    console.print(Markdown(consensus.summary))
    if consensus.agreed_points:
        console.print(Panel("\n".join(f"- {p}" for p in consensus.agreed_points), title="Agreed", border_style="green"))
    if consensus.disagreements:
        console.print(
            Panel("\n".join(f"- {d}" for d in consensus.disagreements), title="Unresolved", border_style="yellow")
        )


class EventPrinter:
    """Streams debate events to the console as they arrive."""

    def __init__(self, out: Console | None = None, show_costs: bool = False) -> None:
        self.console = out or console
        self.show_costs = show_costs
        self._started_turns: set[int] = set()

    def __call__(self, event: DebateEvent) -> None:
        match event:
            case DebateStarted(session_id=sid):
                self.console.print(Text(f"Session {sid}", style="dim"))
            case ModelStarted(turn_number=turn, round_number=rnd, display_name=display, participant=name):
                if turn in self._started_turns:
                    self.console.print("\n[yellow]Retrying turn...[/yellow]")
                self._started_turns.add(turn)
                self.console.print(Rule(f"[bold cyan]{display or name}[/bold cyan] (turn {turn}, round {rnd})"))
            case ModelChunk(content=content):
                self.console.print(content, end="", markup=False, highlight=False)
            case ModelCompleted(message=message):
                tag = " | agrees" if message.is_agreement else ""
                self.console.print()
                self.console.print(
                    Text(
                        f"{message.usage.input_tokens} in / {message.usage.output_tokens} out tokens{tag}",
                        style="dim",
                    )
                )
            case AgreementDetected(participants=names):
                self.console.print(f"[green]Agreement detected:[/green] {' and '.join(names)}")
            case CostUpdated(cost=cost):
                if self.show_costs:
                    self.console.print(Text(f"Running cost: ${cost.total_cost:.4f}", style="dim"))
            case SynthesisStarted(synthesizer=synthesizer):
                self.console.print(Rule(f"[bold green]Synthesis by {synthesizer}[/bold green]"))
            case SynthesisCompleted(consensus=consensus):
                print_consensus(consensus)
            case DebateCompleted(status=status, cost=cost):
                self.console.print(Rule(f"Debate {status.value}"))
                self.console.print(cost_table(cost))
            case DebateFailed(code=code, message=message):
                self.console.print(f"\n[bold red]{code}:[/bold red] {message}")


def save_to_file(session: Session, output_dir: Path, slug_override: str | None = None) -> Path:
    """Save the full debate transcript as a markdown file.

    Args:
        session: A session snapshot, normally terminal.
        output_dir: Directory to save the file in.
        slug_override: If provided, use this as the filename stem instead of
            deriving one from the question text. Useful for inbox mode.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(session.question)
    filepath = output_dir / f"{timestamp}_{slug}.md"

    panel = ", ".join(f"{p.display_name or p.name} ({p.role})" for p in session.participants)
    lines: list[str] = [
        f"# Roundtable Debate: {session.question[:80]}",
        "",
        f"**Date:** {session.created_at.strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Session:** {session.id}",
        f"**Status:** {session.status.value}",
        f"**Style:** {session.style.value}",
        f"**Participants:** {panel}",
        f"**Rounds:** {session.round_count} of {session.max_rounds}",
        f"**Cost:** ${session.cost.total_cost:.4f} "
        f"({session.cost.total_input_tokens} in / {session.cost.total_output_tokens} out tokens)",
    ]
    if session.template_id:
        lines.append(f"**Template:** {session.template_id}")
    if session.error:
        lines.append(f"**Error:** {session.error}")
    lines += ["", "---", ""]

    current_round = 0
    for message in session.messages:
        if message.round_number != current_round:
            current_round = message.round_number
            lines += [f"## Round {current_round}", ""]
        agrees = " - agrees" if message.is_agreement else ""
        lines += [
            f"### {message.participant} ({message.role}){agrees}",
            "",
            message.content,
            "",
            f"*Turn {message.turn_number} | Tokens: {message.usage.input_tokens} in / "
            f"{message.usage.output_tokens} out*",
            "",
        ]

    consensus = session.consensus
    if consensus is not None:
        lines += [f"## Consensus (by {consensus.synthesizer}, confidence {consensus.confidence})", "", consensus.summary, ""]
        if consensus.agreed_points:
            lines += ["### Agreed Points", ""] + [f"- {p}" for p in consensus.agreed_points] + [""]
        if consensus.disagreements:
            lines += ["### Unresolved Disagreements", ""] + [f"- {d}" for d in consensus.disagreements] + [""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Debate saved to: %s", filepath)
    return filepath
